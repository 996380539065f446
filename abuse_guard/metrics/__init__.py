# Metrics Module
from .prometheus import metrics, setup_metrics, record_analysis

__all__ = ["metrics", "setup_metrics", "record_analysis"]
