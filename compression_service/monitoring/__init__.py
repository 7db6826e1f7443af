"""
Monitoring Module

Service metrics and Prometheus exposition.
"""

from .metrics_collector import MetricsCollector

__all__ = ["MetricsCollector"]
