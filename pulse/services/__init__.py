from .analytics_service import AnalyticsService
from .metric_collector import MetricCollector, MetricSample

__all__ = ['AnalyticsService', 'MetricCollector', 'MetricSample']
