from .logging import GardenLogger, MetricsCollector, garden_logger, metrics, setup_logging

__all__ = ["GardenLogger", "MetricsCollector", "garden_logger", "metrics", "setup_logging"]
