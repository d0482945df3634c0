import structlog
import logging
import sys
from typing import Dict, Any, List, Optional

from garden import __version__


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "garden-server",
    environment: str = "development"
) -> None:
    """Setup structured logging configuration"""

    # Configure Python logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    # Processors for structlog
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    # Add appropriate renderer based on format
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    # Configure structlog
    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Service context; a relay handler adds session_id on top of this
    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=environment,
        service_version=__version__
    )


class GardenLogger:
    """Specialized logger for garden placement activity"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_placement(
        self,
        object_id: str,
        slot_id: str,
        slot_category: str,
        version: int,
        **kwargs
    ):
        """Log an object being placed into a slot"""

        self.logger.info(
            "object_placed",
            object_id=object_id,
            slot_id=slot_id,
            slot_category=slot_category,
            version=version,
            **kwargs
        )

    def log_eviction(
        self,
        object_id: str,
        slot_id: str,
        reason: str,
        **kwargs
    ):
        """Log an object being removed from its slot"""

        self.logger.info(
            "object_evicted",
            object_id=object_id,
            slot_id=slot_id,
            reason=reason,
            **kwargs
        )

    def log_idle_action(
        self,
        action: str,
        occupant_count: int,
        skipped: bool,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log the outcome of an idle timer firing"""

        self.logger.info(
            "idle_action",
            action=action,
            occupant_count=occupant_count,
            skipped=skipped,
            details=details or {}
        )

    def log_notification(
        self,
        address: str,
        version: int,
        events: List[str],
        success: bool = True,
        error: Optional[str] = None
    ):
        """Log a notification hand-off to the downstream consumer"""

        self.logger.info(
            "notification",
            address=address,
            version=version,
            count=len(events),
            events=events,
            success=success,
            error=error
        )


# Global logger instance
garden_logger = GardenLogger("garden")


class MetricsCollector:
    """In-process counters, gauges and latency statistics"""

    def __init__(self):
        self.counters: Dict[str, int] = {}
        self.gauges: Dict[str, float] = {}
        self.latencies: Dict[str, Dict[str, float]] = {}

    def record_latency(self, operation: str, duration_ms: float):
        """Record one timed run of an operation"""

        stats = self.latencies.setdefault(
            operation,
            {"count": 0, "total": 0.0, "min": duration_ms, "max": duration_ms}
        )
        stats["count"] += 1
        stats["total"] += duration_ms
        stats["min"] = min(stats["min"], duration_ms)
        stats["max"] = max(stats["max"], duration_ms)

        garden_logger.logger.debug("metric", kind="latency", name=operation, duration_ms=duration_ms)

    def increment_counter(self, name: str, value: int = 1):
        self.counters[name] = self.counters.get(name, 0) + value
        garden_logger.logger.debug("metric", kind="counter", name=name, value=self.counters[name])

    def set_gauge(self, name: str, value: float):
        self.gauges[name] = value
        garden_logger.logger.debug("metric", kind="gauge", name=name, value=value)

    def get_counter(self, name: str) -> int:
        """Current value of a counter, zero if never incremented"""
        return self.counters.get(name, 0)

    def reset(self):
        self.counters.clear()
        self.gauges.clear()
        self.latencies.clear()

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Flatten every metric into one dict; latencies are keyed latency.<operation>"""

        summary: Dict[str, Any] = {**self.counters, **self.gauges}
        for operation, stats in self.latencies.items():
            summary[f"latency.{operation}"] = {
                "count": stats["count"],
                "avg": stats["total"] / stats["count"],
                "min": stats["min"],
                "max": stats["max"]
            }

        return summary


# Global metrics collector
metrics = MetricsCollector()
