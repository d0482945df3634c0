from .idle_monitor import IdleMonitor

__all__ = ["IdleMonitor"]
