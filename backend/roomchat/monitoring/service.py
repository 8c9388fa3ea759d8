"""Process metrics and health reporting.

The chat controller bumps the counters through the ``MetricsHook`` methods;
HTTP middleware bumps requests and errors. Nothing here aggregates over
time beyond plain counters.
"""
import logging
import platform
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict

import psutil

from roomchat.chat.lifecycle import MetricsHook

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _fresh_counters() -> Dict[str, int]:
    return {
        "requests": 0,
        "errors": 0,
        "socketConnections": 0,
        "messagesProcessed": 0,
    }


def _mb(num_bytes: int) -> float:
    return round(num_bytes / (1024**2), 2)


class MonitoringService(MetricsHook):
    """Counters plus health, metrics and performance views."""

    def __init__(self) -> None:
        self.start_time = time.time()
        self.metrics = _fresh_counters()
        self.process = psutil.Process()

    # Counter hooks

    def increment_requests(self) -> None:
        self.metrics["requests"] += 1

    def increment_errors(self) -> None:
        self.metrics["errors"] += 1

    def increment_socket_connections(self) -> None:
        self.metrics["socketConnections"] += 1

    def increment_messages(self) -> None:
        self.metrics["messagesProcessed"] += 1

    def reset_metrics(self) -> None:
        self.metrics = _fresh_counters()

    # Views

    def memory_usage(self) -> Dict[str, Any]:
        """Current resident and virtual size of this process, in MB."""
        memory = self.process.memory_info()
        return {"rss": _mb(memory.rss), "vms": _mb(memory.vms), "unit": "MB"}

    def cpu_usage(self) -> Dict[str, float]:
        """CPU seconds spent by this process so far."""
        times = self.process.cpu_times()
        return {"user": round(times.user, 3), "system": round(times.system, 3)}

    def uptime_ms(self) -> int:
        return int((time.time() - self.start_time) * 1000)

    def error_rate(self) -> str:
        requests = self.metrics["requests"]
        if requests == 0:
            return "0%"
        return f"{self.metrics['errors'] / requests * 100:.2f}%"

    def get_health_status(self, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        """Health document.

        Args:
            snapshot: Live chat snapshot from
                ``SessionLifecycleController.snapshot()``.
        """
        uptime = self.uptime_ms()
        return {
            "status": "healthy",
            "timestamp": _now_iso(),
            "uptime": {
                "seconds": uptime // 1000,
                "formatted": format_uptime(uptime),
            },
            "users": {
                "total": snapshot.get("users", 0),
                "connected": snapshot.get("connections", 0),
            },
            "rooms": snapshot.get("rooms", []),
            "system": {
                "platform": sys.platform,
                "pythonVersion": platform.python_version(),
                "memory": self.memory_usage(),
                "cpu": {
                    "cores": psutil.cpu_count(),
                    "loadAverage": [round(load, 2) for load in psutil.getloadavg()],
                },
            },
            "metrics": {**self.metrics, "errorRate": self.error_rate()},
        }

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "timestamp": _now_iso(),
            "uptime": self.uptime_ms(),
            **self.metrics,
            "cpu": self.cpu_usage(),
        }

    def get_performance_metrics(self) -> Dict[str, Any]:
        return {
            "timestamp": _now_iso(),
            "memory": self.memory_usage(),
            "cpu": self.cpu_usage(),
            "uptime": self.uptime_ms() / 1000,
            "metrics": dict(self.metrics),
        }


def format_uptime(ms: int) -> str:
    """Human-readable uptime: "2d 3h", "3h 4m", "4m 5s" or "5s"."""
    seconds = ms // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


# Global singleton shared by the chat controller and the HTTP middleware
monitoring = MonitoringService()
