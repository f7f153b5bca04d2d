"""
Timing utilities for pipeline stages and external calls.
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

logger = logging.getLogger("chunkscribe")


class TimingContext:
    """Context manager that logs how long a pipeline stage took."""

    def __init__(self, stage_name: str, logger_instance: Optional[logging.Logger] = None, **metadata: Any):
        self.stage_name = stage_name
        self.logger = logger_instance or logger
        self.start_time: Optional[float] = None
        self.duration: Optional[float] = None
        self.metadata: Dict[str, Any] = dict(metadata)

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.time() - self.start_time
        duration_ms = round(self.duration * 1000, 2)

        log_parts = [f"[TIMING] {self.stage_name}", f"duration={duration_ms}ms"]
        if self.metadata:
            log_parts.append(", ".join(f"{k}={v}" for k, v in self.metadata.items()))
        if exc_type is not None:
            log_parts.append(f"failed={exc_type.__name__}")

        self.logger.info(
            " | ".join(log_parts),
            extra={"stage": self.stage_name, "duration_ms": duration_ms},
        )
        return False  # Don't suppress exceptions

    def add_metadata(self, **kwargs):
        """Add metadata to timing log."""
        self.metadata.update(kwargs)


@contextmanager
def timing(stage_name: str, logger_instance: Optional[logging.Logger] = None, **metadata: Any):
    """Simple timing context manager."""
    with TimingContext(stage_name, logger_instance, **metadata) as ctx:
        yield ctx
