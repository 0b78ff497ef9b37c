import logging
import time
from contextlib import contextmanager
from typing import Dict, Iterator

logger = logging.getLogger(__name__)


class StageTimer:
    """Wall-clock timings of the named stages of one run, in execution order."""

    def __init__(self) -> None:
        self.durations: Dict[str, float] = {}

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        if name in self.durations:
            raise KeyError(f"Stage '{name}' already timed")
        started = time.perf_counter()
        try:
            yield
        finally:
            self.durations[name] = time.perf_counter() - started
            logger.debug("stage %s took %.3fs", name, self.durations[name])

    @property
    def total(self) -> float:
        return sum(self.durations.values())

    def summary(self) -> str:
        parts = [f"{k}={v:.3f}s" for k, v in self.durations.items()]
        parts.append(f"total={self.total:.3f}s")
        return ", ".join(parts)
