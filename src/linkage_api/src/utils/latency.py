from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from time import perf_counter

from loguru import logger


@dataclass(slots=True)
class Latency:
    """Elapsed milliseconds of one engine stage."""

    stage: str | None = None
    ms: float = 0.0


@contextmanager
def measure_latency(stage: str | None = None) -> Iterator[Latency]:
    """Measure elapsed time in milliseconds; named stages are logged at DEBUG."""
    start = perf_counter()
    latency = Latency(stage=stage)
    try:
        yield latency
    finally:
        latency.ms = (perf_counter() - start) * 1000
        if stage is not None:
            logger.debug("{stage} took {ms:.2f} ms", stage=stage, ms=latency.ms)
