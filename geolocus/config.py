"""Configuration helpers for curve tracing and locus requests."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class TracingConfig:
    """Knobs for the implicit-curve tracer.

    ``step_fraction`` is the marching step as a fraction of the normalized
    region's diagonal; ``clip_margin`` is the viewport margin, also relative to
    the diagonal, past which a branch is split.
    """

    grid_size: int = 48
    step_fraction: float = 0.004
    max_steps: int = 4000
    newton_iterations: int = 8
    newton_tol: float = 1e-10
    clip_margin: float = 0.02


@dataclass
class LocusOptions:
    to_origin: Optional[int] = None
    to_x_axis: Optional[int] = None
    # PointSelector from geolocus.normalize; None means the default heuristic
    selector: Optional[Callable[..., Any]] = None
    timeout: float = 10.0


_TRACING_CONFIG = TracingConfig()


def get_tracing_config() -> TracingConfig:
    return copy.deepcopy(_TRACING_CONFIG)


def set_tracing_config(config: TracingConfig) -> None:
    global _TRACING_CONFIG
    _TRACING_CONFIG = copy.deepcopy(config)


__all__ = ["LocusOptions", "TracingConfig", "get_tracing_config", "set_tracing_config"]
