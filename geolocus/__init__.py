from .config import LocusOptions, TracingConfig, get_tracing_config, set_tracing_config
from .constructions import SPECS, Construction, ConstructionSpec
from .curves import build
from .elimination import (
    EliminationClient,
    HttpEliminationClient,
    SympyEliminationEngine,
    create_app,
    eliminate_polynomials,
    run_service,
)
from .errors import (
    ComputationError,
    ComputationTimeout,
    CyclicDependency,
    DegenerateSystem,
    GeolocusError,
    InvalidParentTypes,
    PolynomialSyntaxError,
    Unreachable,
)
from .graph import ConstructionGraph
from .locus import LocusResult, LocusState, compute_signature
from .model import BoundingBox, Element, ImplicitPolynomial, SampledCurve
from .normalize import Transform, designated_points, first_free_points
from .numerics import EPS, INFINITE_POINT, is_infinite
from .polynomials import format_polynomial, parse_polynomial
from .scene import load_scene, parse_viewport
from .scheduler import UpdateScheduler
from .symbolic import ConstraintSystem, collect_system

__all__ = [
    "BoundingBox",
    "ComputationError",
    "ComputationTimeout",
    "ConstraintSystem",
    "Construction",
    "ConstructionGraph",
    "ConstructionSpec",
    "CyclicDependency",
    "DegenerateSystem",
    "EPS",
    "Element",
    "EliminationClient",
    "GeolocusError",
    "HttpEliminationClient",
    "INFINITE_POINT",
    "ImplicitPolynomial",
    "InvalidParentTypes",
    "LocusOptions",
    "LocusResult",
    "LocusState",
    "PolynomialSyntaxError",
    "SPECS",
    "SampledCurve",
    "SympyEliminationEngine",
    "TracingConfig",
    "Transform",
    "Unreachable",
    "UpdateScheduler",
    "build",
    "collect_system",
    "compute_signature",
    "create_app",
    "designated_points",
    "eliminate_polynomials",
    "first_free_points",
    "format_polynomial",
    "get_tracing_config",
    "is_infinite",
    "load_scene",
    "parse_polynomial",
    "parse_viewport",
    "run_service",
    "set_tracing_config",
]
