"""Elimination backends: local sympy engine and HTTP client/service."""

from .base import EliminationClient
from .http_client import HttpEliminationClient
from .service import create_app, run_service
from .sympy_engine import SympyEliminationEngine, eliminate_polynomials

__all__ = [
    "EliminationClient",
    "HttpEliminationClient",
    "SympyEliminationEngine",
    "create_app",
    "eliminate_polynomials",
    "run_service",
]
