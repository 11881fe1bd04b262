"""Semantic-version parsing and the version constraint solver."""

from .models import ConstraintEntry, VersionConflict, VersionSolution
from .solver import VersionSolver

__all__ = [
    "ConstraintEntry",
    "VersionConflict",
    "VersionSolution",
    "VersionSolver",
]
