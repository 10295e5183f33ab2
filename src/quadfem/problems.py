"""Manufactured solutions for ``-div(lambda grad u) = f`` with lambda = 1."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np

from .geometry import Point2D


@dataclass(frozen=True)
class ManufacturedProblem:
    """Exact solution ``u`` and the matching source ``f``."""

    name: str
    u: Callable[[Point2D], float]
    f: Callable[[Point2D], float]


PROBLEMS = {
    "linear": ManufacturedProblem(
        "linear",
        u=lambda p: p.x + p.y,
        f=lambda p: 0.0,
    ),
    "quadratic": ManufacturedProblem(
        "quadratic",
        u=lambda p: p.x**2 + p.y**2,
        f=lambda p: -4.0,
    ),
    "cubic": ManufacturedProblem(
        "cubic",
        u=lambda p: p.x**3 + p.y**2,
        f=lambda p: -6.0 * p.x - 2.0,
    ),
    "sine": ManufacturedProblem(
        "sine",
        u=lambda p: np.sin(np.pi * p.x) * np.sin(np.pi * p.y),
        f=lambda p: 2.0 * np.pi**2 * np.sin(np.pi * p.x) * np.sin(np.pi * p.y),
    ),
}


def get_problem(name: str) -> ManufacturedProblem:
    try:
        return PROBLEMS[name]
    except KeyError:
        raise ValueError(f"Unknown problem: {name}. Use one of {sorted(PROBLEMS)}.") from None
