"""Plain geometric value types: points, intervals and axis-aligned rectangles."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


@dataclass(frozen=True)
class Point2D:
    """Immutable point (or vector) in the plane."""

    x: float
    y: float

    def __add__(self, other: Point2D) -> Point2D:
        return Point2D(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point2D) -> Point2D:
        return Point2D(self.x - other.x, self.y - other.y)

    def __mul__(self, value: float) -> Point2D:
        return Point2D(self.x * value, self.y * value)

    __rmul__ = __mul__

    def __truediv__(self, value: float) -> Point2D:
        return Point2D(self.x / value, self.y / value)

    def __iter__(self):
        yield self.x
        yield self.y

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=np.float64)

    @classmethod
    def of(cls, point) -> Point2D:
        """Coerce a ``Point2D`` or any ``(x, y)`` pair."""
        if isinstance(point, cls):
            return point
        x, y = point
        return cls(float(x), float(y))


@dataclass(frozen=True)
class Interval:
    """Closed interval ``[left, right]`` of one coordinate axis."""

    left: float
    right: float

    @property
    def center(self) -> float:
        return (self.left + self.right) / 2.0

    @property
    def length(self) -> float:
        return abs(self.right - self.left)


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned rectangle given by two opposite corners."""

    left_bottom: Point2D
    right_top: Point2D
    left_top: Point2D = field(init=False)
    right_bottom: Point2D = field(init=False)

    def __post_init__(self):
        # frozen dataclass: derived corners go through object.__setattr__
        lb, rt = Point2D.of(self.left_bottom), Point2D.of(self.right_top)
        object.__setattr__(self, "left_bottom", lb)
        object.__setattr__(self, "right_top", rt)
        object.__setattr__(self, "left_top", Point2D(lb.x, rt.y))
        object.__setattr__(self, "right_bottom", Point2D(rt.x, lb.y))

    @property
    def hx(self) -> float:
        return self.right_top.x - self.left_bottom.x

    @property
    def hy(self) -> float:
        return self.right_top.y - self.left_bottom.y

    @property
    def corners(self) -> tuple[Point2D, Point2D, Point2D, Point2D]:
        """Corners in counter-clockwise order starting at the left bottom."""
        return (self.left_bottom, self.right_bottom, self.right_top, self.left_top)


# Template (reference) element shared by the basis functions and quadrature
UNIT_SQUARE = Rectangle(Point2D(0.0, 0.0), Point2D(1.0, 1.0))
