"""Core data structures: finite elements, quadrilateral meshes and solver metrics.

Architecture: inputs vs outputs

             Inputs (built once, read-only)      Outputs (per solve)
             ──────────────────────────────      ───────────────────
Geometry     QuadMesh (points, elements)         -
Elements     FiniteElement (nodes, area, coeff)  -
Solver       -                                   SolverMetrics
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from .geometry import Point2D

if TYPE_CHECKING:
    import meshio

# Local node permutations from meshio (counter-clockwise corners first) to the
# lexicographic order used by the bases
_MESHIO_TO_LOCAL = {
    "quad": np.array([0, 1, 3, 2]),
    "quad9": np.array([0, 4, 1, 7, 8, 5, 3, 6, 2]),
}
_LOCAL_TO_MESHIO = {kind: np.argsort(perm) for kind, perm in _MESHIO_TO_LOCAL.items()}
_CELL_TYPES = {4: "quad", 9: "quad9"}


@dataclass(frozen=True)
class FiniteElement:
    """One mesh cell: global node indices in local order, material tag and coefficient."""

    nodes: tuple[int, ...]
    area: int = 0
    coefficient: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(int(n) for n in self.nodes))

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, index):
        return self.nodes[index]

    def __iter__(self):
        return iter(self.nodes)


@dataclass
class QuadMesh:
    """Quadrilateral mesh with 4- or 9-node elements.

    Parameters
    ----------
    points : (n_nodes, 2) array-like of node coordinates
    elements : sequence of FiniteElement (or plain node lists)
    boundaries : named boundary node sets, e.g. ``{"left": [...], ...}``
    """

    points: NDArray[np.float64]
    elements: list[FiniteElement]
    boundaries: dict[str, NDArray[np.int64]] = field(default_factory=dict)

    element_nodes: NDArray[np.int64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.points = np.array(self.points, dtype=np.float64).reshape(-1, 2)
        self.elements = [
            e if isinstance(e, FiniteElement) else FiniteElement(tuple(e)) for e in self.elements
        ]
        self._validate()

        self.element_nodes = np.array([e.nodes for e in self.elements], dtype=np.int64)
        self.boundaries = {
            name: np.unique(np.asarray(nodes, dtype=np.int64))
            for name, nodes in self.boundaries.items()
        }
        if self.boundaries and "all" not in self.boundaries:
            self.boundaries["all"] = np.unique(np.concatenate(list(self.boundaries.values())))

        # Shared read-only after construction
        self.points.flags.writeable = False
        self.element_nodes.flags.writeable = False

    def _validate(self) -> None:
        if len(self.points) == 0 or len(self.elements) == 0:
            raise ValueError("Mesh must contain at least one point and one element")

        sizes = {len(e) for e in self.elements}
        if len(sizes) != 1:
            raise ValueError(f"All elements must have the same node count, got {sorted(sizes)}")
        if sizes.pop() not in _CELL_TYPES:
            raise ValueError(f"Unsupported element size, expected one of {sorted(_CELL_TYPES)}")

        n = len(self.points)
        for ielem, element in enumerate(self.elements):
            if min(element.nodes) < 0 or max(element.nodes) >= n:
                raise ValueError(
                    f"Element {ielem} references node outside [0, {n}): {element.nodes}"
                )

    @property
    def n_nodes(self) -> int:
        return len(self.points)

    @property
    def n_elements(self) -> int:
        return len(self.elements)

    @property
    def element_size(self) -> int:
        return self.element_nodes.shape[1]

    def point(self, index: int) -> Point2D:
        x, y = self.points[index]
        return Point2D(float(x), float(y))

    def element_coords(self, ielem: int) -> NDArray[np.float64]:
        """Physical coordinates of the nodes of element ``ielem``, shape (n_local, 2)."""
        return self.points[self.element_nodes[ielem]]

    def boundary_nodes(self, side: str = "all") -> NDArray[np.int64]:
        """Global indices of the nodes on a named boundary."""
        try:
            return self.boundaries[side]
        except KeyError:
            raise ValueError(
                f"Unknown boundary '{side}'. Available: {sorted(self.boundaries)}"
            ) from None

    @classmethod
    def from_meshio(cls, mesh: meshio.Mesh | str | Path) -> QuadMesh:
        """
        Create a QuadMesh from a meshio mesh or mesh file.

        Parameters
        ----------
        mesh : meshio.Mesh or str or Path
            Either a meshio Mesh object or path to a mesh file. The first
            ``quad`` or ``quad9`` cell block is used.

        Returns
        -------
        QuadMesh
            Mesh with element nodes permuted to lexicographic local order.
        """
        import meshio as mio

        if isinstance(mesh, (str, Path)):
            mesh = mio.read(mesh)

        cells = None
        for cell_block in mesh.cells:
            if cell_block.type in _MESHIO_TO_LOCAL:
                cells = cell_block.data[:, _MESHIO_TO_LOCAL[cell_block.type]]
                break

        if cells is None:
            raise ValueError("No quad or quad9 cells found in mesh")

        points = np.asarray(mesh.points)[:, :2]
        return cls(
            points=points,
            elements=[FiniteElement(tuple(c)) for c in cells],
            boundaries={"all": outer_boundary_nodes(cells)},
        )

    def to_meshio(self, point_data: dict[str, NDArray[np.float64]] | None = None) -> meshio.Mesh:
        """Export as a meshio mesh (z = 0), with optional nodal fields."""
        import meshio as mio

        kind = _CELL_TYPES[self.element_size]
        points = np.column_stack([self.points, np.zeros(self.n_nodes)])
        cells = [(kind, self.element_nodes[:, _LOCAL_TO_MESHIO[kind]])]
        return mio.Mesh(points, cells, point_data=point_data or {})


def outer_boundary_nodes(element_nodes) -> NDArray[np.int64]:
    """Nodes on element sides that belong to exactly one element.

    Sides are matched by their two corner nodes, so ``element_nodes`` must be
    in lexicographic local order.
    """
    element_nodes = np.asarray(element_nodes, dtype=np.int64)
    n = int(round(np.sqrt(element_nodes.shape[1])))
    grid = np.arange(n * n).reshape(n, n)
    sides = [grid[0], grid[-1], grid[:, 0], grid[:, -1]]

    side_nodes = np.concatenate([element_nodes[:, side] for side in sides])
    keys = np.sort(side_nodes[:, [0, -1]], axis=1)
    _, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
    outer = counts[inverse.ravel()] == 1
    return np.unique(side_nodes[outer])


@dataclass
class SolverMetrics:
    """Iterative solver results: computed during/after ``compute()``."""

    iterations: int = 0
    converged: bool = False
    final_residual: float = float("inf")
    wall_time_seconds: float = 0.0

    def to_dict(self) -> dict:
        """Plain dict (bools as int, skip unset values)."""
        return {
            k: (int(v) if isinstance(v, bool) else v)
            for k, v in asdict(self).items()
            if v != float("inf")
        }

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([self.to_dict()])


def element_from_points(points: Sequence, nodes: Sequence[int]) -> QuadMesh:
    """Single-element mesh, handy for local tests of assemblers and mappings."""
    return QuadMesh(points=np.asarray(points), elements=[FiniteElement(tuple(nodes))])
