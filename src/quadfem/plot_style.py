"""Matplotlib helpers: shared style, figure saving and nodal field plots."""

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import matplotlib.tri as mtri
import numpy as np

from .basis import basis_for_element
from .datastructures import QuadMesh

log = logging.getLogger(__name__)

STYLE_PATH = Path(__file__).resolve().parent / "fem.mplstyle"

# Two triangles per quadrilateral, in lexicographic corner positions (0, 1, 2, 3)
_CORNER_TRIANGLES = np.array([[0, 1, 3], [0, 3, 2]])


def setup_style():
    """Apply shared matplotlib style."""
    if STYLE_PATH.exists():
        plt.style.use(STYLE_PATH)
    plt.rcParams.setdefault("savefig.bbox", "tight")


def save_figure(fig, filename: str | Path):
    """
    Save figure to the specified path.
    """
    filepath = Path(filename)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(filepath, bbox_inches="tight")
    log.info(f"Saved: {filepath}")
    return filepath


def corner_triangulation(mesh: QuadMesh) -> mtri.Triangulation:
    """Split every element along its corner diagonal (mid-edge nodes ignored)."""
    corners = mesh.element_nodes[:, list(basis_for_element(mesh.element_size).corners)]
    triangles = corners[:, _CORNER_TRIANGLES].reshape(-1, 3)
    return mtri.Triangulation(mesh.points[:, 0], mesh.points[:, 1], triangles)


def plot_solution(mesh: QuadMesh, values, title: str = "", ax=None, levels: int = 20):
    """Filled contour plot of a nodal field with the element edges on top."""
    if ax is None:
        fig, ax = plt.subplots()
    else:
        fig = ax.figure

    tri = corner_triangulation(mesh)
    contour = ax.tricontourf(tri, np.asarray(values), levels=levels, cmap="viridis")
    ax.triplot(tri, color="k", linewidth=0.2, alpha=0.4)
    fig.colorbar(contour, ax=ax)
    ax.set_aspect("equal")
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    if title:
        ax.set_title(title)
    return fig, ax
