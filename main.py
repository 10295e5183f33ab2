"""
quadfem - solve a manufactured Poisson problem and write the results.

Usage:
    uv run python main.py
    uv run python main.py problem.name=sine mesh.splits_x=32 mesh.splits_y=32
    uv run python main.py mesh.type=annulus assembler.name=curvilinear basis.order=2
    uv run python main.py -m basis.order=1,2 mesh.splits_x=4,8,16
"""

import logging
import sys
from pathlib import Path

import hydra
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
from hydra.utils import instantiate
from omegaconf import DictConfig, OmegaConf

sys.path.insert(0, str(Path(__file__).parent / "src"))

from quadfem import (  # noqa: E402
    CurveMeshParameters,
    FemConfig,
    Integration,
    Interval,
    MeshParameters,
    Point2D,
    PointOutsideMeshError,
    QuadMesh,
    SolverFem,
    annulus_mesh,
    dirichlet_boundaries,
    get_problem,
    make_assembler,
    make_basis,
    rectangle_mesh,
)
from quadfem.plot_style import plot_solution, save_figure, setup_style  # noqa: E402

log = logging.getLogger(__name__)


def create_mesh(cfg: DictConfig) -> QuadMesh:
    order = cfg.basis.order
    if cfg.mesh.type == "rectangle":
        params = MeshParameters(
            Interval(*cfg.mesh.interval_x), cfg.mesh.splits_x,
            Interval(*cfg.mesh.interval_y), cfg.mesh.splits_y,
        )
        return rectangle_mesh(params, order=order, coefficient=cfg.mesh.coefficient)
    elif cfg.mesh.type == "annulus":
        params = CurveMeshParameters(
            Point2D(*cfg.mesh.center),
            cfg.mesh.inner_radius, cfg.mesh.outer_radius,
            cfg.mesh.splits_radius, cfg.mesh.splits_angle,
        )
        return annulus_mesh(params, order=order, coefficient=cfg.mesh.coefficient)
    elif cfg.mesh.type == "file":
        path = hydra.utils.to_absolute_path(cfg.mesh.path)
        return QuadMesh.from_meshio(path)
    else:
        raise ValueError(f"Unknown mesh type: {cfg.mesh.type}")


def boundary_sides(cfg: DictConfig) -> list[str]:
    if cfg.boundaries.sides is None:
        return ["all"]
    return list(cfg.boundaries.sides)


def build_config(cfg: DictConfig) -> FemConfig:
    mesh = create_mesh(cfg)
    basis = make_basis("linear" if cfg.basis.order == 1 else "quadratic")
    integration = Integration(cfg.basis.quadrature_points)

    options = {}
    if cfg.assembler.name == "curvilinear":
        options["linear_jacobian"] = cfg.assembler.linear_jacobian

    return FemConfig(
        mesh=mesh,
        problem=get_problem(cfg.problem.name),
        assembler=make_assembler(cfg.assembler.name, basis, integration, mesh, **options),
        solver=instantiate(cfg.solver),
        boundaries=dirichlet_boundaries(mesh, boundary_sides(cfg)),
    )


def write_outputs(cfg: DictConfig, fem: SolverFem, output_dir: Path) -> None:
    df = fem.results()
    if cfg.output.save_csv:
        df.to_csv(output_dir / "results.csv", index=False)
        fem.config.solver.metrics.to_dataframe().to_csv(output_dir / "metrics.csv", index=False)

    if cfg.output.save_vtu:
        mesh = fem.mesh.to_meshio({
            "u": df["numeric"].to_numpy(),
            "exact": df["exact"].to_numpy(),
            "error": df["error"].to_numpy(),
        })
        mesh.write(output_dir / "solution.vtu")
        log.info(f"Saved: {output_dir / 'solution.vtu'}")

    if cfg.output.save_plot:
        setup_style()
        fig, _ = plot_solution(fem.mesh, fem.solution, title=f"{cfg.problem.name}, order {cfg.basis.order}")
        save_figure(fig, output_dir / "solution.png")
        plt.close(fig)


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> float:
    """Main entry point.

    Returns
    -------
    float
        Maximum nodal error, usable as a sweep objective.
    """
    output_dir = Path(hydra.core.hydra_config.HydraConfig.get().runtime.output_dir)
    OmegaConf.save(cfg, output_dir / "config_resolved.yaml", resolve=True)
    log.info(f"Problem: {cfg.problem.name}, mesh: {cfg.mesh.type}, order {cfg.basis.order}")

    fem = SolverFem(build_config(cfg))
    fem.compute()

    metrics = fem.config.solver.metrics
    log.info(
        f"Done: {metrics.iterations} iter, converged={metrics.converged}, "
        f"time={metrics.wall_time_seconds:.2f}s"
    )
    log.info(f"Max nodal error: {fem.max_error():.6e}, relative error: {fem.relative_error():.6e}")

    if cfg.output.integrate:
        log.info(f"Integral of |u_h - u|: {fem.integrate():.6e}")

    for point in cfg.output.points:
        try:
            value = fem.calculate_at_point(tuple(point))
        except PointOutsideMeshError as exc:
            log.warning(str(exc))
            continue
        log.info(f"u_h({point[0]}, {point[1]}) = {value:.10f}")

    write_outputs(cfg, fem, output_dir)
    return fem.max_error()


if __name__ == "__main__":
    main()
