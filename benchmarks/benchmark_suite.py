"""
Benchmark Suite

Per-step timing of the discrete velocity solver.
Compares the per-velocity NumPy path with the Numba kernels over a range
of mesh sizes and lattice resolutions.

Throughput is reported in MDUPS: million (discrete velocity x cell)
updates per second.
"""

import numpy as np
import time
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fvdvm import FvDVM, build_box_mesh
from fvdvm.config import DVMParameters, GasProperties

GAS = GasProperties(R=1.0, omega=0.5, T_ref=1.0, mu_ref=0.05, Pr=2.0 / 3.0)


def make_solver(nx, n_dv, use_fast, dt=0.001):
    """Periodic box of nx^3 cells with a density wave, lattice n_dv^3."""
    mesh = build_box_mesh((nx, nx, nx), periodic=(True, True, True))
    x = mesh.cell_centres[:, 0]
    rho = 1.0 + 0.05 * np.sin(2 * np.pi * x)
    U = np.zeros((mesh.n_cells, 3))
    dvm = DVMParameters(-4.0, 4.0, n_dv)
    return FvDVM(mesh, rho, U, dvm, GAS, dt, use_fast=use_fast)


def benchmark_step(nx, n_dv, num_steps, use_fast=True, warmup_steps=2):
    """
    Benchmark evolution() for one configuration.

    Returns
    -------
    mdups : float
        Million DV-cell updates per second
    """
    solver = make_solver(nx, n_dv, use_fast)

    # Warmup (includes Numba compilation on first call)
    for _ in range(warmup_steps):
        solver.evolution()

    start = time.perf_counter()
    for _ in range(num_steps):
        solver.evolution()
    elapsed = time.perf_counter() - start

    return num_steps * solver.n_xi * solver.mesh.n_cells / elapsed / 1e6


def benchmark_stages(nx, n_dv, num_steps=5):
    """
    Time each pipeline stage separately (Numba path).

    Returns
    -------
    timings : dict
        Stage name -> mean seconds per step
    """
    solver = make_solver(nx, n_dv, use_fast=True)
    solver.evolution()

    timings = {'snapshot': 0.0, 'volume': 0.0, 'faces': 0.0,
               'boundary': 0.0, 'moments': 0.0}
    for _ in range(num_steps):
        t0 = time.perf_counter()
        snapshot = solver._take_snapshot()
        t1 = time.perf_counter()
        solver._update_gbar_vol(snapshot)
        t2 = time.perf_counter()
        solver._update_surf()
        t3 = time.perf_counter()
        solver._update_boundary()
        t4 = time.perf_counter()
        solver._update_macro_vol()
        t5 = time.perf_counter()

        timings['snapshot'] += t1 - t0
        timings['volume'] += t2 - t1
        timings['faces'] += t3 - t2
        timings['boundary'] += t4 - t3
        timings['moments'] += t5 - t4

    return {name: total / num_steps for name, total in timings.items()}


def run_full_benchmark(mesh_sizes=None, lattice_sizes=None, num_steps=5):
    """
    Run the benchmark over mesh and lattice sizes.

    Parameters
    ----------
    mesh_sizes : list of int
        Cells per direction
    lattice_sizes : list of int
        Discrete velocities per direction (4k + 1)
    num_steps : int
        Timed steps per configuration

    Returns
    -------
    results : dict
        Implementation -> {(nx, n_dv): MDUPS}
    """
    if mesh_sizes is None:
        mesh_sizes = [4, 8, 16]
    if lattice_sizes is None:
        lattice_sizes = [9, 13, 17]

    print("=" * 70)
    print("DISCRETE VELOCITY METHOD BENCHMARK")
    print("=" * 70)
    print()

    results = {'numpy': {}, 'numba': {}}

    for label, use_fast in (('numba', True), ('numpy', False)):
        print(f"Benchmarking {label} path...")
        print("-" * 40)
        for nx in mesh_sizes:
            for n_dv in lattice_sizes:
                mdups = benchmark_step(nx, n_dv, num_steps, use_fast=use_fast)
                results[label][(nx, n_dv)] = mdups
                print(f"  {nx:3d}^3 cells, {n_dv:3d}^3 DVs: {mdups:8.2f} MDUPS")
        print()

    print("=" * 70)
    print("SUMMARY: Performance Comparison (MDUPS)")
    print("=" * 70)
    print(f"{'Cells':<10} {'DVs':<10} {'NumPy':>10} {'Numba':>10} {'Speedup':>10}")
    print("-" * 70)

    for nx in mesh_sizes:
        for n_dv in lattice_sizes:
            slow = results['numpy'][(nx, n_dv)]
            fast = results['numba'][(nx, n_dv)]
            speedup = f"{fast / slow:.1f}x" if slow > 0 else "N/A"
            print(f"{nx:3d}^3     {n_dv:3d}^3     {slow:>10.2f} {fast:>10.2f} {speedup:>10}")

    print("=" * 70)
    return results


def print_memory_analysis(mesh_sizes=(4, 8, 16, 32), lattice_sizes=(9, 17, 25, 41)):
    """Print the distribution storage per configuration (g, h at cells and faces)."""
    print()
    print("Distribution Storage")
    print("=" * 50)
    print(f"{'Cells':<10} {'DVs':<10} {'Memory':>12}")
    print("-" * 50)
    for nx in mesh_sizes:
        n_cells = nx ** 3
        n_faces = 3 * nx ** 3
        for n_dv in lattice_sizes:
            n_xi = n_dv ** 3
            nbytes = 2 * n_xi * (n_cells + n_faces) * 8
            print(f"{nx:3d}^3     {n_dv:3d}^3     {nbytes / 1e9:>9.3f} GB")
    print("=" * 50)


if __name__ == "__main__":
    results = run_full_benchmark()

    print()
    print("Stage timings, 8^3 cells, 17^3 DVs (seconds per step)")
    for stage, seconds in benchmark_stages(8, 17).items():
        print(f"  {stage:<10} {seconds:.4f}")

    print_memory_analysis()
