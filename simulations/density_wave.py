"""
Density Wave Simulation

Small-amplitude sound wave in a periodic box.

A density perturbation rho = rho0 (1 + eps sin(2 pi x / L)) splits into two
travelling waves that propagate at the isothermal sound speed
c_s = sqrt(R T) and decay through viscous damping:

    rho(x, t) - rho0 ~ eps rho0 sin(2 pi x / L) cos(k c_s t) exp(-Gamma t)

with k = 2 pi / L. The total mass in the box must stay constant.
"""

import numpy as np
import matplotlib.pyplot as plt
import time
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fvdvm import FvDVM, build_box_mesh
from fvdvm.config import DVMParameters, GasProperties


def run_density_wave(n_cells=32, amplitude=0.01, mu_ref=0.01, n_dv=13,
                     num_periods=2.0, dt=None, verbose=True):
    """
    Run the density wave and record the amplitude history.

    Returns
    -------
    history : dict
        Time, mode amplitude and total mass per step
    solver : FvDVM
        Solver after the run
    """
    gas = GasProperties(R=1.0, omega=0.5, T_ref=1.0, mu_ref=mu_ref, Pr=2.0 / 3.0)
    dvm = DVMParameters(-4.0, 4.0, n_dv)
    mesh = build_box_mesh((n_cells, 1, 1), periodic=(True, True, True))

    x = mesh.cell_centres[:, 0]
    rho = 1.0 + amplitude * np.sin(2 * np.pi * x)
    U = np.zeros((n_cells, 3))

    if dt is None:
        dt = 0.2 / n_cells
    solver = FvDVM(mesh, rho, U, dvm, gas, dt, verbose=verbose)

    period = 1.0 / gas.cs
    num_steps = int(num_periods * period / dt)
    mode = np.sin(2 * np.pi * x)

    history = {'t': [0.0], 'amplitude': [2.0 * np.mean((rho - 1.0) * mode)],
               'mass': [solver.total_mass()]}

    start = time.perf_counter()
    for _ in range(num_steps):
        solver.evolution()
        history['t'].append(solver.time_index * dt)
        history['amplitude'].append(2.0 * np.mean((solver.rho - 1.0) * mode))
        history['mass'].append(solver.total_mass())
    elapsed = time.perf_counter() - start

    if verbose:
        mass = np.array(history['mass'])
        print(f"Steps: {num_steps}, time: {elapsed:.2f}s")
        print(f"Relative mass drift: {np.max(np.abs(mass / mass[0] - 1.0)):.2e}")

    return {k: np.array(v) for k, v in history.items()}, solver


def plot_density_wave(history, amplitude, cs=1.0, save_path=None):
    """
    Plot the mode amplitude against the undamped oscillation.

    Parameters
    ----------
    history : dict
        Output of ``run_density_wave``
    amplitude : float
        Initial amplitude
    cs : float
        Isothermal sound speed
    save_path : str, optional
        Path to save figure
    """
    t = history['t']
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))

    ax1.plot(t, history['amplitude'] / amplitude, 'r-', linewidth=1.5, label='DVM')
    ax1.plot(t, np.cos(2 * np.pi * cs * t), 'k--', linewidth=1, label='Undamped')
    ax1.set_xlabel('Time $t$')
    ax1.set_ylabel('Normalised mode amplitude')
    ax1.set_title('Density Wave')
    ax1.legend()
    ax1.grid(True, alpha=0.3)

    ax2.plot(t, history['mass'] / history['mass'][0] - 1.0, 'k-')
    ax2.set_xlabel('Time $t$')
    ax2.set_ylabel('Relative mass change')
    ax2.set_title('Mass Conservation')
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        os.makedirs(os.path.dirname(save_path) or '.', exist_ok=True)
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Saved figure to {save_path}")

    plt.show()

    return fig


if __name__ == "__main__":
    history, solver = run_density_wave()
    plot_density_wave(history, 0.01, cs=solver.cs,
                      save_path='results/validation/density_wave.png')
