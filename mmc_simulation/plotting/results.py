"""
Simulation results visualization.

This module provides visualization functions for photon simulation results:
time-resolved field profiles, field slices and detected photon statistics.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import matplotlib.pyplot as plt

from .. import config
from ..core.data_classes import SimulationResult
from ..core.mesh import TetMesh

_AXES = {'x': 0, 'y': 1, 'z': 2}


def _gate_centres(result: SimulationResult) -> np.ndarray:
    cfg = result.config
    return cfg.tstart + (np.arange(result.field.shape[1]) + 0.5) * cfg.tstep


def _unit_positions(mesh: TetMesh, result: SimulationResult) -> np.ndarray:
    if result.config.basis_order > 0:
        return mesh.nodes[:result.field.shape[0]]
    return mesh.centroids


def plot_time_profile(
    result: SimulationResult,
    indices: Optional[Sequence[int]] = None,
    save_path: Optional[str] = None,
    show: bool = True,
) -> plt.Figure:
    """Plot the field against time-gate centre.

    Parameters
    ----------
    result : SimulationResult
        Output of ``run_simulation``.
    indices : sequence of int, optional
        Nodes or elements to plot. The whole-mesh sum is plotted if None.
    save_path : str, optional
        Path for saving the figure.
    show : bool
        Whether to display the plot interactively.
    """
    t_ns = _gate_centres(result) * 1e9
    fig, ax = plt.subplots(figsize=(8, 5))

    if indices is None:
        ax.semilogy(t_ns, np.abs(result.field.sum(axis=0)), 'o-', label='Sum over mesh')
    else:
        for idx in indices:
            ax.semilogy(t_ns, np.abs(result.field[idx]), 'o-', label=f'#{idx}')

    ax.set_xlabel('Time (ns)')
    ax.set_ylabel(f'|{result.config.output_type}|')
    ax.set_title('Time-resolved Profile')
    ax.legend()
    ax.grid(True, alpha=0.3)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=config.PLOT_DPI, bbox_inches='tight')
        print(f"[info] Saved time profile to {save_path}")
    if show:
        plt.show()
    return fig


def plot_field_slice(
    mesh: TetMesh,
    result: SimulationResult,
    axis: str = 'y',
    position: Optional[float] = None,
    gate: Optional[int] = None,
    thickness: float = config.SLICE_THICKNESS,
    log_scale: bool = True,
    save_path: Optional[str] = None,
    show: bool = True,
) -> plt.Figure:
    """Scatter plot of the field in a slab perpendicular to ``axis``.

    Parameters
    ----------
    axis : str
        'x', 'y' or 'z'.
    position : float, optional
        Slab centre, defaults to the middle of the mesh.
    gate : int, optional
        Time gate to show; the time-integrated field if None.
    thickness : float
        Slab thickness in mesh units.
    """
    if axis not in _AXES:
        raise ValueError(f"axis must be one of {tuple(_AXES)}")
    k = _AXES[axis]
    u, v = [i for i in range(3) if i != k]

    points = _unit_positions(mesh, result)
    values = result.field.sum(axis=1) if gate is None else result.field[:, gate]
    if position is None:
        position = 0.5 * (mesh.nodes[:, k].min() + mesh.nodes[:, k].max())
    mask = np.abs(points[:, k] - position) <= 0.5 * thickness

    fig, ax = plt.subplots(figsize=config.FIELD_SLICE_FIGSIZE)
    if not np.any(mask):
        print(f"[warning] No mesh points within {thickness} of {axis}={position}")
    else:
        data = np.abs(values[mask])
        if log_scale:
            floor = data[data > 0].min() if np.any(data > 0) else 1.0
            data = np.log10(np.maximum(data, floor))
        sc = ax.scatter(points[mask, u], points[mask, v], c=data, cmap='jet', s=25)
        cbar = fig.colorbar(sc, ax=ax)
        cbar.set_label(f'log10 {result.config.output_type}' if log_scale else result.config.output_type)

    labels = 'XYZ'
    ax.set_xlabel(labels[u])
    ax.set_ylabel(labels[v])
    ax.set_aspect('equal')
    gate_text = 'all gates' if gate is None else f'gate {gate}'
    ax.set_title(f'{result.config.output_type} at {axis}={position:.3g} ({gate_text})')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=config.PLOT_DPI, bbox_inches='tight')
        print(f"[info] Saved field slice to {save_path}")
    if show:
        plt.show()
    return fig


def visualize_detected_photons(
    result: SimulationResult,
    detector_id: Optional[int] = None,
    save_path: Optional[str] = None,
    show: bool = True,
) -> Optional[plt.Figure]:
    """Histograms of the detected photon weights, paths and flight times."""
    detected = [d for d in result.detected if detector_id is None or d.detector_id == detector_id]
    if not detected:
        print("[warning] No detected photons to visualize.")
        return None

    weights = np.array([d.weight for d in detected])
    tofs = np.array([d.tof for d in detected])
    n_scatter = np.array([d.n_scatter for d in detected])
    total_path = np.array([d.ppath.sum() for d in detected])

    fig, axes = plt.subplots(2, 2, figsize=config.DETECTOR_FIGSIZE)

    ax1 = axes[0, 0]
    ax1.hist(weights, bins=50, color='blue', alpha=0.7)
    ax1.axvline(np.mean(weights), color='red', linestyle='--', linewidth=2,
                label=f'Mean: {np.mean(weights):.3g}')
    ax1.set_xlabel('Exit weight')
    ax1.set_ylabel('Count')
    ax1.set_title('Detected Weight Distribution')
    ax1.legend()
    ax1.grid(True, alpha=0.3)

    ax2 = axes[0, 1]
    ax2.hist(total_path, bins=50, color='teal', alpha=0.7)
    ax2.axvline(np.median(total_path), color='blue', linestyle=':', linewidth=2,
                label=f'Median: {np.median(total_path):.2f} mm')
    ax2.set_xlabel('Total path length (mm)')
    ax2.set_ylabel('Count')
    ax2.set_title('Path Length Distribution')
    ax2.legend()
    ax2.grid(True, alpha=0.3)

    ax3 = axes[1, 0]
    ax3.scatter(tofs * 1e9, n_scatter, alpha=0.5, s=20, color='purple')
    ax3.set_xlabel('Time of Flight (ns)')
    ax3.set_ylabel('Scattering events')
    ax3.set_title('TOF vs Scattering Count')
    ax3.grid(True, alpha=0.3)

    ax4 = axes[1, 1]
    ax4.hist(tofs * 1e9, bins=50, weights=weights, color='orange', alpha=0.7)
    ax4.set_xlabel('Time of Flight (ns)')
    ax4.set_ylabel('Weighted count')
    ax4.set_title('Weighted TPSF')
    ax4.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(f"{save_path}_detected.png", dpi=config.PLOT_DPI, bbox_inches='tight')
        print(f"[info] Saved detected photon visualization to {save_path}_detected.png")
    if show:
        plt.show()
    return fig
