"""
Tetrahedral mesh visualization.

Draws the boundary surface of a mesh together with the source and detector
positions, which is the first thing to look at when a run reports many
trace failures or no detected photons.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import matplotlib.pyplot as plt
from mpl_toolkits.mplot3d.art3d import Poly3DCollection

from .. import config
from ..core.data_classes import Detector, Source
from ..core.mesh import TetMesh


def boundary_faces(mesh: TetMesh) -> np.ndarray:
    """Return the (n, 3, 3) outward-oriented triangles on the mesh boundary.

    Faces shared with a negative-tag (exterior) element count as boundary.
    """
    nb = mesh.face_neighbors - 1
    exterior = nb < 0
    interior = ~exterior
    exterior[interior] = mesh.element_media[nb[interior]] < 0
    exterior &= (mesh.element_media >= 0)[:, None]
    return mesh.face_points[exterior]


def plot_mesh_wireframe(
    ax,
    mesh: TetMesh,
    color: str = 'gray',
    alpha: float = 0.2,
    label: Optional[str] = None
):
    """Plot the mesh boundary as a wireframe on an existing 3D axis.

    Returns
    -------
    handle : matplotlib.patches.Patch or None
        Legend handle if label provided.
    """
    collection = Poly3DCollection(
        boundary_faces(mesh),
        alpha=alpha,
        facecolors=color,
        edgecolors='black',
        linewidths=0.1
    )
    ax.add_collection3d(collection)

    if label:
        from matplotlib.patches import Patch
        return Patch(facecolor=color, alpha=alpha, label=label)
    return None


def _set_axes_equal(ax) -> None:
    """Set equal aspect ratio for 3D axes."""
    limits = np.array(
        [ax.get_xlim3d(), ax.get_ylim3d(), ax.get_zlim3d()],
        dtype=float,
    )
    spans = limits[:, 1] - limits[:, 0]
    centres = np.mean(limits, axis=1)
    half = max(spans) / 2.0
    ax.set_xlim3d(centres[0] - half, centres[0] + half)
    ax.set_ylim3d(centres[1] - half, centres[1] + half)
    ax.set_zlim3d(centres[2] - half, centres[2] + half)


def plot_mesh_setup(
    mesh: TetMesh,
    source: Optional[Source] = None,
    detectors: Sequence[Detector] = (),
    save_path: Optional[str] = None,
    show: bool = True,
    dpi: int = config.QUICK_PLOT_DPI,
) -> plt.Figure:
    """Plot the mesh boundary with the source and detectors."""
    fig = plt.figure(figsize=(8, 8))
    ax = fig.add_subplot(111, projection="3d")

    handles = [plot_mesh_wireframe(ax, mesh, label=f"Mesh ({mesh.n_elements} elements)")]
    if source is not None:
        p, d = source.position, source.direction
        handles.append(ax.scatter(*p, color='red', s=40, label=f"Source ({source.type})"))
        scale = float(np.mean(mesh.length_scale)) * 2.0
        ax.quiver(*p, *(d * scale), color='red')
    for det_id, det in enumerate(detectors, start=1):
        handles.append(ax.scatter(*det.position, color='blue', s=40, marker='s',
                                  label=f"Detector {det_id} (r={det.radius:g})"))

    lo, hi = mesh.nodes.min(axis=0), mesh.nodes.max(axis=0)
    ax.set_xlim3d(lo[0], hi[0])
    ax.set_ylim3d(lo[1], hi[1])
    ax.set_zlim3d(lo[2], hi[2])
    _set_axes_equal(ax)
    ax.set_xlabel("X")
    ax.set_ylabel("Y")
    ax.set_zlabel("Z")
    ax.set_title("Mesh, source and detectors")
    ax.legend(handles=handles, loc='upper right')

    if save_path:
        fig.savefig(save_path, dpi=dpi, bbox_inches='tight')
        print(f"[info] Saved mesh plot to {save_path}")
    if show:
        plt.show()
    return fig
