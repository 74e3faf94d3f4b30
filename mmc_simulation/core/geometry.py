"""
Ray-tetrahedron intersection and geometry helpers.

Two interchangeable exit tests are provided, both with the signature
``tracer(mesh, elem, position, direction, stats) -> TraceResult | None``.
``None`` means the ray is degenerate with respect to the element (it runs
inside a face plane or through an edge without a clear exit) and the
caller should nudge the photon and retry.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, Tuple

import numpy as np

from .constants import DEBUG, FIX_PHOTON, MAX_TRIAL
from .data_classes import RunStatistics, TraceResult
from .mesh import TetMesh


def plucker_exit(
    mesh: TetMesh,
    elem: int,
    position: np.ndarray,
    direction: np.ndarray,
    stats: Optional[RunStatistics] = None,
) -> Optional[TraceResult]:
    """Find the exit face with Plücker-coordinate side tests.

    Every face is stored with its nodes ordered so that the normal points
    outwards. A ray leaves through a face when the permuted inner products
    of the ray with the three oriented edges are all non-negative. The same
    products are proportional to the barycentric weights of the exit point.
    """
    center = mesh.centroids[elem]
    start = mesh.face_points[elem] - center  # (4, 3, 3): a, b, c of each face
    p = position - center
    end = np.roll(start, -1, axis=1)  # b, c, a
    edge_dir = end - start
    edge_moment = np.cross(start, edge_dir)
    ray_moment = np.cross(p, direction)

    # side[j, 0] -> edge ab, side[j, 1] -> edge bc, side[j, 2] -> edge ca
    side = edge_moment @ direction + edge_dir @ ray_moment
    if stats is not None:
        stats.face_tests += 4

    total = side.sum(axis=1)
    valid = np.all(side >= 0.0, axis=1) & (total > 0.0)
    if not np.any(valid):
        return None

    face = int(np.argmax(np.where(valid, total, -np.inf)))
    w = side[face]
    a, b, c = mesh.face_points[elem, face]
    exit_point = (w[1] * a + w[2] * b + w[0] * c) / total[face]
    distance = max(0.0, float(np.dot(exit_point - position, direction)))
    return TraceResult(face=face, exit_point=exit_point, distance=distance)


def havel_exit(
    mesh: TetMesh,
    elem: int,
    position: np.ndarray,
    direction: np.ndarray,
    stats: Optional[RunStatistics] = None,
    epsilon: float = 1e-12,
) -> Optional[TraceResult]:
    """Find the exit face with signed half-space distances.

    Only faces whose outward normal has a positive component along the
    direction are candidates; the nearest plane along the ray is the exit.
    """
    normals = mesh.face_normals[elem]
    denom = normals @ direction
    height = mesh.face_offsets[elem] - normals @ position
    if stats is not None:
        stats.face_tests += 4

    mask = denom > epsilon
    if not np.any(mask):
        return None

    t = np.full(4, np.inf)
    t[mask] = np.maximum(height[mask], 0.0) / denom[mask]
    face = int(np.argmin(t))
    distance = float(t[face])
    if not np.isfinite(distance):
        return None
    return TraceResult(face=face, exit_point=position + distance * direction, distance=distance)


Tracer = Callable[..., Optional[TraceResult]]

TRACERS: Dict[str, Tracer] = {
    "plucker": plucker_exit,
    "havel": havel_exit,
}


def get_tracer(method: str) -> Tracer:
    try:
        return TRACERS[method]
    except KeyError:
        raise ValueError(f"Unknown ray-tracing method '{method}'") from None


def find_exit_with_retry(
    mesh: TetMesh,
    elem: int,
    position: np.ndarray,
    direction: np.ndarray,
    tracer: Tracer = plucker_exit,
    stats: Optional[RunStatistics] = None,
    max_trial: int = MAX_TRIAL,
) -> Optional[TraceResult]:
    """Robustly find the exit of a ray from its element.

    When the test is degenerate the photon is pulled towards the element
    centroid by ``FIX_PHOTON`` of the remaining gap and the test is
    repeated, at most ``max_trial`` times. ``position`` is updated in place
    with the nudged point so that the caller keeps tracing from where the
    exit was actually found.

    Returns
    -------
    TraceResult or None
        None once the retry budget is exhausted.
    """
    if stats is not None:
        stats.trace_queries += 1

    trial_pos = position
    for retry in range(max_trial + 1):
        hit = tracer(mesh, elem, trial_pos, direction, stats)
        if hit is not None:
            if retry > 0:
                position[:] = trial_pos
                if stats is not None:
                    stats.retry_success += 1
                if DEBUG:
                    print(f"[Geometry] Exit found on retry {retry} in element {elem}")
            return hit
        trial_pos = trial_pos + FIX_PHOTON * (mesh.centroids[elem] - trial_pos)

    if stats is not None:
        stats.trace_failures += 1
    if DEBUG:
        print(f"[Geometry ERROR] Failed to find exit after {max_trial} retries")
        print(f"  Element: {elem}")
        print(f"  Position: {position}")
        print(f"  Direction: {direction}")
    return None


def reflect_direction(direction: np.ndarray, normal: np.ndarray) -> np.ndarray:
    """Mirror ``direction`` about the plane with unit ``normal``."""
    reflected = direction - 2.0 * np.dot(direction, normal) * normal
    return reflected / np.linalg.norm(reflected)


def build_orthonormal_frame(axis: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Build an orthonormal coordinate frame from a given axis."""
    axis = np.array(axis, dtype=float)
    norm = np.linalg.norm(axis)
    if norm == 0.0:
        raise ValueError("Axis vector must be non-zero")
    axis /= norm
    up = np.array([0.0, 0.0, 1.0])
    if abs(np.dot(axis, up)) > 0.99:
        up = np.array([1.0, 0.0, 0.0])
    u = np.cross(up, axis)
    u /= np.linalg.norm(u)
    v = np.cross(axis, u)
    return axis, u, v
