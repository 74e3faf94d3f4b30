"""
Photon transport through a tetrahedral mesh.

This module contains the per-photon Monte Carlo state machine: launch,
free-path sampling, element-to-element propagation, energy deposition,
Henyey-Greenstein scattering, Fresnel boundary handling, Russian roulette,
time gating and detector recording. One call to :func:`simulate_photon`
runs a history to completion; nothing in here is shared between workers
except the read-only :class:`TransportContext`.

Geometry and radiometry are computed in float64 throughout, so results
differ at round-off level from single-precision MMC builds.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .constants import (
    FATE_ABSORBED,
    FATE_EXITED,
    FATE_TIMED_OUT,
    FATE_TRACE_FAILURE,
    R_C0,
)
from .data_classes import (
    Detector,
    DetectedPhoton,
    Medium,
    PhotonState,
    RunConfig,
    RunStatistics,
    Source,
)
from .geometry import Tracer, find_exit_with_retry, get_tracer, reflect_direction
from .mesh import TetMesh, quadratic_shape_functions
from .optics import fresnel_reflectance, normal_incidence_reflectance, refract_direction
from .sampling import (
    RandomStream,
    photon_seed,
    rotate_direction,
    sample_hg_cos_theta,
    sample_launch_direction,
)


@dataclass
class TransportContext:
    """Read-only inputs shared by every worker of a run."""

    mesh: TetMesh
    media: Sequence[Medium]
    source: Source
    detectors: Sequence[Detector]
    cfg: RunConfig
    source_elem: int
    tracer: Tracer = None
    unit_nodes: Optional[np.ndarray] = None  # (ne, 4) or (ne, 10) for nodal bases

    def __post_init__(self):
        if self.tracer is None:
            self.tracer = get_tracer(self.cfg.method)
        if self.cfg.basis_order > 0 and self.unit_nodes is None:
            self.unit_nodes = self.mesh.basis_nodes(self.cfg.basis_order)

    @property
    def field_shape(self):
        n_units = self.mesh.n_nodes if self.cfg.basis_order > 0 else self.mesh.n_elements
        return (n_units, self.cfg.max_gate)


@dataclass
class WorkerTally:
    """Private accumulation buffers of one worker."""

    field: np.ndarray
    stats: RunStatistics = field(default_factory=RunStatistics)
    detected: List[DetectedPhoton] = field(default_factory=list)
    capacity: int = 0
    overflow_warned: bool = False


def play_roulette(weight: float, u: float, roulette_size: float) -> float:
    """Return the weight after one Russian roulette round.

    The photon survives with probability ``1/roulette_size`` and is boosted
    by ``roulette_size``; otherwise its weight drops to zero.
    """
    if u * roulette_size <= 1.0:
        return weight * roulette_size
    return 0.0


def time_gate(t: float, cfg: RunConfig) -> Optional[int]:
    """Index of the time gate containing ``t``; None before ``tstart``."""
    idx = int(math.floor((t - cfg.tstart) / cfg.tstep))
    if idx < 0:
        return None
    return min(idx, cfg.max_gate - 1)


def launch_photon(
    photon_id: int,
    ctx: TransportContext,
    stream: RandomStream,
    stats: RunStatistics,
    seed: Optional[np.ndarray] = None,
    replay_weight: float = 0.0,
    replay_time: float = 0.0,
) -> PhotonState:
    """Reseed the worker stream for one photon and build its launch state."""
    cfg = ctx.cfg
    if seed is None:
        seed = photon_seed(cfg.seed, photon_id)
    stream.reseed(seed)

    direction = sample_launch_direction(stream, ctx.source.type, ctx.source.direction, ctx.source.param)
    n_media = len(ctx.media)
    photon = PhotonState(
        photon_id=photon_id,
        elem=ctx.source_elem,
        pos=np.array(ctx.source.position, dtype=float),
        dir=direction,
        weight=1.0,
        ppath=np.zeros(n_media),
        momentum=np.zeros(n_media) if cfg.save_momentum else None,
        seed=stream.seed.copy(),
        replay_weight=replay_weight,
        replay_time=replay_time,
    )
    stats.launched += 1
    stats.launched_weight += photon.weight

    if cfg.do_specular:
        n_src = ctx.media[ctx.mesh.medium_of(photon.elem)].n
        loss = photon.weight * normal_incidence_reflectance(cfg.n_out, n_src)
        photon.weight -= loss
        stats.specular_loss += loss
    return photon


def _add_to_field(ctx: TransportContext, tally: WorkerTally, elem: int, point: np.ndarray,
                  gate: Optional[int], value: float):
    if gate is None or value == 0.0:
        return
    if ctx.cfg.basis_order == 0:
        tally.field[elem, gate] += value
        return
    bary = np.clip(ctx.mesh.barycentric(elem, point), 0.0, None)
    total = bary.sum()
    shape = bary / total if total > 0.0 else np.full(4, 0.25)
    if ctx.cfg.basis_order == 2:
        shape = quadratic_shape_functions(shape)
    tally.field[ctx.unit_nodes[elem], gate] += value * shape


def deposit_segment(photon: PhotonState, medium: Medium, length_mm: float, ctx: TransportContext,
                    tally: WorkerTally, elem: int, start: np.ndarray, end: np.ndarray,
                    t_start: float):
    """Attenuate the photon over a straight segment and tally the deposit."""
    cfg = ctx.cfg
    w0 = photon.weight
    if medium.mua > 0.0:
        w1 = w0 * math.exp(-medium.mua * length_mm)
        absorbed = w0 - w1
        weighted_length = absorbed / medium.mua
    else:
        w1 = w0
        absorbed = 0.0
        weighted_length = w0 * length_mm
    photon.weight = w1
    tally.stats.absorbed_weight += absorbed

    if cfg.output_type == "wp":
        return
    if cfg.output_type == "energy":
        value, gate = absorbed, time_gate(t_start, cfg)
    elif cfg.output_type == "jacobian":
        value, gate = -photon.replay_weight * length_mm, time_gate(photon.replay_time, cfg)
    else:
        value, gate = weighted_length, time_gate(t_start, cfg)
    _add_to_field(ctx, tally, elem, 0.5 * (start + end), gate, value)


def scatter_photon(photon: PhotonState, medium: Medium, medium_id: int, stream: RandomStream,
                   ctx: TransportContext, tally: WorkerTally):
    """Sample a new direction from the Henyey-Greenstein phase function."""
    phi = 2.0 * math.pi * stream.next_azimuth()
    cos_theta = sample_hg_cos_theta(medium.g, stream.next_zenith())
    photon.dir = rotate_direction(photon.dir, cos_theta, phi)
    photon.n_scatter += 1
    if photon.momentum is not None:
        photon.momentum[medium_id] += 1.0 - cos_theta
    if ctx.cfg.output_type == "wp":
        _add_to_field(ctx, tally, photon.elem, photon.pos,
                      time_gate(photon.replay_time, ctx.cfg), photon.replay_weight)


def roulette_survives(photon: PhotonState, cfg: RunConfig, stream: RandomStream,
                      stats: RunStatistics) -> bool:
    if photon.weight >= cfg.min_energy:
        return True
    old = photon.weight
    photon.weight = play_roulette(old, stream.next_roulette_test(), cfg.roulette_size)
    if photon.weight > 0.0:
        stats.roulette_gain += photon.weight - old
        return True
    stats.roulette_loss += old
    return False


def cross_face(photon: PhotonState, face: int, ctx: TransportContext, stream: RandomStream) -> str:
    """Resolve a face crossing.

    Returns
    -------
    str
        ``"reflected"``, ``"transmitted"`` or ``"exited"``.
    """
    mesh, cfg = ctx.mesh, ctx.cfg
    elem = photon.elem
    neighbor = int(mesh.face_neighbors[elem, face]) - 1
    exterior = neighbor < 0 or mesh.medium_of(neighbor) < 0

    n1 = ctx.media[mesh.medium_of(elem)].n
    n2 = cfg.n_out if exterior else ctx.media[mesh.medium_of(neighbor)].n

    if cfg.do_reflect and n1 != n2:
        normal = mesh.face_normals[elem, face]
        reflectance = fresnel_reflectance(float(np.dot(photon.dir, normal)), n1, n2)
        if stream.next_reflect_test() < reflectance:
            photon.dir = reflect_direction(photon.dir, normal)
            return "reflected"
        tir, transmitted = refract_direction(photon.dir, normal, n1, n2)
        if tir:
            photon.dir = reflect_direction(photon.dir, normal)
            return "reflected"
        photon.dir = transmitted

    if exterior:
        return "exited"
    photon.elem = neighbor
    return "transmitted"


def record_detection(photon: PhotonState, ctx: TransportContext, tally: WorkerTally):
    """Append the photon to the worker buffer if it exits within a detector."""
    cfg = ctx.cfg
    if not cfg.save_detector or not ctx.detectors:
        return
    for det_id, det in enumerate(ctx.detectors, start=1):
        if np.linalg.norm(photon.pos - det.position) <= det.radius:
            break
    else:
        return

    if len(tally.detected) >= tally.capacity:
        tally.stats.dropped_detections += 1
        if not tally.overflow_warned:
            print(f"[warning] Detected photon buffer full ({tally.capacity} records), "
                  f"further detections of this worker are dropped")
            tally.overflow_warned = True
        return

    tally.detected.append(DetectedPhoton(
        photon_id=photon.photon_id,
        detector_id=det_id,
        n_scatter=photon.n_scatter,
        weight=photon.weight,
        tof=photon.tof,
        ppath=photon.ppath.copy(),
        momentum=None if photon.momentum is None else photon.momentum.copy(),
        exit_position=photon.pos.copy() if cfg.save_exit else None,
        exit_direction=photon.dir.copy() if cfg.save_exit else None,
        seed=photon.seed.copy() if cfg.save_seed else None,
    ))
    tally.stats.detected += 1


def simulate_photon(photon: PhotonState, ctx: TransportContext, stream: RandomStream,
                    tally: WorkerTally) -> str:
    """Run one launched photon until it terminates.

    Returns
    -------
    str
        The photon fate: absorbed, exited, timed_out or trace_failure.
    """
    mesh, media, cfg = ctx.mesh, ctx.media, ctx.cfg
    stats = tally.stats
    unit = cfg.unit_in_mm
    photon.slen = stream.next_scatter_length()

    while True:
        if cfg.check_containment and not mesh.contains(photon.elem, photon.pos):
            raise RuntimeError(
                f"Photon {photon.photon_id} at {photon.pos} left its element {photon.elem}"
            )

        medium_id = mesh.medium_of(photon.elem)
        medium = media[medium_id]

        hit = find_exit_with_retry(mesh, photon.elem, photon.pos, photon.dir, ctx.tracer, stats)
        if hit is None:
            stats.abandoned_weight += photon.weight
            return _terminate(photon, FATE_TRACE_FAILURE, stats)

        # Free path and face distance, both in mesh units
        if medium.mus > 0.0:
            scatter_len = photon.slen / (medium.mus * unit)
        else:
            scatter_len = math.inf
        scatters = scatter_len <= hit.distance
        step = scatter_len if scatters else hit.distance

        time_per_unit = unit * medium.n * R_C0 if (medium_id != 0 or cfg.void_time) else 0.0
        timed_out = time_per_unit > 0.0 and photon.tof + step * time_per_unit >= cfg.tend
        if timed_out:
            step = (cfg.tend - photon.tof) / time_per_unit
            scatters = False

        start = photon.pos
        if step == hit.distance and not timed_out:
            end = hit.exit_point.copy()
        else:
            end = start + step * photon.dir
        length_mm = step * unit
        deposit_segment(photon, medium, length_mm, ctx, tally, photon.elem, start, end, photon.tof)

        photon.pos = end
        photon.tof = cfg.tend if timed_out else photon.tof + step * time_per_unit
        photon.ppath[medium_id] += length_mm
        if medium.mus > 0.0:
            photon.slen = max(0.0, photon.slen - length_mm * medium.mus)

        if timed_out:
            stats.timed_out_weight += photon.weight
            return _terminate(photon, FATE_TIMED_OUT, stats)

        if scatters:
            scatter_photon(photon, medium, medium_id, stream, ctx, tally)
            photon.slen = stream.next_scatter_length()
            if not roulette_survives(photon, cfg, stream, stats):
                return _terminate(photon, FATE_ABSORBED, stats)
            continue

        outcome = cross_face(photon, hit.face, ctx, stream)
        if outcome == "exited":
            stats.exited_weight += photon.weight
            record_detection(photon, ctx, tally)
            return _terminate(photon, FATE_EXITED, stats)
        if outcome == "transmitted" and not roulette_survives(photon, cfg, stream, stats):
            return _terminate(photon, FATE_ABSORBED, stats)


def _terminate(photon: PhotonState, fate: str, stats: RunStatistics) -> str:
    stats.fates[fate] = stats.fates.get(fate, 0) + 1
    return fate
