"""
High-level simulation driver: parallel photon workers and result reduction.
"""

from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

import numpy as np

from .constants import DEBUG, FATE_TRACE_FAILURE, PHOTON_FATES, REPLAY_OUTPUT_TYPES
from .data_classes import Detector, Medium, RunConfig, RunStatistics, SimulationResult, Source
from .mesh import TetMesh
from .sampling import RandomStream
from .transport import TransportContext, WorkerTally, launch_photon, simulate_photon

if TYPE_CHECKING:
    from .replay import ReplayData


class SimulationAborted(RuntimeError):
    """Raised when a worker fails and the run is cancelled."""


def split_photons(n_photons: int, n_workers: int) -> List[Tuple[int, int]]:
    """Split ``n_photons`` into contiguous ``[start, stop)`` slices.

    The first ``n_photons % n_workers`` slices get one extra photon.
    """
    n_workers = max(1, n_workers)
    base, extra = divmod(n_photons, n_workers)
    slices = []
    start = 0
    for i in range(n_workers):
        stop = start + base + (1 if i < extra else 0)
        slices.append((start, stop))
        start = stop
    return slices


class PhotonWorker:
    """Runs one contiguous slice of photon histories.

    The worker owns its random stream, field accumulator, detection buffer
    and statistics. Nothing it writes is visible to other workers until the
    reduction step.
    """

    def __init__(self, worker_id: int, ctx: TransportContext, start: int, stop: int,
                 cancel: threading.Event, replay: Optional["ReplayData"] = None):
        self.worker_id = worker_id
        self.ctx = ctx
        self.start = start
        self.stop = stop
        self.cancel = cancel
        self.replay = replay
        self.stream = RandomStream(ctx.cfg.seed, worker_id)
        self.tally = WorkerTally(
            field=np.zeros(ctx.field_shape),
            capacity=ctx.cfg.det_photon_buffer,
        )

    def run(self) -> WorkerTally:
        try:
            for index in range(self.start, self.stop):
                if self.cancel.is_set():
                    break
                self._run_photon(index)
        except Exception:
            self.cancel.set()
            raise
        return self.tally

    def _run_photon(self, index: int):
        if self.replay is None:
            photon = launch_photon(index, self.ctx, self.stream, self.tally.stats)
        else:
            photon = launch_photon(
                int(self.replay.photon_ids[index]), self.ctx, self.stream, self.tally.stats,
                seed=self.replay.seeds[index],
                replay_weight=float(self.replay.weights[index]),
                replay_time=float(self.replay.times[index]),
            )
        fate = simulate_photon(photon, self.ctx, self.stream, self.tally)
        if DEBUG and fate == FATE_TRACE_FAILURE:
            print(f"[debug] Worker {self.worker_id}: photon {photon.photon_id} abandoned")


def resolve_source_element(mesh: TetMesh, source: Source) -> int:
    """Return the element enclosing the source, raising ValueError if none does."""
    elem = source.element
    if elem is None:
        elem = mesh.find_element(source.position)
        if elem is None:
            raise ValueError(f"Source position {source.position} is not inside any mesh element")
    elif not 0 <= elem < mesh.n_elements:
        raise ValueError(f"Source element {elem} out of range")
    if mesh.medium_of(elem) < 0:
        raise ValueError(f"Source element {elem} is tagged as exterior")
    return int(elem)


def _resolve_threads(n_threads: int) -> int:
    return n_threads if n_threads > 0 else (os.cpu_count() or 1)


def normalize_field(field: np.ndarray, mesh: TetMesh, cfg: RunConfig, n_launched: int) -> np.ndarray:
    """Scale a raw accumulator to physical units.

    flux -> 1/(mm^2 s), fluence -> 1/mm^2, energy/jacobian/wp -> per photon.
    """
    if n_launched == 0:
        return field
    out = field / n_launched
    if cfg.output_type in ("flux", "fluence"):
        volumes = mesh.basis_volumes(cfg.basis_order) * cfg.unit_in_mm ** 3
        scale = np.zeros_like(volumes)
        np.divide(1.0, volumes, out=scale, where=volumes > 0.0)
        out = out * scale[:, None]
        if cfg.output_type == "flux":
            out = out / cfg.tstep
    return out


def print_statistics(stats: RunStatistics):
    """Print the energy balance and ray-tracing health of a run.

    High retry or failure rates usually point to degenerate elements
    (slivers, inverted or duplicated nodes) in the mesh.
    """
    launched = stats.launched
    if launched == 0:
        print("No photons launched.")
        return

    total_weight = stats.launched_weight or 1.0
    print("\n" + "=" * 60)
    print("PHOTON TRANSPORT STATISTICS")
    print("=" * 60)
    print(f"Photons launched:          {launched:,}")
    for fate in PHOTON_FATES:
        count = stats.fates.get(fate, 0)
        print(f"  {fate + ':':<24}{count:,} ({100 * count / launched:.2f}%)")
    print(f"Absorbed weight:           {stats.absorbed_weight:.6g} ({100 * stats.absorbed_weight / total_weight:.2f}%)")
    print(f"Exited weight:             {stats.exited_weight:.6g} ({100 * stats.exited_weight / total_weight:.2f}%)")
    print(f"Alive at time cutoff:      {stats.timed_out_weight:.6g}")
    print(f"Specular loss:             {stats.specular_loss:.6g}")
    print(f"Roulette gain / loss:      {stats.roulette_gain:.6g} / {stats.roulette_loss:.6g}")
    print(f"Abandoned weight:          {stats.abandoned_weight:.6g}")
    print(f"Energy balance residual:   {stats.energy_residual():.3e}")
    print("-" * 60)

    queries = stats.trace_queries
    if queries:
        first_try = queries - stats.retry_success - stats.trace_failures
        print(f"Total exit queries:        {queries:,}")
        print(f"Successful (first try):    {first_try:,} ({100 * first_try / queries:.2f}%)")
        print(f"Successful after retry:    {stats.retry_success:,} ({100 * stats.retry_success / queries:.2f}%)")
        print(f"Trace failures:            {stats.trace_failures:,} ({100 * stats.trace_failures / queries:.2f}%)")
        print(f"Face tests:                {stats.face_tests:,}")
    print(f"Detected photons:          {stats.detected:,}")
    if stats.dropped_detections:
        print(f"Dropped detections:        {stats.dropped_detections:,}")
    print("=" * 60)

    if queries and stats.trace_failures > 0.01 * queries:
        print("[warning] High ray-tracing failure rate (>1%)")
        print("   This indicates poor mesh quality:")
        print("   - Check for inverted or zero-volume elements")
        print("   - Check that the face-neighbour table is consistent")
    elif queries and stats.retry_success > 0.05 * queries:
        print("[info] Moderate retry rate - mesh has many near-degenerate crossings")
    else:
        print("✓ Mesh quality looks good")


def run_simulation(
    mesh: TetMesh,
    media: Sequence[Medium],
    source: Source,
    detectors: Sequence[Detector] = (),
    cfg: Optional[RunConfig] = None,
    replay: Optional["ReplayData"] = None,
) -> SimulationResult:
    """Run a forward (or replay) Monte Carlo simulation on a tetrahedral mesh.

    Parameters
    ----------
    mesh : TetMesh
        The tetrahedral mesh.
    media : sequence of Medium
        Optical properties indexed by element medium tag (0 = background).
    source : Source
        Photon source.
    detectors : sequence of Detector
        Capture spheres tested when a photon leaves the mesh.
    cfg : RunConfig, optional
        Run configuration, defaults to ``RunConfig()``.
    replay : ReplayData, optional
        Seeds, weights and detection times of previously detected photons.
        When given, exactly those histories are re-run and ``cfg.n_photons``
        is ignored.

    Returns
    -------
    SimulationResult
        Reduced field, detected photons sorted by id, merged statistics.

    Raises
    ------
    ValueError
        On invalid inputs (unknown medium tags, source outside the mesh,
        replay output type without replay data, quadratic basis on a
        linear mesh).
    SimulationAborted
        If any worker raised; no partial results are returned.
    """
    cfg = cfg or RunConfig()
    mesh.check_media(media)
    if cfg.basis_order == 2 and mesh.quadratic is None:
        raise ValueError("basis_order=2 needs a 10-node mesh, build it with TetMesh.to_quadratic()")
    if cfg.output_type in REPLAY_OUTPUT_TYPES and replay is None:
        raise ValueError(f"Output type '{cfg.output_type}' requires replay data")
    if replay is not None:
        replay.validate()
    source_elem = resolve_source_element(mesh, source)

    ctx = TransportContext(mesh, media, source, detectors, cfg, source_elem)
    n_photons = len(replay.seeds) if replay is not None else cfg.n_photons
    n_threads = _resolve_threads(cfg.n_threads)
    slices = split_photons(n_photons, min(n_threads, max(1, n_photons)))

    if cfg.verbose:
        mode = "replay" if replay is not None else "forward"
        print(f"[info] Simulating {n_photons} photons ({mode}, {cfg.output_type}) "
              f"on {mesh.n_elements} elements with {len(slices)} worker(s)")

    cancel = threading.Event()
    workers = [PhotonWorker(i, ctx, start, stop, cancel, replay) for i, (start, stop) in enumerate(slices)]
    with ThreadPoolExecutor(max_workers=len(workers)) as pool:
        futures = [pool.submit(worker.run) for worker in workers]
    errors = [f.exception() for f in futures if f.exception() is not None]
    if errors:
        raise SimulationAborted(f"Simulation aborted: {errors[0]}") from errors[0]

    # Reduction
    field = np.zeros(ctx.field_shape)
    stats = RunStatistics()
    detected = []
    for future in futures:
        tally = future.result()
        field += tally.field
        stats.merge(tally.stats)
        detected.extend(tally.detected)
    detected.sort(key=lambda d: d.photon_id)

    if cfg.normalize:
        field = normalize_field(field, mesh, cfg, stats.launched)

    if cfg.verbose:
        print(f"[info] Done: absorbed fraction {stats.absorbed_fraction:.4f}, "
              f"{len(detected)} detected photons")
        print_statistics(stats)

    return SimulationResult(field=field, detected=detected, stats=stats, config=cfg)
