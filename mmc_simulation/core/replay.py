"""
Replay of detected photons for Jacobian (sensitivity) computation.

A forward run with ``save_seed=True`` stores the RNG seed of every detected
photon. Re-launching a photon from its seed reproduces its trajectory
exactly, so the second pass can deposit detector-weighted quantities along
the paths that actually reached a detector.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .constants import RAND_SEED_WORDS
from .data_classes import DetectedPhoton, Detector, Medium, RunConfig, SimulationResult, Source
from .mesh import TetMesh
from .simulation import run_simulation


@dataclass
class ReplayData:
    """Seeds, weights and detection times of the photons to replay.

    Attributes
    ----------
    seeds : np.ndarray, shape (n, 4)
        Saved per-photon RNG seeds.
    weights : np.ndarray, shape (n,)
        Detected weight, deposited as the replay weight.
    times : np.ndarray, shape (n,)
        Detection time; selects the time gate of the replay deposit.
    detector_ids : np.ndarray, shape (n,)
        1-based detector of each photon.
    photon_ids : np.ndarray, shape (n,)
        Original photon index, reused as the id of the replayed history.
    """

    seeds: np.ndarray
    weights: np.ndarray
    times: np.ndarray
    detector_ids: Optional[np.ndarray] = None
    photon_ids: Optional[np.ndarray] = None

    def __post_init__(self):
        self.seeds = np.asarray(self.seeds, dtype=np.uint32).reshape(-1, RAND_SEED_WORDS)
        self.weights = np.asarray(self.weights, dtype=float)
        self.times = np.asarray(self.times, dtype=float)
        n = len(self.seeds)
        if self.photon_ids is None:
            self.photon_ids = np.arange(n)
        self.photon_ids = np.asarray(self.photon_ids, dtype=np.int64)
        if self.detector_ids is None:
            self.detector_ids = np.zeros(n, dtype=np.int64)
        self.detector_ids = np.asarray(self.detector_ids, dtype=np.int64)

    def __len__(self) -> int:
        return len(self.seeds)

    def validate(self):
        n = len(self.seeds)
        for name in ("weights", "times", "detector_ids", "photon_ids"):
            if len(getattr(self, name)) != n:
                raise ValueError(
                    f"Replay data has {n} seeds but {len(getattr(self, name))} {name}"
                )

    @classmethod
    def from_detected(cls, detected: Sequence[DetectedPhoton],
                      detector_id: Optional[int] = None) -> "ReplayData":
        """Collect replay inputs from the detected photons of a forward run.

        Only photons of ``detector_id`` are kept when it is given.
        """
        chosen = [d for d in detected if detector_id is None or d.detector_id == detector_id]
        if any(d.seed is None for d in chosen):
            raise ValueError("Detected photons carry no seeds, rerun with save_seed=True")
        if not chosen:
            return cls(
                seeds=np.zeros((0, RAND_SEED_WORDS), dtype=np.uint32),
                weights=np.zeros(0),
                times=np.zeros(0),
            )
        return cls(
            seeds=np.vstack([d.seed for d in chosen]),
            weights=np.array([d.weight for d in chosen]),
            times=np.array([d.tof for d in chosen]),
            detector_ids=np.array([d.detector_id for d in chosen]),
            photon_ids=np.array([d.photon_id for d in chosen]),
        )


def replay_detected(
    mesh: TetMesh,
    media: Sequence[Medium],
    source: Source,
    detectors: Sequence[Detector],
    cfg: RunConfig,
    detected: Sequence[DetectedPhoton],
    detector_id: Optional[int] = None,
    output_type: str = "jacobian",
) -> SimulationResult:
    """Re-run the detected photons of a forward run.

    The replay uses ``cfg`` with the output type switched to
    ``output_type`` and detection recording enabled, so that the replayed
    detections can be checked against the originals.
    """
    replay = ReplayData.from_detected(detected, detector_id)
    replay_cfg = dataclasses.replace(
        cfg,
        output_type=output_type,
        save_detector=True,
        save_seed=True,
        det_photon_buffer=max(cfg.det_photon_buffer, len(replay)),
    )
    return run_simulation(mesh, media, source, detectors, replay_cfg, replay=replay)


def compare_replay(original: Sequence[DetectedPhoton], replayed: Sequence[DetectedPhoton],
                   rtol: float = 1e-10) -> bool:
    """Check that every original photon was detected again, unchanged.

    Photons are matched by id. The detector, exit weight and per-medium
    partial paths must agree to ``rtol``.
    """
    by_id = {d.photon_id: d for d in replayed}
    if len(by_id) != len(original):
        return False
    for orig in original:
        rep = by_id.get(orig.photon_id)
        if rep is None or rep.detector_id != orig.detector_id:
            return False
        if not np.isclose(rep.weight, orig.weight, rtol=rtol, atol=0.0):
            return False
        if not np.allclose(rep.ppath, orig.ppath, rtol=rtol, atol=1e-12):
            return False
    return True


def _replay_checked(mesh, media, source, detectors, cfg, detected, detector_id, output_type):
    chosen = [d for d in detected if detector_id is None or d.detector_id == detector_id]
    result = replay_detected(mesh, media, source, detectors, cfg, chosen, None, output_type)
    if not compare_replay(chosen, result.detected):
        raise RuntimeError("replay failed")
    return result


def jacobian_mua(
    mesh: TetMesh,
    media: Sequence[Medium],
    source: Source,
    detectors: Sequence[Detector],
    cfg: RunConfig,
    detected: Sequence[DetectedPhoton],
    detector_id: Optional[int] = None,
) -> np.ndarray:
    """Absorption Jacobian of the detected signal.

    Each replayed photon deposits ``-w_det * L`` on the elements (or nodes)
    it crosses, in the time gate of its detection.

    Raises
    ------
    RuntimeError
        If the replayed photons do not reproduce the original detections.
    """
    return _replay_checked(mesh, media, source, detectors, cfg, detected, detector_id, "jacobian").field


def _mus_per_unit(mesh: TetMesh, media: Sequence[Medium], basis_order: int) -> np.ndarray:
    tags = np.clip(mesh.element_media, 0, None)
    mus = np.array([media[t].mus for t in tags], dtype=float)
    mus[mesh.element_media < 0] = 0.0
    if basis_order == 0:
        return mus
    # Volume-weighted average over the elements sharing each node
    nodes = mesh.basis_nodes(basis_order)
    per_elem = nodes.shape[1]
    num = np.zeros(mesh.n_nodes)
    np.add.at(num, nodes.ravel(), np.repeat(mus * mesh.volumes, per_elem))
    den = np.zeros(mesh.n_nodes)
    np.add.at(den, nodes.ravel(), np.repeat(mesh.volumes, per_elem))
    out = np.zeros(mesh.n_nodes)
    np.divide(num, den, out=out, where=den > 0.0)
    return out


def jacobian_mus(
    mesh: TetMesh,
    media: Sequence[Medium],
    source: Source,
    detectors: Sequence[Detector],
    cfg: RunConfig,
    detected: Sequence[DetectedPhoton],
    detector_id: Optional[int] = None,
) -> np.ndarray:
    """Scattering Jacobian: the absorption Jacobian plus ``wp / mus``.

    ``wp`` is the replay weight tallied at every scattering event. Units
    with zero scattering get no ``wp`` contribution.
    """
    jmua = jacobian_mua(mesh, media, source, detectors, cfg, detected, detector_id)
    wp = _replay_checked(mesh, media, source, detectors, cfg, detected, detector_id, "wp").field
    mus = _mus_per_unit(mesh, media, cfg.basis_order)
    ratio = np.zeros_like(wp)
    np.divide(wp, mus[:, None], out=ratio, where=mus[:, None] > 0.0)
    return jmua + ratio
