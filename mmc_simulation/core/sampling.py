"""
Random streams and sampling utilities for photon generation and scattering.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from .constants import ISOTROPIC_G, LOG_MT_MAX, RAND_SEED_WORDS
from .geometry import build_orthonormal_frame


def photon_seed(global_seed: int, photon_index: int) -> np.ndarray:
    """Return the fixed-size RNG seed of one photon history.

    The seed only depends on the global seed and the photon index, so a
    photon follows the same trajectory whatever worker runs it.
    """
    seq = np.random.SeedSequence(int(global_seed) & 0xFFFFFFFFFFFFFFFF, spawn_key=(int(photon_index),))
    return seq.generate_state(RAND_SEED_WORDS, dtype=np.uint32)


class RandomStream:
    """Per-worker pseudorandom stream with physically meaningful draws.

    ``RandomStream(seed, index)`` streams are independent for distinct
    indices and bit-identical for equal ``(seed, index)`` pairs. A worker
    owns exactly one stream; :meth:`reseed` restarts it from a saved photon
    seed, which is how launch and replay share one code path.
    """

    def __init__(self, global_seed: int, stream_index: int = 0):
        self.reseed(photon_seed(global_seed, stream_index))

    def reseed(self, seed: Sequence[int]):
        seed = np.asarray(seed, dtype=np.uint32)
        if seed.shape != (RAND_SEED_WORDS,):
            raise ValueError(f"Photon seed must hold {RAND_SEED_WORDS} uint32 words, got shape {seed.shape}")
        self.seed = seed.copy()
        self._rng = np.random.Generator(np.random.PCG64(np.random.SeedSequence([int(word) for word in self.seed])))

    def uniform01(self) -> float:
        return float(self._rng.random())

    def next_scatter_length(self) -> float:
        """Free path in optical units, -ln(u)."""
        u = self.uniform01()
        return LOG_MT_MAX if u == 0.0 else -math.log(u)

    def next_azimuth(self) -> float:
        return self.uniform01()

    def next_zenith(self) -> float:
        return self.uniform01()

    def next_reflect_test(self) -> float:
        return self.uniform01()

    def next_roulette_test(self) -> float:
        return self.uniform01()


def sample_hg_cos_theta(g: float, u: float) -> float:
    """Sample cos(theta) of the Henyey-Greenstein phase function, u ~ U(0,1)."""
    if abs(g) < ISOTROPIC_G:
        return 1.0 - 2.0 * u
    tmp = (1.0 - g * g) / (1.0 - g + 2.0 * g * u)
    cos_theta = (1.0 + g * g - tmp * tmp) / (2.0 * g)
    return max(-1.0, min(1.0, cos_theta))


def rotate_direction(direction: np.ndarray, cos_theta: float, phi: float) -> np.ndarray:
    """Rotate a unit vector by zenith ``acos(cos_theta)`` and azimuth ``phi``.

    Uses the direct local frame when the direction is close to the z axis.
    """
    ux, uy, uz = direction
    sin_theta = math.sqrt(max(0.0, 1.0 - cos_theta * cos_theta))
    cos_phi, sin_phi = math.cos(phi), math.sin(phi)

    if abs(uz) > 0.99999:
        new = np.array([sin_theta * cos_phi, sin_theta * sin_phi, math.copysign(cos_theta, uz)])
    else:
        tmp = math.sqrt(1.0 - uz * uz)
        new = np.array([
            sin_theta * (ux * uz * cos_phi - uy * sin_phi) / tmp + ux * cos_theta,
            sin_theta * (uy * uz * cos_phi + ux * sin_phi) / tmp + uy * cos_theta,
            -sin_theta * cos_phi * tmp + uz * cos_theta,
        ])
    return new / np.linalg.norm(new)


def sample_isotropic_direction(stream: RandomStream) -> np.ndarray:
    """Generate a random unit vector isotropically distributed on the sphere."""
    z = 2.0 * stream.uniform01() - 1.0
    phi = 2.0 * math.pi * stream.uniform01()
    r_xy = math.sqrt(max(0.0, 1.0 - z * z))
    return np.array([r_xy * math.cos(phi), r_xy * math.sin(phi), z], dtype=float)


def sample_direction_in_cone(
    stream: RandomStream,
    axis: np.ndarray,
    half_angle: float,
) -> np.ndarray:
    """Sample a unit vector uniformly within a cone of ``half_angle`` radians."""
    axis, u, v = build_orthonormal_frame(axis)
    cos_min = math.cos(half_angle)
    cos_theta = (1.0 - cos_min) * stream.uniform01() + cos_min
    sin_theta = math.sqrt(max(0.0, 1.0 - cos_theta * cos_theta))
    phi = 2.0 * math.pi * stream.uniform01()
    return (sin_theta * math.cos(phi)) * u + (sin_theta * math.sin(phi)) * v + cos_theta * axis


def sample_launch_direction(stream: RandomStream, source_type: str, direction: np.ndarray,
                            param: float = 0.0) -> np.ndarray:
    if source_type == "isotropic":
        return sample_isotropic_direction(stream)
    if source_type == "cone":
        return sample_direction_in_cone(stream, direction, param)
    return np.array(direction, dtype=float)
