"""
Reflection and refraction at refractive-index mismatched faces.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

import numpy as np


def fresnel_reflectance(cos_i: float, n1: float, n2: float) -> float:
    """Unpolarized Fresnel reflectance going from index ``n1`` into ``n2``.

    ``cos_i`` is the cosine between the direction and the face normal,
    clipped to [0, 1]. Total internal reflection returns 1.
    """
    cos_i = max(0.0, min(1.0, float(cos_i)))
    if n1 == n2:
        return 0.0
    n_ratio = n1 / n2
    sin_t2 = n_ratio * n_ratio * (1.0 - cos_i * cos_i)
    if sin_t2 >= 1.0:
        return 1.0
    cos_t = math.sqrt(max(0.0, 1.0 - sin_t2))
    rs_den = n1 * cos_i + n2 * cos_t
    rp_den = n1 * cos_t + n2 * cos_i
    if rs_den == 0.0 or rp_den == 0.0:
        return 1.0
    rs = (n1 * cos_i - n2 * cos_t) / rs_den
    rp = (n1 * cos_t - n2 * cos_i) / rp_den
    return float(min(max(0.5 * (rs * rs + rp * rp), 0.0), 1.0))


def normal_incidence_reflectance(n1: float, n2: float) -> float:
    return ((n1 - n2) / (n1 + n2)) ** 2


def refract_direction(
    direction: np.ndarray,
    normal: np.ndarray,
    n1: float,
    n2: float,
) -> Tuple[bool, Optional[np.ndarray]]:
    """Refract ``direction`` through a face with outward unit ``normal``.

    Returns
    -------
    tir : bool
        True on total internal reflection.
    transmitted : np.ndarray or None
        Unit refracted direction (vector form of Snell's law), None on TIR.
    """
    cos_i = float(np.dot(direction, normal))
    eta = n1 / n2
    sin_t2 = eta * eta * (1.0 - cos_i * cos_i)
    if sin_t2 >= 1.0:
        return True, None
    cos_t = math.sqrt(max(0.0, 1.0 - sin_t2))
    transmitted = eta * direction + (cos_t - eta * cos_i) * normal
    norm = np.linalg.norm(transmitted)
    if norm == 0.0:
        return True, None
    return False, transmitted / norm
