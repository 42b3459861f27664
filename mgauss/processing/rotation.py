"""Device-frame to earth-frame rotation with orientation quaternions.

Quaternions are ordered ``(qx, qy, qz, qw)``.  The orientation reported by
the sensor stack rotates earth into device coordinates, so bringing a
device-frame vector into the earth frame uses the *conjugate*.  Getting the
sign backwards does not raise; it just misaligns every window.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np

Vec3 = tuple[float, float, float]
Quaternion = tuple[float, float, float, float]


def _rotate(v: Sequence[float], ux: float, uy: float, uz: float, w: float) -> Vec3:
    vx, vy, vz = float(v[0]), float(v[1]), float(v[2])
    c1x = uy * vz - uz * vy
    c1y = uz * vx - ux * vz
    c1z = ux * vy - uy * vx
    t1x = c1x + w * vx
    t1y = c1y + w * vy
    t1z = c1z + w * vz
    c2x = uy * t1z - uz * t1y
    c2y = uz * t1x - ux * t1z
    c2z = ux * t1y - uy * t1x
    return (vx + 2.0 * c2x, vy + 2.0 * c2y, vz + 2.0 * c2z)


def rotate_to_earth(v: Sequence[float], q: Sequence[float]) -> Vec3:
    """Rotate *v* from the device frame into the earth frame."""
    qx, qy, qz, qw = q
    return _rotate(v, -qx, -qy, -qz, qw)


def rotate_from_earth(v: Sequence[float], q: Sequence[float]) -> Vec3:
    """Inverse of :func:`rotate_to_earth` (applies the raw quaternion)."""
    qx, qy, qz, qw = q
    return _rotate(v, qx, qy, qz, qw)


def rotate_batch_to_earth(vectors: np.ndarray, quats: np.ndarray) -> np.ndarray:
    """Vectorised :func:`rotate_to_earth`; row *i* uses quaternion *i*.

    *vectors* has shape ``(N, 3)`` and *quats* ``(N, 4)`` in xyzw order.
    """
    v = np.asarray(vectors, dtype=np.float64)
    q = np.asarray(quats, dtype=np.float64)
    if v.shape[0] != q.shape[0]:
        raise ValueError(f"got {v.shape[0]} vectors but {q.shape[0]} quaternions")
    u = -q[:, :3]
    w = q[:, 3:4]
    c1 = np.cross(u, v)
    t1 = c1 + w * v
    c2 = np.cross(u, t1)
    return v + 2.0 * c2


def quaternion_from_rotation_vector(values: Sequence[float]) -> Quaternion:
    """Convert a rotation-vector reading ``(x, y, z[, w])`` to ``(qx, qy, qz, qw)``.

    Older sensor stacks omit the scalar part; it is then reconstructed from
    the unit-norm constraint and clamped at zero for slightly denormalised
    input.
    """
    if len(values) < 3:
        raise ValueError(f"rotation vector needs at least 3 components, got {len(values)}")
    x, y, z = float(values[0]), float(values[1]), float(values[2])
    if len(values) >= 4:
        w = float(values[3])
    else:
        w = 1.0 - x * x - y * y - z * z
        w = math.sqrt(w) if w > 0.0 else 0.0
    return (x, y, z, w)
