"""SO(3) rotation helpers in JAX.

Rotation matrices, axis-angle vectors and unit quaternions in (w, x, y, z)
order. All functions are pure, JIT-able and accept leading batch dimensions.
"""

import jax
import jax.numpy as jnp

Array = jax.Array


def skew_symmetric(v: Array) -> Array:
    """
    Convert 3D vector to skew-symmetric (cross-product) matrix.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) matrix K such that K @ u == cross(v, u)
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)
    return jnp.stack([
        jnp.stack([zeros, -v[..., 2], v[..., 1]], axis=-1),
        jnp.stack([v[..., 2], zeros, -v[..., 0]], axis=-1),
        jnp.stack([-v[..., 1], v[..., 0], zeros], axis=-1)
    ], axis=-2)


def exp(log_r: Array) -> Array:
    """
    Axis-angle vector to rotation matrix (Rodrigues' formula).

    The direction of ``log_r`` is the rotation axis and its norm the angle.
    Joint motion is applied as ``exp(axis * angle)``.

    Args:
        log_r: (..., 3) array of axis-angle vectors

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    angle = jnp.linalg.norm(log_r, axis=-1, keepdims=True)
    small = angle < 1e-8

    # Taylor terms keep the zero-angle case finite
    safe_angle = jnp.where(small, 1.0, angle)
    sin_term = jnp.where(small, 1.0 - angle**2 / 6.0, jnp.sin(angle) / safe_angle)
    cos_term = jnp.where(small, 0.5 - angle**2 / 24.0, (1.0 - jnp.cos(angle)) / safe_angle**2)

    K = skew_symmetric(log_r)
    I = jnp.broadcast_to(jnp.eye(3, dtype=log_r.dtype), K.shape)

    return I + sin_term[..., None] * K + cos_term[..., None] * jnp.matmul(K, K)


def from_rpy(rpy: Array) -> Array:
    """
    Roll-pitch-yaw angles to rotation matrix.

    URDF convention: fixed-axis rotations about X, then Y, then Z, i.e.
    ``R = Rz(yaw) @ Ry(pitch) @ Rx(roll)``.

    Args:
        rpy: (..., 3) array of [roll, pitch, yaw] in radians

    Returns:
        (..., 3, 3) rotation matrix
    """
    return from_quaternion(quaternion_from_rpy(rpy))


def from_quaternion(quaternions: Array) -> Array:
    """
    Convert quaternions to rotation matrices.

    Args:
        quaternions: (..., 4) array of quaternions in (w, x, y, z) format

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    quaternions = quaternions / jnp.linalg.norm(quaternions, axis=-1, keepdims=True)
    w, x, y, z = jnp.moveaxis(quaternions, -1, 0)

    xx, yy, zz = x*x, y*y, z*z
    wx, wy, wz = w*x, w*y, w*z
    xy, xz, yz = x*y, x*z, y*z

    return jnp.stack([
        jnp.stack([1 - 2*(yy + zz), 2*(xy - wz), 2*(xz + wy)], axis=-1),
        jnp.stack([2*(xy + wz), 1 - 2*(xx + zz), 2*(yz - wx)], axis=-1),
        jnp.stack([2*(xz - wy), 2*(yz + wx), 1 - 2*(xx + yy)], axis=-1)
    ], axis=-2)


def quaternion_from_axis_angle(axis: Array, angle: Array) -> Array:
    """
    Unit quaternion for a rotation of ``angle`` about ``axis``.

    Args:
        axis: (..., 3) rotation axis, normalised internally
        angle: (...) rotation angle in radians

    Returns:
        (..., 4) quaternion in (w, x, y, z) format
    """
    axis = axis / jnp.linalg.norm(axis, axis=-1, keepdims=True)
    half = jnp.asarray(angle)[..., None] / 2.0
    return jnp.concatenate([jnp.cos(half), jnp.sin(half) * axis], axis=-1)


def quaternion_from_rpy(rpy: Array) -> Array:
    """
    Roll-pitch-yaw angles to a unit quaternion (``qz * qy * qx``).

    Args:
        rpy: (..., 3) array of [roll, pitch, yaw] in radians

    Returns:
        (..., 4) quaternion in (w, x, y, z) format
    """
    half = rpy / 2.0
    cr, cp, cy = jnp.cos(half[..., 0]), jnp.cos(half[..., 1]), jnp.cos(half[..., 2])
    sr, sp, sy = jnp.sin(half[..., 0]), jnp.sin(half[..., 1]), jnp.sin(half[..., 2])

    return jnp.stack([
        cr * cp * cy + sr * sp * sy,
        sr * cp * cy - cr * sp * sy,
        cr * sp * cy + sr * cp * sy,
        cr * cp * sy - sr * sp * cy,
    ], axis=-1)


def quaternion_multiply(q1: Array, q2: Array) -> Array:
    """Hamilton product ``q1 * q2`` (apply ``q2`` first, then ``q1``)."""
    w1, x1, y1, z1 = jnp.moveaxis(q1, -1, 0)
    w2, x2, y2, z2 = jnp.moveaxis(q2, -1, 0)
    return jnp.stack([
        w1*w2 - x1*x2 - y1*y2 - z1*z2,
        w1*x2 + x1*w2 + y1*z2 - z1*y2,
        w1*y2 - x1*z2 + y1*w2 + z1*x2,
        w1*z2 + x1*y2 - y1*x2 + z1*w2,
    ], axis=-1)


def apply(R: Array, v: Array) -> Array:
    """
    Apply rotation to vector(s).

    Args:
        R: (..., 3, 3) rotation matrix
        v: (..., 3) vector

    Returns:
        (..., 3) rotated vector
    """
    return jnp.einsum('...ij,...j->...i', R, v)
