"""SE(3) rigid-body transforms as homogeneous 4x4 matrices in JAX."""

import jax
import jax.numpy as jnp

Array = jax.Array


def from_position_and_rotation(p: Array, R: Array) -> Array:
    """
    Construct SE(3) transform from position and rotation.

    Args:
        p: (..., 3) position vector
        R: (..., 3, 3) rotation matrix

    Returns:
        (..., 4, 4) homogeneous transformation matrix
    """
    batch_shape = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    p = jnp.broadcast_to(p, batch_shape + (3,))
    R = jnp.broadcast_to(R, batch_shape + (3, 3))

    top = jnp.concatenate([R, p[..., None]], axis=-1)
    bottom = jnp.broadcast_to(
        jnp.array([[0.0, 0.0, 0.0, 1.0]], dtype=top.dtype), batch_shape + (1, 4)
    )
    return jnp.concatenate([top, bottom], axis=-2)


def inverse(T: Array) -> Array:
    """
    Inverse of an SE(3) transform, ``[[R^T, -R^T t], [0, 1]]``.

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 4, 4) inverse transformation matrix
    """
    R_inv = jnp.swapaxes(get_rotation(T), -1, -2)
    t_inv = -jnp.einsum("...ij,...j->...i", R_inv, get_position(T))
    return from_position_and_rotation(t_inv, R_inv)


def apply(T: Array, points: Array) -> Array:
    """
    Apply SE(3) transformation to points.

    Args:
        T: (..., 4, 4) transformation matrix
        points: (..., 3) points to transform

    Returns:
        (..., 3) transformed points
    """
    return jnp.einsum("...ij,...j->...i", get_rotation(T), points) + get_position(T)


def get_position(T: Array) -> Array:
    """Translation part of ``T``, shape (..., 3)."""
    return T[..., :3, 3]


def get_rotation(T: Array) -> Array:
    """Rotation part of ``T``, shape (..., 3, 3)."""
    return T[..., :3, :3]
