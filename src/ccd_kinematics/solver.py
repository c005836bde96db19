"""Cyclic Coordinate Descent (CCD) position solver.

Each iteration sweeps the chain from the end effector back to the base,
starting at the end-effector joint only when it slides. Every joint takes the
single-axis correction that best moves the end effector toward the target,
damped and clamped to the joint's effective limits, and the chain pose is
refreshed before the next (more proximal) joint is visited.

Only the end-effector position is solved for; orientation is left free.
"""

import dataclasses
import logging
from typing import Any, Mapping, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from .chain import FIXED, PRISMATIC, REVOLUTE, Chain, end_effector_position, world_transforms
from .core import JointKind
from .transforms import se3, so3

logger = logging.getLogger(__name__)

# Absolute thresholds in world-distance units / radians
VECTOR_EPS = 1e-9
ANGLE_EPS = 1e-9
CHANGE_EPS = 1e-9


@dataclasses.dataclass(frozen=True)
class SolverConfig:
    """Solver settings. Every field is required.

    Attributes:
        max_iterations: Upper bound on backward sweeps per solve (> 0).
        tolerance: End-effector distance counted as converged (> 0).
        damping_factor: Fraction of each joint correction applied, in (0, 1].
        enabled: When False, ``solve`` leaves the chain untouched.
    """
    max_iterations: int
    tolerance: float
    damping_factor: float
    enabled: bool

    def __post_init__(self):
        if isinstance(self.max_iterations, bool) or not isinstance(self.max_iterations, int):
            raise ValueError(f"max_iterations must be an int, got {self.max_iterations!r}")
        if self.max_iterations <= 0:
            raise ValueError(f"max_iterations must be > 0, got {self.max_iterations}")
        if not self.tolerance > 0:
            raise ValueError(f"tolerance must be > 0, got {self.tolerance}")
        if not 0 < self.damping_factor <= 1:
            raise ValueError(f"damping_factor must be in (0, 1], got {self.damping_factor}")

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "SolverConfig":
        """Build a config from a plain mapping, e.g. a decoded settings file."""
        expected = {f.name for f in dataclasses.fields(cls)}
        missing = expected - set(values)
        unknown = set(values) - expected
        if missing or unknown:
            raise ValueError(
                f"Invalid solver settings: missing {sorted(missing)}, unknown {sorted(unknown)}"
            )
        return cls(
            max_iterations=int(values["max_iterations"]),
            tolerance=float(values["tolerance"]),
            damping_factor=float(values["damping_factor"]),
            enabled=bool(values["enabled"]),
        )


@dataclasses.dataclass(frozen=True)
class SolveResult:
    """Outcome of one ``solve`` call.

    Attributes:
        converged: The end effector ended within tolerance of the target.
        iterations: Number of backward sweeps performed.
        final_error: End-effector distance to the target after solving.
        stalled: The last sweep moved no joint, so solving stopped early.
        clamped_joints: Joints whose correction was cut by their limits.
        locked_joints: Joints held at a collapsed limit instead of solved.
    """
    converged: bool
    iterations: int
    final_error: float
    stalled: bool = False
    clamped_joints: Tuple[str, ...] = ()
    locked_joints: Tuple[str, ...] = ()


def solve(chain: Chain, target, config: SolverConfig) -> Tuple[Chain, SolveResult]:
    """Drive the end effector of ``chain`` toward ``target``.

    Args:
        chain: Chain to solve. It is not modified.
        target: (3,) target point in the root link frame.
        config: Solver settings.

    Returns:
        The chain with solved joint positions and the SolveResult. Not
        converging is a normal outcome, reported through the result.
    """
    target = jnp.asarray(target, dtype=chain.angles.dtype)
    if target.shape != (3,):
        raise ValueError(f"target must have shape (3,), got {target.shape}")

    if not config.enabled:
        error = float(_end_effector_error(chain, target))
        return chain, SolveResult(converged=False, iterations=0, final_error=error)

    locked = np.asarray(chain.locked_mask)
    locked_joints = tuple(name for name, flag in zip(chain.joint_names, locked) if flag)
    if locked_joints:
        chain = chain.replace(angles=jnp.where(chain.locked_mask, chain.lower, chain.angles))
        for name in locked_joints:
            logger.debug(
                "Joint %s is locked at %.3f; correction ignored",
                name, float(chain.angles[chain.index_of(name)]),
            )

    error = float(_end_effector_error(chain, target))
    converged = error < config.tolerance
    stalled = False
    iterations = 0
    clamped = np.zeros(chain.num_joints, dtype=bool)

    while not converged and iterations < config.max_iterations:
        angles, changed, sweep_clamped = _backward_sweep(chain, target, config.damping_factor)
        chain = chain.replace(angles=angles)
        clamped |= np.asarray(sweep_clamped)
        iterations += 1

        error = float(_end_effector_error(chain, target))
        if error < config.tolerance:
            converged = True
        elif not bool(changed):
            stalled = True
            logger.info(
                "CCD stalled after %d iterations with error %.6f", iterations, error
            )
            break

    clamped_joints = tuple(name for name, flag in zip(chain.joint_names, clamped) if flag)
    for name in clamped_joints:
        i = chain.index_of(name)
        logger.debug(
            "Joint %s clamped to limits [%.3f, %.3f]",
            name, float(chain.lower[i]), float(chain.upper[i]),
        )

    return chain, SolveResult(
        converged=converged,
        iterations=iterations,
        final_error=error,
        stalled=stalled,
        clamped_joints=clamped_joints,
        locked_joints=locked_joints,
    )


@jax.jit
def _end_effector_error(chain: Chain, target: Array) -> Array:
    return jnp.linalg.norm(end_effector_position(chain) - target)


def _joint_correction(chain: Chain, world: Array, i, end_effector: Array, target: Array):
    """Correction for joint ``i`` and whether it is well defined.

    Revolute joints: the signed angle about the joint axis that turns the
    joint-to-end-effector direction onto the joint-to-target direction, with
    both directions taken in the joint frame and projected on the plane
    orthogonal to the axis.

    Prismatic joints: the component of ``target - end_effector`` along the
    joint axis in world coordinates.
    """
    T_joint = world[i]
    axis = chain.axes[i]

    T_inv = se3.inverse(T_joint)
    to_end = se3.apply(T_inv, end_effector)
    to_target = se3.apply(T_inv, target)

    end_len = jnp.linalg.norm(to_end)
    target_len = jnp.linalg.norm(to_target)
    defined = (end_len > VECTOR_EPS) & (target_len > VECTOR_EPS)
    to_end = to_end / jnp.where(defined, end_len, 1.0)
    to_target = to_target / jnp.where(defined, target_len, 1.0)

    # Drop the part of the aligning rotation orthogonal to the hinge axis
    end_planar = to_end - jnp.dot(to_end, axis) * axis
    target_planar = to_target - jnp.dot(to_target, axis) * axis
    planar_ok = (jnp.linalg.norm(end_planar) > VECTOR_EPS) & (
        jnp.linalg.norm(target_planar) > VECTOR_EPS
    )
    hinge_angle = jnp.arctan2(
        jnp.dot(axis, jnp.cross(end_planar, target_planar)),
        jnp.dot(end_planar, target_planar),
    )
    hinge_ok = defined & planar_ok & (jnp.abs(hinge_angle) > ANGLE_EPS)

    world_axis = so3.apply(se3.get_rotation(T_joint), axis)
    slide = jnp.dot(target - end_effector, world_axis)
    slide_ok = jnp.abs(slide) > VECTOR_EPS

    kind = chain.kind_codes[i]
    correction = jnp.where(kind == PRISMATIC, slide, hinge_angle)
    ok = jnp.where(
        kind == REVOLUTE, hinge_ok, jnp.where(kind == PRISMATIC, slide_ok, False)
    )
    return correction, ok


@jax.jit
def _backward_sweep(chain: Chain, target: Array, damping: float):
    """One tip-to-base CCD pass.

    Returns:
        New joint positions, whether any joint moved, and a (N,) mask of
        joints whose correction hit a limit.
    """
    ee = chain.end_effector_index
    # A sliding end-effector joint moves its own frame; fixed and hinged ones cannot
    first = ee if chain.joint_kinds[ee] is JointKind.PRISMATIC else ee - 1
    locked = chain.locked_mask

    def body(k, carry):
        angles, changed, clamped = carry
        i = first - k

        current = chain.replace(angles=angles)
        world = world_transforms(current)
        end_effector = se3.get_position(world[ee])

        correction, ok = _joint_correction(current, world, i, end_effector, target)

        q = angles[i]
        candidate = q + damping * correction
        limited = jnp.clip(candidate, chain.lower[i], chain.upper[i])

        is_fixed = chain.kind_codes[i] == FIXED
        is_locked = locked[i]
        new_q = jnp.where(
            is_fixed, q, jnp.where(is_locked, chain.lower[i], jnp.where(ok, limited, q))
        )
        hit_limit = ok & ~is_fixed & ~is_locked & (limited != candidate)

        changed = changed | (jnp.abs(new_q - q) > CHANGE_EPS)
        angles = angles.at[i].set(new_q)
        clamped = clamped.at[i].set(clamped[i] | hit_limit)
        return angles, changed, clamped

    init = (chain.angles, jnp.array(False), jnp.zeros(chain.num_joints, dtype=bool))
    return jax.lax.fori_loop(0, first + 1, body, init)
