"""Runtime kinematic chain: construction from a description and forward kinematics.

A :class:`Chain` is an arena of joints stored as per-joint JAX arrays and
linked by integer parent indices, ordered from the base joint to the end
effector. It is an immutable PyTree; updating joint angles returns a new
chain, so a description can be reused to build any number of independent
chains.
"""

import dataclasses
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import jax
import jax.numpy as jnp
import numpy as np
from flax import struct
from jax import Array

from .core import (
    BuildError,
    EmptyChainError,
    ExternalLimit,
    JointKind,
    JointSpec,
    LimitConflictError,
    RobotDescription,
)
from .transforms import se3, so3

logger = logging.getLogger(__name__)

REVOLUTE = JointKind.REVOLUTE.code
PRISMATIC = JointKind.PRISMATIC.code
FIXED = JointKind.FIXED.code


@dataclasses.dataclass(frozen=True)
class ChainJoint:
    """Read-only view of one joint of a :class:`Chain`."""
    index: int
    name: str
    kind: JointKind
    parent_index: int
    axis: Tuple[float, float, float]
    angle: float
    lower: float
    upper: float
    effort: float
    velocity: float

    @property
    def is_fixed(self) -> bool:
        return self.kind is JointKind.FIXED

    @property
    def is_hinge(self) -> bool:
        return self.kind is JointKind.REVOLUTE

    @property
    def is_locked(self) -> bool:
        """Merged limits collapsed to a single value; the solver holds it there."""
        return not self.is_fixed and self.lower == self.upper


@struct.dataclass
class Chain:
    """Serial kinematic chain from the base joint to the end effector.

    Attributes:
        joint_names: Joint names in chain order. Static for JIT compilation.
        joint_kinds: JointKind of every joint. Static for JIT compilation.
        link_names: Child link of every joint. Static for JIT compilation.
        end_effector_index: Index of the joint whose frame is the end effector.
        parent_indices: (N,) parent joint index, -1 for the base joint.
        kind_codes: (N,) integer JointKind codes, usable inside jitted code.
        origin_positions: (N, 3) joint origin translations in the parent frame.
        origin_quaternions: (N, 4) joint origin orientations (w, x, y, z).
        axes: (N, 3) unit joint axes in the joint frame.
        angles: (N,) current joint positions (radians or length units).
        lower: (N,) effective lower limits, -inf when unbounded.
        upper: (N,) effective upper limits, +inf when unbounded.
        effort: (N,) effective effort limits.
        velocity: (N,) effective velocity limits.
    """
    joint_names: Tuple[str, ...] = struct.field(pytree_node=False)
    joint_kinds: Tuple[JointKind, ...] = struct.field(pytree_node=False)
    link_names: Tuple[str, ...] = struct.field(pytree_node=False)
    end_effector_index: int = struct.field(pytree_node=False)
    parent_indices: Array
    kind_codes: Array
    origin_positions: Array
    origin_quaternions: Array
    axes: Array
    angles: Array
    lower: Array
    upper: Array
    effort: Array
    velocity: Array

    @property
    def num_joints(self) -> int:
        return len(self.joint_names)

    @property
    def locked_mask(self) -> Array:
        """(N,) True where merged limits collapse to one value on a movable joint."""
        return (self.lower == self.upper) & (self.kind_codes != FIXED)

    def index_of(self, joint_name: str) -> int:
        try:
            return self.joint_names.index(joint_name)
        except ValueError:
            raise ValueError(f"Joint '{joint_name}' not found in chain") from None

    def joint(self, index: int) -> ChainJoint:
        parent = int(self.parent_indices[index])
        axis = np.asarray(self.axes[index], dtype=float)
        return ChainJoint(
            index=index,
            name=self.joint_names[index],
            kind=self.joint_kinds[index],
            parent_index=parent,
            axis=(float(axis[0]), float(axis[1]), float(axis[2])),
            angle=float(self.angles[index]),
            lower=float(self.lower[index]),
            upper=float(self.upper[index]),
            effort=float(self.effort[index]),
            velocity=float(self.velocity[index]),
        )

    @property
    def joints(self) -> List[ChainJoint]:
        return [self.joint(i) for i in range(self.num_joints)]


def build_chain(
    description: RobotDescription,
    override_limits: Optional[Mapping[str, ExternalLimit]] = None,
) -> Chain:
    """Build the runtime chain for ``description``.

    Traversal starts at the base joint of the root link and follows
    joint -> child link -> next joint. It stops at the first fixed joint
    after the base joint, or at the last joint when there is none; that
    joint becomes the end effector.

    Args:
        description: Validated robot description. It is not modified.
        override_limits: Optional stricter limits keyed by joint name.

    Returns:
        Chain: Joints ordered from base to end effector.

    Raises:
        EmptyChainError: The root link has no joints.
        LimitConflictError: A joint's merged limits do not overlap.
        BuildError: A movable joint has a zero-length axis.
    """
    override_limits = dict(override_limits or {})
    specs = _traverse(description)

    unknown = sorted(set(override_limits) - set(description.joints))
    if unknown:
        logger.warning("Ignoring limit overrides for unknown joints: %s", unknown)

    names, kinds, links = [], [], []
    positions, rpys, axes = [], [], []
    lower, upper, effort, velocity = [], [], [], []

    for spec in specs:
        lo, hi, eff, vel = _effective_limits(spec, override_limits.get(spec.name))
        names.append(spec.name)
        kinds.append(spec.kind)
        links.append(spec.child)
        positions.append(spec.origin.xyz)
        rpys.append(spec.origin.rpy)
        axes.append(_unit_axis(spec))
        lower.append(lo)
        upper.append(hi)
        effort.append(eff)
        velocity.append(vel)

    lower_arr = jnp.array(lower, dtype=jnp.float64)
    upper_arr = jnp.array(upper, dtype=jnp.float64)
    num_joints = len(specs)

    chain = Chain(
        joint_names=tuple(names),
        joint_kinds=tuple(kinds),
        link_names=tuple(links),
        end_effector_index=num_joints - 1,
        parent_indices=jnp.arange(num_joints, dtype=jnp.int32) - 1,
        kind_codes=jnp.array([k.code for k in kinds], dtype=jnp.int32),
        origin_positions=jnp.array(positions, dtype=jnp.float64),
        origin_quaternions=so3.quaternion_from_rpy(jnp.array(rpys, dtype=jnp.float64)),
        axes=jnp.array(axes, dtype=jnp.float64),
        # Zero pose, pulled inside the limits so locked joints start locked
        angles=jnp.clip(jnp.zeros(num_joints), lower_arr, upper_arr),
        lower=lower_arr,
        upper=upper_arr,
        effort=jnp.array(effort, dtype=jnp.float64),
        velocity=jnp.array(velocity, dtype=jnp.float64),
    )

    logger.info(
        "Built chain of %d joints from '%s' to end effector '%s'",
        num_joints, names[0], names[-1],
    )
    return chain


def _next_joint(description: RobotDescription, link_name: str) -> Optional[JointSpec]:
    candidates = description.children_of(link_name)
    if not candidates:
        return None
    # Prefer a joint that leads somewhere over a leaf (sensor, camera) mount
    chosen = next(
        (joint for joint in candidates if description.children_of(joint.child)),
        candidates[0],
    )
    if len(candidates) > 1:
        logger.warning(
            "Link '%s' branches into %s; chain follows '%s'",
            link_name, [joint.name for joint in candidates], chosen.name,
        )
    return chosen


def _traverse(description: RobotDescription) -> List[JointSpec]:
    base_joint = _next_joint(description, description.root_link)
    if base_joint is None:
        raise EmptyChainError(description.root_link)

    specs = []
    joint = base_joint
    while joint is not None:
        specs.append(joint)
        if joint.is_fixed and joint is not base_joint:
            break
        joint = _next_joint(description, joint.child)
    return specs


def _effective_limits(
    spec: JointSpec, override: Optional[ExternalLimit]
) -> Tuple[float, float, float, float]:
    if spec.is_fixed:
        if override is not None:
            logger.debug("Ignoring limit override for fixed joint '%s'", spec.name)
        return 0.0, 0.0, 0.0, 0.0

    if spec.limits is None:
        lower, upper, effort, velocity = -np.inf, np.inf, 0.0, 0.0
    else:
        lower, upper = spec.limits.lower, spec.limits.upper
        effort, velocity = spec.limits.effort, spec.limits.velocity

    if override is None:
        return lower, upper, effort, velocity

    merged_lower = max(lower, override.min.position)
    merged_upper = min(upper, override.max.position)
    if merged_lower > merged_upper:
        raise LimitConflictError(spec.name, merged_lower, merged_upper)

    logger.debug(
        "Merged limits for '%s': description(%.3f, %.3f) + override(%.3f, %.3f) = (%.3f, %.3f)",
        spec.name, lower, upper, override.min.position, override.max.position,
        merged_lower, merged_upper,
    )
    if override.max.effort is not None:
        effort = override.max.effort
    if override.max.velocity is not None:
        velocity = override.max.velocity
    return merged_lower, merged_upper, effort, velocity


def _unit_axis(spec: JointSpec) -> Tuple[float, float, float]:
    axis = np.asarray(spec.axis, dtype=float)
    norm = np.linalg.norm(axis)
    if norm < 1e-12:
        if spec.is_fixed:
            return (0.0, 0.0, 1.0)
        raise BuildError(f"Joint '{spec.name}' has a zero-length axis")
    axis = axis / norm
    return (float(axis[0]), float(axis[1]), float(axis[2]))


def local_transforms(chain: Chain) -> Array:
    """Joint frames relative to their parent joint frame.

    Each transform is ``origin @ motion`` where ``motion`` rotates about the
    axis for revolute joints, translates along it for prismatic joints and is
    the identity for fixed joints.

    Returns:
        Array of shape (N, 4, 4).
    """
    is_revolute = chain.kind_codes == REVOLUTE
    is_prismatic = chain.kind_codes == PRISMATIC

    R_origin = so3.from_quaternion(chain.origin_quaternions)
    R_motion = so3.exp(chain.axes * jnp.where(is_revolute, chain.angles, 0.0)[:, None])
    t_motion = chain.axes * jnp.where(is_prismatic, chain.angles, 0.0)[:, None]

    R = jnp.matmul(R_origin, R_motion)
    p = chain.origin_positions + so3.apply(R_origin, t_motion)
    return se3.from_position_and_rotation(p, R)


def world_transforms(chain: Chain) -> Array:
    """World (root link frame) pose of every joint frame.

    Returns:
        Array of shape (N, 4, 4).
    """
    local = local_transforms(chain)
    identity = jnp.eye(4, dtype=local.dtype)

    def scan_body(carry, i):
        """Processes joint `i` using its parent's world pose from `carry`."""
        parent = chain.parent_indices[i]
        T_world_to_parent = jnp.where(parent < 0, identity, carry[parent])
        carry = carry.at[i].set(T_world_to_parent @ local[i])
        return carry, None

    # Parents precede children in the arena, so one ordered pass suffices
    world, _ = jax.lax.scan(scan_body, local, jnp.arange(chain.num_joints))
    return world


def joint_positions(chain: Chain) -> Array:
    """(N, 3) world position of every joint frame."""
    return se3.get_position(world_transforms(chain))


def end_effector_position(chain: Chain) -> Array:
    """(3,) world position of the end effector."""
    return se3.get_position(world_transforms(chain)[chain.end_effector_index])


def local_quaternions(chain: Chain) -> Array:
    """(N, 4) local joint orientations (origin then joint motion), (w, x, y, z)."""
    angles = jnp.where(chain.kind_codes == REVOLUTE, chain.angles, 0.0)
    motion = so3.quaternion_from_axis_angle(chain.axes, angles)
    return so3.quaternion_multiply(chain.origin_quaternions, motion)


def set_joint_angles(
    chain: Chain, angles: Union[Sequence[float], Array, Mapping[str, float]]
) -> Chain:
    """Return a chain with new joint positions, clamped to the effective limits.

    Args:
        chain: Chain to update.
        angles: Either one value per joint in chain order, or a mapping of
                joint name to value for a subset of joints.
    """
    if isinstance(angles, Mapping):
        new_angles = chain.angles
        for name, value in angles.items():
            new_angles = new_angles.at[chain.index_of(name)].set(value)
    else:
        new_angles = jnp.asarray(angles, dtype=chain.angles.dtype)
        if new_angles.shape != chain.angles.shape:
            raise ValueError(
                f"Expected {chain.num_joints} joint values, got shape {new_angles.shape}"
            )

    new_angles = jnp.where(chain.kind_codes == FIXED, 0.0, new_angles)
    return chain.replace(angles=jnp.clip(new_angles, chain.lower, chain.upper))


def joint_angles(chain: Chain) -> Dict[str, float]:
    """Current joint positions keyed by joint name."""
    return {name: float(chain.angles[i]) for i, name in enumerate(chain.joint_names)}
