"""Immutable robot description: links, joints and their limits.

This module defines the parse-time representation of a robot. It is a plain
graph of named links connected by joints and is never mutated; the runtime
:class:`~ccd_kinematics.chain.Chain` is built from it.
"""

import enum
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import (
    AmbiguousRootError,
    DanglingJointReferenceError,
    MalformedJointError,
    ParseError,
)

logger = logging.getLogger(__name__)

Vec3 = Tuple[float, float, float]


class JointKind(enum.Enum):
    REVOLUTE = "revolute"
    PRISMATIC = "prismatic"
    FIXED = "fixed"

    @property
    def code(self) -> int:
        """Integer tag used inside jitted code."""
        return _KIND_CODES[self]


_KIND_CODES = {JointKind.REVOLUTE: 0, JointKind.PRISMATIC: 1, JointKind.FIXED: 2}


@dataclass(frozen=True)
class Origin:
    """Translation plus fixed-axis roll/pitch/yaw, in the parent frame."""
    xyz: Vec3 = (0.0, 0.0, 0.0)
    rpy: Vec3 = (0.0, 0.0, 0.0)


@dataclass(frozen=True)
class Inertial:
    mass: float
    origin_xyz: Vec3 = (0.0, 0.0, 0.0)


@dataclass(frozen=True)
class Link:
    """A rigid body. Visual and inertial data are carried but unused by IK."""
    name: str
    visual_mesh: Optional[str] = None
    visual_origin: Origin = field(default_factory=Origin)
    inertial: Optional[Inertial] = None


@dataclass(frozen=True)
class JointLimits:
    lower: float = 0.0
    upper: float = 0.0
    effort: float = 0.0
    velocity: float = 0.0


@dataclass(frozen=True)
class JointSpec:
    """A joint between ``parent`` and ``child`` links.

    Attributes:
        origin: Pose of the joint frame in the parent link frame.
        axis: Rotation/translation axis expressed in the joint frame.
        limits: Position/effort/velocity limits. Only revolute and prismatic
                joints carry limits; ``None`` on a revolute joint means the
                joint is unbounded (URDF ``continuous``).
    """
    name: str
    kind: JointKind
    parent: str
    child: str
    origin: Origin = field(default_factory=Origin)
    axis: Vec3 = (0.0, 0.0, 1.0)
    limits: Optional[JointLimits] = None

    @property
    def is_fixed(self) -> bool:
        return self.kind is JointKind.FIXED


@dataclass(frozen=True)
class LimitBound:
    position: float
    effort: Optional[float] = None
    velocity: Optional[float] = None


@dataclass(frozen=True)
class ExternalLimit:
    """Stricter per-joint bounds supplied next to the description."""
    min: LimitBound
    max: LimitBound


@dataclass(frozen=True)
class RobotDescription:
    """Validated link/joint graph of a robot.

    Attributes:
        name: Robot name.
        links: Link name -> Link.
        joints: Joint name -> JointSpec.
        joint_order: Joint names in order of discovery. Chain construction
                     follows this order, which keeps it deterministic.
        root_link: The unique link that is no joint's child.
    """
    name: str
    links: Dict[str, Link]
    joints: Dict[str, JointSpec]
    joint_order: Tuple[str, ...]
    root_link: str

    @classmethod
    def from_parts(
        cls, name: str, links: Iterable[Link], joints: Iterable[JointSpec]
    ) -> "RobotDescription":
        """Validate links and joints and assemble a description.

        Raises:
            DanglingJointReferenceError: A joint names a missing link.
            MalformedJointError: Duplicate joint name or a link with two
                parent joints.
            AmbiguousRootError: Zero or several candidate root links.
            ParseError: Duplicate link names or a joint cycle.
        """
        link_map: Dict[str, Link] = {}
        for link in links:
            if link.name in link_map:
                raise ParseError(f"Duplicate link name '{link.name}'")
            link_map[link.name] = link

        joint_map: Dict[str, JointSpec] = {}
        parent_joint_of: Dict[str, str] = {}
        for joint in joints:
            if joint.name in joint_map:
                raise MalformedJointError(joint.name, "duplicate joint name")
            for link_name in (joint.parent, joint.child):
                if link_name not in link_map:
                    raise DanglingJointReferenceError(joint.name, link_name)
            if joint.child in parent_joint_of:
                raise MalformedJointError(
                    joint.name,
                    f"link '{joint.child}' already has parent joint "
                    f"'{parent_joint_of[joint.child]}'",
                )
            parent_joint_of[joint.child] = joint.name
            joint_map[joint.name] = joint

        root_candidates = set(link_map) - set(parent_joint_of)
        if len(root_candidates) != 1:
            raise AmbiguousRootError(root_candidates)
        root_link = next(iter(root_candidates))

        description = cls(
            name=name,
            links=link_map,
            joints=joint_map,
            joint_order=tuple(joint_map),
            root_link=root_link,
        )

        unreachable = set(link_map) - set(description.links_from_root())
        if unreachable:
            raise ParseError(
                f"Links {sorted(unreachable)} are not reachable from root "
                f"'{root_link}' (joint cycle)"
            )

        logger.info(
            "Robot description '%s': %d links, %d joints, root '%s'",
            name, len(link_map), len(joint_map), root_link,
        )
        return description

    def children_of(self, link_name: str) -> List[JointSpec]:
        """Joints whose parent is ``link_name``, in ``joint_order``."""
        return [
            self.joints[name]
            for name in self.joint_order
            if self.joints[name].parent == link_name
        ]

    def links_from_root(self) -> List[str]:
        """Link names in breadth-first order from the root link."""
        ordered = []
        queue = deque([self.root_link])
        visited = set()
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            ordered.append(current)
            for joint in self.children_of(current):
                if joint.child not in visited:
                    queue.append(joint.child)
        return ordered
