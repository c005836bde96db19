"""Shared fixtures: small robot descriptions built in code and from URDF files."""

import math
from pathlib import Path

import pytest

from ccd_kinematics.core import JointKind, JointLimits, JointSpec, Link, Origin, RobotDescription
from ccd_kinematics.io import load_urdf

FIXTURES = Path(__file__).parent / "fixtures"


def planar_description(num_joints=3, limits=(-math.pi, math.pi), tool_offset=None):
    """Revolute Z joints spaced 1 unit apart along X, first joint at the origin.

    With ``tool_offset`` a fixed joint carrying the end effector is appended
    that far along X from the last revolute joint.
    """
    links = [Link("base_link")] + [Link(f"link_{i}") for i in range(1, num_joints + 1)]
    joints = []
    for i in range(1, num_joints + 1):
        joints.append(JointSpec(
            name=f"joint_{i}",
            kind=JointKind.REVOLUTE,
            parent="base_link" if i == 1 else f"link_{i - 1}",
            child=f"link_{i}",
            origin=Origin(xyz=(0.0 if i == 1 else 1.0, 0.0, 0.0)),
            axis=(0.0, 0.0, 1.0),
            limits=JointLimits(lower=limits[0], upper=limits[1], effort=10.0, velocity=1.0),
        ))
    if tool_offset is not None:
        links.append(Link("tool0"))
        joints.append(JointSpec(
            name="tool_joint",
            kind=JointKind.FIXED,
            parent=f"link_{num_joints}",
            child="tool0",
            origin=Origin(xyz=(tool_offset, 0.0, 0.0)),
        ))
    return RobotDescription.from_parts("planar", links, joints)


@pytest.fixture
def planar():
    return planar_description()


@pytest.fixture
def planar_with_tool():
    return planar_description(tool_offset=1.0)


@pytest.fixture
def kr_arm():
    return load_urdf(str(FIXTURES / "kr_arm.urdf"))
