"""URDF parser producing :class:`RobotDescription` graphs.

Only the kinematic content is interpreted: links (with their visual mesh
reference and inertial data carried along), joints, origins, axes and limits.
Joints declared inside ``<transmission>`` blocks are actuator bindings, not
kinematic joints, and are skipped.
"""

import logging
from typing import Optional, Union

from lxml import etree

from ccd_kinematics.core.errors import (
    MalformedJointError,
    MissingRootElementError,
    ParseError,
)
from ccd_kinematics.core.robot_model import (
    Inertial,
    JointKind,
    JointLimits,
    JointSpec,
    Link,
    Origin,
    RobotDescription,
    Vec3,
)

logger = logging.getLogger(__name__)

_JOINT_KINDS = {
    "revolute": JointKind.REVOLUTE,
    "continuous": JointKind.REVOLUTE,
    "prismatic": JointKind.PRISMATIC,
    "fixed": JointKind.FIXED,
}


def load_urdf(urdf_path: str) -> RobotDescription:
    """Load a URDF file into a RobotDescription.

    Args:
        urdf_path: Path to the URDF file to load.

    Returns:
        RobotDescription: The validated link/joint graph.
    """
    try:
        tree = etree.parse(str(urdf_path))
    except etree.XMLSyntaxError as exc:
        raise ParseError(f"Invalid URDF XML in {urdf_path}: {exc}") from exc
    return _parse_tree(tree.getroot())


def parse_urdf(urdf: Union[str, bytes]) -> RobotDescription:
    """Parse URDF markup held in memory.

    Args:
        urdf: URDF document as text or bytes.

    Returns:
        RobotDescription: The validated link/joint graph.
    """
    if isinstance(urdf, str):
        urdf = urdf.encode("utf-8")
    try:
        root = etree.fromstring(urdf)
    except etree.XMLSyntaxError as exc:
        raise ParseError(f"Invalid URDF XML: {exc}") from exc
    return _parse_tree(root)


def _parse_tree(root) -> RobotDescription:
    robot = root if root.tag == "robot" else root.find(".//robot")
    if robot is None:
        raise MissingRootElementError("robot")

    links = [_parse_link(link_elem) for link_elem in robot.findall(".//link")]

    joints = []
    for joint_elem in robot.findall(".//joint"):
        # <transmission><joint name="..."/></transmission> is not kinematic
        if joint_elem.getparent().tag == "transmission":
            continue
        joints.append(_parse_joint(joint_elem))

    return RobotDescription.from_parts(robot.get("name", "unknown"), links, joints)


def _parse_link(link_elem) -> Link:
    name = link_elem.get("name")
    if not name:
        raise ParseError("Link element without a name")

    mesh_filename = None
    visual_origin = Origin()
    visual_elem = link_elem.find("visual")
    if visual_elem is not None:
        visual_origin = _parse_origin(visual_elem.find("origin"))
        mesh_elem = visual_elem.find("geometry/mesh")
        if mesh_elem is not None:
            mesh_filename = mesh_elem.get("filename", "")

    inertial = None
    inertial_elem = link_elem.find("inertial")
    if inertial_elem is not None:
        mass_elem = inertial_elem.find("mass")
        origin_elem = inertial_elem.find("origin")
        if mass_elem is not None and origin_elem is not None:
            inertial = Inertial(
                mass=_parse_float(mass_elem.get("value", "0"), f"link '{name}' mass"),
                origin_xyz=_parse_vec3(origin_elem.get("xyz"), (0.0, 0.0, 0.0)),
            )

    return Link(
        name=name,
        visual_mesh=mesh_filename,
        visual_origin=visual_origin,
        inertial=inertial,
    )


def _parse_joint(joint_elem) -> JointSpec:
    name = joint_elem.get("name")
    if not name:
        raise MalformedJointError(None, "missing name attribute")

    type_name = joint_elem.get("type", "revolute")
    if type_name not in _JOINT_KINDS:
        raise MalformedJointError(name, f"unsupported joint type '{type_name}'")
    kind = _JOINT_KINDS[type_name]

    parent_elem = joint_elem.find("parent")
    child_elem = joint_elem.find("child")
    if parent_elem is None or child_elem is None:
        raise MalformedJointError(name, "missing parent or child")
    parent = parent_elem.get("link")
    child = child_elem.get("link")
    if not parent or not child:
        raise MalformedJointError(name, "parent/child without a link attribute")

    axis = (0.0, 0.0, 1.0)
    axis_elem = joint_elem.find("axis")
    if axis_elem is not None:
        axis = _parse_vec3(axis_elem.get("xyz"), axis)

    limits = None
    limit_elem = joint_elem.find("limit")
    if limit_elem is not None and type_name in ("revolute", "prismatic"):
        limits = JointLimits(
            lower=_parse_float(limit_elem.get("lower", "0"), f"joint '{name}' lower"),
            upper=_parse_float(limit_elem.get("upper", "0"), f"joint '{name}' upper"),
            effort=_parse_float(limit_elem.get("effort", "0"), f"joint '{name}' effort"),
            velocity=_parse_float(limit_elem.get("velocity", "0"), f"joint '{name}' velocity"),
        )

    return JointSpec(
        name=name,
        kind=kind,
        parent=parent,
        child=child,
        origin=_parse_origin(joint_elem.find("origin")),
        axis=axis,
        limits=limits,
    )


def _parse_origin(origin_elem) -> Origin:
    if origin_elem is None:
        return Origin()
    return Origin(
        xyz=_parse_vec3(origin_elem.get("xyz"), (0.0, 0.0, 0.0)),
        rpy=_parse_vec3(origin_elem.get("rpy"), (0.0, 0.0, 0.0)),
    )


def _parse_vec3(text: Optional[str], default: Vec3) -> Vec3:
    if text is None:
        return default
    parts = text.split()
    if len(parts) != 3:
        raise ParseError(f"Expected three numbers, got '{text}'")
    x, y, z = (_parse_float(p, text) for p in parts)
    return (x, y, z)


def _parse_float(text: str, context: str) -> float:
    try:
        return float(text)
    except ValueError as exc:
        raise ParseError(f"Invalid number '{text}' in {context}") from exc
