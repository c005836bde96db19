"""Exception hierarchy for description parsing and chain construction.

All errors derive from ``ValueError`` so callers that only guard against bad
input can keep catching the built-in type.
"""

from typing import Iterable, Optional


class KinematicsError(ValueError):
    """Base class for every error raised by ccd_kinematics."""


class ParseError(KinematicsError):
    """The robot description is malformed or incomplete."""


class MissingRootElementError(ParseError):
    def __init__(self, tag: str = "robot"):
        super().__init__(f"Invalid robot description: no <{tag}> element found")
        self.tag = tag


class DanglingJointReferenceError(ParseError):
    """A joint names a parent or child link that does not exist."""

    def __init__(self, joint_name: str, link_name: str):
        super().__init__(
            f"Joint '{joint_name}' references unknown link '{link_name}'"
        )
        self.joint_name = joint_name
        self.link_name = link_name


class AmbiguousRootError(ParseError):
    """Zero or several links are never a joint's child."""

    def __init__(self, candidates: Iterable[str]):
        self.candidates = tuple(sorted(candidates))
        super().__init__(
            f"Expected exactly one root link, found: {list(self.candidates)}"
        )


class MalformedJointError(ParseError):
    def __init__(self, joint_name: Optional[str], reason: str):
        super().__init__(f"Invalid joint '{joint_name}': {reason}")
        self.joint_name = joint_name
        self.reason = reason


class BuildError(KinematicsError):
    """A runtime chain cannot be built from the description."""


class EmptyChainError(BuildError):
    def __init__(self, root_link: str):
        super().__init__(f"Root link '{root_link}' has no joints; chain would be empty")
        self.root_link = root_link


class LimitConflictError(BuildError):
    """Description limits and override limits do not overlap."""

    def __init__(self, joint_name: str, lower: float, upper: float):
        super().__init__(
            f"Joint '{joint_name}' has no valid range after merging limits "
            f"(lower={lower:.6g} > upper={upper:.6g})"
        )
        self.joint_name = joint_name
        self.lower = lower
        self.upper = upper
