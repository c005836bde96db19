"""Core data structures for ccd_kinematics.

The robot description model and the error taxonomy shared by the parser,
the chain builder and the solver.
"""

from .errors import (
    AmbiguousRootError,
    BuildError,
    DanglingJointReferenceError,
    EmptyChainError,
    KinematicsError,
    LimitConflictError,
    MalformedJointError,
    MissingRootElementError,
    ParseError,
)
from .robot_model import (
    ExternalLimit,
    Inertial,
    JointKind,
    JointLimits,
    JointSpec,
    LimitBound,
    Link,
    Origin,
    RobotDescription,
)

__all__ = [
    "AmbiguousRootError",
    "BuildError",
    "DanglingJointReferenceError",
    "EmptyChainError",
    "ExternalLimit",
    "Inertial",
    "JointKind",
    "JointLimits",
    "JointSpec",
    "KinematicsError",
    "LimitBound",
    "LimitConflictError",
    "Link",
    "MalformedJointError",
    "MissingRootElementError",
    "Origin",
    "ParseError",
    "RobotDescription",
]
