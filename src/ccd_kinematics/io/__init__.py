"""I/O utilities for loading robot descriptions and joint-limit overrides.

This module parses the URDF format into RobotDescription graphs and decodes
external joint-limit documents for the chain builder.
"""

from .joint_limits import load_joint_limits, parse_joint_limits
from .urdf_parser import load_urdf, parse_urdf

__all__ = ["load_urdf", "parse_urdf", "load_joint_limits", "parse_joint_limits"]
