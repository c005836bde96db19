"""
CCD Kinematics: kinematic chains and Cyclic Coordinate Descent IK in JAX.

Robot descriptions are parsed from URDF into an immutable link/joint graph,
turned into a serial runtime chain with merged joint limits, and solved
toward target points that a waypoint path produces frame by frame.
"""

import logging

import jax
jax.config.update("jax_enable_x64", True)

# Import core modules
from . import transforms
from . import core
from . import io
from .chain import Chain, ChainJoint, build_chain, end_effector_position, world_transforms
from .path import PathState, step
from .solver import SolveResult, SolverConfig, solve

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    "transforms",
    "core",
    "io",
    "Chain",
    "ChainJoint",
    "PathState",
    "SolveResult",
    "SolverConfig",
    "build_chain",
    "end_effector_position",
    "solve",
    "step",
    "world_transforms",
]
