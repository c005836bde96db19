"""
JAX transforms used by the kinematic chain and the CCD solver.

- SO(3) rotations, roll-pitch-yaw and quaternion helpers (so3 module)
- SE(3) homogeneous transforms (se3 module)

All functions are pure, stateless and JIT-compilable.
"""

from . import so3
from . import se3

__all__ = [
    "so3",
    "se3",
]
