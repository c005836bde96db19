"""Waypoint path playback feeding targets to the solver.

:class:`PathState` tracks progress along an ordered list of waypoints. Once
per frame ``tick`` advances the progress, interpolates the path target and
eases the solver target toward it, so the solver never sees a discontinuous
jump. :func:`step` runs one such frame end to end.
"""

import logging
import math
from typing import Optional, Tuple

import jax.numpy as jnp
import numpy as np
from flax import struct
from jax import Array

from .chain import Chain
from .solver import SolveResult, SolverConfig, solve

logger = logging.getLogger(__name__)


def _as_points(points) -> Array:
    points = jnp.asarray(points, dtype=jnp.float64)
    if points.size == 0:
        return jnp.zeros((0, 3), dtype=jnp.float64)
    if points.ndim != 2 or points.shape[-1] != 3:
        raise ValueError(f"waypoints must have shape (N, 3), got {points.shape}")
    return points


def _empty_trail() -> Array:
    return jnp.zeros((0, 3), dtype=jnp.float64)


@struct.dataclass
class PathState:
    """Playback state over a waypoint path.

    Attributes:
        waypoints: (N, 3) ordered path points in the root link frame.
        progress: Position along the whole path, in [0, 1].
        position: (3,) smoothed target actually handed to the solver.
        path_target: (3,) target interpolated on the path at ``progress``.
        trail: (M, 3) waypoints already passed, ending at ``position``.
        speed: Waypoint segments travelled per second.
        smoothing_rate: Exponential easing rate of ``position`` toward
                        ``path_target``, per second.
        snap_distance: ``position`` jumps onto ``path_target`` when closer.
        trail_threshold: Distance under which a waypoint counts as passed.
        is_animating: Whether ``tick`` advances ``progress``.
    """
    waypoints: Array
    progress: float
    position: Array
    path_target: Array
    trail: Array
    speed: float = 1.0
    smoothing_rate: float = 8.0
    snap_distance: float = 0.1
    trail_threshold: float = 1.0
    is_animating: bool = struct.field(pytree_node=False, default=False)

    @classmethod
    def create(cls, waypoints=(), **settings) -> "PathState":
        """Idle state at the start of ``waypoints``.

        ``settings`` may override ``speed``, ``smoothing_rate``,
        ``snap_distance`` and ``trail_threshold``.
        """
        origin = jnp.zeros(3, dtype=jnp.float64)
        state = cls(
            waypoints=_empty_trail(),
            progress=0.0,
            position=origin,
            path_target=origin,
            trail=_empty_trail(),
            **settings,
        )
        if state.speed < 0:
            raise ValueError(f"speed must be >= 0, got {state.speed}")
        return state.set_waypoints(waypoints)

    @property
    def num_waypoints(self) -> int:
        return int(self.waypoints.shape[0])

    @property
    def current_index(self) -> int:
        """Index of the waypoint the path target has most recently passed."""
        if self.num_waypoints == 0:
            return 0
        last = self.num_waypoints - 1
        return min(int(math.floor(self.progress * last)), last)

    @property
    def local_progress(self) -> float:
        """Fraction of the way from ``current_index`` to the next waypoint."""
        if self.num_waypoints == 0:
            return 0.0
        return self.progress * (self.num_waypoints - 1) - self.current_index

    def set_waypoints(self, points) -> "PathState":
        """Replace the path. Playback stops and restarts from the first point."""
        waypoints = _as_points(points)
        start = waypoints[0] if waypoints.shape[0] else self.position
        return self.replace(
            waypoints=waypoints,
            progress=0.0,
            is_animating=False,
            position=start,
            path_target=start,
            trail=_empty_trail(),
        )

    def play(self) -> "PathState":
        if self.num_waypoints == 0:
            logger.warning("Cannot play an empty path")
            return self
        return self.replace(is_animating=True)

    def pause(self) -> "PathState":
        return self.replace(is_animating=False)

    def toggle(self) -> "PathState":
        return self.pause() if self.is_animating else self.play()

    def reset(self) -> "PathState":
        return self.replace(is_animating=False, progress=0.0, trail=_empty_trail())

    def set_speed(self, speed: float) -> "PathState":
        if speed < 0:
            raise ValueError(f"speed must be >= 0, got {speed}")
        return self.replace(speed=float(speed))

    def seek(self, progress: float) -> "PathState":
        """Jump to ``progress`` (clamped to [0, 1]) without playing."""
        return self.replace(progress=min(max(float(progress), 0.0), 1.0))

    def seek_index(self, index: int) -> "PathState":
        """Jump to waypoint ``index`` (clamped to the path) without playing."""
        if self.num_waypoints < 2:
            return self.seek(0.0)
        last = self.num_waypoints - 1
        return self.seek(min(max(int(index), 0), last) / last)

    def interpolate(self, progress: Optional[float] = None) -> Array:
        """Point on the path at ``progress`` (defaults to the current one)."""
        if self.num_waypoints == 0:
            return self.position
        state = self if progress is None else self.seek(progress)
        index = state.current_index
        next_index = min(index + 1, self.num_waypoints - 1)
        start, end = self.waypoints[index], self.waypoints[next_index]
        return start + (end - start) * state.local_progress

    def tick(self, delta_time: float) -> Tuple["PathState", Array]:
        """Advance one frame.

        While animating, progress grows by ``speed * delta_time / (N - 1)``
        and stops at 1, which ends playback. Every tick refreshes the path
        target, the smoothed position and the trail.

        Returns:
            The new state and the smoothed target for the solver.
        """
        if delta_time < 0:
            raise ValueError(f"delta_time must be >= 0, got {delta_time}")

        state = self
        if state.is_animating and state.num_waypoints:
            progress = state.progress + state.speed * delta_time / max(state.num_waypoints - 1, 1)
            if progress >= 1.0:
                logger.info("Path finished")
                state = state.replace(progress=1.0, is_animating=False)
            else:
                state = state.replace(progress=progress)

        if state.num_waypoints == 0:
            return state, state.position

        path_target = state.interpolate()
        position = _ease_toward(
            state.position, path_target, delta_time * state.smoothing_rate, state.snap_distance
        )
        trail = progressive_trail(state.waypoints, state.progress, position, state.trail_threshold)
        state = state.replace(position=position, path_target=path_target, trail=trail)
        return state, position


def _ease_toward(position: Array, target: Array, factor: float, snap_distance: float) -> Array:
    if float(jnp.linalg.norm(target - position)) < snap_distance:
        return target
    return position + (target - position) * min(factor, 1.0)


def progressive_trail(waypoints, progress: float, position, threshold: float) -> Array:
    """Waypoints considered passed, followed by ``position``.

    Searches backward from the waypoint at ``progress`` for the most advanced
    waypoint within ``threshold`` of ``position``; falls back to the first
    waypoint when none is close.

    Returns:
        (M, 3) array, empty when there are fewer than two waypoints.
    """
    waypoints = _as_points(waypoints)
    position = jnp.asarray(position, dtype=waypoints.dtype)
    count = waypoints.shape[0]
    if count < 2:
        return _empty_trail()

    approximate = min(int(math.floor(progress * (count - 1))), count - 1)
    distances = np.asarray(jnp.linalg.norm(waypoints[:approximate + 1] - position, axis=-1))
    passed = np.flatnonzero(distances < threshold)
    last_passed = int(passed[-1]) if passed.size else 0

    return jnp.concatenate([waypoints[:last_passed + 1], position[None]], axis=0)


def step(
    chain: Chain, path: PathState, config: SolverConfig, delta_time: float
) -> Tuple[Chain, PathState, SolveResult]:
    """Run one frame: tick the path, then solve toward its smoothed target."""
    path, target = path.tick(delta_time)
    chain, result = solve(chain, target, config)
    return chain, path, result
