"""Loader for external joint-limit documents.

The document lists joint names and, index for index, their bounds::

    {"limits": {"names": ["joint_a1", ...],
                "elements": [{"min": {"position": -2.9, "velocity": ...},
                              "max": {"position": 2.9, "effort": ...}}, ...]}}

Bounds loaded here are merged with the URDF limits at chain-build time.
"""

import json
import logging
from typing import Any, Dict, Mapping

from ccd_kinematics.core.robot_model import ExternalLimit, LimitBound

logger = logging.getLogger(__name__)


def load_joint_limits(path: str) -> Dict[str, ExternalLimit]:
    """Read a JSON joint-limit document from ``path``."""
    with open(path, "r", encoding="utf-8") as f:
        document = json.load(f)
    return parse_joint_limits(document)


def parse_joint_limits(document: Mapping[str, Any]) -> Dict[str, ExternalLimit]:
    """Convert a decoded joint-limit document to ``{joint name: ExternalLimit}``.

    Raises:
        ValueError: Missing fields or a names/elements length mismatch.
    """
    limits = document.get("limits") if isinstance(document, Mapping) else None
    if not limits or "names" not in limits or "elements" not in limits:
        raise ValueError("Invalid joint limits document: missing required fields")

    names = limits["names"]
    elements = limits["elements"]
    if len(names) != len(elements):
        raise ValueError(
            f"Joint limits mismatch: {len(names)} names but {len(elements)} elements"
        )

    limits_map = {}
    for joint_name, element in zip(names, elements):
        try:
            limits_map[joint_name] = ExternalLimit(
                min=_parse_bound(element["min"]),
                max=_parse_bound(element["max"]),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Invalid limits for joint '{joint_name}': {exc}") from exc

    logger.info("Loaded external limits for %d joints", len(limits_map))
    return limits_map


def _parse_bound(bound: Mapping[str, Any]) -> LimitBound:
    effort = bound.get("effort")
    velocity = bound.get("velocity")
    return LimitBound(
        position=float(bound["position"]),
        effort=None if effort is None else float(effort),
        velocity=None if velocity is None else float(velocity),
    )
