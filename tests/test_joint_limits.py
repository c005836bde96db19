"""Tests for the external joint-limit loader."""

import json
from pathlib import Path

import pytest

from ccd_kinematics.core import ExternalLimit, LimitBound
from ccd_kinematics.io import load_joint_limits, parse_joint_limits

FIXTURES = Path(__file__).parent / "fixtures"


def test_load_fixture():
    limits = load_joint_limits(str(FIXTURES / "kr_arm_limits.json"))

    assert set(limits) == {"joint_a1", "joint_a2", "joint_a3"}
    a1 = limits["joint_a1"]
    assert isinstance(a1, ExternalLimit)
    assert a1.min == LimitBound(position=-1.5)
    assert a1.max == LimitBound(position=1.5, effort=120.0, velocity=1.0)
    assert limits["joint_a3"].min.velocity == -2.0


def test_load_from_file(tmp_path):
    document = {"limits": {"names": ["j"], "elements": [
        {"min": {"position": -1}, "max": {"position": 2, "effort": 5}},
    ]}}
    path = tmp_path / "limits.json"
    path.write_text(json.dumps(document))

    limits = load_joint_limits(str(path))
    assert limits["j"].min.position == -1.0
    assert limits["j"].max.effort == 5.0
    assert limits["j"].max.velocity is None


@pytest.mark.parametrize("document", [
    {},
    {"limits": {"names": ["j"]}},
    {"limits": {"elements": []}},
    ["not", "a", "mapping"],
])
def test_missing_fields(document):
    with pytest.raises(ValueError, match="missing required fields"):
        parse_joint_limits(document)


def test_names_and_elements_must_match():
    document = {"limits": {"names": ["a", "b"], "elements": [
        {"min": {"position": 0}, "max": {"position": 1}},
    ]}}
    with pytest.raises(ValueError, match="Joint limits mismatch"):
        parse_joint_limits(document)


def test_element_without_position():
    document = {"limits": {"names": ["a"], "elements": [{"min": {}, "max": {"position": 1}}]}}
    with pytest.raises(ValueError, match="Invalid limits for joint 'a'"):
        parse_joint_limits(document)


def test_empty_document_is_allowed():
    assert parse_joint_limits({"limits": {"names": [], "elements": []}}) == {}
