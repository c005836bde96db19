"""Tests for chain construction, limit merging and forward kinematics."""

import math
from pathlib import Path

import jax
import jax.numpy as jnp
import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ccd_kinematics.chain import (
    Chain,
    build_chain,
    end_effector_position,
    joint_angles,
    joint_positions,
    local_quaternions,
    local_transforms,
    set_joint_angles,
    world_transforms,
)
from ccd_kinematics.core import (
    BuildError,
    EmptyChainError,
    ExternalLimit,
    JointKind,
    JointLimits,
    JointSpec,
    LimitBound,
    LimitConflictError,
    Link,
    RobotDescription,
)
from ccd_kinematics.io import load_joint_limits
from ccd_kinematics.transforms import so3

from conftest import planar_description

FIXTURES = Path(__file__).parent / "fixtures"


def _override(lower, upper, effort=None, velocity=None):
    return ExternalLimit(
        min=LimitBound(position=lower),
        max=LimitBound(position=upper, effort=effort, velocity=velocity),
    )


def test_build_planar_chain(planar):
    chain = build_chain(planar)

    assert isinstance(chain, Chain)
    assert chain.joint_names == ("joint_1", "joint_2", "joint_3")
    assert chain.link_names == ("link_1", "link_2", "link_3")
    assert chain.end_effector_index == 2
    np.testing.assert_array_equal(chain.parent_indices, [-1, 0, 1])
    np.testing.assert_allclose(chain.angles, jnp.zeros(3))

    # Last joint frame is the end effector when no fixed joint follows
    np.testing.assert_allclose(end_effector_position(chain), [2.0, 0.0, 0.0], atol=1e-12)


def test_end_effector_is_first_fixed_joint_after_base(kr_arm):
    """Base fixed mount is traversed; the tool flange ends the chain."""
    chain = build_chain(kr_arm)

    assert chain.joint_names == (
        "world_joint", "joint_a1", "joint_a2", "joint_a3", "joint_a4", "tool_joint",
    )
    assert chain.end_effector_index == chain.num_joints - 1
    assert chain.joint_kinds[0] is JointKind.FIXED
    assert chain.joint_kinds[-1] is JointKind.FIXED
    np.testing.assert_allclose(end_effector_position(chain), [0.98, 0.0, 0.4], atol=1e-12)


def test_branch_prefers_joint_that_continues(kr_arm):
    """camera_joint is listed first on base_link but leads nowhere."""
    chain = build_chain(kr_arm)
    assert "camera_joint" not in chain.joint_names


def test_end_effector_reachable_from_root(kr_arm):
    chain = build_chain(kr_arm)
    index = chain.end_effector_index
    path = []
    while index >= 0:
        path.append(index)
        index = int(chain.parent_indices[index])
    assert path[-1] == 0
    assert len(path) == chain.num_joints


def test_chain_stops_at_fixed_joint_mid_description():
    links = [Link(n) for n in ("base", "l1", "flange", "l2")]
    joints = [
        JointSpec("j1", JointKind.REVOLUTE, "base", "l1", limits=JointLimits(-1.0, 1.0)),
        JointSpec("flange_joint", JointKind.FIXED, "l1", "flange"),
        JointSpec("j2", JointKind.REVOLUTE, "flange", "l2", limits=JointLimits(-1.0, 1.0)),
    ]
    description = RobotDescription.from_parts("stub", links, joints)
    chain = build_chain(description)
    assert chain.joint_names == ("j1", "flange_joint")


def test_empty_chain():
    description = RobotDescription.from_parts("lonely", [Link("base")], [])
    with pytest.raises(EmptyChainError):
        build_chain(description)
    with pytest.raises(BuildError):
        build_chain(description)


def test_zero_axis_rejected():
    links = [Link("base"), Link("l1")]
    joints = [JointSpec("j1", JointKind.REVOLUTE, "base", "l1", axis=(0.0, 0.0, 0.0))]
    with pytest.raises(BuildError, match="zero-length axis"):
        build_chain(RobotDescription.from_parts("r", links, joints))


def test_axis_is_normalised():
    links = [Link("base"), Link("l1")]
    joints = [JointSpec("j1", JointKind.REVOLUTE, "base", "l1", axis=(0.0, 0.0, 2.0))]
    chain = build_chain(RobotDescription.from_parts("r", links, joints))
    np.testing.assert_allclose(chain.axes[0], [0.0, 0.0, 1.0])


def test_description_is_reusable(planar):
    first = build_chain(planar)
    second = set_joint_angles(build_chain(planar), [0.1, 0.2, 0.3])
    np.testing.assert_allclose(first.angles, jnp.zeros(3))
    np.testing.assert_allclose(second.angles, [0.1, 0.2, 0.3])
    assert planar.joints["joint_1"].limits.lower == pytest.approx(-math.pi)


def test_unbounded_joint_limits(kr_arm):
    chain = build_chain(kr_arm)
    a4 = chain.joint(chain.index_of("joint_a4"))
    assert a4.lower == -math.inf
    assert a4.upper == math.inf
    assert a4.is_hinge


def test_merge_with_override_file(kr_arm):
    overrides = load_joint_limits(str(FIXTURES / "kr_arm_limits.json"))
    chain = build_chain(kr_arm, overrides)

    a1 = chain.joint(chain.index_of("joint_a1"))
    assert (a1.lower, a1.upper) == (-1.5, 1.5)
    assert a1.effort == 120.0
    assert a1.velocity == 1.0

    a3 = chain.joint(chain.index_of("joint_a3"))
    assert (a3.lower, a3.upper) == (-2.09, 1.0)
    # No effort override: description value stays
    assert a3.effort == 200.0
    assert a3.velocity == 2.0

    a2 = chain.joint(chain.index_of("joint_a2"))
    assert a2.is_locked
    assert a2.angle == 0.0
    assert not chain.joint(0).is_locked


def test_merge_without_override_keeps_description_limits(kr_arm):
    chain = build_chain(kr_arm)
    a2 = chain.joint(chain.index_of("joint_a2"))
    assert (a2.lower, a2.upper) == (-3.3, 0.78)
    assert a2.effort == 300.0


def test_non_overlapping_override_fails(planar):
    with pytest.raises(LimitConflictError) as excinfo:
        build_chain(planar, {"joint_2": _override(3.5, 4.0)})
    assert excinfo.value.joint_name == "joint_2"


def test_override_for_unknown_joint_is_ignored(planar):
    chain = build_chain(planar, {"no_such_joint": _override(-1.0, 1.0)})
    assert chain.joint_names == ("joint_1", "joint_2", "joint_3")


def test_collapsed_limit_sets_initial_angle():
    description = planar_description(limits=(0.5, 0.5))
    chain = build_chain(description)
    np.testing.assert_allclose(chain.angles, [0.5, 0.5, 0.5])
    assert all(joint.is_locked for joint in chain.joints)


@given(
    st.floats(min_value=-3.0, max_value=3.0),
    st.floats(min_value=0.0, max_value=3.0),
    st.floats(min_value=-3.0, max_value=3.0),
    st.floats(min_value=0.0, max_value=3.0),
)
@settings(max_examples=25, deadline=None)
def test_merged_limits_are_intersection(spec_lower, spec_width, ov_lower, ov_width):
    """Merging either yields the intersection or fails explicitly."""
    spec_upper = spec_lower + spec_width
    ov_upper = ov_lower + ov_width
    description = planar_description(num_joints=1, limits=(spec_lower, spec_upper))
    overrides = {"joint_1": _override(ov_lower, ov_upper)}

    if max(spec_lower, ov_lower) > min(spec_upper, ov_upper):
        with pytest.raises(LimitConflictError):
            build_chain(description, overrides)
        return

    joint = build_chain(description, overrides).joint(0)
    assert joint.lower == max(spec_lower, ov_lower)
    assert joint.upper == min(spec_upper, ov_upper)
    assert joint.lower <= joint.upper
    assert joint.lower <= joint.angle <= joint.upper


def test_fk_planar_configuration(planar_with_tool):
    chain = build_chain(planar_with_tool)
    chain = set_joint_angles(chain, [math.pi / 2, 0.0, 0.0, 0.0])
    np.testing.assert_allclose(end_effector_position(chain), [0.0, 3.0, 0.0], atol=1e-12)

    chain = set_joint_angles(chain, [0.0, math.pi / 2, -math.pi / 2, 0.0])
    positions = joint_positions(chain)
    np.testing.assert_allclose(positions[1], [1.0, 0.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(positions[2], [1.0, 1.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(positions[3], [2.0, 1.0, 0.0], atol=1e-12)


def test_world_transforms_are_valid_se3(kr_arm):
    chain = set_joint_angles(build_chain(kr_arm), {"joint_a1": 0.3, "joint_a2": -0.5, "joint_a4": 1.2})
    world = world_transforms(chain)
    assert world.shape == (chain.num_joints, 4, 4)
    for T in world:
        np.testing.assert_allclose(T[3, :], [0.0, 0.0, 0.0, 1.0], atol=1e-12)
        R = T[:3, :3]
        np.testing.assert_allclose(R @ R.T, jnp.eye(3), atol=1e-10)


def test_world_transforms_jit_compatibility(kr_arm):
    chain = set_joint_angles(build_chain(kr_arm), {"joint_a1": 0.3, "joint_a3": 0.7})
    jitted = jax.jit(world_transforms)(chain)
    np.testing.assert_allclose(jitted, world_transforms(chain), atol=1e-12)


def test_prismatic_joint_translates_along_axis():
    links = [Link("base"), Link("carriage"), Link("tool")]
    joints = [
        JointSpec("slide", JointKind.PRISMATIC, "base", "carriage",
                  axis=(0.0, 1.0, 0.0), limits=JointLimits(-0.5, 0.5)),
        JointSpec("tool_joint", JointKind.FIXED, "carriage", "tool"),
    ]
    chain = build_chain(RobotDescription.from_parts("rail", links, joints))
    chain = set_joint_angles(chain, [0.25, 0.0])
    np.testing.assert_allclose(end_effector_position(chain), [0.0, 0.25, 0.0], atol=1e-12)
    # Prismatic motion leaves the orientation alone
    np.testing.assert_allclose(local_transforms(chain)[0][:3, :3], jnp.eye(3), atol=1e-12)


def test_set_joint_angles_clamps_and_keeps_fixed_at_zero(kr_arm):
    chain = build_chain(kr_arm)
    values = [1.0, 5.0, -5.0, 0.2, 9.0, 1.0]
    chain = set_joint_angles(chain, values)
    angles = joint_angles(chain)
    assert angles["world_joint"] == 0.0
    assert angles["tool_joint"] == 0.0
    assert angles["joint_a1"] == 2.96
    assert angles["joint_a2"] == -3.3
    assert angles["joint_a3"] == pytest.approx(0.2)
    assert angles["joint_a4"] == 9.0


def test_set_joint_angles_validates_input(planar):
    chain = build_chain(planar)
    with pytest.raises(ValueError, match="Expected 3 joint values"):
        set_joint_angles(chain, [0.0, 0.0])
    with pytest.raises(ValueError, match="not found in chain"):
        set_joint_angles(chain, {"elbow": 0.0})


def test_local_quaternions_match_local_rotations(kr_arm):
    chain = set_joint_angles(build_chain(kr_arm), {"joint_a1": 0.4, "joint_a2": -1.1, "joint_a4": 2.5})
    rotations = local_transforms(chain)[:, :3, :3]
    np.testing.assert_allclose(so3.from_quaternion(local_quaternions(chain)), rotations, atol=1e-12)
