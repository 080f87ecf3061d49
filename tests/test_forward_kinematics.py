"""Tests for forward kinematics, joint states and link transform sets."""

import numpy as np
import pytest

from kinopt import DimensionMismatchError, ForwardKinematics, Joint, KinematicTreeModel, Link, compute
from kinopt.motion_planning import compute_jacobian
from kinopt.robot_models.transforms import make_transform, rpy_matrix

from conftest import planar_arm


class TestForwardKinematics:

    def test_zero_configuration_reproduces_offsets(self, arm):
        transforms = compute(arm, np.zeros(2))

        np.testing.assert_allclose(transforms['base'], np.eye(4))
        np.testing.assert_allclose(transforms['upper_arm'], np.eye(4))
        np.testing.assert_allclose(transforms.position('forearm'), [1.0, 0.0, 0.0])
        np.testing.assert_allclose(transforms.position('tool'), [2.0, 0.0, 0.0])
        np.testing.assert_allclose(transforms.rotation('tool'), np.eye(3))

    def test_known_configurations(self, arm):
        transforms = compute(arm, [np.pi / 2, 0.0])
        np.testing.assert_allclose(transforms.position('tool'), [0.0, 2.0, 0.0], atol=1e-12)

        transforms = compute(arm, [0.0, np.pi / 2])
        np.testing.assert_allclose(transforms.position('tool'), [1.0, 1.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(transforms.rotation('tool'), rpy_matrix(0.0, 0.0, np.pi / 2), atol=1e-12)

    def test_idempotent(self, arm):
        q = np.array([0.3, -1.1])
        first = compute(arm, q)
        second = compute(arm, q)
        np.testing.assert_array_equal(first.transforms, second.transforms)

    def test_input_not_mutated(self, arm):
        q = np.array([0.3, -1.1])
        compute(arm, q)
        np.testing.assert_array_equal(q, [0.3, -1.1])

    @pytest.mark.parametrize("values", [[], [0.1], [0.1, 0.2, 0.3]])
    def test_dimension_mismatch(self, arm, values):
        with pytest.raises(DimensionMismatchError):
            compute(arm, values)

    def test_result_paired_with_values(self, arm):
        transforms = compute(arm, [0.2, 0.4])
        assert transforms.matches([0.2, 0.4])
        assert not transforms.matches([0.2, 0.5])
        with pytest.raises(ValueError):
            transforms.transforms[0, 0, 0] = 2.0

    def test_floating_root(self):
        links = [Link(0, 'body'), Link(1, 'arm')]
        joints = [
            Joint(0, 'world', 'floating', parent_link=None, child_link=0),
            Joint(1, 'hinge', 'revolute', parent_link=0, child_link=1,
                  origin=make_transform(translation=(1.0, 0.0, 0.0))),
        ]
        model = KinematicTreeModel(links, joints)
        transforms = compute(model, [1.0, 2.0, 3.0, 0.0, 0.0, np.pi / 2, 0.0])

        np.testing.assert_allclose(transforms.position('body'), [1.0, 2.0, 3.0])
        np.testing.assert_allclose(transforms.position('arm'), [1.0, 3.0, 3.0], atol=1e-12)

    def test_floating_root_listed_after_child_joint(self):
        links = [Link(0, 'body'), Link(1, 'arm')]
        joints = [
            Joint(0, 'arm_joint', 'fixed', parent_link=0, child_link=1,
                  origin=make_transform(translation=(1.0, 0.0, 0.0))),
            Joint(1, 'base_float', 'floating', parent_link=None, child_link=0),
        ]
        model = KinematicTreeModel(links, joints)

        assert [joint.name for joint in model.joint_order()] == ['base_float', 'arm_joint']
        transforms = compute(model, [5.0, 0.0, 0.0, 0.0, 0.0, 0.0])
        np.testing.assert_allclose(transforms.position('body'), [5.0, 0.0, 0.0])
        np.testing.assert_allclose(transforms.position('arm'), [6.0, 0.0, 0.0])

    def test_prismatic_and_planar(self):
        links = [Link(0, 'base'), Link(1, 'carriage'), Link(2, 'slider')]
        joints = [
            Joint(0, 'rail', 'prismatic', parent_link=0, child_link=1, axis=(1.0, 0.0, 0.0),
                  lower_limits=0.0, upper_limits=2.0),
            Joint(1, 'table', 'planar', parent_link=1, child_link=2),
        ]
        model = KinematicTreeModel(links, joints)
        transforms = compute(model, [0.5, 1.0, 2.0, np.pi / 2])

        np.testing.assert_allclose(transforms.position('carriage'), [0.5, 0.0, 0.0])
        np.testing.assert_allclose(transforms.position('slider'), [1.5, 2.0, 0.0])
        np.testing.assert_allclose(transforms.rotation('slider'), rpy_matrix(0.0, 0.0, np.pi / 2), atol=1e-12)

    def test_jacobian_matches_analytic(self, arm):
        q1, q2 = 0.4, 0.7
        J = compute_jacobian(arm, [q1, q2], 'tool')

        expected_linear = np.array([
            [-np.sin(q1) - np.sin(q1 + q2), -np.sin(q1 + q2)],
            [np.cos(q1) + np.cos(q1 + q2), np.cos(q1 + q2)],
            [0.0, 0.0],
        ])
        np.testing.assert_allclose(J[:3], expected_linear, atol=1e-6)
        np.testing.assert_allclose(J[3:], [[0.0, 0.0], [0.0, 0.0], [1.0, 1.0]], atol=1e-6)

    def test_facade(self, arm):
        fk = ForwardKinematics(arm)
        pose = fk.link_pose([np.pi / 2, 0.0], 'tool')
        np.testing.assert_allclose(pose.position, [0.0, 2.0, 0.0], atol=1e-12)
        # Stretched arm is less dexterous than a bent one
        assert fk.manipulability([0.0, np.pi / 2], 'tool') > fk.manipulability([0.0, 0.0], 'tool')


class TestJointState:

    def test_length_checked(self, arm):
        with pytest.raises(DimensionMismatchError):
            arm.state([0.0, 0.0, 0.0])

    def test_values_read_only(self, arm):
        state = arm.state([0.1, 0.2])
        with pytest.raises(ValueError):
            state.values[0] = 1.0
        copy = state.as_array()
        copy[0] = 1.0
        assert state.values[0] == 0.1

    def test_source_array_not_aliased(self, arm):
        source = np.array([0.1, 0.2])
        state = arm.state(source)
        source[0] = 5.0
        assert state.values[0] == 0.1

    def test_transforms_cached_and_consistent(self, arm):
        state = arm.state([0.3, 0.4])
        transforms = state.link_transforms()

        assert state.link_transforms() is transforms
        assert transforms.matches(state.values)
        np.testing.assert_array_equal(transforms.transforms, compute(arm, state).transforms)

    def test_with_values_gets_fresh_transforms(self, arm):
        state = arm.state([0.0, 0.0])
        moved = state.with_values([np.pi / 2, 0.0])

        np.testing.assert_allclose(state.link_transforms().position('tool'), [2.0, 0.0, 0.0])
        np.testing.assert_allclose(moved.link_transforms().position('tool'), [0.0, 2.0, 0.0], atol=1e-12)

    def test_arithmetic(self, arm):
        a = arm.state([0.1, 0.2])
        b = arm.state([0.3, -0.4])

        np.testing.assert_allclose((a + b).values, [0.4, -0.2])
        np.testing.assert_allclose((b - a).values, [0.2, -0.6])
        np.testing.assert_allclose((2 * a).values, [0.2, 0.4])
        np.testing.assert_allclose((a * 0.5).values, [0.05, 0.1])
        assert a == arm.state([0.1, 0.2])

    def test_arithmetic_requires_same_model(self, arm):
        other = planar_arm()
        with pytest.raises(ValueError, match="different models"):
            arm.state([0.0, 0.0]) + other.state([0.0, 0.0])

    def test_joint_values(self, arm):
        state = arm.state([0.1, 0.2])
        np.testing.assert_array_equal(state.joint_values('elbow'), [0.2])
        assert state.joint_values('tool_mount').size == 0
