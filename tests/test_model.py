"""Tests for kinematic tree construction, validation and tree queries."""

from pathlib import Path
import warnings

import numpy as np
import pytest
import yaml

from kinopt import (DimensionMismatchError, Joint, JointKind, KinematicTreeModel, Link,
                    MalformedModelError)
from kinopt.robot_models.transforms import make_transform

from conftest import planar_arm

CONFIG_PATH = Path(__file__).parent.parent / 'config' / 'planar_arm.yaml'


def chain_links(n):
    return [Link(i, f'link_{i}') for i in range(n)]


class TestValidation:

    def test_two_roots_rejected(self):
        links = [Link(0, 'base'), Link(1, 'arm'), Link(2, 'stray')]
        joints = [Joint(0, 'shoulder', 'revolute', parent_link=0, child_link=1)]
        with pytest.raises(MalformedModelError, match="exactly one root"):
            KinematicTreeModel(links, joints)

    def test_cycle_rejected(self):
        joints = [
            Joint(0, 'a_to_b', 'revolute', parent_link=1, child_link=2),
            Joint(1, 'b_to_a', 'revolute', parent_link=2, child_link=1),
        ]
        with pytest.raises(MalformedModelError, match="cycle"):
            KinematicTreeModel(chain_links(3), joints)

    def test_multiply_parented_link_rejected(self):
        joints = [
            Joint(0, 'first', 'revolute', parent_link=0, child_link=1),
            Joint(1, 'second', 'prismatic', parent_link=0, child_link=1),
        ]
        with pytest.raises(MalformedModelError, match="multiple parent joints"):
            KinematicTreeModel(chain_links(2), joints)

    def test_declared_dof_must_match_kind(self):
        with pytest.raises(MalformedModelError, match="declares 2 DOF"):
            Joint(0, 'shoulder', 'revolute', parent_link=0, child_link=1, declared_dof=2)

    def test_declared_dof_checked_from_dict(self):
        description = {
            'links': [{'name': 'base'}, {'name': 'arm'}],
            'joints': [{'name': 'slide', 'kind': 'planar', 'parent': 'base', 'child': 'arm', 'dof': 1}],
        }
        with pytest.raises(MalformedModelError):
            KinematicTreeModel.from_dict(description)

    def test_duplicate_link_names_rejected(self):
        links = [Link(0, 'base'), Link(1, 'base')]
        joints = [Joint(0, 'j', 'fixed', parent_link=0, child_link=1)]
        with pytest.raises(MalformedModelError, match="Duplicate link name"):
            KinematicTreeModel(links, joints)

    def test_self_loop_rejected(self):
        joints = [Joint(0, 'loop', 'revolute', parent_link=1, child_link=1)]
        with pytest.raises(MalformedModelError):
            KinematicTreeModel(chain_links(2), joints)

    def test_parentless_joint_must_be_floating(self):
        joints = [Joint(0, 'world', 'revolute', parent_link=None, child_link=0)]
        with pytest.raises(MalformedModelError, match="floating"):
            KinematicTreeModel(chain_links(1), joints)

    def test_invalid_joint_fields(self):
        with pytest.raises(MalformedModelError, match="axis"):
            Joint(0, 'j', 'revolute', parent_link=0, child_link=1, axis=(0.0, 0.0, 0.0))
        with pytest.raises(MalformedModelError, match="lower limits above upper"):
            Joint(0, 'j', 'revolute', parent_link=0, child_link=1, lower_limits=1.0, upper_limits=-1.0)
        with pytest.raises(MalformedModelError, match="cannot have limits"):
            Joint(0, 'j', 'continuous', parent_link=0, child_link=1, lower_limits=-1.0, upper_limits=1.0)
        with pytest.raises(MalformedModelError, match="unknown kind"):
            Joint(0, 'j', 'spherical', parent_link=0, child_link=1)

    def test_unknown_link_reference(self):
        description = {
            'links': [{'name': 'base'}],
            'joints': [{'name': 'j', 'kind': 'fixed', 'parent': 'base', 'child': 'missing'}],
        }
        with pytest.raises(MalformedModelError, match="unknown link"):
            KinematicTreeModel.from_dict(description)


class TestLayout:

    def test_dof_layout(self, arm):
        assert arm.dof_count() == 2
        assert [j.name for j in arm.joint_order()] == ['shoulder', 'elbow', 'tool_mount']
        assert arm.dof_range('shoulder') == range(0, 1)
        assert arm.dof_range('elbow') == range(1, 2)
        assert arm.dof_range('tool_mount') == range(2, 2)
        assert arm.dof_names() == ('shoulder', 'elbow')

    def test_topological_order_is_stable(self):
        # Child joint listed before its parent joint
        joints = [
            Joint(0, 'elbow', 'revolute', parent_link=1, child_link=2),
            Joint(1, 'shoulder', 'revolute', parent_link=0, child_link=1),
            Joint(2, 'wrist', 'revolute', parent_link=0, child_link=3),
        ]
        model = KinematicTreeModel(chain_links(4), joints)

        assert [j.name for j in model.joint_order()] == ['shoulder', 'elbow', 'wrist']
        assert model.dof_range('shoulder') == range(0, 1)
        assert model.dof_range('elbow') == range(1, 2)
        assert model.dof_range(2) == range(2, 3)

    def test_multi_dof_kinds(self):
        joints = [
            Joint(0, 'world', 'floating', parent_link=None, child_link=0),
            Joint(1, 'slider', 'planar', parent_link=0, child_link=1),
            Joint(2, 'spin', 'continuous', parent_link=1, child_link=2),
        ]
        model = KinematicTreeModel(chain_links(3), joints)

        assert model.dof_count() == 10
        assert model.root_joint.kind is JointKind.FLOATING
        assert model.dof_range('slider') == range(6, 9)
        assert model.dof_names()[6:] == ('slider_x', 'slider_y', 'slider_theta', 'spin')
        assert np.all(np.isinf(model.lower_limits()))
        assert model.bounds()[0] == (None, None)

    def test_limits(self, limited_arm):
        np.testing.assert_allclose(limited_arm.lower_limits(), [-0.5, -0.5])
        np.testing.assert_allclose(limited_arm.upper_limits(), [0.5, 0.5])
        assert limited_arm.bounds() == [(-0.5, 0.5), (-0.5, 0.5)]
        np.testing.assert_allclose(limited_arm.clip_to_limits([1.0, -2.0]), [0.5, -0.5])

        with pytest.raises(DimensionMismatchError):
            limited_arm.clip_to_limits([0.0])


class TestTreeQueries:

    def test_structure(self, arm):
        assert arm.root_link.name == 'base'
        assert arm.root_joint is None
        assert arm.children_of('upper_arm') == (2,)
        assert arm.parent_link_of('forearm') == 1
        assert arm.link('tool').parent_joint == 2
        assert arm.adjacent_link_pairs() == [(0, 1), (1, 2), (2, 3)]

    def test_traversal(self, arm):
        assert arm.traversal_layers() == [[0], [1], [2], [3]]
        assert arm.link_chain('base', 'tool') == [0, 1, 2, 3]
        assert arm.link_chain('forearm', 'upper_arm') is None
        assert arm.downstream_links('upper_arm') == [2, 3]

    def test_branching_layers(self):
        joints = [
            Joint(0, 'left', 'revolute', parent_link=0, child_link=1),
            Joint(1, 'right', 'revolute', parent_link=0, child_link=2),
            Joint(2, 'left_tip', 'fixed', parent_link=1, child_link=3),
        ]
        model = KinematicTreeModel(chain_links(4), joints)
        assert model.traversal_layers() == [[0], [1, 2], [3]]
        assert model.link_chain(0, 3) == [0, 1, 3]
        assert model.link_chain(2, 3) is None

    def test_lookup_errors(self, arm):
        with pytest.raises(KeyError):
            arm.link_index('missing')
        with pytest.raises(KeyError):
            arm.joint_index(7)
        with pytest.raises(KeyError):
            arm.dof_index('tool_mount')


class TestStates:

    def test_zero_and_mid_state(self, limited_arm):
        np.testing.assert_array_equal(limited_arm.zero_state().values, [0.0, 0.0])
        np.testing.assert_array_equal(limited_arm.mid_state().values, [0.0, 0.0])

    def test_sample_state_within_limits(self, limited_arm):
        rng = np.random.default_rng(42)
        samples = np.array([limited_arm.sample_state(rng).values for _ in range(100)])
        assert np.all(samples >= -0.5) and np.all(samples <= 0.5)

    def test_sample_state_reproducible(self, arm):
        first = arm.sample_state(np.random.default_rng(1)).values
        second = arm.sample_state(np.random.default_rng(1)).values
        np.testing.assert_array_equal(first, second)


class TestSerialization:

    def test_load_yaml_description(self):
        with open(CONFIG_PATH) as f:
            problem = yaml.safe_load(f)
        model = KinematicTreeModel.from_dict(problem['model'])

        assert model.name == 'planar_arm'
        assert model.dof_count() == 2
        assert len(model.link('upper_arm').shapes) == 1
        np.testing.assert_allclose(model.zero_state().link_transforms().position('tool'), [2.0, 0.0, 0.0])

    def test_dict_round_trip(self):
        model = planar_arm(lower=-1.0, upper=1.0)
        rebuilt = KinematicTreeModel.from_dict(model.to_dict())

        assert rebuilt.dof_names() == model.dof_names()
        np.testing.assert_allclose(rebuilt.lower_limits(), model.lower_limits())
        q = [0.3, -0.7]
        np.testing.assert_allclose(rebuilt.state(q).link_transforms().transforms,
                                   model.state(q).link_transforms().transforms)

    def test_capsule_offsets_serialize_without_warnings(self):
        model = planar_arm()

        with warnings.catch_warnings():
            warnings.simplefilter('error')
            model_dict = model.to_dict()
            rebuilt = KinematicTreeModel.from_dict(model_dict)

        shape = rebuilt.link('upper_arm').shapes[0]
        np.testing.assert_allclose(shape.offset.matrix, model.link('upper_arm').shapes[0].offset.matrix,
                                   atol=1e-12)

    def test_collision_exclusions(self):
        links = chain_links(3)
        joints = [
            Joint(0, 'a', 'revolute', parent_link=0, child_link=1),
            Joint(1, 'b', 'revolute', parent_link=1, child_link=2),
        ]
        model = KinematicTreeModel(links, joints, collision_exclusions=[('link_0', 'link_2')])
        assert model.collision_exclusions == ((0, 2),)

        with pytest.raises(MalformedModelError):
            KinematicTreeModel(links, joints, collision_exclusions=[('link_0', 'nowhere')])

    def test_origin_matrix_preserved(self):
        origin = make_transform(translation=(0.0, 0.0, 0.25))
        joint = Joint(0, 'lift', 'prismatic', parent_link=0, child_link=1, origin=origin,
                      lower_limits=0.0, upper_limits=0.5)
        model = KinematicTreeModel(chain_links(2), [joint])
        restored = KinematicTreeModel.from_dict(model.to_dict()).joint('lift')
        np.testing.assert_allclose(restored.origin, origin, atol=1e-12)
        np.testing.assert_allclose(restored.upper_limits, [0.5])
