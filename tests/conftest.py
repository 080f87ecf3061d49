"""Shared fixtures: a two-link planar arm and small helper models."""

import numpy as np
import pytest

from kinopt import Capsule, Joint, KinematicTreeModel, Link, NumericalFailure, Pose, SolveOptions
from kinopt.motion_planning import ScipyOptimizer
from kinopt.motion_planning.optimizers import NumericalOptimizer
from kinopt.robot_models.transforms import make_transform


class FailingOptimizer(NumericalOptimizer):
    """Always reports a numerical failure."""

    def minimize(self, fun, x0, jac, bounds, max_iterations):
        raise NumericalFailure("singular system")


class FlakyOptimizer(NumericalOptimizer):
    """Fails on the first call, then delegates to scipy."""

    def __init__(self):
        self.calls = 0
        self.backend = ScipyOptimizer()

    def minimize(self, fun, x0, jac, bounds, max_iterations):
        self.calls += 1
        if self.calls == 1:
            raise NumericalFailure("NaN objective")
        return self.backend.minimize(fun, x0, jac, bounds, max_iterations)


def arm_capsule():
    """Unit-length capsule along the link's x axis."""
    return Capsule(radius=0.05, length=1.0,
                   offset=Pose.from_xyz_rpy((0.5, 0.0, 0.0), (0.0, np.pi / 2, 0.0)))


def planar_arm(lower=-np.pi, upper=np.pi):
    links = [
        Link(0, 'base'),
        Link(1, 'upper_arm', shapes=(arm_capsule(),)),
        Link(2, 'forearm', shapes=(arm_capsule(),)),
        Link(3, 'tool'),
    ]
    joints = [
        Joint(0, 'shoulder', 'revolute', parent_link=0, child_link=1,
              lower_limits=lower, upper_limits=upper),
        Joint(1, 'elbow', 'revolute', parent_link=1, child_link=2,
              origin=make_transform(translation=(1.0, 0.0, 0.0)),
              lower_limits=lower, upper_limits=upper),
        Joint(2, 'tool_mount', 'fixed', parent_link=2, child_link=3,
              origin=make_transform(translation=(1.0, 0.0, 0.0))),
    ]
    return KinematicTreeModel(links, joints, name='planar_arm')


@pytest.fixture
def arm():
    return planar_arm()


@pytest.fixture
def limited_arm():
    return planar_arm(lower=-0.5, upper=0.5)


@pytest.fixture
def options():
    return SolveOptions(iteration_budget=500)
