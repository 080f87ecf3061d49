"""
Error Taxonomy
==============

Exceptions raised by the kinematic model, forward kinematics and the
optimization backends. Infeasible solve results are not errors; they are
reported as outcome values by the motion planning package.
"""


class KinoptError(Exception):
    """Base class for all kinopt errors."""


class MalformedModelError(KinoptError):
    """The link/joint description does not form a valid single-rooted tree."""


class DimensionMismatchError(KinoptError, ValueError):
    """A joint-state vector does not match the model's DOF count."""

    def __init__(self, expected: int, actual: int, what: str = "joint state"):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {what} of length {expected}, got {actual}")


class NumericalFailure(KinoptError):
    """The numerical optimizer reported a failure (NaN objective, singular system, ...)."""


class ConfigurationError(KinoptError, ValueError):
    """Invalid solve options or objective weights."""
