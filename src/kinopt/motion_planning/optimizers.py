"""
Numerical Optimizers
====================

Interface of the local nonlinear minimizer consumed by the optimization
driver, and the scipy.optimize backend.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence, Tuple
from dataclasses import dataclass
from enum import Enum
import logging

from scipy.optimize import minimize

from ..errors import NumericalFailure

logger = logging.getLogger(__name__)

Bounds = Sequence[Tuple[Optional[float], Optional[float]]]


class OptimizerStatus(Enum):
    """Termination status of a local minimization."""
    CONVERGED = "converged"
    ITERATION_LIMIT = "iteration_limit"


@dataclass
class OptimizerResult:
    """
    Result of a local minimization.

    Attributes:
        x: Final vector
        cost: Objective value at x
        status: Termination status
        iterations: Number of iterations performed
        message: Backend message
    """
    x: np.ndarray
    cost: float
    status: OptimizerStatus
    iterations: int = 0
    message: str = ""


class NumericalOptimizer(ABC):
    """Local minimizer of a scalar objective over a box-bounded vector."""

    @abstractmethod
    def minimize(self, fun: Callable[[np.ndarray], float], x0: np.ndarray,
                 jac: Optional[Callable[[np.ndarray], np.ndarray]],
                 bounds: Bounds, max_iterations: int) -> OptimizerResult:
        """
        Minimize fun from x0 within bounds.

        Args:
            fun: Objective
            x0: Initial vector
            jac: Gradient of the objective (None lets the backend estimate it)
            bounds: Per-component (lower, upper), None where unbounded
            max_iterations: Iteration budget

        Returns:
            OptimizerResult

        Raises:
            NumericalFailure: If the backend fails numerically
        """


class ScipyOptimizer(NumericalOptimizer):
    """
    scipy.optimize.minimize backend.

    L-BFGS-B is the default; SLSQP is supported as an alternative. Each call
    holds its own state, so one instance may serve concurrent restarts.
    """

    # SLSQP exit modes signalling numerical trouble
    _SLSQP_FAILURES = {2, 3, 4, 5, 6, 7}

    def __init__(self, method: str = 'L-BFGS-B', convergence_tolerance: float = 1e-12,
                 gradient_tolerance: float = 1e-9):
        """
        Initialize the optimizer.

        Args:
            method: 'L-BFGS-B' or 'SLSQP'
            convergence_tolerance: Relative cost-reduction tolerance (ftol)
            gradient_tolerance: Projected gradient tolerance (L-BFGS-B gtol)
        """
        if method not in ('L-BFGS-B', 'SLSQP'):
            raise ValueError(f"Unsupported optimization method: {method}")
        self.method = method
        self.convergence_tolerance = convergence_tolerance
        self.gradient_tolerance = gradient_tolerance

    def _options(self, max_iterations: int) -> dict:
        if self.method == 'L-BFGS-B':
            return {
                'maxiter': max_iterations,
                'maxfun': max(15000, 20 * max_iterations),
                'ftol': self.convergence_tolerance,
                'gtol': self.gradient_tolerance,
            }
        return {'maxiter': max_iterations, 'ftol': self.convergence_tolerance}

    def minimize(self, fun, x0, jac, bounds, max_iterations) -> OptimizerResult:
        try:
            result = minimize(
                fun,
                np.asarray(x0, dtype=float),
                method=self.method,
                jac=jac,
                bounds=list(bounds) if len(bounds) else None,
                options=self._options(max_iterations)
            )
        except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
            raise NumericalFailure(f"{self.method} failed: {e}") from e

        if not np.all(np.isfinite(result.x)) or not np.isfinite(result.fun):
            raise NumericalFailure(f"{self.method} produced a non-finite result: {result.message}")

        iterations = int(getattr(result, 'nit', 0))
        status = self._status(result, iterations, max_iterations)

        return OptimizerResult(
            x=np.asarray(result.x, dtype=float),
            cost=float(result.fun),
            status=status,
            iterations=iterations,
            message=str(result.message)
        )

    def _status(self, result, iterations: int, max_iterations: int) -> OptimizerStatus:
        if self.method == 'SLSQP':
            if result.status == 9:
                return OptimizerStatus.ITERATION_LIMIT
            if result.status in self._SLSQP_FAILURES:
                raise NumericalFailure(f"SLSQP failed: {result.message}")
            return OptimizerStatus.CONVERGED

        # L-BFGS-B: 1 = iteration/evaluation limit; 2 = line search could not
        # improve further, which is accepted as convergence at working precision
        if result.status == 1 or iterations >= max_iterations:
            return OptimizerStatus.ITERATION_LIMIT
        return OptimizerStatus.CONVERGED
