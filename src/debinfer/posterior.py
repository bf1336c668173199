"""
debinfer — Posterior Evaluation
===============================
Combines the external solver, the external likelihood and the priors into
a single log-posterior value:

    log p(θ | D) = log L(D | solve(θ), θ) + Σ log p(θ_free)

Numerical trouble never raises here. A solver failure, a non-finite
trajectory or a non-finite likelihood all produce ``-inf``, which the
sampler always rejects.

License: MIT
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from .errors import SolverFailure
from .parameters import ParameterBlock


# Failures inside the solver that are a property of the proposed parameters
SOLVER_ERRORS = (SolverFailure, ArithmeticError, np.linalg.LinAlgError)


@dataclass
class Evaluation:
    """Result of one posterior evaluation."""
    log_posterior: float
    log_likelihood: float
    log_prior: float
    trajectory: Optional[pd.DataFrame] = None
    failed: bool = False

    @property
    def finite(self) -> bool:
        return bool(np.isfinite(self.log_posterior))


class PosteriorEvaluator:
    """Evaluates the log-posterior of a full parameter vector.

    Args:
        block: Parameter declarations
        solver: ``solver(inits, times, params) -> DataFrame``
        likelihood: ``likelihood(data, trajectory, params) -> float``
        data: Observed data, passed through unchanged
        output_times: Grid the solver reports on
    """

    def __init__(self,
                 block: ParameterBlock,
                 solver: Callable,
                 likelihood: Callable,
                 data: Any,
                 output_times: Sequence[float]):
        self.block = block
        self.solver = solver
        self.likelihood = likelihood
        self.data = data
        self.output_times = np.asarray(output_times, dtype=float)
        self.n_solves = 0
        self.n_failures = 0

    def log_prior(self, values: np.ndarray) -> float:
        return self.block.log_prior(values)

    def solve(self, values: np.ndarray) -> Optional[pd.DataFrame]:
        """Run the solver; ``None`` if it fails."""
        self.n_solves += 1
        try:
            return self.solver(self.block.initial_conditions(values),
                               self.output_times,
                               self.block.equation_params(values))
        except SOLVER_ERRORS:
            return None

    def evaluate(self, values: np.ndarray,
                 trajectory: Optional[pd.DataFrame] = None) -> Evaluation:
        """Log-posterior of ``values``.

        Args:
            values: Full parameter vector in declaration order
            trajectory: Reuse this trajectory instead of solving (valid when
                only observation parameters differ from the state it came from)

        Returns:
            Evaluation; ``log_posterior`` is ``-inf`` on any numerical failure
        """
        lp = self.log_prior(values)
        if not np.isfinite(lp):
            return Evaluation(-np.inf, -np.inf, lp, trajectory, failed=False)

        if trajectory is None:
            trajectory = self.solve(values)
            if trajectory is None:
                self.n_failures += 1
                return Evaluation(-np.inf, -np.inf, lp, None, failed=True)

        try:
            ll = float(self.likelihood(self.data, trajectory, self.block.as_mapping(values)))
        except ArithmeticError:
            ll = np.nan

        if not np.isfinite(ll):
            self.n_failures += 1
            return Evaluation(-np.inf, ll, lp, trajectory, failed=True)

        return Evaluation(ll + lp, ll, lp, trajectory)
