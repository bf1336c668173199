"""
debinfer — Exception types
==========================
Only configuration problems are fatal. Numerical failures during sampling
are absorbed by the posterior evaluator and surface as rejected proposals.
"""


class ConfigurationError(ValueError):
    """Invalid sampler setup, detected before the first iteration runs."""


class SolverFailure(RuntimeError):
    """The differential-equation integration could not be completed."""
