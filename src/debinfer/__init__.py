"""
debinfer - Bayesian Inference for Differential Equations

Adaptive componentwise Metropolis-Hastings for estimating the parameters,
initial conditions and observation-model parameters of ordinary and delay
differential-equation models.
"""

__version__ = "0.1.0"

from .errors import ConfigurationError, SolverFailure

from .parameters import (
    ParameterCategory,
    ProposalKind,
    ParameterSpec,
    ParameterBlock,
    setup_parameter,
)

from .priors import make_prior, log_prior, sample_prior

from .proposals import (
    propose,
    acceptance_probability,
    adapt_scale,
)

from .solvers import make_solver, solve_de

from .posterior import Evaluation, PosteriorEvaluator

from .chain import ChainStore

from .sampler import (
    SamplerConfig,
    SamplerState,
    DEMCMCSampler,
    de_mcmc,
)

from .predictive import post_sim, post_sim_summary

__all__ = [
    "ConfigurationError",
    "SolverFailure",
    "ParameterCategory",
    "ProposalKind",
    "ParameterSpec",
    "ParameterBlock",
    "setup_parameter",
    "make_prior",
    "log_prior",
    "sample_prior",
    "propose",
    "acceptance_probability",
    "adapt_scale",
    "make_solver",
    "solve_de",
    "Evaluation",
    "PosteriorEvaluator",
    "ChainStore",
    "SamplerConfig",
    "SamplerState",
    "DEMCMCSampler",
    "de_mcmc",
    "post_sim",
    "post_sim_summary",
]
