"""
debinfer — Prior Distributions
==============================
Maps a named distribution family plus a dict of hyperparameters onto a
frozen ``scipy.stats`` distribution.

Families accept the hyperparameter names used by R (``mean``/``sd``,
``meanlog``/``sdlog``, ``min``/``max``, ``shape``/``rate``) as well as the
PyMC-style names (``mu``/``sigma``, ``lower``/``upper``, ``alpha``/``beta``).
Any other ``scipy.stats`` continuous distribution can be named directly
and receives the hyperparameters as keyword arguments.

Usage:
    dist = make_prior('normal', {'mean': 0.1, 'sd': 0.01})
    log_prior(dist, 0.12)

License: MIT
"""

import numpy as np
from scipy import stats
from typing import Callable, Dict, Mapping, Optional

from .errors import ConfigurationError


def _pick(hypers: Mapping, *names, default=None):
    for name in names:
        if name in hypers:
            return float(hypers[name])
    if default is not None:
        return default
    raise ConfigurationError(f"Missing hyperparameter, expected one of {names}")


def _normal(h):
    return stats.norm(loc=_pick(h, 'mean', 'mu', 'loc'),
                      scale=_pick(h, 'sd', 'sigma', 'scale'))


def _lognormal(h):
    # scipy parameterises the log-normal by exp(meanlog) and sdlog
    return stats.lognorm(s=_pick(h, 'sdlog', 'sigma', 'sd'),
                         scale=np.exp(_pick(h, 'meanlog', 'mu', 'mean')))


def _uniform(h):
    lower = _pick(h, 'min', 'lower', 'a')
    upper = _pick(h, 'max', 'upper', 'b')
    if upper <= lower:
        raise ConfigurationError(f"Uniform prior needs lower < upper, got ({lower}, {upper})")
    return stats.uniform(loc=lower, scale=upper - lower)


def _halfnormal(h):
    return stats.halfnorm(scale=_pick(h, 'sigma', 'sd', 'scale'))


def _gamma(h):
    shape = _pick(h, 'shape', 'alpha', 'a')
    if 'scale' in h:
        return stats.gamma(a=shape, scale=float(h['scale']))
    return stats.gamma(a=shape, scale=1.0 / _pick(h, 'rate', 'beta'))


def _beta(h):
    return stats.beta(a=_pick(h, 'shape1', 'alpha', 'a'),
                      b=_pick(h, 'shape2', 'beta', 'b'))


def _exponential(h):
    return stats.expon(scale=1.0 / _pick(h, 'rate', 'lam', default=1.0))


def _truncnormal(h):
    mu = _pick(h, 'mu', 'mean', 'loc')
    sigma = _pick(h, 'sigma', 'sd', 'scale')
    lower = _pick(h, 'lower', 'min', default=-np.inf)
    upper = _pick(h, 'upper', 'max', default=np.inf)
    return stats.truncnorm((lower - mu) / sigma, (upper - mu) / sigma,
                           loc=mu, scale=sigma)


PRIOR_FAMILIES: Dict[str, Callable] = {
    'normal': _normal,
    'norm': _normal,
    'lognormal': _lognormal,
    'lnorm': _lognormal,
    'uniform': _uniform,
    'unif': _uniform,
    'halfnormal': _halfnormal,
    'gamma': _gamma,
    'beta': _beta,
    'exponential': _exponential,
    'exp': _exponential,
    'truncnormal': _truncnormal,
}


def make_prior(family: str, hypers: Optional[Mapping] = None):
    """Build a frozen scipy distribution for a named prior family.

    Args:
        family: Family name ('normal', 'lognormal', 'uniform', ...) or the
            name of any continuous distribution in ``scipy.stats``
        hypers: Hyperparameter name -> value

    Returns:
        Frozen ``scipy.stats`` distribution

    Raises:
        ConfigurationError: Unknown family or unusable hyperparameters
    """
    hypers = dict(hypers or {})
    key = family.lower()

    if key in PRIOR_FAMILIES:
        return PRIOR_FAMILIES[key](hypers)

    dist = getattr(stats, key, None)
    if not isinstance(dist, stats.rv_continuous):
        raise ConfigurationError(f"Unknown prior distribution: {family}")
    try:
        return dist(**hypers)
    except TypeError as e:
        raise ConfigurationError(f"Bad hyperparameters for '{family}': {e}") from e


def log_prior(dist, value: float) -> float:
    """Log density of ``value``; ``-inf`` outside the support."""
    with np.errstate(divide='ignore'):
        lp = float(dist.logpdf(value))
    if np.isnan(lp):
        return -np.inf
    return lp


def sample_prior(dist, rng: np.random.Generator) -> float:
    """Draw a single value from a frozen prior using ``rng``."""
    return float(dist.rvs(random_state=rng))
