"""
debinfer — Proposal Kernels
===========================
Each kernel maps ``(current, scale)`` to ``(proposed, log_correction)``,
where ``log_correction = log q(current | proposed) - log q(proposed | current)``
is added to the log-posterior difference in the acceptance ratio.

Kernels:
    rw       proposed = current + N(0, scale)            scale is a variance
    rw-unif  proposed ~ U(a/b * current, b/a * current)   scale is (a, b)
    ind      proposed ~ prior                             scale unused

The kernels form a closed set dispatched by ``propose``; there is no class
hierarchy to extend.

License: MIT
"""

import numpy as np
from typing import Callable, Dict, Optional, Tuple

from .parameters import ProposalKind
from .priors import log_prior, sample_prior


def propose_random_walk(current: float, scale: float,
                        rng: np.random.Generator, prior=None) -> Tuple[float, float]:
    """Gaussian random walk with variance ``scale``. Symmetric."""
    proposed = current + rng.normal(0.0, np.sqrt(scale))
    return float(proposed), 0.0


def propose_asymmetric_uniform(current: float, scale: Tuple[float, float],
                               rng: np.random.Generator, prior=None) -> Tuple[float, float]:
    """Multiplicative uniform proposal, keeps positive values positive."""
    if not current > 0:
        raise ValueError(
            f"Asymmetric uniform proposal requires a positive current value, got {current}")
    a, b = scale
    proposed = float(rng.uniform(a / b * current, b / a * current))
    # q(x | y) = 1 / ((b/a - a/b) * y), so the ratio reduces to current / proposed
    correction = float(np.log(current) - np.log(proposed))
    return proposed, correction


def asymmetric_uniform_log_density(to: float, frm: float, scale: Tuple[float, float]) -> float:
    """log q(to | frm) for the multiplicative uniform kernel."""
    a, b = scale
    lower, upper = a / b * frm, b / a * frm
    if frm <= 0 or not lower <= to <= upper:
        return -np.inf
    return -np.log(upper - lower)


def propose_independence(current: float, scale, rng: np.random.Generator,
                         prior=None) -> Tuple[float, float]:
    """Draw from the prior; the correction cancels the prior ratio."""
    if prior is None:
        raise ValueError("Independence sampler needs the parameter's prior")
    proposed = sample_prior(prior, rng)
    correction = log_prior(prior, current) - log_prior(prior, proposed)
    return proposed, correction


KERNELS: Dict[ProposalKind, Callable] = {
    ProposalKind.RANDOM_WALK: propose_random_walk,
    ProposalKind.RANDOM_WALK_UNIFORM: propose_asymmetric_uniform,
    ProposalKind.INDEPENDENCE: propose_independence,
}


def propose(kind: ProposalKind, current: float, scale, rng: np.random.Generator,
            prior=None) -> Tuple[float, float]:
    """Draw a proposal with the kernel named by ``kind``.

    Args:
        kind: Proposal kernel
        current: Current value of the parameter
        scale: Variance (rw), pair (a, b) (rw-unif) or None (ind)
        rng: Random source
        prior: Frozen prior, required by the independence sampler

    Returns:
        (proposed value, log asymmetry correction)
    """
    return KERNELS[kind](current, scale, rng, prior)


def proposal_log_density(kind: ProposalKind, to: float, frm: float, scale,
                         prior=None) -> float:
    """log q(to | frm) for any kernel."""
    if kind is ProposalKind.RANDOM_WALK:
        return float(-0.5 * np.log(2 * np.pi * scale) - (to - frm) ** 2 / (2 * scale))
    if kind is ProposalKind.RANDOM_WALK_UNIFORM:
        return asymmetric_uniform_log_density(to, frm, scale)
    return log_prior(prior, to)


# ═══════════════════════════════════════════════════════════════
# Acceptance
# ═══════════════════════════════════════════════════════════════

def log_acceptance_ratio(candidate_lp: float, current_lp: float,
                         correction: float = 0.0) -> float:
    """Log of the MH ratio, computed without exponentiating.

    A non-finite candidate is never accepted; a finite candidate always
    beats a non-finite current state.
    """
    if not np.isfinite(candidate_lp):
        return -np.inf
    if not np.isfinite(current_lp):
        return np.inf
    return candidate_lp - current_lp + correction


def acceptance_probability(log_ratio: float) -> float:
    """min(1, exp(log_ratio)); exactly 1.0 for log_ratio >= 0."""
    if np.isnan(log_ratio):
        return 0.0
    if log_ratio >= 0:
        return 1.0
    return float(np.exp(log_ratio))


def accept(log_ratio: float, u: float) -> bool:
    """Accept iff u < min(1, exp(log_ratio)), compared in log space."""
    if np.isnan(log_ratio) or log_ratio == -np.inf:
        return False
    if log_ratio >= 0:
        return True
    with np.errstate(divide='ignore'):
        return bool(np.log(u) < log_ratio)


# ═══════════════════════════════════════════════════════════════
# Adaptive tuning
# ═══════════════════════════════════════════════════════════════

MIN_VARIANCE = 1e-300
MIN_LOG_WIDTH = 1e-6


def adapt_scale(kind: ProposalKind, scale, rate: float,
                low: float = 0.2, high: float = 0.5, factor: float = 1.5):
    """Move a proposal scale toward the target acceptance band.

    The scale grows when ``rate > high`` and shrinks when ``rate < low``.
    For 'rw' the variance is multiplied or divided by ``factor``. For
    'rw-unif' the log-width log(b/a) is scaled the same way with ``a``
    fixed, so 0 < a < b still holds. The independence sampler has no scale.

    Shrinking stops at ``MIN_VARIANCE`` and ``MIN_LOG_WIDTH`` (or at the
    starting scale, if that is already smaller) so a later grow step can
    always widen the kernel again.
    """
    if kind is ProposalKind.INDEPENDENCE or scale is None:
        return scale
    if rate > high:
        step = factor
    elif rate < low:
        step = 1.0 / factor
    else:
        return scale

    if kind is ProposalKind.RANDOM_WALK:
        return float(max(scale * step, min(scale, MIN_VARIANCE)))

    a, b = scale
    width = np.log(b / a)
    width = max(width * step, min(width, MIN_LOG_WIDTH))
    return (a, float(a * np.exp(width)))
