"""
debinfer — Parameter Declarations
=================================
Declares the scalar quantities of a differential-equation model and the
role each one plays during inference.

Every quantity belongs to one of three categories:
- equation parameters (passed by name to the solver)
- initial conditions (passed by position as the solver's state vector)
- observation parameters (only seen by the likelihood)

A quantity is either fixed (constant column in the chain) or estimated, in
which case it needs a prior and a proposal kernel.

Usage:
    r = setup_parameter('r', 0.1, var_type='de', prior='normal',
                        hypers={'mean': 0.1, 'sd': 0.01},
                        samp_type='rw', prop_var=0.001)
    N0 = setup_parameter('N', 1.0, var_type='init', fixed=True)
    block = ParameterBlock([r, N0], state_names=['N'])

License: MIT
"""

import copy
import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import ConfigurationError
from .priors import log_prior, make_prior


# ═══════════════════════════════════════════════════════════════
# Tags
# ═══════════════════════════════════════════════════════════════

class ParameterCategory(Enum):
    """Role of a quantity in the model."""
    EQUATION = "de"
    INITIAL = "init"
    OBSERVATION = "obs"


class ProposalKind(Enum):
    """Proposal kernels available to the sampler."""
    RANDOM_WALK = "rw"
    RANDOM_WALK_UNIFORM = "rw-unif"
    INDEPENDENCE = "ind"


_CATEGORY_ALIASES = {
    'de': ParameterCategory.EQUATION,
    'equation': ParameterCategory.EQUATION,
    'equation-parameter': ParameterCategory.EQUATION,
    'init': ParameterCategory.INITIAL,
    'initial': ParameterCategory.INITIAL,
    'initial-condition': ParameterCategory.INITIAL,
    'obs': ParameterCategory.OBSERVATION,
    'observation': ParameterCategory.OBSERVATION,
    'observation-parameter': ParameterCategory.OBSERVATION,
}

_KIND_ALIASES = {
    'rw': ProposalKind.RANDOM_WALK,
    'random-walk-normal': ProposalKind.RANDOM_WALK,
    'rw-unif': ProposalKind.RANDOM_WALK_UNIFORM,
    'random-walk-asymmetric-uniform': ProposalKind.RANDOM_WALK_UNIFORM,
    'ind': ProposalKind.INDEPENDENCE,
    'independence-sampler': ProposalKind.INDEPENDENCE,
}


def as_category(value: Union[str, ParameterCategory]) -> ParameterCategory:
    if isinstance(value, ParameterCategory):
        return value
    try:
        return _CATEGORY_ALIASES[str(value).lower()]
    except KeyError:
        raise ConfigurationError(f"Unknown parameter category: {value}") from None


def as_proposal_kind(value: Union[str, ProposalKind, None]) -> Optional[ProposalKind]:
    if value is None or isinstance(value, ProposalKind):
        return value
    try:
        return _KIND_ALIASES[str(value).lower()]
    except KeyError:
        raise ConfigurationError(f"Unsupported proposal kind: {value}") from None


# ═══════════════════════════════════════════════════════════════
# ParameterSpec
# ═══════════════════════════════════════════════════════════════

@dataclass
class ParameterSpec:
    """One declared scalar quantity."""
    name: str
    category: ParameterCategory
    value: float
    fixed: bool = False
    prior: Optional[str] = None           # family name, e.g. 'normal', 'lognormal'
    hypers: Dict[str, float] = field(default_factory=dict)
    proposal_kind: Optional[ProposalKind] = None
    proposal_scale: Union[float, Tuple[float, float], None] = None

    def __post_init__(self):
        self.category = as_category(self.category)
        self.proposal_kind = as_proposal_kind(self.proposal_kind)
        self.value = float(self.value)
        self._dist = None

    @property
    def distribution(self):
        """Frozen scipy prior, built on first use."""
        if self.prior is None:
            return None
        if self._dist is None:
            self._dist = make_prior(self.prior, self.hypers)
        return self._dist

    def log_prior(self, value: Optional[float] = None) -> float:
        if self.distribution is None:
            return 0.0
        return log_prior(self.distribution, self.value if value is None else value)

    def validate(self):
        """Check the declaration invariants.

        Raises:
            ConfigurationError: If an estimated parameter lacks a prior or
                kernel, its value is outside the prior support, or its
                proposal scale does not fit the kernel.
        """
        if not np.isfinite(self.value):
            raise ConfigurationError(f"'{self.name}': value must be finite, got {self.value}")
        if self.fixed:
            return

        if self.prior is None:
            raise ConfigurationError(f"'{self.name}' is estimated but has no prior")
        if self.proposal_kind is None:
            raise ConfigurationError(f"'{self.name}' is estimated but has no proposal kind")

        if not np.isfinite(self.log_prior()):
            raise ConfigurationError(
                f"'{self.name}': starting value {self.value} lies outside the "
                f"support of its {self.prior} prior")

        kind = self.proposal_kind
        if kind is ProposalKind.RANDOM_WALK:
            scale = self.proposal_scale
            if scale is None or np.ndim(scale) != 0 or not float(scale) > 0:
                raise ConfigurationError(
                    f"'{self.name}': random-walk proposal needs a positive variance, got {scale}")
            self.proposal_scale = float(scale)
        elif kind is ProposalKind.RANDOM_WALK_UNIFORM:
            scale = self.proposal_scale
            if scale is None or np.ndim(scale) != 1 or len(scale) != 2:
                raise ConfigurationError(
                    f"'{self.name}': asymmetric uniform proposal needs a pair (a, b), got {scale}")
            a, b = float(scale[0]), float(scale[1])
            if not 0 < a < b:
                raise ConfigurationError(
                    f"'{self.name}': asymmetric uniform proposal needs 0 < a < b, got ({a}, {b})")
            if self.value <= 0:
                raise ConfigurationError(
                    f"'{self.name}': asymmetric uniform proposal needs a positive "
                    f"starting value, got {self.value}")
            self.proposal_scale = (a, b)


def setup_parameter(name: str,
                    value: float,
                    var_type: Union[str, ParameterCategory] = 'de',
                    fixed: bool = False,
                    prior: Optional[str] = None,
                    hypers: Optional[Mapping] = None,
                    samp_type: Union[str, ProposalKind, None] = None,
                    prop_var=None) -> ParameterSpec:
    """Declare a parameter, validating it immediately.

    Args:
        name: Unique identifier (initial conditions use the state name)
        value: Starting (or fixed) value
        var_type: 'de', 'init' or 'obs'
        fixed: Keep the value constant during sampling
        prior: Prior family name, required unless fixed
        hypers: Prior hyperparameters
        samp_type: 'rw', 'rw-unif' or 'ind', required unless fixed
        prop_var: Variance for 'rw', pair (a, b) for 'rw-unif'

    Returns:
        Validated ParameterSpec
    """
    spec = ParameterSpec(
        name=name,
        category=var_type,
        value=value,
        fixed=fixed,
        prior=prior,
        hypers=dict(hypers or {}),
        proposal_kind=samp_type,
        proposal_scale=tuple(prop_var) if isinstance(prop_var, (list, tuple)) else prop_var,
    )
    spec.validate()
    return spec


# ═══════════════════════════════════════════════════════════════
# ParameterBlock
# ═══════════════════════════════════════════════════════════════

class ParameterBlock:
    """Ordered collection of ParameterSpecs.

    Declaration order is preserved everywhere; the three categories are
    views onto that order, never a reordering of it. The relative order of
    the initial-condition specs is the position of each state in the
    solver's state vector, so when ``state_names`` is given it must match
    exactly.
    """

    def __init__(self, specs: Sequence[ParameterSpec],
                 state_names: Optional[Sequence[str]] = None):
        self.specs: List[ParameterSpec] = list(specs)
        if not self.specs:
            raise ConfigurationError("No parameters declared")

        names = [s.name for s in self.specs]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ConfigurationError(f"Duplicate parameter names: {dupes}")

        for spec in self.specs:
            spec.validate()

        self.names: List[str] = names
        self.index: Dict[str, int] = {n: i for i, n in enumerate(names)}
        self._by_category = {
            cat: [i for i, s in enumerate(self.specs) if s.category is cat]
            for cat in ParameterCategory
        }
        self.free_indices: List[int] = [i for i, s in enumerate(self.specs) if not s.fixed]
        self.free_names: List[str] = [names[i] for i in self.free_indices]

        init_names = self.initial_names
        if state_names is not None:
            state_names = list(state_names)
            if init_names != state_names:
                raise ConfigurationError(
                    f"Initial conditions {init_names} do not match the solver's "
                    f"state vector {state_names} (count and order must agree)")
        self.state_names: List[str] = init_names

    def __len__(self):
        return len(self.specs)

    def __iter__(self):
        return iter(self.specs)

    def __getitem__(self, name: str) -> ParameterSpec:
        return self.specs[self.index[name]]

    @property
    def equation_names(self) -> List[str]:
        return [self.names[i] for i in self._by_category[ParameterCategory.EQUATION]]

    @property
    def initial_names(self) -> List[str]:
        return [self.names[i] for i in self._by_category[ParameterCategory.INITIAL]]

    @property
    def observation_names(self) -> List[str]:
        return [self.names[i] for i in self._by_category[ParameterCategory.OBSERVATION]]

    def values(self) -> np.ndarray:
        """Current values of every parameter, in declaration order."""
        return np.array([s.value for s in self.specs], dtype=float)

    def equation_params(self, values: np.ndarray) -> Dict[str, float]:
        return {self.names[i]: float(values[i])
                for i in self._by_category[ParameterCategory.EQUATION]}

    def initial_conditions(self, values: np.ndarray) -> np.ndarray:
        """State vector in solver order."""
        return np.array([values[i] for i in self._by_category[ParameterCategory.INITIAL]],
                        dtype=float)

    def observation_params(self, values: np.ndarray) -> Dict[str, float]:
        return {self.names[i]: float(values[i])
                for i in self._by_category[ParameterCategory.OBSERVATION]}

    def as_mapping(self, values: np.ndarray) -> Dict[str, float]:
        """Every parameter by name, for the likelihood."""
        return {n: float(v) for n, v in zip(self.names, values)}

    def is_observation(self, i: int) -> bool:
        return self.specs[i].category is ParameterCategory.OBSERVATION

    def log_prior(self, values: np.ndarray) -> float:
        """Sum of prior log-densities over the estimated parameters."""
        total = 0.0
        for i in self.free_indices:
            lp = self.specs[i].log_prior(values[i])
            if not np.isfinite(lp):
                return -np.inf
            total += lp
        return total

    def copy(self) -> 'ParameterBlock':
        """Independent deep copy, for running another chain."""
        return copy.deepcopy(self)
