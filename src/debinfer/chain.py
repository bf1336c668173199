"""
debinfer — Chain Storage
========================
``ChainRecorder`` is the append-only buffer the sampler writes into while
it runs. ``ChainStore`` is the finished, read-only result handed back to
the caller.

Layout:
    samples        [N, P]  one row per iteration, every declared parameter
    log_posterior  [N]     log-posterior of the row
    accepted       [N, F]  accept flag per estimated parameter and sweep

Burn-in is not removed by the sampler; use ``discard`` or the ``burnin``
argument of ``summarize``.

Metadata is frozen on construction: mappings become read-only
``MappingProxyType`` views and lists become tuples, so a store loaded from
disk compares equal to the one that was saved. Wall-clock timing is kept
in ``elapsed_seconds``, outside the metadata, and is not persisted; two
seeded runs therefore write identical arrays and an identical JSON header.

License: MIT
"""

import json
import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

try:
    import arviz as az
    ARVIZ_AVAILABLE = True
except ImportError:
    ARVIZ_AVAILABLE = False
    az = None


class ChainRecorder:
    """Preallocated, sampler-owned buffer for one run."""

    def __init__(self, n_iterations: int,
                 parameter_names: Sequence[str],
                 free_names: Sequence[str]):
        self.parameter_names = list(parameter_names)
        self.free_names = list(free_names)
        self.samples = np.empty((n_iterations, len(self.parameter_names)))
        self.log_posterior = np.empty(n_iterations)
        self.accepted = np.zeros((n_iterations, len(self.free_names)), dtype=bool)
        self.n_rows = 0

    def append(self, values: np.ndarray, log_posterior: float, accepted: np.ndarray):
        i = self.n_rows
        self.samples[i] = values
        self.log_posterior[i] = log_posterior
        self.accepted[i] = accepted
        self.n_rows += 1

    def finalize(self, metadata: Dict,
                 elapsed_seconds: Optional[float] = None) -> 'ChainStore':
        """Freeze the recorded rows into a ChainStore."""
        n = self.n_rows
        return ChainStore(
            parameter_names=tuple(self.parameter_names),
            free_names=tuple(self.free_names),
            samples=self.samples[:n].copy(),
            log_posterior=self.log_posterior[:n].copy(),
            accepted=self.accepted[:n].copy(),
            metadata=dict(metadata),
            elapsed_seconds=elapsed_seconds,
        )


@dataclass(frozen=True, eq=False)
class ChainStore:
    """Immutable result of one sampler run."""
    parameter_names: Tuple[str, ...]
    free_names: Tuple[str, ...]
    samples: np.ndarray
    log_posterior: np.ndarray
    accepted: np.ndarray
    metadata: Mapping[str, Any] = field(default_factory=dict)
    elapsed_seconds: Optional[float] = None

    def __post_init__(self):
        for arr in (self.samples, self.log_posterior, self.accepted):
            arr.setflags(write=False)
        object.__setattr__(self, 'metadata', _freeze(self.metadata))

    def __len__(self):
        return self.samples.shape[0]

    def column(self, name: str) -> np.ndarray:
        return self.samples[:, self.parameter_names.index(name)]

    def to_dataframe(self) -> pd.DataFrame:
        """One row per iteration, parameters plus ``log_posterior``."""
        df = pd.DataFrame(np.array(self.samples), columns=list(self.parameter_names),
                          index=pd.RangeIndex(1, len(self) + 1, name='iteration'))
        df['log_posterior'] = np.array(self.log_posterior)
        return df

    def acceptance_rates(self) -> Dict[str, float]:
        """Cumulative acceptance rate of every estimated parameter."""
        if len(self) == 0:
            return {name: 0.0 for name in self.free_names}
        rates = self.accepted.mean(axis=0)
        return {name: float(r) for name, r in zip(self.free_names, rates)}

    def discard(self, burnin: int) -> 'ChainStore':
        """New store without the first ``burnin`` rows."""
        if burnin < 0 or burnin >= len(self):
            raise ValueError(f"burnin must be in [0, {len(self)}), got {burnin}")
        meta = _thaw(self.metadata)
        meta['burnin'] = meta.get('burnin', 0) + burnin
        return ChainStore(self.parameter_names, self.free_names,
                          self.samples[burnin:].copy(),
                          self.log_posterior[burnin:].copy(),
                          self.accepted[burnin:].copy(), meta, self.elapsed_seconds)

    def summarize(self, burnin: int = 0,
                  credible_interval: float = 0.95) -> Dict[str, Dict[str, float]]:
        """Posterior summary of each estimated parameter.

        Args:
            burnin: Rows to drop from the start of the chain
            credible_interval: Width of the equal-tailed interval

        Returns:
            Dict with mean, median, std, ci_lower, ci_upper, acceptance_rate
        """
        chain = self.discard(burnin) if burnin else self
        tail = (1 - credible_interval) / 2
        rates = chain.acceptance_rates()
        summary = {}

        for name in self.free_names:
            x = chain.column(name)
            summary[name] = {
                'mean': float(np.mean(x)),
                'median': float(np.median(x)),
                'std': float(np.std(x, ddof=1)) if len(x) > 1 else 0.0,
                'ci_lower': float(np.quantile(x, tail)),
                'ci_upper': float(np.quantile(x, 1 - tail)),
                'acceptance_rate': rates[name],
            }

        return summary

    def to_arviz(self, burnin: int = 0) -> 'az.InferenceData':
        """Convert the estimated parameters to ``arviz.InferenceData``."""
        if not ARVIZ_AVAILABLE:
            raise ImportError("arviz required. Install with: pip install debinfer[diagnostics]")
        chain = self.discard(burnin) if burnin else self
        posterior = {name: np.array(chain.column(name))[None, :] for name in self.free_names}
        sample_stats = {'lp': np.array(chain.log_posterior)[None, :]}
        return az.from_dict(posterior=posterior, sample_stats=sample_stats)

    # ── persistence ────────────────────────────────────────────

    def save(self, filepath: Union[str, Path]):
        """Write arrays to ``<filepath>.npz`` and metadata to ``<filepath>.json``."""
        path = Path(filepath)
        np.savez(path.with_suffix('.npz'),
                 samples=self.samples,
                 log_posterior=self.log_posterior,
                 accepted=self.accepted)
        header = {
            'parameter_names': list(self.parameter_names),
            'free_names': list(self.free_names),
            'metadata': _thaw(self.metadata),
        }
        with open(path.with_suffix('.json'), 'w') as f:
            json.dump(header, f, indent=2, default=_json_default)
        print(f"[DEMCMC] Chain saved to {path.with_suffix('.npz')}")

    @staticmethod
    def load(filepath: Union[str, Path]) -> 'ChainStore':
        path = Path(filepath)
        with open(path.with_suffix('.json')) as f:
            header = json.load(f)
        with np.load(path.with_suffix('.npz')) as arrays:
            samples = arrays['samples']
            log_posterior = arrays['log_posterior']
            accepted = arrays['accepted']
        return ChainStore(
            parameter_names=tuple(header['parameter_names']),
            free_names=tuple(header['free_names']),
            samples=samples,
            log_posterior=log_posterior,
            accepted=accepted,
            metadata=header['metadata'],
        )


def _freeze(obj):
    if isinstance(obj, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in obj.items()})
    if isinstance(obj, (list, tuple)):
        return tuple(_freeze(v) for v in obj)
    return obj


def _thaw(obj):
    if isinstance(obj, Mapping):
        return {k: _thaw(v) for k, v in obj.items()}
    if isinstance(obj, tuple):
        return [_thaw(v) for v in obj]
    return obj


def _json_default(obj):
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, tuple):
        return list(obj)
    return str(obj)
