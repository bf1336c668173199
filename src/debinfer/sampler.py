"""
debinfer — Componentwise Adaptive Metropolis-Hastings
=====================================================
Bayesian parameter estimation for differential-equation models.

Each iteration is one sweep over the estimated parameters in declaration
order. For every parameter a proposal is drawn from its kernel, the
candidate vector (only that parameter changed) is solved and scored, and
the candidate is accepted with probability

    min(1, exp(log p(candidate) - log p(current) + log_correction))

The accepted or rejected value is committed before the next parameter is
proposed, so each update conditions on the latest values of all others.

Adaptation:
    Every ``report_interval`` iterations the acceptance rate of each
    parameter over the last window is compared with the band
    [target_low, target_high]; its proposal scale is widened above the band
    and narrowed below it. Set ``freeze_adaptation_after`` to stop tuning
    after a given iteration. Without it the scales keep moving for the
    whole run, and the chain is not time-homogeneous.

Usage:
    chain = de_mcmc(
        iterations=5000,
        data=observations,
        de_model=logistic,
        obs_model=log_likelihood,
        all_params=[r, K, sdlog, N0],
        state_names=['N'],
        output_times=np.linspace(0, 20, 101),
        seed=1,
    )
    chain.summarize(burnin=1000)

License: MIT
"""

import time
import warnings
import numpy as np
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from tqdm import tqdm

from .chain import ChainRecorder, ChainStore
from .errors import ConfigurationError
from .parameters import ParameterBlock, ParameterSpec
from .posterior import Evaluation, PosteriorEvaluator
from .proposals import accept, adapt_scale, log_acceptance_ratio, propose
from .solvers import SOLVER_KINDS, make_solver


# ═══════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════

@dataclass
class SamplerConfig:
    """Configuration for one MCMC run."""
    iterations: int                          # Number of sweeps (chain length)
    solver_kind: str = 'ode'                 # 'ode' or 'dde'
    output_times: Optional[Sequence[float]] = None  # Solver grid, first entry is t0
    report_interval: int = 100               # Adaptation / report cadence

    # Reporting
    verbose: bool = False                    # Print every proposal
    progress: bool = True                    # Print a report line each window
    progressbar: bool = False                # tqdm bar over iterations

    seed: Optional[int] = None

    # Adaptive tuning
    adapt: bool = True
    target_low: float = 0.2                  # Shrink scale below this rate
    target_high: float = 0.5                 # Grow scale above this rate
    adapt_factor: float = 1.5
    freeze_adaptation_after: Optional[int] = None

    solver_options: Dict[str, Any] = field(default_factory=dict)

    def validate(self):
        if not _is_positive_int(self.iterations):
            raise ConfigurationError(f"iterations must be a positive integer, got {self.iterations}")
        if not _is_positive_int(self.report_interval):
            raise ConfigurationError(
                f"report_interval must be a positive integer, got {self.report_interval}")
        if str(self.solver_kind).lower() not in SOLVER_KINDS:
            raise ConfigurationError(
                f"Unknown solver kind: {self.solver_kind}. Available: {list(SOLVER_KINDS)}")
        if self.output_times is None:
            raise ConfigurationError("output_times must be given")
        try:
            times = np.asarray(self.output_times, dtype=float)
        except (TypeError, ValueError):
            raise ConfigurationError(f"output_times must be numeric, got {self.output_times!r}")
        if times.ndim != 1 or len(times) == 0 or not np.all(np.isfinite(times)) \
                or np.any(np.diff(times) <= 0):
            raise ConfigurationError("output_times must be a non-empty, strictly increasing sequence")
        if not 0 <= self.target_low < self.target_high <= 1:
            raise ConfigurationError(
                f"Need 0 <= target_low < target_high <= 1, got "
                f"({self.target_low}, {self.target_high})")
        if not self.adapt_factor > 1:
            raise ConfigurationError(f"adapt_factor must exceed 1, got {self.adapt_factor}")
        if self.freeze_adaptation_after is not None and self.freeze_adaptation_after < 0:
            raise ConfigurationError("freeze_adaptation_after must be non-negative")


def _is_positive_int(value) -> bool:
    if isinstance(value, bool):
        return False
    try:
        return int(value) == value and value >= 1
    except (TypeError, ValueError, OverflowError):
        return False


# ═══════════════════════════════════════════════════════════════
# Sampler state
# ═══════════════════════════════════════════════════════════════

@dataclass
class SamplerState:
    """Everything that changes during one run.

    Per-parameter arrays are indexed by position among the estimated
    parameters, not by position in the full vector.
    """
    values: np.ndarray
    current: Evaluation
    scales: List[Any]
    rng: np.random.Generator
    accepts: np.ndarray = None
    trials: np.ndarray = None
    window_accepts: np.ndarray = None
    window_trials: np.ndarray = None
    window_sum: np.ndarray = None
    window_sumsq: np.ndarray = None
    n_invalid: int = 0

    def __post_init__(self):
        n = len(self.scales)
        if self.accepts is None:
            self.accepts = np.zeros(n, dtype=int)
        if self.trials is None:
            self.trials = np.zeros(n, dtype=int)
        self.reset_window()

    def reset_window(self):
        n = len(self.scales)
        self.window_accepts = np.zeros(n, dtype=int)
        self.window_trials = np.zeros(n, dtype=int)
        self.window_sum = np.zeros(n)
        self.window_sumsq = np.zeros(n)

    def window_rates(self) -> np.ndarray:
        return self.window_accepts / np.maximum(self.window_trials, 1)

    def window_moments(self):
        """Mean and std of the values accepted in the current window."""
        n = np.maximum(self.window_accepts, 1)
        mean = self.window_sum / n
        var = np.maximum(self.window_sumsq / n - mean ** 2, 0.0)
        return mean, np.sqrt(var)

    def acceptance_rates(self) -> np.ndarray:
        return self.accepts / np.maximum(self.trials, 1)


# ═══════════════════════════════════════════════════════════════
# Sampler
# ═══════════════════════════════════════════════════════════════

class DEMCMCSampler:
    """Componentwise adaptive Metropolis-Hastings over a ParameterBlock.

    Each instance works on its own copy of the block, so several samplers
    (or several runs of one sampler) never share mutable state.

    Args:
        block: Parameter declarations
        solver: ``solver(inits, times, params) -> DataFrame``
        likelihood: ``likelihood(data, trajectory, params) -> float``
        data: Observed data, handed to the likelihood unchanged
        config: Run configuration
    """

    def __init__(self,
                 block: ParameterBlock,
                 solver: Callable,
                 likelihood: Callable,
                 data: Any,
                 config: SamplerConfig):
        config.validate()
        if not callable(solver):
            raise ConfigurationError("No usable solver: the solver must be callable")
        if not callable(likelihood):
            raise ConfigurationError("The observation model (likelihood) must be callable")
        if not block.free_indices:
            raise ConfigurationError("Every parameter is fixed; nothing to estimate")

        self.block = block.copy()
        self.config = config
        self.evaluator = PosteriorEvaluator(self.block, solver, likelihood, data,
                                            config.output_times)
        self.free_specs: List[ParameterSpec] = [self.block.specs[i]
                                                for i in self.block.free_indices]

    # ── setup ──────────────────────────────────────────────────

    def initial_state(self, seed=None) -> SamplerState:
        """Evaluate the starting values and build a fresh state."""
        rng = np.random.default_rng(self.config.seed if seed is None else seed)
        self.evaluator.n_solves = 0
        self.evaluator.n_failures = 0
        values = self.block.values()
        current = self.evaluator.evaluate(values)

        if not current.finite:
            warnings.warn(
                "Starting values give a non-finite log-posterior; the first "
                "finite proposal for each parameter will be accepted")

        scales = [spec.proposal_scale for spec in self.free_specs]
        return SamplerState(values=values, current=current, scales=scales, rng=rng)

    # ── one update ─────────────────────────────────────────────

    def update_parameter(self, state: SamplerState, j: int) -> bool:
        """Metropolis-Hastings update of the j-th estimated parameter.

        Returns:
            True if the proposal was accepted
        """
        i = self.block.free_indices[j]
        spec = self.free_specs[j]

        proposed, correction = propose(spec.proposal_kind, state.values[i],
                                       state.scales[j], state.rng, spec.distribution)
        candidate = state.values.copy()
        candidate[i] = proposed

        # Observation parameters leave the trajectory unchanged
        reuse = state.current.trajectory if self.block.is_observation(i) else None
        evaluation = self.evaluator.evaluate(candidate, trajectory=reuse)

        log_ratio = log_acceptance_ratio(evaluation.log_posterior,
                                         state.current.log_posterior, correction)
        u = state.rng.uniform()
        accepted = accept(log_ratio, u)

        state.trials[j] += 1
        state.window_trials[j] += 1
        if evaluation.failed:
            state.n_invalid += 1

        if accepted:
            state.values = candidate
            state.current = evaluation
            state.accepts[j] += 1
            state.window_accepts[j] += 1
            state.window_sum[j] += proposed
            state.window_sumsq[j] += proposed ** 2

        if self.config.verbose:
            flag = 'accept' if accepted else ('invalid' if evaluation.failed else 'reject')
            print(f"[DEMCMC]   {spec.name}: {proposed:.6g} "
                  f"log-ratio={log_ratio:.4g} -> {flag}")

        return accepted

    def step(self, state: SamplerState) -> np.ndarray:
        """One sweep over every estimated parameter."""
        flags = np.zeros(len(self.free_specs), dtype=bool)
        for j in range(len(self.free_specs)):
            flags[j] = self.update_parameter(state, j)
        return flags

    # ── adaptation ─────────────────────────────────────────────

    def adaptation_active(self, iteration: int) -> bool:
        cfg = self.config
        if not cfg.adapt:
            return False
        return cfg.freeze_adaptation_after is None or iteration <= cfg.freeze_adaptation_after

    def adapt(self, state: SamplerState):
        """Retune every proposal scale from the current window's acceptance rates."""
        cfg = self.config
        rates = state.window_rates()
        for j, spec in enumerate(self.free_specs):
            state.scales[j] = adapt_scale(spec.proposal_kind, state.scales[j], rates[j],
                                          low=cfg.target_low, high=cfg.target_high,
                                          factor=cfg.adapt_factor)

    def _report(self, state: SamplerState, iteration: int):
        print(f"[DEMCMC] iteration {iteration}/{self.config.iterations}  "
              f"log-posterior {state.current.log_posterior:.4f}  "
              f"invalid {state.n_invalid}")
        rates = state.window_rates()
        mean, sd = state.window_moments()
        for j, spec in enumerate(self.free_specs):
            line = f"  {spec.name:<16} acc={rates[j]:.2f}  scale={_format_scale(state.scales[j])}"
            if self.config.verbose:
                line += f"  window mean={mean[j]:.6g} sd={sd[j]:.3g}"
            print(line)

    def _end_window(self, state: SamplerState, iteration: int):
        if self.adaptation_active(iteration):
            self.adapt(state)
        if self.config.progress:
            self._report(state, iteration)
        state.reset_window()

    # ── run ────────────────────────────────────────────────────

    def run(self, seed=None) -> ChainStore:
        """Run the chain for ``config.iterations`` sweeps.

        Args:
            seed: Overrides ``config.seed`` for this run

        Returns:
            ChainStore with exactly ``iterations`` rows
        """
        cfg = self.config
        state = self.initial_state(seed)
        recorder = ChainRecorder(cfg.iterations, self.block.names, self.block.free_names)

        if cfg.progress:
            print(f"[DEMCMC] Sampling {len(self.free_specs)} parameters "
                  f"{self.block.free_names} for {cfg.iterations} iterations")

        started = time.perf_counter()
        iterations = range(1, cfg.iterations + 1)
        if cfg.progressbar:
            iterations = tqdm(iterations, total=cfg.iterations, desc='DEMCMC')

        for iteration in iterations:
            flags = self.step(state)
            recorder.append(state.values, state.current.log_posterior, flags)
            if iteration % cfg.report_interval == 0:
                self._end_window(state, iteration)

        elapsed = time.perf_counter() - started

        if cfg.progress:
            print(f"[DEMCMC] Sampling complete in {elapsed:.1f}s "
                  f"({state.n_invalid} invalid proposals)")

        return recorder.finalize(self._metadata(state, seed), elapsed_seconds=elapsed)

    def run_chains(self, n_chains: int, seed=None) -> List[ChainStore]:
        """Run independent chains with seeds spawned from ``seed``."""
        base = np.random.SeedSequence(self.config.seed if seed is None else seed)
        return [self.run(seed=child) for child in base.spawn(n_chains)]

    def _metadata(self, state: SamplerState, seed) -> Dict:
        cfg = self.config
        config = asdict(cfg)
        config['output_times'] = np.asarray(cfg.output_times, dtype=float).tolist()
        if seed is not None:
            config['seed'] = seed if isinstance(seed, int) else str(seed)
        return {
            'iterations': cfg.iterations,
            'initial_values': self.block.as_mapping(self.block.values()),
            'final_scales': {s.name: state.scales[j] for j, s in enumerate(self.free_specs)},
            'acceptance_rates': {s.name: float(r) for s, r in
                                 zip(self.free_specs, state.acceptance_rates())},
            'n_invalid': int(state.n_invalid),
            'n_solves': int(self.evaluator.n_solves),
            'adaptation_frozen_after': cfg.freeze_adaptation_after if cfg.adapt else 0,
            'config': config,
        }


def _format_scale(scale) -> str:
    if scale is None:
        return '-'
    if isinstance(scale, tuple):
        return f"({scale[0]:.4g}, {scale[1]:.4g})"
    return f"{scale:.4g}"


# ═══════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════

def de_mcmc(iterations: int,
            data: Any,
            de_model: Optional[Callable],
            obs_model: Callable,
            all_params: Union[ParameterBlock, Sequence[ParameterSpec]],
            state_names: Optional[Sequence[str]] = None,
            output_times: Optional[Sequence[float]] = None,
            solver_kind: str = 'ode',
            solver: Optional[Callable] = None,
            report_interval: int = 100,
            verbose: bool = False,
            **options) -> ChainStore:
    """Estimate the parameters of a differential-equation model by MCMC.

    Args:
        iterations: Number of MCMC sweeps
        data: Observed data, passed to ``obs_model`` unchanged
        de_model: Right-hand side for the bundled scipy solver
            (``model(t, y, params)``, or ``model(t, y, params, history)``
            for delay equations); ignored when ``solver`` is given
        obs_model: ``obs_model(data, trajectory, params) -> log-likelihood``
        all_params: ParameterSpecs (or a ParameterBlock) for every quantity
        state_names: Solver state order; initial conditions must match it
        output_times: Solver output grid; the first entry is the time of
            the initial conditions
        solver_kind: 'ode' or 'dde'
        solver: Custom ``solver(inits, times, params) -> DataFrame``
        report_interval: Iterations between adaptation steps and reports
        verbose: Print every proposal
        **options: Further SamplerConfig fields (seed, progress,
            progressbar, adapt, target_low, target_high, adapt_factor,
            freeze_adaptation_after, solver_options)

    Returns:
        ChainStore with one row per iteration

    Raises:
        ConfigurationError: Before any iteration, if the setup is invalid
    """
    unknown = set(options) - set(SamplerConfig.__dataclass_fields__)
    if unknown:
        raise ConfigurationError(f"Unknown sampler options: {sorted(unknown)}")

    config = SamplerConfig(iterations=iterations, solver_kind=solver_kind,
                           output_times=output_times, report_interval=report_interval,
                           verbose=verbose, **options)
    config.validate()

    if isinstance(all_params, ParameterBlock):
        block = all_params
        if state_names is not None and list(state_names) != block.state_names:
            raise ConfigurationError(
                f"Initial conditions {block.state_names} do not match the solver's "
                f"state vector {list(state_names)} (count and order must agree)")
    else:
        block = ParameterBlock(all_params, state_names=state_names)

    if solver is None:
        if de_model is None:
            raise ConfigurationError("Either a differential-equation model or a solver is required")
        solver = make_solver(de_model, block.state_names, config.solver_kind,
                             **config.solver_options)

    sampler = DEMCMCSampler(block, solver, obs_model, data, config)
    return sampler.run()
