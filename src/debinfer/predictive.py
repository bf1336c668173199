"""
debinfer — Posterior Predictive Simulation
==========================================
Re-solves the model for parameter vectors drawn from a finished chain and
summarises the resulting trajectories over time.

Usage:
    sims = post_sim(chain, solver, block, times=np.linspace(0, 30, 61),
                    n=200, burnin=1000, rng=np.random.default_rng(3))
    envelope = post_sim_summary(sims, probs=(0.025, 0.5, 0.975))

License: MIT
"""

import numpy as np
import pandas as pd
from typing import Callable, Optional, Sequence

from .chain import ChainStore
from .parameters import ParameterBlock
from .posterior import SOLVER_ERRORS


def post_sim(chain: ChainStore,
             solver: Callable,
             block: ParameterBlock,
             times: Sequence[float],
             n: int = 100,
             burnin: int = 0,
             rng: Optional[np.random.Generator] = None) -> pd.DataFrame:
    """Simulate trajectories from posterior draws.

    Args:
        chain: Finished chain
        solver: ``solver(inits, times, params) -> DataFrame``
        block: The declarations the chain was sampled with
        times: Output grid for the simulations
        n: Number of rows to draw (with replacement)
        burnin: Rows to drop before drawing
        rng: Random source for the row draws

    Returns:
        Long table with columns ``sample``, ``time`` and one per state;
        draws whose solve fails are left out
    """
    if list(chain.parameter_names) != block.names:
        raise ValueError("Chain columns do not match the parameter block")

    rng = rng or np.random.default_rng()
    samples = np.asarray(chain.samples)[burnin:]
    if len(samples) == 0:
        raise ValueError(f"No samples left after burnin={burnin}")

    times = np.asarray(times, dtype=float)
    rows = rng.integers(0, len(samples), size=n)
    frames = []
    failed = 0

    for k, row in enumerate(rows):
        values = samples[row]
        try:
            traj = solver(block.initial_conditions(values), times,
                          block.equation_params(values))
        except SOLVER_ERRORS:
            failed += 1
            continue
        traj = traj.reset_index()
        traj.insert(0, 'sample', k)
        frames.append(traj)

    if failed:
        print(f"[DEMCMC] post_sim: {failed}/{n} posterior draws failed to solve")
    if not frames:
        raise RuntimeError("Every posterior draw failed to solve")

    return pd.concat(frames, ignore_index=True)


def post_sim_summary(sims: pd.DataFrame,
                     probs: Sequence[float] = (0.025, 0.5, 0.975)) -> pd.DataFrame:
    """Mean and quantiles of every state at every time.

    Returns:
        Table indexed by time with columns ``(state, statistic)``
    """
    states = [c for c in sims.columns if c not in ('sample', 'time')]
    grouped = sims.groupby('time')[states]

    parts = {'mean': grouped.mean()}
    for p in probs:
        parts[f"q{p:g}"] = grouped.quantile(p)

    summary = pd.concat(parts, axis=1)
    return summary.swaplevel(axis=1).sort_index(axis=1)
