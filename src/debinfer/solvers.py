"""
debinfer — Solver Adapters
==========================
Wraps ``scipy.integrate.solve_ivp`` into the solver contract the sampler
expects:

    solver(inits, times, params) -> pandas.DataFrame

where ``inits`` is the ordered state vector, ``times`` the output grid and
``params`` the named equation parameters. The returned table is indexed by
``time`` and has one column per state.

Model signatures:
    ode:  model(t, y, params) -> dy/dt
    dde:  model(t, y, params, history) -> dy/dt
          history(s) returns the state vector at an earlier time s
          (the initial conditions for s <= t0)

Delay equations are integrated with the method of steps: the time axis is
cut into windows no longer than the smallest delay, so every lagged value
falls inside an already-integrated window and is read from its dense output.

Usage:
    def decay(t, y, p):
        return [-p['r'] * y[0]]

    solver = make_solver(decay, state_names=['N'], solver_kind='ode')
    traj = solver(np.array([1.0]), np.linspace(0, 10, 11), {'r': 0.1})

License: MIT
"""

import numpy as np
import pandas as pd
from scipy.integrate import solve_ivp
from typing import Callable, Mapping, Optional, Sequence, Union

from .errors import ConfigurationError, SolverFailure


SOLVER_KINDS = ('ode', 'dde')

DEFAULT_METHODS = {
    'ode': 'LSODA',
    'dde': 'RK45',
}


def _check_times(times) -> np.ndarray:
    times = np.asarray(times, dtype=float)
    if times.ndim != 1 or len(times) == 0:
        raise ConfigurationError("Output times must be a non-empty 1-D sequence")
    if np.any(np.diff(times) <= 0):
        raise ConfigurationError("Output times must be strictly increasing")
    return times


def _check_result(sol):
    if not sol.success:
        raise SolverFailure(f"Integration failed: {sol.message}")


def integrate_ode(model: Callable, inits: np.ndarray, times: np.ndarray,
                  params: Mapping, method: str = 'LSODA', **options) -> np.ndarray:
    """Integrate an ODE and return states at ``times`` as a [T, S] array."""
    if len(times) == 1:
        return np.atleast_2d(np.asarray(inits, dtype=float))

    sol = solve_ivp(lambda t, y: model(t, y, params),
                    (times[0], times[-1]), inits,
                    t_eval=times, method=method, **options)
    _check_result(sol)
    return sol.y.T


def integrate_dde(model: Callable, inits: np.ndarray, times: np.ndarray,
                  params: Mapping, min_lag: float, method: str = 'RK45',
                  **options) -> np.ndarray:
    """Integrate a constant-delay DDE by the method of steps.

    Args:
        model: ``model(t, y, params, history)``
        inits: State at t0, also used as the history before t0
        times: Output grid
        params: Equation parameters
        min_lag: Smallest delay appearing in the model (window length)
        method: solve_ivp method

    Returns:
        [T, S] array of states at ``times``
    """
    t0, t_end = times[0], times[-1]
    inits = np.asarray(inits, dtype=float)
    windows = []  # (start, stop, OdeSolution)

    def history(s):
        if s <= t0 or not windows:
            return inits.copy()
        for start, stop, dense in reversed(windows):
            if s >= start:
                return dense(min(s, stop))
        return inits.copy()

    start, y = t0, inits
    while start < t_end:
        stop = min(start + min_lag, t_end)
        sol = solve_ivp(lambda t, yy: model(t, yy, params, history),
                        (start, stop), y, method=method,
                        dense_output=True, **options)
        _check_result(sol)
        windows.append((start, stop, sol.sol))
        y = sol.y[:, -1]
        start = stop

    return np.array([history(t) for t in times])


def make_solver(model: Callable,
                state_names: Sequence[str],
                solver_kind: str = 'ode',
                **options) -> Callable:
    """Build a solver callable for the sampler.

    Args:
        model: Right-hand side, see module docstring for signatures
        state_names: Names of the state variables, in state-vector order
        solver_kind: 'ode' or 'dde'
        **options: Passed to ``solve_ivp`` (method, rtol, atol, ...);
            'dde' additionally requires ``min_lag``

    Returns:
        solver(inits, times, params) -> DataFrame

    Raises:
        ConfigurationError: Unknown solver kind, non-callable model,
            or missing ``min_lag`` for delay equations
    """
    if not callable(model):
        raise ConfigurationError("The differential-equation model must be callable")

    kind = str(solver_kind).lower()
    if kind not in SOLVER_KINDS:
        raise ConfigurationError(
            f"Unknown solver kind: {solver_kind}. Available: {list(SOLVER_KINDS)}")

    state_names = list(state_names)
    options = dict(options)
    method = options.pop('method', DEFAULT_METHODS[kind])

    if kind == 'dde':
        min_lag = options.pop('min_lag', None)
        if min_lag is None or not float(min_lag) > 0:
            raise ConfigurationError("Delay equations need a positive 'min_lag' solver option")
        min_lag = float(min_lag)

    def solver(inits, times, params) -> pd.DataFrame:
        inits = np.asarray(inits, dtype=float)
        if len(inits) != len(state_names):
            raise ConfigurationError(
                f"Solver expects {len(state_names)} initial conditions "
                f"{state_names}, got {len(inits)}")
        times = np.asarray(times, dtype=float)

        if kind == 'ode':
            states = integrate_ode(model, inits, times, params, method=method, **options)
        else:
            states = integrate_dde(model, inits, times, params, min_lag,
                                   method=method, **options)

        if not np.all(np.isfinite(states)):
            raise SolverFailure("Integration produced non-finite states")

        return pd.DataFrame(states, index=pd.Index(times, name='time'),
                            columns=state_names)

    solver.solver_kind = kind
    solver.state_names = state_names
    return solver


def solve_de(model: Callable,
             params: Mapping[str, float],
             inits: Union[Mapping[str, float], Sequence[float]],
             times,
             state_names: Optional[Sequence[str]] = None,
             solver_kind: str = 'ode',
             **options) -> pd.DataFrame:
    """Solve a model once, e.g. to simulate data or check a parameter set.

    ``inits`` may be a mapping from state name to value, in which case its
    order defines the state vector unless ``state_names`` is given.
    """
    if isinstance(inits, Mapping):
        if state_names is None:
            state_names = list(inits)
        missing = [n for n in state_names if n not in inits]
        if missing:
            raise ConfigurationError(f"Missing initial conditions for {missing}")
        y0 = np.array([inits[n] for n in state_names], dtype=float)
    else:
        y0 = np.asarray(inits, dtype=float)
        if state_names is None:
            state_names = [f"y{i}" for i in range(len(y0))]

    solver = make_solver(model, state_names, solver_kind, **options)
    return solver(y0, _check_times(times), dict(params))
