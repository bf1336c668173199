"""
Pytest configuration and shared fixtures.

Provides a seeded random source, the linear decay model dN/dt = -rN with
both an analytic and a scipy-backed solver, and simulated observations.
"""
import os
import sys

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), 'src'))

from debinfer import make_solver, setup_parameter  # noqa: E402


R_TRUE = 0.1
SIGMA_OBS = 0.05
TIMES = np.arange(0.0, 21.0, 1.0)


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: end-to-end sampling runs")


@pytest.fixture
def rng():
    """Fresh, seeded generator for each test."""
    return np.random.default_rng(42)


def decay(t, y, p):
    return [-p['r'] * y[0]]


def analytic_decay_solver(inits, times, params):
    times = np.asarray(times, dtype=float)
    return pd.DataFrame({'N': inits[0] * np.exp(-params['r'] * times)},
                        index=pd.Index(times, name='time'))


def gaussian_loglik(data, trajectory, params):
    predicted = np.interp(data['time'], trajectory.index, trajectory['N'])
    resid = data['N_obs'].to_numpy() - predicted
    sigma = params['sigma']
    return float(-0.5 * np.sum((resid / sigma) ** 2)
                 - len(resid) * np.log(sigma * np.sqrt(2 * np.pi)))


@pytest.fixture
def times():
    return TIMES.copy()


@pytest.fixture
def decay_data():
    """Noisy observations of exp(-0.1 t) at t = 1..20."""
    noise = np.random.default_rng(2024).normal(0.0, SIGMA_OBS, len(TIMES) - 1)
    return pd.DataFrame({
        'time': TIMES[1:],
        'N_obs': np.exp(-R_TRUE * TIMES[1:]) + noise,
    })


@pytest.fixture
def decay_params():
    """r estimated, N(0) and the noise level fixed."""
    return [
        setup_parameter('r', 0.1, var_type='de', prior='normal',
                        hypers={'mean': 0.1, 'sd': 0.01},
                        samp_type='rw', prop_var=0.001),
        setup_parameter('sigma', SIGMA_OBS, var_type='obs', fixed=True),
        setup_parameter('N', 1.0, var_type='init', fixed=True),
    ]


@pytest.fixture
def ode_solver():
    return make_solver(decay, ['N'], 'ode', rtol=1e-8, atol=1e-10)


@pytest.fixture
def analytic_solver():
    return analytic_decay_solver


@pytest.fixture
def loglik():
    return gaussian_loglik
