"""
Unit tests for posterior predictive simulation
"""

import numpy as np
import pytest

from debinfer.chain import ChainRecorder
from debinfer.errors import SolverFailure
from debinfer.parameters import ParameterBlock, setup_parameter
from debinfer.predictive import post_sim, post_sim_summary

from .conftest import analytic_decay_solver


@pytest.fixture
def block(decay_params):
    return ParameterBlock(decay_params, state_names=['N'])


@pytest.fixture
def chain():
    recorder = ChainRecorder(5, ['r', 'sigma', 'N'], ['r'])
    for r in (0.08, 0.09, 0.10, 0.11, 0.12):
        recorder.append(np.array([r, 0.05, 1.0]), -1.0, np.array([True]))
    return recorder.finalize({})


class TestPostSim:

    def test_long_layout(self, chain, block, rng):
        times = np.linspace(0, 10, 6)
        sims = post_sim(chain, analytic_decay_solver, block, times, n=20, rng=rng)
        assert list(sims.columns) == ['sample', 'time', 'N']
        assert len(sims) == 20 * len(times)
        assert sims['sample'].nunique() == 20
        np.testing.assert_allclose(sims.loc[sims['time'] == 0, 'N'], 1.0)

    def test_burnin_limits_draws(self, chain, block, rng):
        sims = post_sim(chain, analytic_decay_solver, block, [0.0, 10.0], n=30,
                        burnin=4, rng=rng)
        end = sims.loc[sims['time'] == 10.0, 'N']
        np.testing.assert_allclose(end, np.exp(-1.2))

        with pytest.raises(ValueError, match="burnin"):
            post_sim(chain, analytic_decay_solver, block, [0.0, 1.0], burnin=5)

    def test_failed_draws_are_skipped(self, chain, block, rng, capsys):
        def solver(inits, times, params):
            if params['r'] > 0.1:
                raise SolverFailure("unstable")
            return analytic_decay_solver(inits, times, params)

        sims = post_sim(chain, solver, block, [0.0, 5.0], n=50, rng=rng)
        assert 0 < sims['sample'].nunique() < 50
        assert len(sims) == 2 * sims['sample'].nunique()
        assert "failed to solve" in capsys.readouterr().out

    def test_every_draw_failing(self, chain, block, rng):
        def solver(inits, times, params):
            raise SolverFailure("unstable")

        with pytest.raises(RuntimeError):
            post_sim(chain, solver, block, [0.0, 1.0], n=5, rng=rng)

    def test_column_mismatch(self, chain, rng):
        other = ParameterBlock([setup_parameter('k', 0.1, fixed=True),
                                setup_parameter('N', 1.0, var_type='init', fixed=True)])
        with pytest.raises(ValueError, match="do not match"):
            post_sim(chain, analytic_decay_solver, other, [0.0, 1.0], rng=rng)


class TestSummary:

    def test_columns_and_ordering(self, chain, block, rng):
        times = np.linspace(0, 10, 11)
        sims = post_sim(chain, analytic_decay_solver, block, times, n=40, rng=rng)
        summary = post_sim_summary(sims, probs=(0.05, 0.5, 0.95))

        assert list(summary.index) == list(times)
        assert set(summary.columns.get_level_values(0)) == {'N'}
        assert set(summary['N'].columns) == {'mean', 'q0.05', 'q0.5', 'q0.95'}
        row = summary.loc[10.0, 'N']
        assert row['q0.05'] <= row['q0.5'] <= row['q0.95']
