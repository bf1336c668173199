"""
Unit tests for chain storage
"""

import numpy as np
import pytest

from debinfer.chain import ARVIZ_AVAILABLE, ChainRecorder, ChainStore


@pytest.fixture
def chain():
    recorder = ChainRecorder(4, ['r', 'K', 'N'], ['r', 'K'])
    rows = [
        ([0.10, 10.0, 1.0], -5.0, [True, False]),
        ([0.12, 10.0, 1.0], -4.0, [True, False]),
        ([0.12, 11.0, 1.0], -3.5, [False, True]),
        ([0.11, 11.0, 1.0], -3.7, [True, False]),
    ]
    for values, lp, flags in rows:
        recorder.append(np.array(values), lp, np.array(flags))
    return recorder.finalize({'n_invalid': 0})


class TestChainStore:

    def test_read_only(self, chain):
        with pytest.raises(ValueError):
            chain.samples[0, 0] = 1.0
        with pytest.raises(ValueError):
            chain.log_posterior[0] = 0.0

    def test_dataframe_layout(self, chain):
        df = chain.to_dataframe()
        assert list(df.columns) == ['r', 'K', 'N', 'log_posterior']
        assert df.index.name == 'iteration'
        assert df.index.tolist() == [1, 2, 3, 4]
        assert df.loc[3, 'K'] == 11.0

    def test_acceptance_rates(self, chain):
        assert chain.acceptance_rates() == {'r': 0.75, 'K': 0.25}

    def test_discard(self, chain):
        tail = chain.discard(2)
        assert len(tail) == 2
        assert tail.column('r').tolist() == [0.12, 0.11]
        assert tail.metadata['burnin'] == 2
        with pytest.raises(ValueError):
            chain.discard(4)

    def test_summarize(self, chain):
        summary = chain.summarize(burnin=1)
        assert set(summary) == {'r', 'K'}
        assert summary['r']['mean'] == pytest.approx(np.mean([0.12, 0.12, 0.11]))
        for stats in summary.values():
            assert stats['ci_lower'] <= stats['median'] <= stats['ci_upper']

    def test_save_and_load(self, chain, tmp_path):
        chain.save(tmp_path / 'run1')
        loaded = ChainStore.load(tmp_path / 'run1')
        np.testing.assert_array_equal(loaded.samples, chain.samples)
        np.testing.assert_array_equal(loaded.accepted, chain.accepted)
        assert loaded.parameter_names == chain.parameter_names
        assert loaded.metadata == chain.metadata

    def test_metadata_read_only(self, chain):
        with pytest.raises(TypeError):
            chain.metadata['n_invalid'] = 999
        assert chain.metadata['n_invalid'] == 0

    def test_nested_metadata_read_only(self):
        recorder = ChainRecorder(1, ['r'], ['r'])
        recorder.append(np.array([0.1]), -1.0, np.array([True]))
        source = {'final_scales': {'r': (3.0, 4.0)}}
        store = recorder.finalize(source)

        with pytest.raises(TypeError):
            store.metadata['final_scales']['r'] = (1.0, 2.0)
        source['final_scales']['r'] = (1.0, 2.0)
        assert store.metadata['final_scales']['r'] == (3.0, 4.0)

    def test_save_and_load_keeps_metadata_types(self, tmp_path):
        recorder = ChainRecorder(2, ['r', 'N'], ['r'])
        recorder.append(np.array([0.1, 1.0]), -1.0, np.array([True]))
        recorder.append(np.array([0.2, 1.0]), -2.0, np.array([False]))
        store = recorder.finalize({
            'final_scales': {'r': (3.0, 4.0)},
            'config': {'seed': 5, 'output_times': [0.0, 1.0], 'solver_options': {}},
            'n_invalid': np.int64(1),
        }, elapsed_seconds=1.5)

        store.save(tmp_path / 'typed')
        loaded = ChainStore.load(tmp_path / 'typed')
        assert loaded.metadata == store.metadata
        assert loaded.metadata['final_scales']['r'] == (3.0, 4.0)
        assert loaded.metadata['config']['seed'] == 5
        assert loaded.elapsed_seconds is None
        assert not loaded.samples.flags.writeable

    @pytest.mark.skipif(not ARVIZ_AVAILABLE, reason="arviz not installed")
    def test_to_arviz(self, chain):
        idata = chain.to_arviz()
        assert set(idata.posterior.data_vars) == {'r', 'K'}
        assert idata.posterior['r'].shape == (1, 4)
