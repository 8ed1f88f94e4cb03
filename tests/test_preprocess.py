"""
Test input validation, coercion and thresholding.
"""

import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from scswitch.exceptions import InputShapeError, ScswitchError
from scswitch.preprocess import prepare_inputs, apply_threshold


@pytest.fixture
def matrix():
    rng = np.random.default_rng(0)
    return rng.uniform(0, 5, size=(4, 20))


@pytest.fixture
def pst():
    return np.linspace(0, 1, 20)


class TestPrepareInputs:
    """Test accepted input sources."""

    def test_ndarray(self, matrix, pst):
        prepared = prepare_inputs(matrix, pst)
        assert prepared.n_genes == 4
        assert prepared.n_cells == 20
        assert list(prepared.gene_names) == ["gene_1", "gene_2", "gene_3", "gene_4"]
        assert np.array_equal(prepared.expression, matrix)

    def test_single_gene_vector(self, matrix, pst):
        prepared = prepare_inputs(matrix[0], pst, gene_names=["Sox2"])
        assert prepared.expression.shape == (1, 20)
        assert prepared.gene_names[0] == "Sox2"

    def test_dataframe_index_names(self, matrix, pst):
        df = pd.DataFrame(matrix, index=["a", "b", "c", "d"])
        prepared = prepare_inputs(df, pst)
        assert list(prepared.gene_names) == ["a", "b", "c", "d"]

    def test_sparse(self, matrix, pst):
        prepared = prepare_inputs(sparse.csr_matrix(matrix), pst)
        assert isinstance(prepared.expression, np.ndarray)
        assert np.allclose(prepared.expression, matrix)

    def test_anndata(self, matrix, pst):
        anndata = pytest.importorskip("anndata")
        adata = anndata.AnnData(
            X=matrix.T.copy(),
            obs=pd.DataFrame({"dpt": pst}, index=[f"c{i}" for i in range(20)]),
            var=pd.DataFrame(index=["g1", "g2", "g3", "g4"])
        )
        prepared = prepare_inputs(adata, "dpt")
        assert prepared.expression.shape == (4, 20)
        assert list(prepared.gene_names) == ["g1", "g2", "g3", "g4"]
        assert np.allclose(prepared.pseudotime, pst)

        with pytest.raises(KeyError):
            prepare_inputs(adata, "missing")


class TestInputErrors:
    """Test fatal input errors raised before fitting."""

    def test_length_mismatch(self, matrix):
        with pytest.raises(InputShapeError, match="pseudotime length"):
            prepare_inputs(matrix, np.linspace(0, 1, 19))

    def test_error_hierarchy(self, matrix):
        with pytest.raises(ValueError):
            prepare_inputs(matrix, np.linspace(0, 1, 19))
        with pytest.raises(ScswitchError):
            prepare_inputs(matrix, np.linspace(0, 1, 19))

    def test_transposed_matrix(self, matrix, pst):
        """A cells x genes matrix is reported as a length mismatch."""
        with pytest.raises(InputShapeError):
            prepare_inputs(matrix.T, pst)

    def test_three_dimensional(self, pst):
        with pytest.raises(InputShapeError, match="2-D"):
            prepare_inputs(np.zeros((2, 2, 20)), pst)

    def test_pseudotime_not_vector(self, matrix):
        with pytest.raises(InputShapeError, match="1-D"):
            prepare_inputs(matrix, np.zeros((20, 1)))

    def test_too_few_cells(self):
        with pytest.raises(InputShapeError, match="cells"):
            prepare_inputs(np.ones((2, 3)), np.array([0.0, 0.5, 1.0]))

    def test_non_finite_pseudotime(self, matrix, pst):
        bad = pst.copy()
        bad[3] = np.nan
        with pytest.raises(InputShapeError, match="non-finite"):
            prepare_inputs(matrix, bad)

    def test_non_finite_expression(self, matrix, pst):
        bad = matrix.copy()
        bad[1, 2] = np.inf
        with pytest.raises(InputShapeError, match="non-finite"):
            prepare_inputs(bad, pst)

    def test_constant_pseudotime(self, matrix):
        with pytest.raises(InputShapeError, match="constant"):
            prepare_inputs(matrix, np.full(20, 0.3))

    def test_gene_names_length(self, matrix, pst):
        with pytest.raises(InputShapeError, match="gene_names"):
            prepare_inputs(matrix, pst, gene_names=["a", "b"])

    def test_obs_key_without_anndata(self, matrix):
        with pytest.raises(ValueError, match="obs key"):
            prepare_inputs(matrix, "dpt")


class TestThreshold:
    """Test the low-value threshold."""

    def test_zeroes_small_values(self):
        x = np.array([0.005, 0.01, 0.5, -0.2, 3.0])
        out = apply_threshold(x, 0.01)
        assert np.array_equal(out, [0.0, 0.01, 0.5, 0.0, 3.0])

    def test_returns_copy(self):
        x = np.array([0.001, 1.0])
        apply_threshold(x, 0.01)
        assert x[0] == 0.001

    def test_disabled(self):
        x = np.array([0.001, -1.0, 1.0])
        assert np.array_equal(apply_threshold(x, None), x)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
