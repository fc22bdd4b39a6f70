"""
Tests for normalization functions
"""

import pytest
import numpy as np
import pandas as pd

from rnaseq_toolkit.normalization import (
    log2_tpm,
    vst_from_counts,
    select_highly_variable_genes,
)


class TestLog2Tpm:
    def test_values(self):
        tpm = pd.DataFrame({"S1": [0.0, 1.0, 3.0], "S2": [7.0, 15.0, 0.0]})

        logged = log2_tpm(tpm)

        assert logged["S1"].tolist() == [0.0, 1.0, 2.0]
        assert logged["S2"].tolist() == [3.0, 4.0, 0.0]

    def test_negative_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            log2_tpm(pd.DataFrame({"S1": [1.0, -0.5]}))


class TestVarianceStabilize:
    def test_vst_from_counts(self, count_matrix, sample_metadata):
        expressed = count_matrix.iloc[:150]

        vst = vst_from_counts(expressed, sample_metadata, design="~MFGroup")

        assert vst.shape == expressed.shape
        assert list(vst.index) == list(expressed.index)
        assert list(vst.columns) == list(expressed.columns)
        assert np.isfinite(vst.to_numpy()).all()
        # log2-like scale: base means of 200-2000 land well above zero
        assert vst.iloc[20:].mean(axis=1).between(5, 14).all()


class TestHighlyVariableGenes:
    def test_selects_most_variable(self):
        matrix = pd.DataFrame(
            [[1, 1, 1, 1], [0, 10, 0, 10], [5, 6, 5, 6], [0, 4, 0, 4]],
            index=["flat", "wide", "narrow", "medium"],
            columns=list("ABCD"),
            dtype=float,
        )

        hvg = select_highly_variable_genes(matrix, n_top=2)

        assert list(hvg.index) == ["wide", "medium"]

    def test_keeps_all_when_fewer_genes(self):
        matrix = pd.DataFrame(np.arange(12, dtype=float).reshape(3, 4))
        assert len(select_highly_variable_genes(matrix, n_top=500)) == 3

    def test_invalid_n_top(self):
        with pytest.raises(ValueError, match="n_top must be positive"):
            select_highly_variable_genes(pd.DataFrame([[1.0, 2.0]]), n_top=0)
