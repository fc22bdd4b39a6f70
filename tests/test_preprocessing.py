"""
Tests for the expression filter, reference levels and group colours
"""

import warnings

import pytest
import numpy as np
import pandas as pd

from rnaseq_toolkit.preprocessing import (
    median_log2_counts,
    fit_expression_mixture,
    filter_expressed_genes,
    round_counts,
    set_reference_level,
    calculate_group_colors,
    REFERENCE_GROUP_COLOR,
)
from rnaseq_toolkit.validation import ReferenceLevelError

CONTROL = "control_vehicle_DA_neuron"
STRESS = "CSS_vehicle_DA_neuron"


class TestExpressionFilter:
    """Test the Gaussian-mixture expression filter"""

    def test_median_log2_counts(self):
        counts = pd.DataFrame({"S1": [0, 3, 7], "S2": [0, 1, 7], "S3": [1, 3, 15]}, index=["a", "b", "c"])

        medians = median_log2_counts(counts)

        assert medians.tolist() == [0.0, 2.0, 3.0]

    def test_mixture_separates_two_populations(self):
        rng = np.random.default_rng(0)
        values = pd.Series(np.concatenate([rng.normal(0.5, 0.3, 100), rng.normal(9, 1, 300)]))

        result = fit_expression_mixture(values)

        assert result.n_expressed == 300
        assert result.n_not_expressed == 100
        assert result.means[0] < result.means[1]
        assert 2 < result.threshold < 8
        assert np.isclose(result.weights.sum(), 1.0)

    def test_labels_ordered_by_mean(self):
        rng = np.random.default_rng(1)
        values = pd.Series(np.concatenate([rng.normal(10, 0.5, 50), rng.normal(1, 0.5, 50)]))

        result = fit_expression_mixture(values)

        # Expressed genes are the first 50 whatever order EM found the components in
        assert result.expressed[:50].all()
        assert not result.expressed[50:].any()
        assert (result.labels[:50] == 1).all()

    def test_nan_values_rejected(self):
        with pytest.raises(ValueError, match="NaN"):
            fit_expression_mixture(pd.Series([1.0, np.nan, 5.0]))

    def test_too_few_distinct_values(self):
        with pytest.raises(ValueError, match="distinct values"):
            fit_expression_mixture(pd.Series([2.0, 2.0, 2.0]))

    def test_filter_experiment(self, expression_experiment):
        filtered, result = filter_expressed_genes(expression_experiment, verbose=False)

        assert filtered.n_vars == 150
        assert result.n_expressed == 150
        assert list(filtered.var_names) == list(expression_experiment.var_names[:150])
        assert "tpm" in filtered.layers
        # Source experiment is not modified
        assert expression_experiment.n_vars == 200

    def test_filter_is_reproducible(self, expression_experiment):
        _, first = filter_expressed_genes(expression_experiment, random_state=42, verbose=False)
        _, second = filter_expressed_genes(expression_experiment, random_state=42, verbose=False)

        np.testing.assert_array_equal(first.expressed, second.expressed)
        assert first.threshold == second.threshold

    def test_filter_verbose(self, expression_experiment, capsys):
        filter_expressed_genes(expression_experiment, verbose=True)

        out = capsys.readouterr().out
        assert "EXPRESSION FILTER" in out
        assert "Kept 150 of 200 genes" in out


class TestRoundCounts:
    def test_integers_unchanged(self):
        counts = pd.DataFrame({"S1": [1.0, 2.0], "S2": [3.0, 4.0]})

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            rounded = round_counts(counts)

        assert rounded.dtypes.tolist() == [np.int64, np.int64]

    def test_fractional_counts_warn(self):
        counts = pd.DataFrame({"S1": [1.4, 2.6]})

        with pytest.warns(UserWarning, match="rounded"):
            rounded = round_counts(counts)

        assert rounded["S1"].tolist() == [1, 3]


class TestReferenceLevel:
    def test_reference_first(self, expression_experiment):
        set_reference_level(expression_experiment, "MFGroup", CONTROL)

        groups = expression_experiment.obs["MFGroup"]
        assert isinstance(groups.dtype, pd.CategoricalDtype)
        assert list(groups.cat.categories) == [CONTROL, STRESS]

    def test_reference_can_sort_last(self, expression_experiment):
        # 'CSS_...' sorts before 'control_...' but the reference still comes first
        set_reference_level(expression_experiment, "MFGroup", STRESS)
        assert expression_experiment.obs["MFGroup"].cat.categories[0] == STRESS

    def test_unknown_reference(self, expression_experiment):
        with pytest.raises(ReferenceLevelError, match="not found in 'MFGroup'"):
            set_reference_level(expression_experiment, "MFGroup", "naive_DA_neuron")


class TestGroupColors:
    def test_reference_is_grey(self):
        colors = calculate_group_colors([CONTROL, STRESS, STRESS], reference_level=CONTROL)

        assert colors[CONTROL] == REFERENCE_GROUP_COLOR
        assert colors[STRESS].startswith("#")
        assert len(colors[STRESS]) == 7

    def test_without_reference(self):
        colors = calculate_group_colors(["B", "A", None])

        assert set(colors) == {"A", "B", "Unknown"}
        assert len(set(colors.values())) == 3
