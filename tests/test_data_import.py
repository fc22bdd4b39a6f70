"""
Tests for data import module
"""

import pytest
import numpy as np
import pandas as pd

from rnaseq_toolkit.data_import import (
    load_expression_experiment,
    load_experiment_from_tables,
    get_assay,
    get_sample_metadata,
    get_gene_annotations,
    subset_genes,
)


class TestLoadExpressionExperiment:
    """Test loading serialized experiments"""

    def test_round_trip_h5ad(self, experiment_file, count_matrix, sample_metadata):
        adata = load_expression_experiment(experiment_file, verbose=False)

        assert adata.n_obs == 8
        assert adata.n_vars == len(count_matrix)
        assert "counts" in adata.layers
        assert "tpm" in adata.layers
        pd.testing.assert_frame_equal(
            get_assay(adata, "counts").astype(np.int64), count_matrix, check_names=False
        )
        assert list(adata.obs["MFGroup"].astype(str)) == list(sample_metadata["MFGroup"])

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Experiment file not found"):
            load_expression_experiment(str(tmp_path / "absent.h5ad"))

    def test_wrong_extension(self, tmp_path):
        path = tmp_path / "experiment.rds"
        path.write_text("not an h5ad file")

        with pytest.raises(ValueError, match="Unsupported experiment file format"):
            load_expression_experiment(str(path))

    def test_gene_id_column_added(self, experiment_file):
        adata = load_expression_experiment(experiment_file, verbose=False)
        assert list(adata.var["ensg"]) == list(adata.var_names)


class TestLoadFromTables:
    """Test building an experiment from CSV tables"""

    def test_tables(self, tmp_path, count_matrix, tpm_matrix, sample_metadata, gene_annotations):
        counts_file = tmp_path / "counts.csv"
        coldata_file = tmp_path / "coldata.csv"
        rowdata_file = tmp_path / "rowdata.csv"
        tpm_file = tmp_path / "tpm.csv"

        count_matrix.to_csv(counts_file)
        # Sample table in a different order than the count columns
        sample_metadata.iloc[::-1].to_csv(coldata_file)
        gene_annotations[["symbol"]].to_csv(rowdata_file)
        tpm_matrix.to_csv(tpm_file)

        adata = load_experiment_from_tables(
            str(counts_file), str(coldata_file), str(rowdata_file), tpm_file=str(tpm_file), verbose=False
        )

        assert list(adata.obs_names) == list(count_matrix.columns)
        assert list(adata.obs["MFGroup"]) == list(sample_metadata["MFGroup"])
        assert list(adata.var["ensg"]) == list(count_matrix.index)
        np.testing.assert_allclose(get_assay(adata, "tpm").to_numpy(), tpm_matrix.to_numpy())

    def test_missing_counts_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Counts file not found"):
            load_experiment_from_tables(
                str(tmp_path / "c.csv"), str(tmp_path / "s.csv"), str(tmp_path / "g.csv")
            )


class TestAssayAccess:
    """Test slicing the experiment into tables"""

    def test_assay_orientation(self, expression_experiment, count_matrix):
        counts = get_assay(expression_experiment, "counts")

        assert counts.shape == count_matrix.shape
        assert list(counts.index) == list(count_matrix.index)
        assert list(counts.columns) == list(count_matrix.columns)

    def test_counts_fall_back_to_x(self, expression_experiment, count_matrix):
        del expression_experiment.layers["counts"]
        counts = get_assay(expression_experiment, "counts")
        np.testing.assert_array_equal(counts.to_numpy(), count_matrix.to_numpy())

    def test_unknown_layer(self, expression_experiment):
        with pytest.raises(KeyError, match="Layer 'fpkm' not found"):
            get_assay(expression_experiment, "fpkm")

    def test_annotations_without_symbol(self, expression_experiment):
        expression_experiment.var = expression_experiment.var.drop(columns=["symbol"])
        annotations = get_gene_annotations(expression_experiment)

        assert list(annotations["symbol"]) == list(annotations["ensg"])

    def test_sample_metadata_copy(self, expression_experiment):
        metadata = get_sample_metadata(expression_experiment)
        metadata["MFGroup"] = "changed"
        assert "changed" not in set(expression_experiment.obs["MFGroup"])

    def test_subset_genes(self, expression_experiment):
        mask = np.zeros(expression_experiment.n_vars, dtype=bool)
        mask[:5] = True

        subset = subset_genes(expression_experiment, mask)

        assert subset.n_vars == 5
        assert "counts" in subset.layers

    def test_subset_genes_length_mismatch(self, expression_experiment):
        with pytest.raises(ValueError, match="Gene mask has 3 entries"):
            subset_genes(expression_experiment, [True, False, True])
