"""
Pytest configuration and fixtures for rnaseq_toolkit tests
"""

import pytest
import pandas as pd
import numpy as np
import anndata as ad
import matplotlib

matplotlib.use("Agg")

from rnaseq_toolkit.statistical_analysis import DifferentialExpressionConfig


CONTROL = "control_vehicle_DA_neuron"
STRESS = "CSS_vehicle_DA_neuron"

N_EXPRESSED = 150
N_LOW = 50
N_UP = 10
N_DOWN = 10


def pytest_addoption(parser):
    parser.addoption(
        "--run-network", action="store_true", default=False, help="run tests that query Enrichr"
    )


def pytest_collection_modifyitems(config, items):
    """Skip network tests unless --run-network is passed"""
    if config.getoption("--run-network"):
        return

    skip_network = pytest.mark.skip(reason="need --run-network option to run")
    for item in items:
        if "network" in item.keywords:
            item.add_marker(skip_network)


@pytest.fixture
def gene_ids():
    """Mouse Ensembl ids; the first expressed gene carries the label override id"""
    ids = [f"ENSMUSG{i:011d}" for i in range(1, N_EXPRESSED + N_LOW + 1)]
    ids[0] = "ENSMUSG00000110038"
    return ids


@pytest.fixture
def sample_names():
    return [f"VTA_{i:02d}" for i in range(1, 9)]


@pytest.fixture
def sample_metadata(sample_names):
    """4 control and 4 chronic-stress samples"""
    return pd.DataFrame(
        {
            "MFGroup": [CONTROL] * 4 + [STRESS] * 4,
            "mouse": [f"M{i}" for i in range(1, 9)],
            "RIN": [8.1, 8.4, 7.9, 8.8, 8.2, 7.7, 8.5, 8.0],
        },
        index=pd.Index(sample_names, name="sample"),
    )


@pytest.fixture
def count_matrix(gene_ids, sample_names):
    """Genes x samples counts.

    Rows 0-9 are up in the stress group, rows 10-19 down, rows 20-149 are
    expressed without change and the last 50 rows are near zero.
    """
    rng = np.random.default_rng(42)

    base_mean = rng.uniform(200, 2000, N_EXPRESSED)
    fold = np.ones((N_EXPRESSED, 8))
    fold[:N_UP, 4:] = 8.0
    fold[N_UP:N_UP + N_DOWN, 4:] = 1 / 8.0
    mu = base_mean[:, None] * fold

    size = 50.0
    expressed = rng.negative_binomial(size, size / (size + mu))
    low = rng.poisson(0.3, (N_LOW, 8))

    return pd.DataFrame(
        np.vstack([expressed, low]).astype(np.int64),
        index=gene_ids,
        columns=sample_names,
    )


@pytest.fixture
def gene_annotations(gene_ids):
    symbols = [f"Gene{i}" for i in range(len(gene_ids))]
    symbols[0] = "Gm45570"
    return pd.DataFrame({"ensg": gene_ids, "symbol": symbols}, index=pd.Index(gene_ids))


@pytest.fixture
def tpm_matrix(count_matrix):
    rng = np.random.default_rng(7)
    lengths_kb = rng.uniform(0.5, 5.0, len(count_matrix))
    rate = count_matrix.div(lengths_kb, axis=0)
    return rate / rate.sum(axis=0) * 1e6


@pytest.fixture
def expression_experiment(count_matrix, tpm_matrix, sample_metadata, gene_annotations):
    """AnnData experiment laid out like the serialized VTA dataset"""
    adata = ad.AnnData(
        X=count_matrix.T.to_numpy(dtype=np.float64),
        obs=sample_metadata.copy(),
        var=gene_annotations.copy(),
    )
    adata.layers["counts"] = count_matrix.T.to_numpy().copy()
    adata.layers["tpm"] = tpm_matrix.T.to_numpy().copy()
    return adata


@pytest.fixture
def experiment_file(expression_experiment, tmp_path):
    path = tmp_path / "experiment.h5ad"
    expression_experiment.write_h5ad(path)
    return str(path)


@pytest.fixture
def de_config():
    config = DifferentialExpressionConfig()
    config.group_column = "MFGroup"
    config.reference_level = CONTROL
    config.contrasts = [(STRESS, CONTROL)]
    return config


@pytest.fixture
def annotated_results():
    """Result table in the annotated layout, before classification"""
    return pd.DataFrame(
        {
            "ensg": ["ENSMUSG00000000001", "ENSMUSG00000000002", "ENSMUSG00000000003",
                     "ENSMUSG00000000004", "ENSMUSG00000110038", "ENSMUSG00000000006"],
            "symbol": ["Th", "Slc6a3", "Ddc", np.nan, "Gm45570-ps", "Drd2"],
            "avgExpr": [1500.0, 900.0, 400.0, 50.0, 120.0, 300.0],
            "logFC": [1.2, -0.9, 0.3, 2.0, 0.8, -0.6],
            "pvalue": [1e-5, 2e-4, 1e-6, 5e-4, 1e-4, 0.01],
            "padj": [0.001, 0.01, 0.0001, 0.02, 0.008, np.nan],
        }
    )


@pytest.fixture
def enrichment_table():
    """Parsed enrichment results"""
    return pd.DataFrame({
        "Library": ["GO_Biological_Process_2023"] * 3 + ["KEGG_2019_Mouse"] * 2,
        "Term": [f"Term {i}" for i in range(5)],
        "P_Value": [0.001, 0.002, 0.003, 0.004, 0.005],
        "Adj_P_Value": [0.01, 0.02, 0.03, 0.04, 0.05],
        "Z_Score": [2.5, 2.0, 1.8, 1.5, 1.2],
        "Combined_Score": [15.0, 12.0, 10.0, 8.0, 6.0],
        "Genes": ["Th;Ddc;Slc6a3", "Drd2;Th", "Nr4a1;Fos;Egr1", "Th;Ddc", "Fos"],
        "N_Genes": [3, 2, 3, 2, 1],
    })
