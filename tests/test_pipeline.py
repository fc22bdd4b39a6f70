"""
End-to-end tests for the analysis pipeline
"""

import os
from unittest.mock import patch

import pytest
import pandas as pd

from rnaseq_toolkit.pipeline import AnalysisConfig, load_config_file, run_analysis, main
from rnaseq_toolkit.validation import ReferenceLevelError

CONTROL = "control_vehicle_DA_neuron"
STRESS = "CSS_vehicle_DA_neuron"
NAME = f"{STRESS}_vs_{CONTROL}"


@pytest.fixture
def analysis_config(experiment_file, tmp_path):
    return AnalysisConfig(
        experiment_file=experiment_file,
        output_dir=str(tmp_path / "results"),
        figures_dir=str(tmp_path / "figs"),
        n_top_variable_genes=100,
    )


@pytest.fixture
def mock_enrichment(enrichment_table):
    with patch("rnaseq_toolkit.pipeline.run_differential_enrichment") as mocked:
        mocked.return_value = {"Up-regulated": enrichment_table, "Down-regulated": pd.DataFrame()}
        yield mocked


class TestAnalysisConfig:
    def test_defaults(self):
        config = AnalysisConfig()

        assert config.experiment_file.endswith("SummExp_1191_CNS_CSS_VTA_neurons_VEH_Pryce.h5ad")
        assert config.contrasts == [(STRESS, CONTROL)]
        assert config.figures_dir == "figs"
        assert config.output_path_prefix == os.path.join("results", "DA_neurons_VEH")

    def test_to_de_config(self):
        config = AnalysisConfig(logfc_threshold=1.0, p_value_column="padj", p_value_threshold=0.05)

        de_config = config.to_de_config()

        assert de_config.logfc_threshold == 1.0
        assert de_config.p_value_column == "padj"
        assert de_config.label_overrides == {"ENSMUSG00000110038": "Gm45570"}

    def test_to_de_config_validates(self):
        with pytest.raises(ValueError, match="p_value_column"):
            AnalysisConfig(p_value_column="fdr").to_de_config()

    def test_to_enrichment_config(self):
        config = AnalysisConfig(enrichr_libraries=["Reactome_2022"], enrichment_min_genes=3)

        enrichment_config = config.to_enrichment_config()

        assert enrichment_config.enrichr_libraries == ["Reactome_2022"]
        assert enrichment_config.min_genes == 3


class TestLoadConfigFile:
    def test_load(self, tmp_path):
        path = tmp_path / "my_config.py"
        path.write_text(
            "import os\n"
            "experiment_file = 'data/other.h5ad'\n"
            "contrasts = [['CSS_vehicle_DA_neuron', 'control_vehicle_DA_neuron']]\n"
            "p_value_threshold = 0.01\n"
            "toolkit_path = '.'\n"
        )

        config = load_config_file(str(path))

        assert config.experiment_file == "data/other.h5ad"
        assert config.contrasts == [(STRESS, CONTROL)]
        assert config.p_value_threshold == 0.01
        # Unset values keep their defaults
        assert config.logfc_threshold == 0.5

    def test_load_quiet(self, tmp_path, capsys):
        path = tmp_path / "quiet_config.py"
        path.write_text("output_prefix = 'quiet'\n")

        assert load_config_file(str(path), verbose=False).output_prefix == "quiet"
        assert capsys.readouterr().out == ""

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_file(str(tmp_path / "absent.py"))

    def test_bundled_config(self):
        bundled = os.path.join(os.path.dirname(os.path.dirname(__file__)), "VTA-DA-Vehicle_config.py")

        config = load_config_file(bundled)

        assert config.to_dict() == AnalysisConfig().to_dict()


class TestRunAnalysis:
    """Full run on the synthetic experiment with Enrichr mocked"""

    def test_outputs(self, analysis_config, mock_enrichment, tmp_path):
        outputs = run_analysis(analysis_config, verbose=False)

        assert outputs["filter_result"].n_expressed == 150
        assert list(outputs["results"]) == [NAME]
        assert outputs["vst"].shape == (150, 8)
        assert list(outputs["enrichment"]) == [NAME]
        mock_enrichment.assert_called_once()

        files = outputs["files"]
        volcano = tmp_path / "figs" / "CSS Vehicle vs Control Vehicle_VEH_7x6in.svg"
        assert files["figures"][NAME] == str(volcano)
        assert volcano.exists()

        prefix = tmp_path / "results" / "DA_neurons_VEH"
        assert files["excel"] == f"{prefix}_normalized_expression.xlsx"
        assert files["report"] == f"{prefix}_report.html"
        for path in [files["excel"], files["report"], files["configuration"],
                     files["differential_results"][NAME], files["enrichment"][NAME]]:
            assert os.path.exists(path)

        sheets = pd.read_excel(files["excel"], sheet_name=None)
        assert list(sheets) == ["TPM", "VST", "Sample_Metadata"]
        assert len(sheets["VST"]) == 150

        html = open(files["report"], encoding="utf-8").read()
        assert "CSS Vehicle vs Control Vehicle" in html
        assert "Term 0" in html
        # Four QC figures, the volcano and the up-regulated enrichment bar plot
        assert html.count("<svg") == 6

    def test_enrichment_figures_follow_results(self, analysis_config, mock_enrichment):
        with patch("rnaseq_toolkit.pipeline.plot_enrichment_barplot", return_value=None) as mock_plot:
            run_analysis(analysis_config, verbose=False)

        titles = sorted(call.kwargs["title"] for call in mock_plot.call_args_list)
        assert titles == [
            "CSS Vehicle vs Control Vehicle: Down-regulated",
            "CSS Vehicle vs Control Vehicle: Up-regulated",
        ]
        assert mock_plot.call_args.kwargs["config"].bar_figsize == (10, 6)

    def test_quiet_run(self, analysis_config, mock_enrichment, capsys):
        run_analysis(analysis_config, verbose=False)

        out = capsys.readouterr().out
        assert "exported to" not in out
        assert "Exporting analysis configuration" not in out
        assert "HTML report written" not in out
        assert "Analysis complete" not in out

    def test_config_round_trip(self, analysis_config, mock_enrichment):
        outputs = run_analysis(analysis_config, verbose=False)

        reloaded = load_config_file(outputs["files"]["configuration"])

        assert reloaded.to_dict() == analysis_config.to_dict()

    def test_without_enrichment(self, analysis_config, mock_enrichment):
        analysis_config.run_enrichment = False

        outputs = run_analysis(analysis_config, verbose=False)

        mock_enrichment.assert_not_called()
        assert outputs["enrichment"] == {}
        assert outputs["files"]["enrichment"] == {}

    def test_unknown_reference_stops_before_fitting(self, analysis_config):
        analysis_config.reference_level = "naive_DA_neuron"

        with patch("rnaseq_toolkit.pipeline.run_differential_expression") as mock_de:
            with pytest.raises(ReferenceLevelError):
                run_analysis(analysis_config, verbose=False)

        mock_de.assert_not_called()


def test_main_uses_config_argument(tmp_path):
    path = tmp_path / "config.py"
    path.write_text("output_prefix = 'from_file'\n")

    with patch("rnaseq_toolkit.pipeline.run_analysis") as mock_run:
        assert main([str(path)]) == 0

    assert mock_run.call_args.args[0].output_prefix == "from_file"
