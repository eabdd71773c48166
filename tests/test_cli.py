# ================================================================================
# Tests for the command-line interface
# ================================================================================

import re
from pathlib import Path
from unittest.mock import MagicMock, patch

from typer.testing import CliRunner

from vpdesigner.cli import app
from vpdesigner.designer.panel import FailedTarget
from vpdesigner.pipeline import PipelineResult
from vpdesigner.version import __version__

runner = CliRunner()


def strip_ansi(text: str) -> str:
    """Strip ANSI escape sequences from a string."""
    ansi_escape = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
    return ansi_escape.sub("", text)


def mock_result(errors=None, failures=None, invalid_genes=None) -> PipelineResult:
    viewpoints = [MagicMock(), MagicMock()]
    viewpoints[0].has_valid_digest.return_value = True
    viewpoints[1].has_valid_digest.return_value = False
    return PipelineResult(
        output_dir=Path("/tmp/output"),
        config=MagicMock(),
        viewpoints=viewpoints,
        failures=failures or [],
        invalid_genes=invalid_genes or [],
        steps_completed=["enzymes_loaded", "genes_loaded", "viewpoints_created"],
        errors=errors or [],
    )


class TestCLIBasics:
    """Tests for basic CLI functionality."""

    def test_help(self):
        """Test that --help works."""
        result = runner.invoke(app, ["--help"], env={"COLUMNS": "120"})
        output = strip_ansi(result.output)
        assert result.exit_code == 0
        assert "Design capture Hi-C viewpoints and probes" in output

    def test_version(self):
        """Test that --version shows version."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self):
        """Test that no arguments shows help/usage."""
        result = runner.invoke(app, [], env={"COLUMNS": "120"})
        output = strip_ansi(result.output)
        assert "Usage:" in output
        assert "COMMAND" in output


class TestRunCommand:
    """Tests for the run command."""

    def test_run_help(self):
        """Test that run --help works."""
        result = runner.invoke(app, ["run", "--help"], env={"COLUMNS": "120"})
        output = strip_ansi(result.output)
        assert result.exit_code == 0
        assert "Run the complete viewpoint design pipeline" in output
        assert "--genes" in output
        assert "--fasta" in output
        assert "--alignability" in output
        assert "--output" in output

    def test_run_missing_genes(self):
        """Test that run fails without --genes."""
        result = runner.invoke(app, ["run", "--fasta", "genome.fa"])
        assert result.exit_code == 2
        assert "Missing option" in result.output or "--genes" in result.output

    def test_run_genes_file_not_found(self, data_dir):
        result = runner.invoke(app, ["run", "--genes", "/nonexistent/genes.txt"])
        assert result.exit_code == 1
        assert "not found" in strip_ansi(result.output).lower()

    @patch("vpdesigner.pipeline.run_pipeline")
    def test_run_success(self, mock_run_pipeline, tmp_path):
        """Test successful run with mocked pipeline."""
        mock_run_pipeline.return_value = mock_result()
        genes = tmp_path / "genes.txt"
        genes.write_text("SHH\n")

        result = runner.invoke(
            app,
            ["run", "--genes", str(genes), "--fasta", "hg38.fa", "--output", "/tmp/test_output"],
        )

        output = strip_ansi(result.output)
        assert result.exit_code == 0
        assert "completed successfully" in output.lower()
        assert "Viewpoints:   2 (1 with selected fragments)" in output

        mock_run_pipeline.assert_called_once()
        call_kwargs = mock_run_pipeline.call_args[1]
        assert call_kwargs["genes_file"] == genes
        assert str(call_kwargs["fasta_file"]) == "hg38.fa"
        assert str(call_kwargs["output_dir"]) == "/tmp/test_output"
        assert call_kwargs["alignability_file"] is None
        assert call_kwargs["parallel"] is False

    @patch("vpdesigner.pipeline.run_pipeline")
    def test_run_with_warnings(self, mock_run_pipeline, tmp_path):
        """Test run that completes with warnings."""
        mock_run_pipeline.return_value = mock_result(
            errors=["Viewpoint creation was cancelled."],
            failures=[FailedTarget("GENE4", "chr2", 100, "no alignability data for chromosome")],
            invalid_genes=["NOTAGENE"],
        )
        genes = tmp_path / "genes.txt"
        genes.write_text("SHH\n")

        result = runner.invoke(app, ["run", "--genes", str(genes)])

        output = strip_ansi(result.output)
        assert result.exit_code == 0
        assert "completed with warnings" in output
        assert "Viewpoint creation was cancelled." in output
        assert "Unknown genes: NOTAGENE" in output
        assert "Failed TSS:   1" in output

    @patch("vpdesigner.pipeline.run_pipeline")
    def test_run_with_all_options(self, mock_run_pipeline, tmp_path):
        mock_run_pipeline.return_value = mock_result()
        genes = tmp_path / "genes.txt"
        genes.write_text("SHH\n")
        config = tmp_path / "config.json"

        result = runner.invoke(
            app,
            [
                "run",
                "-i", str(genes),
                "-f", "mm10.fa",
                "--alignability", "mm10.k50.bedgraph.gz",
                "--chrom-info", "chromInfo.txt.gz",
                "--refgene", "refGene.txt.gz",
                "-o", "out",
                "-n", "limb",
                "-g", "mm10",
                "-p", "simple",
                "-c", str(config),
                "-e", "DpnII",
                "-e", "HindIII",
                "--parallel",
                "--max-workers", "4",
                "--debug",
            ],
        )

        assert result.exit_code == 0
        call_kwargs = mock_run_pipeline.call_args[1]
        assert str(call_kwargs["chrom_info_file"]) == "chromInfo.txt.gz"
        assert str(call_kwargs["refgene_file"]) == "refGene.txt.gz"
        assert call_kwargs["panel_name"] == "limb"
        assert call_kwargs["genome"] == "mm10"
        assert call_kwargs["preset"] == "simple"
        assert call_kwargs["config_path"] == config
        assert call_kwargs["enzymes"] == ["DpnII", "HindIII"]
        assert call_kwargs["parallel"] is True
        assert call_kwargs["max_workers"] == 4
        assert call_kwargs["debug"] is True

    @patch("vpdesigner.pipeline.run_pipeline")
    def test_run_pipeline_exception(self, mock_run_pipeline, tmp_path):
        mock_run_pipeline.side_effect = RuntimeError("Something went wrong")
        genes = tmp_path / "genes.txt"
        genes.write_text("SHH\n")

        result = runner.invoke(app, ["run", "--genes", str(genes)])

        assert result.exit_code == 1
        assert "Pipeline failed: Something went wrong" in strip_ansi(result.output)

    def test_run_end_to_end(self, genome_files, config_file, genes_file, tmp_path, data_dir):
        out = tmp_path / "cli_output"
        result = runner.invoke(
            app,
            [
                "run",
                "--genes", str(genes_file),
                "--fasta", str(genome_files["fasta"]),
                "--alignability", str(genome_files["alignability"]),
                "--chrom-info", str(genome_files["chrom_info"]),
                "--refgene", str(genome_files["refgene"]),
                "--config", str(config_file),
                "--output", str(out),
                "--name", "cli",
            ],
        )
        output = strip_ansi(result.output)
        assert result.exit_code == 0, output
        assert "Viewpoints:   2 (2 with selected fragments)" in output
        assert (out / "cli_allTracks.bed").exists()
        assert (out / "cli_agilentProbeFile.bed").exists()


class TestEnzymesCommand:
    def test_bundled_list(self):
        result = runner.invoke(app, ["enzymes"])
        assert result.exit_code == 0
        assert "DpnII" in result.output
        assert "^GATC" in result.output

    def test_custom_file(self, tmp_path):
        path = tmp_path / "enzymes.tab"
        path.write_text("MyEnzyme\tA^AGCTT\n")
        result = runner.invoke(app, ["enzymes", "--file", str(path)])
        assert result.exit_code == 0
        assert "MyEnzyme" in result.output
        assert "DpnII" not in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["enzymes", "--file", str(tmp_path / "missing.tab")])
        assert result.exit_code == 1
        assert "Error" in result.output


class TestGenomesCommand:
    def test_lists_builds(self):
        result = runner.invoke(app, ["genomes"])
        assert result.exit_code == 0
        assert "hg38" in result.output
        assert "Human GRCh38/hg38" in result.output


class TestRegisterCommand:
    """Tests for the register and status commands."""

    def test_register_requires_a_file(self, data_dir):
        result = runner.invoke(app, ["register", "--genome", "hg38"])
        assert result.exit_code == 1
        assert "give at least one of" in result.output

    def test_register_and_status(self, data_dir, genome_files):
        result = runner.invoke(
            app,
            [
                "register",
                "-g", "hg38",
                "--fasta", str(genome_files["fasta"]),
                "--refgene", str(genome_files["refgene"]),
            ],
        )
        output = strip_ansi(result.output)
        assert result.exit_code == 0, output
        assert "Done!" in output
        assert "fasta         ready" in output
        assert "alignability  not registered" in output
        assert (data_dir / "registry.json").exists()

        result = runner.invoke(app, ["status", "--verify"])
        output = strip_ansi(result.output)
        assert result.exit_code == 0
        assert "Data directory:" in output
        assert "refgene       checksum ✓" in output

    def test_register_unknown_genome(self, data_dir, genome_files):
        result = runner.invoke(
            app, ["register", "-g", "hg99", "--fasta", str(genome_files["fasta"])]
        )
        assert result.exit_code == 1
        assert "Unknown genome build" in strip_ansi(result.output)

    def test_register_checksum_mismatch(self, data_dir, genome_files, tmp_path):
        checksums = tmp_path / "sha256sums.txt"
        checksums.write_text(f"{'0' * 64}  {genome_files['fasta'].name}\n")
        result = runner.invoke(
            app,
            [
                "register",
                "--fasta", str(genome_files["fasta"]),
                "--checksums", str(checksums),
            ],
        )
        assert result.exit_code == 1
        assert "checksum mismatch" in strip_ansi(result.output)
        assert not (data_dir / "registry.json").exists()
