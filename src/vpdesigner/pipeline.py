# ================================================================================
# Main pipeline for capture Hi-C viewpoint and probe design
#
# This module runs the complete design workflow:
#   1. Load configuration, resources and restriction enzymes
#   2. Resolve gene symbols to transcription start sites
#   3. Estimate the mean restriction fragment length (optional)
#   4. Create one viewpoint per TSS
#   5. Calculate design statistics
#   6. Save outputs
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd
from loguru import logger

from vpdesigner.config import PanelConfig, load_config
from vpdesigner.designer.design import Design
from vpdesigner.designer.enzyme import estimate_mean_fragment_length, get_enzymes
from vpdesigner.designer.panel import (
    CancelCheck,
    CreationResult,
    FailedTarget,
    ProgressCallback,
    ViewPointCreationTask,
)
from vpdesigner.designer.viewpoint import ViewPoint
from vpdesigner.logging import configure_file_logging
from vpdesigner.resources import GenomeResources
from vpdesigner.utils.env import (
    check_disk_space,
    get_library_versions,
    get_vpdesigner_version,
)


@dataclass
class PipelineResult:
    """Result of running the viewpoint design pipeline."""

    output_dir: Path
    config: PanelConfig
    viewpoints: list[ViewPoint] = field(default_factory=list)
    failures: list[FailedTarget] = field(default_factory=list)
    invalid_genes: list[str] = field(default_factory=list)
    design: Design | None = None
    output_files: dict[str, Path] = field(default_factory=dict)
    steps_completed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        """Returns True if pipeline completed without errors."""
        return len(self.errors) == 0

    @property
    def num_viewpoints(self) -> int:
        return len(self.viewpoints)

    @property
    def num_resolved_viewpoints(self) -> int:
        """Viewpoints with at least one selected segment."""
        return sum(1 for vp in self.viewpoints if vp.has_valid_digest())


def read_gene_symbols(input_file: str | Path) -> list[str]:
    """
    Read gene symbols from a text file (one per line) or a CSV with a
    ``Gene`` column. Duplicates are dropped, order is kept.
    """
    path = Path(input_file)
    df = pd.read_csv(path, header=None, dtype=str, comment="#", skip_blank_lines=True)
    if df.empty:
        raise ValueError(f"No gene symbols in {path}")

    header = [str(v).strip() for v in df.iloc[0]]
    if "Gene" in header:
        values = df.iloc[1:, header.index("Gene")]
    else:
        values = df.iloc[:, 0]

    symbols = list(dict.fromkeys(v.strip() for v in values.dropna() if v.strip()))
    if not symbols:
        raise ValueError(f"No gene symbols in {path}")
    return symbols


def _collect_provenance(
    resources: GenomeResources,
    genes_file: Path,
    config: PanelConfig,
    parallel: bool,
) -> dict:
    """Collect versions, resource paths and checksums for provenance."""
    import datetime

    from vpdesigner.resources import _load_registry

    entry = _load_registry().get(resources.genome, {})
    checksums = {}
    for kind, path in resources.to_dict().items():
        if kind != "genome" and entry.get(kind) == str(Path(path).resolve()):
            checksums[f"{kind}_sha256"] = entry.get(f"{kind}_sha256")

    return {
        "vpdesigner_version": get_vpdesigner_version(),
        "library_versions": get_library_versions(),
        "run_timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "resources": resources.to_dict(),
        "checksums": checksums,
        "genes_file": str(genes_file),
        "config": config.to_dict(),
        "parallel": parallel,
        "status": "started",
        "completed_at": None,
    }


def _create_viewpoints_sequential(
    genes,
    config: PanelConfig,
    resources: GenomeResources,
    enzymes,
    est_avg_frag_len: float,
    progress: ProgressCallback | None,
    should_cancel: CancelCheck | None,
) -> CreationResult:
    alignability = resources.load_alignability({g.chrom for g in genes})
    with resources.sequence_provider() as provider:
        task = ViewPointCreationTask(
            config,
            provider,
            alignability,
            enzymes,
            est_avg_frag_len,
            progress=progress,
            should_cancel=should_cancel,
        )
        return task.run(genes)


def run_pipeline(
    genes_file: str | Path,
    fasta_file: str | Path | None = None,
    alignability_file: str | Path | None = None,
    chrom_info_file: str | Path | None = None,
    refgene_file: str | Path | None = None,
    output_dir: str | Path = "./output",
    panel_name: str = "vpdesigner",
    genome: str | None = None,
    preset: str = "default",
    config_path: str | Path | None = None,
    enzymes: list[str] | None = None,
    parallel: bool = False,
    max_workers: int | None = None,
    debug: bool = False,
    progress: ProgressCallback | None = None,
    should_cancel: CancelCheck | None = None,
) -> PipelineResult:
    """
    Run the complete viewpoint design pipeline.

    Parameters
    ----------
    genes_file : str | Path
        Text file with one gene symbol per line, or CSV with a Gene column.
    fasta_file, alignability_file, chrom_info_file, refgene_file : str | Path | None
        Genome resources. Omitted resources are taken from the registry.
    output_dir : str | Path
        Directory for output files (default: "./output").
    panel_name : str
        Prefix of all output files.
    genome : str | None
        Genome build; overrides the configured build when given.
    preset : str
        Configuration preset ("default" or "simple").
    config_path : str | Path | None
        Path to custom configuration JSON file.
    enzymes : list[str] | None
        Restriction enzyme names; override the configured enzymes when given.
    parallel : bool
        Create viewpoints in one worker process per chromosome.

    Returns
    -------
    PipelineResult
        Object containing the viewpoints, design, outputs and status information.

    Raises
    ------
    FileNotFoundError
        If the gene list or a genome resource doesn't exist.
    ValidationError
        If configuration is invalid.
    UnknownEnzymeError
        If a configured enzyme is not in the enzyme list.
    """
    genes_file = Path(genes_file)
    output_dir = Path(output_dir)

    if not genes_file.exists():
        raise FileNotFoundError(f"Gene list not found: {genes_file}")

    check_disk_space(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    # Load configuration
    logger.info("Loading configuration...")
    config = load_config(
        preset=preset,
        config_path=str(config_path) if config_path else None,
    )
    overrides: dict = {}
    if genome is not None:
        overrides["genome_build"] = genome
    if enzymes:
        overrides["digest_parameters"] = {"enzymes": list(enzymes)}
    if overrides:
        config = config.with_overrides(**overrides)

    resources = GenomeResources.resolve(
        config.genome_build,
        kmer_size=config.bait_parameters.kmer_size,
        fasta=fasta_file,
        alignability=alignability_file,
        chrom_info=chrom_info_file,
        refgene=refgene_file,
    )

    # ── Write provenance record ──────────────────────────────────────────────
    provenance = _collect_provenance(resources, genes_file, config, parallel)
    provenance_path = output_dir / "provenance.json"
    with provenance_path.open("w") as pf:
        json.dump(provenance, pf, indent=2, default=str)

    result = PipelineResult(output_dir=output_dir, config=config)
    exc_info: BaseException | None = None

    try:
        log_file = configure_file_logging(str(output_dir), debug=debug)
        logger.info(f"Log file: {log_file}")
        logger.info(f"Provenance written to {provenance_path}")

        # =========================================================================
        # Step 1: Restriction enzymes
        # =========================================================================
        digest = config.digest_parameters
        enzyme_list = get_enzymes(digest.enzymes, digest.enzyme_file)
        logger.info(f"Digest with {', '.join(str(e) for e in enzyme_list)}")
        result.steps_completed.append("enzymes_loaded")

        # =========================================================================
        # Step 2: Genes and transcription start sites
        # =========================================================================
        symbols = read_gene_symbols(genes_file)
        logger.info(f"Read {len(symbols)} gene symbols from {genes_file.name}")
        transcripts = resources.load_transcripts()
        valid, invalid = transcripts.check_genes(symbols)
        result.invalid_genes = invalid
        genes = transcripts.get_gene_list(valid)
        result.steps_completed.append("genes_loaded")

        if not genes:
            logger.error("None of the gene symbols were found. Cannot continue.")
            result.errors.append("No valid gene symbols.")
            return result

        # =========================================================================
        # Step 3: Mean restriction fragment length
        # =========================================================================
        est_avg_frag_len = config.est_avg_frag_len
        if est_avg_frag_len is None:
            logger.info("Estimating mean restriction fragment length...")
            with resources.sequence_provider() as provider:
                est_avg_frag_len = estimate_mean_fragment_length(provider, enzyme_list)
            result.steps_completed.append("fragment_length_estimated")

        # =========================================================================
        # Step 4: Viewpoints
        # =========================================================================
        if parallel:
            from vpdesigner.orchestrator import create_viewpoints_parallel

            creation = create_viewpoints_parallel(
                genes,
                config,
                resources,
                enzyme_list,
                est_avg_frag_len,
                max_workers=max_workers,
                progress=progress,
                should_cancel=should_cancel,
            )
        else:
            creation = _create_viewpoints_sequential(
                genes,
                config,
                resources,
                enzyme_list,
                est_avg_frag_len,
                progress,
                should_cancel,
            )
        result.viewpoints = creation.viewpoints
        result.failures = creation.failures
        result.cancelled = creation.cancelled
        if creation.cancelled:
            result.errors.append("Viewpoint creation was cancelled.")
        result.steps_completed.append("viewpoints_created")

        # =========================================================================
        # Step 5: Design statistics
        # =========================================================================
        design = Design(result.viewpoints, config, enzyme_list)
        design.calculate_design_parameters()
        result.design = design
        result.steps_completed.append("design_calculated")

        # =========================================================================
        # Step 6: Save outputs
        # =========================================================================
        logger.info("Saving outputs...")
        try:
            from vpdesigner.reporting import (
                export_bed_files,
                write_agilent_probe_file,
                write_design_summary,
                write_viewpoint_table,
            )

            prefix = panel_name
            result.output_files.update(
                export_bed_files(result.viewpoints, output_dir, prefix, config.genome_build)
            )
            result.output_files["probes"] = write_agilent_probe_file(
                result.viewpoints,
                output_dir / f"{prefix}_agilentProbeFile.bed",
                config.genome_build,
            )
            result.output_files["viewpoint_table"] = write_viewpoint_table(
                result.viewpoints, output_dir / f"{prefix}_viewpoint_table.csv"
            )
            result.output_files["summary"] = write_design_summary(
                design,
                output_dir / f"{prefix}_design_summary.json",
                failures=result.failures,
                provenance=provenance,
            )

            if result.failures:
                rows = [
                    {"Gene": f.gene, "Chrom": f.chrom, "Pos": f.pos, "Reason": f.reason}
                    for f in result.failures
                ]
                failed_path = output_dir / f"{prefix}_failed_targets.csv"
                pd.DataFrame(rows).to_csv(failed_path, index=False)
                result.output_files["failed_targets"] = failed_path
                logger.info(f"Wrote {len(rows)} failed target(s) to {failed_path.name}")

            result.steps_completed.append("outputs_saved")
        except OSError as e:
            logger.warning(f"Could not save outputs: {e}")
            result.errors.append(f"Save outputs failed: {e}")

        # =========================================================================
        # Summary
        # =========================================================================
        logger.info("=" * 60)
        logger.info("Pipeline Summary")
        logger.info("=" * 60)
        for label, value in design.get_design_statistics().items():
            logger.info(f"{label} {value}")
        if result.invalid_genes:
            logger.info(f"Unknown gene symbols: {len(result.invalid_genes)}")
        if result.failures:
            logger.info(f"TSS without viewpoint: {len(result.failures)}")
        logger.info(f"Steps completed: {', '.join(result.steps_completed)}")
        if result.errors:
            logger.warning(f"Errors encountered: {len(result.errors)}")
            for err in result.errors:
                logger.warning(f"  - {err}")
        logger.info(f"Output directory: {output_dir}")
        logger.info("=" * 60)

        return result

    except BaseException as exc:
        exc_info = exc
        raise

    finally:
        import datetime as _dt

        final = dict(provenance)
        if exc_info is not None:
            final["status"] = "failed"
            final["errors"] = result.errors or [str(exc_info)]
        else:
            final["status"] = "completed"
            final["errors"] = result.errors
        final["completed_at"] = _dt.datetime.now(_dt.timezone.utc).isoformat()
        final["steps_completed"] = result.steps_completed

        try:
            with provenance_path.open("w") as f:
                json.dump(final, f, indent=2, default=str)
        except OSError as e:
            logger.warning(f"Could not update provenance record: {e}")
