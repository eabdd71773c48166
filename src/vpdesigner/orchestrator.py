# ================================================================================
# Parallel viewpoint creation
#
# Genes are grouped by chromosome and each chromosome is processed in its own
# worker process, which opens its own FASTA handle and loads the alignability
# map of that chromosome only.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ProcessPoolExecutor, wait

from loguru import logger

from vpdesigner.config import PanelConfig
from vpdesigner.designer.enzyme import RestrictionEnzyme
from vpdesigner.designer.panel import (
    CancelCheck,
    CreationResult,
    ProgressCallback,
    ViewPointCreationTask,
)
from vpdesigner.genome.genes import GeneModel
from vpdesigner.resources import GenomeResources


def group_genes_by_chromosome(genes: list[GeneModel]) -> dict[str, list[GeneModel]]:
    """Gene models grouped by chromosome, chromosomes in order of first appearance."""
    grouped: dict[str, list[GeneModel]] = {}
    for gene in genes:
        grouped.setdefault(gene.chrom, []).append(gene)
    return grouped


def _create_chromosome_viewpoints(
    chrom: str,
    genes: list[GeneModel],
    config: PanelConfig,
    resources: GenomeResources,
    enzymes: list[RestrictionEnzyme],
    est_avg_frag_len: float,
) -> tuple[str, CreationResult]:
    """
    Build the viewpoints of all genes on one chromosome.

    This is a top-level function (not a method or lambda) so it can be
    pickled by ProcessPoolExecutor.
    """
    logger.debug(f"Worker started for {chrom} ({len(genes)} genes)")
    alignability = resources.load_alignability({chrom})
    with resources.sequence_provider() as provider:
        task = ViewPointCreationTask(
            config, provider, alignability, enzymes, est_avg_frag_len
        )
        result = task.run(genes)
    return chrom, result


def create_viewpoints_parallel(
    genes: list[GeneModel],
    config: PanelConfig,
    resources: GenomeResources,
    enzymes: list[RestrictionEnzyme],
    est_avg_frag_len: float,
    max_workers: int | None = None,
    progress: ProgressCallback | None = None,
    should_cancel: CancelCheck | None = None,
) -> CreationResult:
    """
    Create viewpoints for all genes with one worker task per chromosome.

    At most ``max_workers`` chromosome batches are in flight at a time and
    cancellation is checked before each batch is submitted, so queued
    chromosomes are never started once cancellation is requested. Batches
    already running are completed. Viewpoints are returned grouped by
    chromosome in the order the chromosomes first appear in ``genes``.

    Parameters
    ----------
    genes : list[GeneModel]
        Gene models to process.
    max_workers : int | None
        Max parallel workers. None defaults to the number of chromosomes.
    progress : ProgressCallback | None
        Called as ``progress(done_genes, total_genes)`` after each chromosome.
    should_cancel : CancelCheck | None
        Polled before each submission.
    """
    grouped = group_genes_by_chromosome(genes)
    total = len(genes)
    merged = CreationResult()
    if not grouped:
        return merged

    workers = max_workers or len(grouped)
    logger.info(
        f"Creating viewpoints for {total} gene models on {len(grouped)} chromosomes "
        f"(workers={workers})"
    )

    queued = list(grouped.items())
    results: dict[str, CreationResult] = {}
    done = 0
    with ProcessPoolExecutor(max_workers=workers) as executor:
        pending: dict[Future, str] = {}
        while queued or pending:
            while queued and len(pending) < workers and not merged.cancelled:
                if should_cancel is not None and should_cancel():
                    logger.warning(
                        f"Viewpoint creation cancelled, {len(queued)} chromosomes not submitted"
                    )
                    merged.cancelled = True
                    break
                chrom, chrom_genes = queued.pop(0)
                future = executor.submit(
                    _create_chromosome_viewpoints,
                    chrom,
                    chrom_genes,
                    config,
                    resources,
                    enzymes,
                    est_avg_frag_len,
                )
                pending[future] = chrom
            if not pending:
                break

            finished, _ = wait(pending, return_when=FIRST_COMPLETED)
            for future in finished:
                chrom = pending.pop(future)
                _, chrom_result = future.result()
                results[chrom] = chrom_result
                done += len(grouped[chrom])
                logger.info(
                    f"{chrom}: {len(chrom_result.viewpoints)} viewpoints, "
                    f"{len(chrom_result.failures)} failed TSS"
                )
                if progress is not None:
                    progress(done, total)

    for chrom in grouped:
        if chrom in results:
            merged.extend(results[chrom])
    return merged
