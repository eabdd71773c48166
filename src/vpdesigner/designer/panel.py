# ================================================================================
# Viewpoint creation for a list of genes
#
# One viewpoint is built per transcription start site. Failures at a single
# TSS are recorded and do not stop the batch; cancellation is checked before
# each new TSS and lets the current one finish.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from loguru import logger

from vpdesigner.config import Approach, PanelConfig
from vpdesigner.designer.enzyme import RestrictionEnzyme
from vpdesigner.designer.segment_factory import SegmentFactory
from vpdesigner.designer.viewpoint import ViewPoint, build_viewpoint, make_strategy
from vpdesigner.exceptions import InvalidLocusError, NoCutSiteFoundError
from vpdesigner.genome.alignability import AlignabilityTrack
from vpdesigner.genome.genes import GeneModel
from vpdesigner.genome.sequence import SequenceProvider

ProgressCallback = Callable[[int, int], None]
CancelCheck = Callable[[], bool]


@dataclass
class FailedTarget:
    """A TSS for which no viewpoint could be built."""

    gene: str
    chrom: str
    pos: int
    reason: str


@dataclass
class CreationResult:
    viewpoints: list[ViewPoint] = field(default_factory=list)
    failures: list[FailedTarget] = field(default_factory=list)
    cancelled: bool = False

    def extend(self, other: CreationResult) -> None:
        self.viewpoints.extend(other.viewpoints)
        self.failures.extend(other.failures)
        self.cancelled = self.cancelled or other.cancelled


class ViewPointCreationTask:
    """
    Builds the viewpoints of all TSS of a list of gene models.

    Args:
        config: Panel configuration
        sequence_provider: Reference sequence
        alignability: Alignability scores of (at least) the genes' chromosomes
        enzymes: Restriction enzymes of the digest
        est_avg_frag_len: Mean restriction fragment length
        progress: Called as ``progress(done, total)`` after each gene
        should_cancel: Polled before each TSS; returning True stops the task
    """

    def __init__(
        self,
        config: PanelConfig,
        sequence_provider: SequenceProvider,
        alignability: AlignabilityTrack,
        enzymes: list[RestrictionEnzyme],
        est_avg_frag_len: float,
        progress: ProgressCallback | None = None,
        should_cancel: CancelCheck | None = None,
    ):
        self.config = config
        self.sequence_provider = sequence_provider
        self.alignability = alignability
        self.enzymes = enzymes
        self.est_avg_frag_len = est_avg_frag_len
        self.progress = progress
        self.should_cancel = should_cancel
        self.strategy = make_strategy(config, est_avg_frag_len)
        self.factory = SegmentFactory(
            sequence_provider, enzymes, config.viewpoint_parameters.margin_size
        )

    def _cancelled(self) -> bool:
        return self.should_cancel is not None and self.should_cancel()

    def tss_order(self, gene: GeneModel) -> list[int]:
        """TSS positions in the order promoters are numbered."""
        positions = list(gene.tss_positions)
        if not gene.is_positive_strand and self.config.approach is Approach.EXTENDED:
            positions.reverse()
        return positions

    def create_gene_viewpoints(self, gene: GeneModel, result: CreationResult) -> None:
        chromosome_length = self.sequence_provider.get_length(gene.chrom)
        if not self.alignability.has_chromosome(gene.chrom):
            for pos in gene.tss_positions:
                result.failures.append(
                    FailedTarget(gene.symbol, gene.chrom, pos, "no alignability data for chromosome")
                )
            logger.warning(f"{gene.symbol}: no alignability data for {gene.chrom}, skipped")
            return

        positions = self.tss_order(gene)
        for n, pos in enumerate(positions, 1):
            if self._cancelled():
                result.cancelled = True
                return
            try:
                vp = build_viewpoint(
                    gene.chrom,
                    pos,
                    gene.strand,
                    gene.symbol,
                    gene.accession,
                    self.strategy,
                    self.factory,
                    self.alignability,
                    self.config.bait_parameters,
                    chromosome_length=chromosome_length,
                    promoter_number=n,
                    total_promoters=len(positions),
                )
            except (InvalidLocusError, NoCutSiteFoundError) as e:
                logger.warning(f"{gene.symbol} ({gene.chrom}:{pos}): {e}")
                result.failures.append(FailedTarget(gene.symbol, gene.chrom, pos, str(e)))
                continue
            result.viewpoints.append(vp)

    def run(self, genes: list[GeneModel]) -> CreationResult:
        result = CreationResult()
        total = len(genes)
        logger.info(
            f"Creating viewpoints for {total} gene model(s), approach {self.config.approach.value}"
        )
        for i, gene in enumerate(genes, 1):
            if self._cancelled():
                result.cancelled = True
            else:
                self.create_gene_viewpoints(gene, result)
            if result.cancelled:
                logger.warning(f"Viewpoint creation cancelled after {i - 1} of {total} genes")
                break
            if self.progress is not None:
                self.progress(i, total)

        logger.info(
            f"Created {len(result.viewpoints)} viewpoints ({len(result.failures)} failed TSS)"
        )
        return result
