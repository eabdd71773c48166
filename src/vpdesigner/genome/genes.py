# ================================================================================
# Gene models and transcription start sites from UCSC refGene tables
#
# refGene columns: bin, name, chrom, strand, txStart, txEnd, cdsStart, cdsEnd,
# exonCount, exonStarts, exonEnds, score, name2, ... Coordinates in the file
# are 0-based half-open; TSS positions here are 1-based.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd
from loguru import logger

REFGENE_COLUMNS = {
    1: "accession",
    2: "chrom",
    3: "strand",
    4: "tx_start",
    5: "tx_end",
    6: "cds_start",
    7: "cds_end",
    12: "symbol",
}


@dataclass(frozen=True)
class TranscriptionStartSite:
    chrom: str
    pos: int
    strand: str


@dataclass
class GeneModel:
    """
    All transcription start sites of one gene symbol on one chromosome.

    Args:
        symbol: Gene symbol, e.g. "FBN1"
        chrom: Chromosome name
        strand: "+" or "-"
        accession: Accession of the first transcript seen
        is_coding: True if any transcript has a coding sequence
        tss_positions: Sorted, unique 1-based TSS positions
    """

    symbol: str
    chrom: str
    strand: str
    accession: str
    is_coding: bool = False
    tss_positions: list[int] = field(default_factory=list)

    def add_position(self, pos: int) -> None:
        if pos not in self.tss_positions:
            self.tss_positions.append(pos)
            self.tss_positions.sort()

    @property
    def is_positive_strand(self) -> bool:
        return self.strand == "+"

    @property
    def n_tss(self) -> int:
        return len(self.tss_positions)


class GeneTranscriptSource:
    """Look up the TSS positions of gene symbols."""

    def __init__(self, genes: list[GeneModel]):
        self.genes = genes
        self._by_symbol: dict[str, list[GeneModel]] = {}
        for gene in genes:
            self._by_symbol.setdefault(gene.symbol, []).append(gene)

    @classmethod
    def from_refgene(
        cls,
        refgene_file: str | Path,
        chromosomes: set[str] | frozenset[str] | None = None,
    ) -> GeneTranscriptSource:
        """
        Parse a (gzipped) UCSC refGene table.

        Transcripts on unplaced or random contigs are skipped, as are
        chromosomes outside ``chromosomes`` when given.
        """
        path = Path(refgene_file)
        if not path.exists():
            raise FileNotFoundError(f"refGene file not found: {path}")

        df = pd.read_csv(
            path,
            sep="\t",
            header=None,
            usecols=list(REFGENE_COLUMNS),
            dtype={1: str, 2: str, 3: str, 12: str},
        ).rename(columns=REFGENE_COLUMNS)

        df = df[~df["chrom"].str.contains("_") & ~df["chrom"].str.contains("random")]
        if chromosomes is not None:
            df = df[df["chrom"].isin(chromosomes)]

        # UCSC coordinates are 0-based half-open
        df["tss"] = df["tx_start"].where(df["strand"] == "+", df["tx_end"] - 1) + 1
        df["is_coding"] = df["cds_start"] != df["cds_end"]

        genes: dict[tuple[str, str], GeneModel] = {}
        for row in df.itertuples(index=False):
            key = (row.symbol, row.chrom)
            gene = genes.get(key)
            if gene is None:
                gene = GeneModel(
                    symbol=row.symbol,
                    chrom=row.chrom,
                    strand=row.strand,
                    accession=row.accession,
                )
                genes[key] = gene
            gene.is_coding = gene.is_coding or bool(row.is_coding)
            gene.add_position(int(row.tss))

        source = cls(list(genes.values()))
        logger.info(
            f"Parsed {len(source.symbols)} gene symbols with {source.total_tss_count} TSS from {path.name}"
        )
        return source

    @property
    def symbols(self) -> list[str]:
        return sorted(self._by_symbol)

    @property
    def total_tss_count(self) -> int:
        return sum(g.n_tss for g in self.genes)

    def get_gene_models(self, symbol: str) -> list[GeneModel]:
        return self._by_symbol.get(symbol, [])

    def get_tss_list(self, symbol: str) -> list[TranscriptionStartSite]:
        return [
            TranscriptionStartSite(gene.chrom, pos, gene.strand)
            for gene in self.get_gene_models(symbol)
            for pos in gene.tss_positions
        ]

    def check_genes(self, symbols: list[str]) -> tuple[list[str], list[str]]:
        """
        Split requested symbols into those found in the table and those not found.

        Returns
        -------
        tuple[list[str], list[str]]
            Sorted valid and invalid symbols.
        """
        valid = {s for s in symbols if s in self._by_symbol}
        invalid = set(symbols) - valid
        if invalid:
            logger.warning(
                f"{len(invalid)} gene symbol(s) not found in refGene: {', '.join(sorted(invalid))}"
            )
        return sorted(valid), sorted(invalid)

    def protein_coding_symbols(self) -> list[str]:
        return sorted({g.symbol for g in self.genes if g.is_coding})

    def get_gene_list(self, symbols: list[str]) -> list[GeneModel]:
        """Gene models of the valid ``symbols``, one per symbol and chromosome."""
        valid, _ = self.check_genes(symbols)
        return [gene for symbol in valid for gene in self.get_gene_models(symbol)]
