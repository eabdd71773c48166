"""Shared pytest fixtures.

Most tests run on a synthetic chromosome ``chr1`` of 20 kb built from an
``ACGT`` repeat with a DpnII site (GATC) every 500 bp, so restriction
segments are ``[1, 500]``, ``[501, 1000]``, ... and every 40 bp probe has
a GC content of exactly 0.5.
"""

from __future__ import annotations

import gzip
from pathlib import Path

import numpy as np
import pysam
import pytest

from vpdesigner.config import BaitParameters, PanelConfig, ViewpointParameters
from vpdesigner.designer.enzyme import RestrictionEnzyme
from vpdesigner.designer.segment_factory import SegmentFactory
from vpdesigner.genome.alignability import AlignabilityMap, AlignabilityTrack
from vpdesigner.genome.sequence import InMemorySequenceProvider
from vpdesigner.utils.utils import write_fasta_from_dict

CHROM = "chr1"
CHROM_LENGTH = 20_000
CUT_SPACING = 500
CUT_POSITIONS = list(range(CUT_SPACING + 1, CHROM_LENGTH, CUT_SPACING))

PROBE_LENGTH = 40
KMER_SIZE = 20
MARGIN_SIZE = 100


def digest_sequence(length: int, cut_positions: list[int]) -> str:
    """ACGT repeat with GATC written at each 1-based cut position."""
    seq = list(("ACGT" * (length // 4 + 1))[:length])
    for pos in cut_positions:
        seq[pos - 1 : pos + 3] = "GATC"
    return "".join(seq)


def uniform_track(chroms, kmer_size: int = KMER_SIZE, score: int = 1) -> AlignabilityTrack:
    maps = {
        c: AlignabilityMap(c, np.array([1]), np.array([score]), kmer_size) for c in chroms
    }
    return AlignabilityTrack(maps, kmer_size=kmer_size)


def refgene_row(accession, chrom, strand, tx_start, tx_end, cds_start, cds_end, symbol) -> str:
    fields = [
        "0", accession, chrom, strand, tx_start, tx_end, cds_start, cds_end,
        "1", f"{tx_start},", f"{tx_end},", "0", symbol, "cmpl", "cmpl", "0,",
    ]
    return "\t".join(str(f) for f in fields)


REFGENE_ROWS = [
    refgene_row("NM_000001", "chr1", "+", 10249, 12000, 10300, 11000, "GENE1"),
    refgene_row("NM_000002", "chr1", "+", 15249, 16000, 15500, 15500, "GENE1"),
    refgene_row("NR_000003", "chr1", "-", 5000, 7250, 7000, 7000, "GENE2"),
    refgene_row("NM_000004", "chr1_KI270706v1_random", "+", 100, 900, 200, 800, "GENE3"),
    refgene_row("NM_000005", "chr2", "+", 99, 500, 120, 400, "GENE4"),
]


# ================================================================================
# In-memory genome
# ================================================================================


@pytest.fixture(scope="session")
def digest_genome() -> dict[str, str]:
    return {CHROM: digest_sequence(CHROM_LENGTH, CUT_POSITIONS)}


@pytest.fixture
def provider(digest_genome) -> InMemorySequenceProvider:
    return InMemorySequenceProvider(digest_genome)


@pytest.fixture(scope="session")
def track() -> AlignabilityTrack:
    """Every k-mer of chr1 maps once."""
    return uniform_track([CHROM])


@pytest.fixture(scope="session")
def make_track():
    """Factory for uniform alignability tracks over the given chromosomes."""
    return uniform_track


@pytest.fixture(scope="session")
def make_digest():
    """Factory for ACGT-repeat sequences with GATC sites at given positions."""
    return digest_sequence


@pytest.fixture(scope="session")
def dpnii() -> RestrictionEnzyme:
    return RestrictionEnzyme("DpnII", "^GATC")


@pytest.fixture(scope="session")
def bait_params() -> BaitParameters:
    return BaitParameters(
        probe_length=PROBE_LENGTH,
        kmer_size=KMER_SIZE,
        min_bait_count=1,
        max_bait_count=3,
        min_gc=0.35,
        max_gc=0.65,
        max_mean_kmer_alignability=10,
    )


@pytest.fixture(scope="session")
def panel_config(bait_params) -> PanelConfig:
    """EXTENDED design, 1000 bp upstream and 400 bp downstream of each TSS."""
    return PanelConfig(
        genome_build="hg38",
        est_avg_frag_len=CUT_SPACING,
        viewpoint_parameters=ViewpointParameters(
            approach="EXTENDED",
            size_up=1000,
            size_down=400,
            min_frag_size=60,
            margin_size=MARGIN_SIZE,
        ),
        bait_parameters=bait_params,
    )


@pytest.fixture(scope="session")
def simple_config(panel_config) -> PanelConfig:
    return panel_config.with_overrides(viewpoint_parameters={"approach": "SIMPLE"})


@pytest.fixture
def factory(provider, dpnii) -> SegmentFactory:
    return SegmentFactory(provider, [dpnii], MARGIN_SIZE)


# ================================================================================
# Resource files
# ================================================================================


def _write_gzip(path: Path, lines: list[str]) -> Path:
    with gzip.open(path, "wt") as f:
        f.write("".join(f"{line}\n" for line in lines))
    return path


@pytest.fixture(scope="session")
def genome_files(tmp_path_factory, digest_genome) -> dict[str, Path]:
    """FASTA (indexed), alignability bedGraph, chromInfo and refGene of the test genome.

    Only chr1 has alignability data; chr2 is listed in chromInfo and refGene.
    """
    root = tmp_path_factory.mktemp("genome")

    fasta = root / "test.fa"
    write_fasta_from_dict(digest_genome, str(fasta), line_width=60)
    pysam.faidx(str(fasta))

    alignability = _write_gzip(
        root / "test.k20.bedgraph.gz",
        [
            "track type=bedGraph name=k20_mappability",
            "chr1\t0\t12000\t1",
            "chr1\t12000\t20000\t1",
        ],
    )
    chrom_info = _write_gzip(
        root / "chromInfo.txt.gz",
        [f"chr1\t{CHROM_LENGTH}\t/gbdb/test/chr1.fa", "chr2\t1000\t/gbdb/test/chr2.fa"],
    )
    refgene = _write_gzip(root / "refGene.txt.gz", REFGENE_ROWS)

    return {
        "fasta": fasta,
        "alignability": alignability,
        "chrom_info": chrom_info,
        "refgene": refgene,
    }


@pytest.fixture
def config_file(tmp_path, panel_config) -> Path:
    path = tmp_path / "config.json"
    panel_config.to_json_file(path)
    return path


@pytest.fixture
def genes_file(tmp_path) -> Path:
    path = tmp_path / "genes.txt"
    path.write_text("GENE1\nGENE4\nNOTAGENE\n")
    return path


@pytest.fixture
def data_dir(tmp_path, monkeypatch) -> Path:
    """Isolated resource registry."""
    path = tmp_path / "vpdesigner_data"
    monkeypatch.setenv("VPDESIGNER_DATA_DIR", str(path))
    return path
