# ================================================================================
# K-mer alignability track
#
# Reads a (gzipped) bedGraph of k-mer mappability values together with a
# chromInfo file of chromosome sizes. Each bedGraph value v is stored as the
# integer number of genomic hits round(1/v). Positions not covered by the
# bedGraph get NO_ALIGNABILITY_SCORE.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd
from loguru import logger

NO_ALIGNABILITY_SCORE = -1
DEFAULT_KMER_SIZE = 50

BEDGRAPH_COLUMNS = ["chrom", "start", "end", "value"]


@dataclass
class AlignabilityMap:
    """
    Step function of alignability scores along one chromosome.

    ``coords[i]`` is the 1-based position where ``scores[i]`` starts to
    apply; the score holds until the next coordinate.
    """

    chrom: str
    coords: np.ndarray
    scores: np.ndarray
    kmer_size: int = DEFAULT_KMER_SIZE

    def __len__(self) -> int:
        return len(self.coords)

    def get_score_from_to(self, from_pos: int, to_pos: int) -> np.ndarray:
        """
        Scores for every position ``from_pos..to_pos`` (1-based, inclusive).

        Returns an empty array if ``to_pos < from_pos``.
        """
        if to_pos < from_pos:
            return np.empty(0, dtype=np.int64)
        positions = np.arange(from_pos, to_pos + 1)
        idx = np.searchsorted(self.coords, positions, side="right") - 1
        out = np.full(len(positions), NO_ALIGNABILITY_SCORE, dtype=np.int64)
        valid = idx >= 0
        out[valid] = self.scores[idx[valid]]
        return out


def _hits_from_mappability(values: np.ndarray) -> np.ndarray:
    """Convert mappability values (1/hits) to hit counts, rounding half up."""
    with np.errstate(divide="ignore"):
        hits = np.floor(1.0 / values + 0.5)
    hits[~np.isfinite(hits) | (values <= 0)] = NO_ALIGNABILITY_SCORE
    return hits.astype(np.int64)


def build_alignability_map(
    chrom: str,
    intervals: pd.DataFrame,
    chrom_length: int | None = None,
    kmer_size: int = DEFAULT_KMER_SIZE,
) -> AlignabilityMap:
    """
    Build the score step function of one chromosome from bedGraph rows.

    Parameters
    ----------
    chrom : str
        Chromosome name.
    intervals : DataFrame
        bedGraph rows (``start`` 0-based, ``end`` 1-based) of this chromosome.
    chrom_length : int | None
        Chromosome size from chromInfo. Positions after the last interval
        up to this length are marked as having no score.
    """
    intervals = intervals.sort_values("start")
    starts = intervals["start"].to_numpy(dtype=np.int64) + 1
    ends = intervals["end"].to_numpy(dtype=np.int64)
    scores = _hits_from_mappability(intervals["value"].to_numpy(dtype=float))

    # Uncovered stretches: before the first interval, between intervals, after the last
    gap_coords = []
    if len(starts) == 0 or starts[0] != 1:
        gap_coords.append(np.array([1], dtype=np.int64))
    if len(starts) > 1:
        has_gap = starts[1:] - ends[:-1] > 1
        gap_coords.append(ends[:-1][has_gap] + 1)
    if len(ends) and chrom_length is not None and ends[-1] < chrom_length:
        gap_coords.append(np.array([ends[-1] + 1], dtype=np.int64))

    if gap_coords:
        gaps = np.concatenate(gap_coords)
        coords = np.concatenate([starts, gaps])
        values = np.concatenate(
            [scores, np.full(len(gaps), NO_ALIGNABILITY_SCORE, dtype=np.int64)]
        )
        order = np.argsort(coords, kind="stable")
        coords, values = coords[order], values[order]
    else:
        coords, values = starts, scores

    return AlignabilityMap(
        chrom=chrom, coords=coords, scores=values, kmer_size=kmer_size
    )


def read_chrom_info(chrom_info_file: str | Path) -> dict[str, int]:
    """
    Read a UCSC chromInfo file (``chrom<TAB>size[<TAB>...]``, optionally gzipped).
    """
    path = Path(chrom_info_file)
    if not path.exists():
        raise FileNotFoundError(f"chromInfo file not found: {path}")
    df = pd.read_csv(
        path, sep="\t", header=None, usecols=[0, 1], names=["chrom", "size"]
    )
    return dict(zip(df["chrom"].astype(str), df["size"].astype(int)))


class AlignabilityTrack:
    """
    Genome-wide alignability scores, one AlignabilityMap per chromosome.

    Instances are read-only after construction and safe to share between
    threads.
    """

    def __init__(
        self,
        maps: dict[str, AlignabilityMap],
        kmer_size: int = DEFAULT_KMER_SIZE,
        chrom_sizes: dict[str, int] | None = None,
    ):
        self.maps = maps
        self.kmer_size = kmer_size
        self.chrom_sizes = chrom_sizes or {}

    @classmethod
    def from_bedgraph(
        cls,
        bedgraph_file: str | Path,
        chrom_info_file: str | Path,
        kmer_size: int = DEFAULT_KMER_SIZE,
        chromosomes: set[str] | None = None,
        chunksize: int = 1_000_000,
    ) -> AlignabilityTrack:
        """
        Parse a bedGraph alignability file.

        Parameters
        ----------
        bedgraph_file : str | Path
            bedGraph (``chrom start end value``), gzip is detected from the suffix.
        chrom_info_file : str | Path
            Chromosome sizes.
        kmer_size : int
            k-mer length the mappability values were computed for.
        chromosomes : set[str] | None
            Only keep these chromosomes (all if None).
        """
        path = Path(bedgraph_file)
        if not path.exists():
            raise FileNotFoundError(f"Alignability bedGraph not found: {path}")
        chrom_sizes = read_chrom_info(chrom_info_file)

        logger.info(f"Reading alignability map from {path}...")
        frames = []
        reader = pd.read_csv(
            path,
            sep="\t",
            header=None,
            names=BEDGRAPH_COLUMNS,
            usecols=[0, 1, 2, 3],
            dtype={"chrom": str},
            comment="#",
            chunksize=chunksize,
        )
        for chunk in reader:
            # Header lines only fill the first column
            chunk = chunk[~chunk["chrom"].str.startswith(("track", "browser"))]
            if chromosomes is not None:
                chunk = chunk[chunk["chrom"].isin(chromosomes)]
            if not chunk.empty:
                frames.append(
                    chunk.astype({"start": np.int64, "end": np.int64, "value": float})
                )

        maps: dict[str, AlignabilityMap] = {}
        if frames:
            df = pd.concat(frames, ignore_index=True)
            for chrom, group in df.groupby("chrom", sort=False):
                maps[str(chrom)] = build_alignability_map(
                    str(chrom), group, chrom_sizes.get(str(chrom)), kmer_size
                )
                logger.debug(
                    f"Alignability map for {chrom}: {len(maps[str(chrom)])} steps"
                )

        logger.info(f"Loaded alignability maps for {len(maps)} chromosomes")
        return cls(maps, kmer_size=kmer_size, chrom_sizes=chrom_sizes)

    @property
    def chromosomes(self) -> list[str]:
        return list(self.maps)

    def has_chromosome(self, chrom: str) -> bool:
        return chrom in self.maps

    def get_map(self, chrom: str) -> AlignabilityMap | None:
        return self.maps.get(chrom)

    def get_scores(self, chrom: str, start: int, end: int) -> np.ndarray:
        """
        Per-position scores for ``chrom:start-end`` (1-based, inclusive).

        Unknown chromosomes yield NO_ALIGNABILITY_SCORE everywhere.
        """
        amap = self.maps.get(chrom)
        if amap is None:
            return np.full(max(end - start + 1, 0), NO_ALIGNABILITY_SCORE, dtype=np.int64)
        return amap.get_score_from_to(start, end)

    def mean_kmer_alignability(self, chrom: str, start: int, end: int) -> float:
        """
        Mean number of genomic hits of the k-mers starting in ``start..end-k+1``.

        Returns NO_ALIGNABILITY_SCORE if any k-mer has no score, NaN if the
        interval is shorter than one k-mer.
        """
        scores = self.get_scores(chrom, start, end - self.kmer_size + 1)
        if len(scores) == 0:
            return float("nan")
        if (scores == NO_ALIGNABILITY_SCORE).any():
            return float(NO_ALIGNABILITY_SCORE)
        return float(scores.mean())

    def __repr__(self) -> str:
        return f"AlignabilityTrack({len(self.maps)} chromosomes, k={self.kmer_size})"
