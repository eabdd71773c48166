# ================================================================================
# Restriction enzymes and cut-site search
#
# Recognition sites carry a '^' marking where the enzyme cuts the forward
# strand, e.g. DpnII = ^GATC, HindIII = A^AGCTT.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from vpdesigner.exceptions import MalformedEnzymeSiteError, UnknownEnzymeError
from vpdesigner.utils.root_dir import ROOT_DIR

if TYPE_CHECKING:
    from vpdesigner.genome.sequence import SequenceProvider

CUT_MARKER = "^"
DEFAULT_ENZYME_FILE = Path(ROOT_DIR) / "data" / "enzymelist.tab"
_VALID_SITE = re.compile(r"^[ACGT]+$")

# Stop scanning the genome once this many cuts have been seen
MEAN_FRAGMENT_CUT_THRESHOLD = 100_000


@dataclass(frozen=True)
class RestrictionEnzyme:
    """
    A restriction enzyme and its recognition site.

    Args:
        - name: Enzyme name, e.g. "DpnII"
        - site: Recognition motif with an embedded cut marker, e.g. "^GATC"
    """

    name: str
    site: str
    plain_site: str = field(init=False, repr=False)
    offset: int = field(init=False, repr=False)

    def __post_init__(self):
        if not self.site or CUT_MARKER not in self.site:
            raise MalformedEnzymeSiteError(
                f"Recognition site '{self.site}' of {self.name} has no '{CUT_MARKER}' cut marker"
            )
        if self.site.count(CUT_MARKER) > 1:
            raise MalformedEnzymeSiteError(
                f"Recognition site '{self.site}' of {self.name} has more than one cut marker"
            )
        plain = self.site.replace(CUT_MARKER, "").upper()
        if not _VALID_SITE.match(plain):
            raise MalformedEnzymeSiteError(
                f"Recognition site '{self.site}' of {self.name} must consist of A, C, G and T"
            )
        # frozen dataclass: derived fields are set through object.__setattr__
        object.__setattr__(self, "plain_site", plain)
        object.__setattr__(self, "offset", self.site.index(CUT_MARKER))

    @property
    def pattern(self) -> re.Pattern:
        return re.compile(self.plain_site)

    def __str__(self) -> str:
        return f"{self.name} ({self.site})"


def parse_enzyme_file(path: str | Path) -> list[RestrictionEnzyme]:
    """
    Parse a whitespace-separated enzyme list.

    Each non-comment line holds ``name site``. Lines starting with '#'
    and blank lines are skipped.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    MalformedEnzymeSiteError
        If a line cannot be parsed or a site lacks its cut marker.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Enzyme file not found: {path}")

    enzymes = []
    with path.open() as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            fields = line.split()
            if len(fields) < 2:
                raise MalformedEnzymeSiteError(
                    f"Malformed enzyme file {path}, line {lineno}: {line!r}"
                )
            enzymes.append(RestrictionEnzyme(fields[0], fields[1]))

    logger.debug(f"Parsed {len(enzymes)} restriction enzymes from {path}")
    return enzymes


def get_enzymes(
    names: list[str], enzyme_file: str | Path | None = None
) -> list[RestrictionEnzyme]:
    """
    Resolve enzyme names against an enzyme list.

    Parameters
    ----------
    names : list[str]
        Enzyme names (case-insensitive).
    enzyme_file : str | Path | None
        Enzyme list to search, defaults to the bundled list.

    Raises
    ------
    UnknownEnzymeError
        If a name is not in the list.
    """
    available = parse_enzyme_file(enzyme_file or DEFAULT_ENZYME_FILE)
    lookup = {e.name.lower(): e for e in available}
    chosen = []
    for name in names:
        enzyme = lookup.get(name.lower())
        if enzyme is None:
            raise UnknownEnzymeError(
                f"Unknown restriction enzyme '{name}'. "
                f"Available: {', '.join(e.name for e in available)}"
            )
        chosen.append(enzyme)
    return chosen


def find_cut_sites_by_enzyme(
    sequence_window: str,
    enzymes: list[RestrictionEnzyme],
    window_offset: int = 1,
) -> dict[str, list[int]]:
    """
    Cut positions per enzyme inside a sequence window.

    Positions are the 1-based coordinate of the first nucleotide after the
    cut, i.e. ``window_offset + match_start + enzyme.offset`` where
    ``window_offset`` is the 1-based coordinate of the first window base.
    Matches are non-overlapping and case-insensitive.
    """
    window = sequence_window.upper()
    cuts = {}
    for enzyme in enzymes:
        cuts[enzyme.name] = [
            window_offset + m.start() + enzyme.offset
            for m in enzyme.pattern.finditer(window)
        ]
    return cuts


def find_cut_sites(
    sequence_window: str,
    enzymes: list[RestrictionEnzyme],
    window_offset: int = 1,
) -> list[int]:
    """
    Find all cut sites of ``enzymes`` in a sequence window.

    Parameters
    ----------
    sequence_window : str
        Sequence to scan; case is ignored for matching.
    enzymes : list[RestrictionEnzyme]
        Enzymes whose cut sites are merged.
    window_offset : int
        1-based genomic coordinate of the first base of ``sequence_window``.

    Returns
    -------
    list[int]
        Sorted, de-duplicated 1-based positions of the first base after each cut.
    """
    positions: set[int] = set()
    for enzyme_cuts in find_cut_sites_by_enzyme(
        sequence_window, enzymes, window_offset
    ).values():
        positions.update(enzyme_cuts)
    return sorted(positions)


def estimate_mean_fragment_length(
    provider: SequenceProvider,
    enzymes: list[RestrictionEnzyme],
    threshold: int = MEAN_FRAGMENT_CUT_THRESHOLD,
) -> float:
    """
    Estimate the mean restriction fragment length of a genome digest.

    Contigs are scanned in file order, skipping unplaced contigs (names
    containing '_') and the mitochondrial genome, until more than
    ``threshold`` cuts have been counted.

    Returns
    -------
    float
        Scanned length divided by the number of cuts.

    Raises
    ------
    ValueError
        If the scanned sequence contains no cut site at all.
    """
    combined = re.compile("|".join(e.plain_site for e in enzymes))
    total_cuts = 0
    total_length = 0

    for chrom in provider.references:
        if "_" in chrom or "chrM" in chrom:
            continue
        sequence = provider.get_sequence(chrom).upper()
        total_cuts += sum(1 for _ in combined.finditer(sequence))
        total_length += len(sequence)
        logger.debug(
            f"Digest estimate after {chrom}: {total_cuts} cuts over {total_length} bp"
        )
        if total_cuts > threshold:
            break

    if total_cuts == 0:
        raise ValueError(
            f"No cut sites for {', '.join(e.name for e in enzymes)} found in the genome"
        )

    mean_length = total_length / total_cuts
    logger.info(
        f"Estimated mean restriction fragment length: {mean_length:.1f} bp ({total_cuts} cuts)"
    )
    return mean_length
