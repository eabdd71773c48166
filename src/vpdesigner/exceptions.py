# ================================================================================
# Exceptions raised while building viewpoints
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================


class VpDesignerError(Exception):
    """Base class for all viewpoint design errors."""


class InvalidLocusError(VpDesignerError):
    """Anchor position lies outside its contig, or the contig has no length."""

    def __init__(self, chrom: str, pos: int, length: int):
        self.chrom = chrom
        self.pos = pos
        self.length = length
        super().__init__(
            f"Position {chrom}:{pos} is outside the contig bounds [1, {length}]"
        )


class NoCutSiteFoundError(VpDesignerError):
    """No enzyme cuts inside the search window and the single spanning segment is too short."""


class InsufficientBaitsError(VpDesignerError):
    """Fewer than the minimum number of usable baits could be placed in a margin."""

    def __init__(self, margin: str, baits: list, required: int):
        self.margin = margin
        self.baits = baits
        self.required = required
        super().__init__(
            f"Only {len(baits)} of {required} required baits are usable in {margin}"
        )


class MalformedEnzymeSiteError(VpDesignerError):
    """A recognition site is empty or lacks the '^' cut marker."""


class UnknownEnzymeError(VpDesignerError):
    """An enzyme name was requested that is not in the enzyme list."""
