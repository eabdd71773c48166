# ================================================================================
# Random-access reference sequence providers
#
# All coordinates are 1-based and fully closed. Sequences are returned with
# their original case; lowercase letters mark repeat-masked bases.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

import pysam
from loguru import logger


class SequenceProvider(ABC):
    """Read-only access to the reference sequence of a genome."""

    @property
    @abstractmethod
    def references(self) -> list[str]:
        """Contig names in file order."""

    @abstractmethod
    def get_length(self, chrom: str) -> int:
        """Length of ``chrom`` or 0 if the contig is unknown."""

    @abstractmethod
    def get_subsequence(self, chrom: str, start: int, end: int) -> str:
        """Return bases ``start..end`` (1-based, inclusive) of ``chrom``."""

    def get_sequence(self, chrom: str) -> str:
        return self.get_subsequence(chrom, 1, self.get_length(chrom))

    def has_contig(self, chrom: str) -> bool:
        return chrom in self.references

    def close(self) -> None:
        """Release open file handles, if any."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class FastaSequenceProvider(SequenceProvider):
    """
    Indexed FASTA file access through pysam.

    The file handle is opened lazily and is not pickled, so each worker
    process opens its own handle.
    """

    def __init__(self, fasta_file: str | Path):
        self.fasta_file = Path(fasta_file)
        if not self.fasta_file.exists():
            raise FileNotFoundError(f"FASTA file not found: {self.fasta_file}")
        self._fasta: pysam.FastaFile | None = None

    @property
    def fasta(self) -> pysam.FastaFile:
        if self._fasta is None:
            fai = Path(f"{self.fasta_file}.fai")
            if not fai.exists():
                logger.info(f"Indexing {self.fasta_file} with samtools faidx...")
                pysam.faidx(str(self.fasta_file))
            self._fasta = pysam.FastaFile(str(self.fasta_file))
        return self._fasta

    @property
    def references(self) -> list[str]:
        return list(self.fasta.references)

    def get_length(self, chrom: str) -> int:
        try:
            return self.fasta.get_reference_length(chrom)
        except KeyError:
            return 0

    def get_subsequence(self, chrom: str, start: int, end: int) -> str:
        # pysam uses 0-based half-open coordinates
        return self.fasta.fetch(reference=chrom, start=start - 1, end=end)

    def close(self) -> None:
        if self._fasta is not None:
            self._fasta.close()
            self._fasta = None

    def __getstate__(self):
        state = self.__dict__.copy()
        state["_fasta"] = None
        return state

    def __repr__(self) -> str:
        return f"FastaSequenceProvider({self.fasta_file})"


class InMemorySequenceProvider(SequenceProvider):
    """Sequences held in a dictionary, mainly for small genomes and tests."""

    def __init__(self, sequences: dict[str, str]):
        self.sequences = dict(sequences)

    @property
    def references(self) -> list[str]:
        return list(self.sequences)

    def get_length(self, chrom: str) -> int:
        return len(self.sequences.get(chrom, ""))

    def get_subsequence(self, chrom: str, start: int, end: int) -> str:
        if chrom not in self.sequences:
            raise KeyError(f"Unknown contig: {chrom}")
        return self.sequences[chrom][max(start, 1) - 1 : end]

    def __repr__(self) -> str:
        return f"InMemorySequenceProvider({len(self.sequences)} contigs)"
