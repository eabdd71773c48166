# ================================================================================
# Sequence helpers shared by segments, baits and exporters
# ================================================================================

from __future__ import annotations

from dataclasses import dataclass


def write_fasta_from_dict(input_dt: dict, output_fasta: str, line_width: int = 0) -> None:
    """
    Write a dictionary of sequences to a FASTA file.

    Args:
        input_dt: Mapping of sequence name to sequence.
        output_fasta: Path of the FASTA file to write.
        line_width: Wrap sequence lines at this width (0 = single line).
    """
    with open(output_fasta, "w") as fasta:
        for header, seq in input_dt.items():
            fasta.write(f">{header}\n")
            if line_width > 0:
                for i in range(0, len(seq), line_width):
                    fasta.write(f"{seq[i : i + line_width]}\n")
            else:
                fasta.write(f"{seq}\n")


@dataclass(frozen=True)
class BaseComposition:
    """Case-aware nucleotide counts of a soft-masked sequence."""

    length: int
    lower: int
    upper: int
    gc: int
    at: int

    @property
    def repeat_fraction(self) -> float:
        """Fraction of lowercase (repeat-masked) letters."""
        letters = self.lower + self.upper
        return self.lower / letters if letters else 0.0

    @property
    def gc_fraction(self) -> float:
        """G+C over the full sequence length."""
        return self.gc / self.length if self.length else 0.0


def base_composition(sequence: str) -> BaseComposition:
    """
    Count lowercase, uppercase, G/C and A/T letters of a sequence.

    Lowercase letters mark repeat-masked bases in UCSC style FASTA files,
    so case must be preserved by the caller.
    """
    lower = sum(1 for c in sequence if c.islower())
    upper = sum(1 for c in sequence if c.isupper())
    folded = sequence.upper()
    gc = folded.count("G") + folded.count("C")
    at = folded.count("A") + folded.count("T")
    return BaseComposition(
        length=len(sequence), lower=lower, upper=upper, gc=gc, at=at
    )


def gc_content(sequence: str) -> float:
    """
    Calculate the GC content of a DNA sequence.

    Parameters:
        sequence (str): DNA sequence, any case.

    Returns:
        float: GC content as a fraction between 0 and 1.
    """
    if not sequence:
        return 0.0

    sequence = sequence.upper()
    gc_count = sequence.count("G") + sequence.count("C")
    return gc_count / len(sequence)


def repeat_content(sequence: str) -> float:
    """Fraction of repeat-masked (lowercase) letters in ``sequence``."""
    return base_composition(sequence).repeat_fraction


def format_thousands(value: int) -> str:
    """Format an integer with comma thousands separators (``29232796`` -> ``29,232,796``)."""
    return f"{value:,}"
