# ================================================================================
# Genome resource management: registry and resource handles
#
# Keeps track of the reference files needed per genome build (FASTA,
# alignability bedGraph, chromInfo, refGene) in a registry at
# ~/.vpdesigner/data/registry.json, with SHA-256 checksums.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from vpdesigner.config import get_genome_build, load_genome_builds
from vpdesigner.genome.alignability import DEFAULT_KMER_SIZE, AlignabilityTrack
from vpdesigner.genome.genes import GeneTranscriptSource
from vpdesigner.genome.sequence import FastaSequenceProvider

# ---------------------------------------------------------------------------
# Cache directory
# ---------------------------------------------------------------------------

DEFAULT_DATA_DIR = Path.home() / ".vpdesigner" / "data"
ENV_DATA_DIR = "VPDESIGNER_DATA_DIR"

RESOURCE_KINDS = ("fasta", "alignability", "chrom_info", "refgene")


def get_cache_dir() -> Path:
    """Return the data cache directory, respecting ``$VPDESIGNER_DATA_DIR``."""
    env = os.environ.get(ENV_DATA_DIR)
    if env:
        return Path(env)
    return DEFAULT_DATA_DIR


_REGISTRY_FILENAME = "registry.json"

# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------


def _registry_path() -> Path:
    return get_cache_dir() / _REGISTRY_FILENAME


def _load_registry() -> dict:
    path = _registry_path()
    if not path.is_file():
        return {}
    with path.open() as f:
        return json.load(f)


def _save_registry(registry: dict) -> None:
    path = _registry_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        json.dump(registry, f, indent=2)


# ---------------------------------------------------------------------------
# SHA-256 checksums
# ---------------------------------------------------------------------------

_CHUNK_SIZE = 1024 * 1024  # 1 MB


def _compute_sha256(path: Path) -> str:
    """Compute the SHA-256 hex digest of a file, reading in 1 MB chunks."""
    h = hashlib.sha256()
    with path.open("rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            h.update(chunk)
    return h.hexdigest()


def _parse_checksums_file(path: Path) -> dict[str, str]:
    """Parse a ``sha256sum``-format checksums file.

    Expected format (one entry per line)::

        <hex_digest>  <filename>

    Returns a dict mapping filename (basename only) to hex digest.
    Raises ``ValueError`` on malformed lines.
    """
    checksums: dict[str, str] = {}
    with path.open() as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            # sha256sum uses two spaces; binary mode marks the name with '*'
            parts = line.replace("*", " ").split(None, 1)
            if len(parts) != 2:
                raise ValueError(
                    f"Malformed checksums file {path}, line {lineno}: {line!r}"
                )
            digest, filename = parts
            checksums[Path(filename).name] = digest
    return checksums


def register_genome_resources(
    genome: str,
    expected_checksums: dict[str, str] | None = None,
    **paths: Path | str | None,
) -> dict[str, str]:
    """Register resource files of *genome* with SHA-256 checksums.

    Resources are passed by kind, e.g. ``fasta=..., refgene=...``. Kinds
    not given keep their previous registration. If *expected_checksums*
    (``{filename: hex_digest}``) lists a file, the on-disk file is hashed
    and compared; a mismatch raises ``ValueError`` **before** anything is
    written to the registry.
    """
    get_genome_build(genome)
    unknown = set(paths) - set(RESOURCE_KINDS)
    if unknown:
        raise ValueError(
            f"Unknown resource kind(s): {', '.join(sorted(unknown))}. "
            f"Use: {', '.join(RESOURCE_KINDS)}"
        )

    registry = _load_registry()
    entry: dict[str, str] = dict(registry.get(genome, {}))

    for kind, value in paths.items():
        if value is None:
            continue
        path = Path(value).resolve()
        if not path.is_file():
            raise FileNotFoundError(f"{kind} file not found: {path}")
        logger.info(f"Computing SHA-256 for {path.name} ...")
        actual = _compute_sha256(path)
        if expected_checksums and path.name in expected_checksums:
            expected = expected_checksums[path.name]
            if actual != expected:
                raise ValueError(
                    f"{kind} checksum mismatch for {path.name}: "
                    f"expected {expected[:16]}…, got {actual[:16]}…"
                )
            logger.info(f"{kind} checksum verified: {actual[:16]}…")
        entry[kind] = str(path)
        entry[f"{kind}_sha256"] = actual

    registry[genome] = entry
    _save_registry(registry)
    logger.info(f"Registered {genome} resources in registry.")
    return entry


def verify_resource_checksums(genome: str) -> dict[str, bool | None]:
    """Verify stored checksums for *genome* against on-disk files.

    Returns ``{resource: True | False | None}`` where ``None`` means
    no checksum is stored for that resource.
    """
    entry = _load_registry().get(genome, {})
    results: dict[str, bool | None] = {}

    for resource in RESOURCE_KINDS:
        path_str = entry.get(resource)
        stored_hash = entry.get(f"{resource}_sha256")
        if not path_str or not stored_hash:
            results[resource] = None
            continue
        path = Path(path_str)
        if not path.is_file():
            results[resource] = False
            continue
        actual = _compute_sha256(path)
        results[resource] = actual == stored_hash
        if not results[resource]:
            logger.warning(
                f"Checksum mismatch for {resource}: "
                f"expected {stored_hash[:16]}…, got {actual[:16]}…"
            )
    return results


# ---------------------------------------------------------------------------
# Public query functions
# ---------------------------------------------------------------------------


def list_genomes() -> list[str]:
    """Return names of all supported genome builds."""
    return list(load_genome_builds())


def get_registered_resource(genome: str, kind: str) -> Path | None:
    """Return the registered path of *kind* for *genome*, or None if absent/missing."""
    entry = _load_registry().get(genome)
    if not entry or kind not in entry:
        return None
    path = Path(entry[kind])
    if not path.is_file():
        logger.warning(f"Registered {kind} for '{genome}' not found at {path}")
        return None
    return path


def is_fai_ready(fasta_path: Path) -> bool:
    """Return True if a samtools/pysam .fai index exists for *fasta_path*."""
    return Path(str(fasta_path) + ".fai").is_file()


def genome_status(genome: str) -> dict:
    """Return readiness flags and checksums for all resources of *genome*."""
    entry = _load_registry().get(genome, {})
    status: dict = {}
    for kind in RESOURCE_KINDS:
        status[kind] = get_registered_resource(genome, kind) is not None
        status[f"{kind}_sha256"] = entry.get(f"{kind}_sha256")
    fasta = get_registered_resource(genome, "fasta")
    status["fai"] = fasta is not None and is_fai_ready(fasta)
    return status


# ---------------------------------------------------------------------------
# Resource handle
# ---------------------------------------------------------------------------


@dataclass
class GenomeResources:
    """
    File locations of one genome build and loaders for them.

    The handle only stores paths, so it can be sent to worker processes;
    each process opens its own FASTA handle and alignability maps.
    """

    genome: str
    fasta: Path
    alignability: Path
    chrom_info: Path
    refgene: Path
    kmer_size: int = DEFAULT_KMER_SIZE

    @classmethod
    def resolve(
        cls,
        genome: str,
        kmer_size: int = DEFAULT_KMER_SIZE,
        **paths: Path | str | None,
    ) -> GenomeResources:
        """
        Combine explicitly given paths with the registry.

        Raises
        ------
        FileNotFoundError
            If a resource is neither given nor registered, or does not exist.
        """
        resolved: dict[str, Path] = {}
        for kind in RESOURCE_KINDS:
            value = paths.get(kind)
            path = Path(value) if value is not None else get_registered_resource(genome, kind)
            if path is None:
                raise FileNotFoundError(
                    f"No {kind} file given or registered for '{genome}'. "
                    f"Run: vpdesigner register --genome {genome} --{kind.replace('_', '-')} <path>"
                )
            if not path.is_file():
                raise FileNotFoundError(f"{kind} file not found: {path}")
            resolved[kind] = path
        return cls(genome=genome, kmer_size=kmer_size, **resolved)

    def sequence_provider(self) -> FastaSequenceProvider:
        return FastaSequenceProvider(self.fasta)

    def load_alignability(self, chromosomes: set[str] | None = None) -> AlignabilityTrack:
        return AlignabilityTrack.from_bedgraph(
            self.alignability, self.chrom_info, self.kmer_size, chromosomes
        )

    def load_transcripts(self, canonical_only: bool = True) -> GeneTranscriptSource:
        chromosomes = None
        if canonical_only:
            chromosomes = get_genome_build(self.genome).canonical_chromosomes
        return GeneTranscriptSource.from_refgene(self.refgene, chromosomes)

    def to_dict(self) -> dict[str, str]:
        return {
            "genome": self.genome,
            "fasta": str(self.fasta),
            "alignability": str(self.alignability),
            "chrom_info": str(self.chrom_info),
            "refgene": str(self.refgene),
        }
