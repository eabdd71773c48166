# ================================================================================
# Configuration models for capture Hi-C viewpoint design
#
# Uses Pydantic for runtime validation of configuration parameters. Panel
# configurations are frozen once validated; use model_copy(update=...) to
# derive a modified configuration.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import json
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, Field, model_validator

from vpdesigner.utils.root_dir import ROOT_DIR

DATA_DIR = Path(ROOT_DIR) / "data"


class Approach(str, Enum):
    """Viewpoint derivation strategy."""

    SIMPLE = "SIMPLE"
    EXTENDED = "EXTENDED"


class DigestParameters(BaseModel):
    """Restriction digest settings."""

    enzymes: list[str] = Field(default_factory=lambda: ["DpnII"], min_length=1)
    enzyme_file: str | None = Field(
        default=None,
        description="Tab-separated enzyme list (name, site). Defaults to the bundled list.",
    )

    model_config = {"frozen": True}


class ViewpointParameters(BaseModel):
    """Parameters controlling segment selection around each TSS."""

    approach: Approach = Field(default=Approach.EXTENDED)

    # Extent of the viewpoint (bp)
    size_up: int = Field(default=5000, ge=0, le=1_000_000)
    size_down: int = Field(default=1500, ge=0, le=1_000_000)

    # Segment filters
    min_frag_size: int = Field(default=120, ge=1)
    max_repeat_content: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Maximum mean margin repeat content of a selectable segment.",
    )
    margin_size: int = Field(default=250, ge=1)

    allow_unbalanced_margins: bool = Field(default=True)
    allow_patching: bool = Field(default=False)
    patching_score_threshold: float = Field(default=0.6, ge=0.0, le=1.0)

    # Additional neighbours considered by the simple approach
    frag_num_up: int = Field(default=0, ge=0, le=50)
    frag_num_down: int = Field(default=0, ge=0, le=50)

    model_config = {"frozen": True}


class BaitParameters(BaseModel):
    """Parameters for probe (bait) placement inside segment margins."""

    probe_length: int = Field(default=120, ge=20, le=500)
    min_bait_count: int = Field(default=1, ge=1, le=20)
    max_bait_count: int = Field(default=3, ge=1, le=50)

    # GC content (fraction)
    min_gc: float = Field(default=0.35, ge=0.0, le=1.0)
    max_gc: float = Field(default=0.65, ge=0.0, le=1.0)

    max_mean_kmer_alignability: float = Field(
        default=10,
        gt=0,
        description="Maximum mean number of genomic hits of the k-mers inside a bait.",
    )
    kmer_size: int = Field(default=50, ge=1, le=500)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_bait_count_range(self) -> BaitParameters:
        """Validate that min_bait_count <= max_bait_count."""
        if self.min_bait_count > self.max_bait_count:
            raise ValueError(
                f"Bait counts must satisfy: min ({self.min_bait_count}) <= max ({self.max_bait_count})"
            )
        return self

    @model_validator(mode="after")
    def validate_gc_range(self) -> BaitParameters:
        """Validate that min_gc <= max_gc."""
        if self.min_gc > self.max_gc:
            raise ValueError(
                f"GC values must satisfy: min ({self.min_gc}) <= max ({self.max_gc})"
            )
        return self

    @model_validator(mode="after")
    def validate_kmer_fits_probe(self) -> BaitParameters:
        """Alignability is averaged over the k-mers inside a probe."""
        if self.kmer_size > self.probe_length:
            raise ValueError(
                f"k-mer size ({self.kmer_size}) must be <= probe length ({self.probe_length})"
            )
        return self


class PanelConfig(BaseModel):
    """Complete configuration for a capture Hi-C probe panel."""

    genome_build: str = Field(default="hg38")
    est_avg_frag_len: float | None = Field(
        default=None,
        gt=0,
        description="Mean restriction fragment length. Estimated from the genome when omitted.",
    )
    digest_parameters: DigestParameters = Field(default_factory=DigestParameters)
    viewpoint_parameters: ViewpointParameters = Field(
        default_factory=ViewpointParameters
    )
    bait_parameters: BaitParameters = Field(default_factory=BaitParameters)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_margin_fits_probe(self) -> PanelConfig:
        """A margin must be able to hold at least one probe."""
        if self.viewpoint_parameters.margin_size < self.bait_parameters.probe_length:
            raise ValueError(
                f"Margin size ({self.viewpoint_parameters.margin_size}) must be >= probe length ({self.bait_parameters.probe_length})"
            )
        return self

    @property
    def approach(self) -> Approach:
        return self.viewpoint_parameters.approach

    @classmethod
    def from_json_file(cls, file_path: str | Path) -> PanelConfig:
        """
        Load configuration from a JSON file.

        Parameters
        ----------
        file_path : str | Path
            Path to the JSON configuration file.

        Returns
        -------
        PanelConfig
            Validated configuration object.

        Raises
        ------
        FileNotFoundError
            If the configuration file does not exist.
        ValidationError
            If the configuration fails validation.
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path) as f:
            data = json.load(f)

        return cls.model_validate(data)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> PanelConfig:
        """
        Load configuration from a dictionary.

        Raises
        ------
        ValidationError
            If the configuration fails validation.
        """
        return cls.model_validate(config_dict)

    @classmethod
    def from_preset(
        cls, preset: Literal["default", "simple"] = "default"
    ) -> PanelConfig:
        """
        Load a preset configuration.

        Parameters
        ----------
        preset : str
            Preset name, either "default" (extended approach) or "simple".

        Raises
        ------
        ValueError
            If the preset name is not recognized.
        """
        if preset == "default":
            config_path = DATA_DIR / "panel_default_config.json"
        elif preset == "simple":
            config_path = DATA_DIR / "panel_simple_config.json"
        else:
            raise ValueError(f"Unknown preset: {preset}. Use 'default' or 'simple'.")

        return cls.from_json_file(config_path)

    def to_dict(self) -> dict[str, Any]:
        """Export configuration to a JSON-serializable dictionary."""
        return self.model_dump(mode="json")

    def to_json_file(self, file_path: str | Path) -> None:
        """
        Save configuration to a JSON file.

        Parameters
        ----------
        file_path : str | Path
            Path to the output JSON file.
        """
        path = Path(file_path)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=4)
        logger.info(f"Configuration saved to: {path}")

    def with_overrides(self, **sections: dict[str, Any]) -> PanelConfig:
        """
        Return a re-validated copy with some fields replaced.

        Top-level fields are passed directly; parameter groups are passed as
        dictionaries, e.g. ``with_overrides(digest_parameters={"enzymes": ["HindIII"]})``.
        """
        data = self.to_dict()
        for key, value in sections.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        return PanelConfig.model_validate(data)


def load_config(
    preset: str = "default",
    config_path: str | None = None,
) -> PanelConfig:
    """
    Load and validate panel configuration.

    Priority order: config_path > preset

    Parameters
    ----------
    preset : str
        Preset configuration name ("default" or "simple").
    config_path : str | None
        Path to a custom configuration JSON file.

    Returns
    -------
    PanelConfig
        Validated configuration object.
    """
    if config_path is not None:
        logger.info(f"Loading config from: {config_path}")
        return PanelConfig.from_json_file(config_path)

    if preset not in ("default", "simple"):
        logger.warning(
            f"Preset value `{preset}` must be either 'default' or 'simple'. Using default instead."
        )
        preset = "default"

    logger.info(f"Loading preset configuration: {preset}")
    return PanelConfig.from_preset(preset)  # type: ignore[arg-type]


# ================================================================================
# Genome builds
# ================================================================================


class GenomeBuild(BaseModel):
    """A reference assembly and the chromosomes viewpoints may be placed on."""

    name: str
    description: str = ""
    basename: str
    canonical_chromosomes: frozenset[str]

    model_config = {"frozen": True}

    def is_canonical(self, chrom: str) -> bool:
        return chrom in self.canonical_chromosomes


@lru_cache(maxsize=4)
def load_genome_builds(path: str | None = None) -> dict[str, GenomeBuild]:
    """
    Load the genome build table.

    Parameters
    ----------
    path : str | None
        JSON file with a list of builds. Defaults to the bundled table.

    Returns
    -------
    dict[str, GenomeBuild]
        Builds keyed by name (e.g. "hg38").
    """
    table_path = Path(path) if path else DATA_DIR / "genome_builds.json"
    with open(table_path) as f:
        records = json.load(f)
    builds = [GenomeBuild.model_validate(r) for r in records]
    return {b.name: b for b in builds}


def get_genome_build(name: str) -> GenomeBuild:
    """Return the build called ``name`` or raise ValueError."""
    builds = load_genome_builds()
    if name not in builds:
        raise ValueError(
            f"Unknown genome build '{name}'. Available: {', '.join(sorted(builds))}"
        )
    return builds[name]
