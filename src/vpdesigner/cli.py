# ================================================================================
# Command-line interface for the capture Hi-C viewpoint designer
#
# Thin wrapper around the pipeline module.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from vpdesigner.version import __version__

app = typer.Typer(
    name="vpdesigner",
    help="Design capture Hi-C viewpoints and probes.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

MARKS = {True: "[green]✓[/green]", False: "[red]✗[/red]"}


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold green]vpdesigner[/bold green] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Viewpoint Designer - Design capture Hi-C viewpoints, restriction fragments and baits."""


@app.command()
def run(
    genes_file: Annotated[
        Path,
        typer.Option(
            "--genes",
            "-i",
            help="Gene symbols, one per line, or a CSV file with a Gene column.",
        ),
    ],
    fasta_file: Annotated[
        Path | None,
        typer.Option(
            "--fasta",
            "-f",
            help="Reference genome FASTA. If omitted, uses the registered file.",
        ),
    ] = None,
    alignability_file: Annotated[
        Path | None,
        typer.Option(
            "--alignability",
            help="Gzipped alignability bedGraph. If omitted, uses the registered file.",
        ),
    ] = None,
    chrom_info_file: Annotated[
        Path | None,
        typer.Option(
            "--chrom-info",
            help="Gzipped chromInfo file. If omitted, uses the registered file.",
        ),
    ] = None,
    refgene_file: Annotated[
        Path | None,
        typer.Option(
            "--refgene",
            help="Gzipped UCSC refGene table. If omitted, uses the registered file.",
        ),
    ] = None,
    output_dir: Annotated[
        Path,
        typer.Option(
            "--output",
            "-o",
            help="Directory for output files.",
        ),
    ] = Path("./output"),
    panel_name: Annotated[
        str,
        typer.Option(
            "--name",
            "-n",
            help="Name of the design, used as output file prefix.",
        ),
    ] = "vpdesigner",
    genome: Annotated[
        str | None,
        typer.Option(
            "--genome",
            "-g",
            help="Genome build (overrides the configuration).",
        ),
    ] = None,
    preset: Annotated[
        str,
        typer.Option(
            "--preset",
            "-p",
            help="Configuration preset (default or simple).",
        ),
    ] = "default",
    config_file: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to custom configuration JSON file.",
        ),
    ] = None,
    enzymes: Annotated[
        list[str] | None,
        typer.Option(
            "--enzyme",
            "-e",
            help="Restriction enzyme (repeatable, overrides the configuration).",
        ),
    ] = None,
    parallel: Annotated[
        bool,
        typer.Option(
            "--parallel",
            help="Create viewpoints with one worker process per chromosome.",
        ),
    ] = False,
    max_workers: Annotated[
        int | None,
        typer.Option(
            "--max-workers",
            help="Max parallel workers.",
        ),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option(
            "--debug",
            help="Write DEBUG messages to the log file.",
        ),
    ] = False,
) -> None:
    """
    Run the complete viewpoint design pipeline.

    Example:
        vpdesigner run -i genes.txt -f hg38.fa --alignability hg38.50mer.bedgraph.gz \\
            --chrom-info chromInfo.txt.gz --refgene refGene.txt.gz -o results/
    """
    from vpdesigner.pipeline import run_pipeline

    console.print("[bold green]vpdesigner[/bold green]")
    console.print(f"  Genes:  {genes_file}")
    console.print(f"  FASTA:  {fasta_file or 'registered'}")
    console.print(f"  Output: {output_dir}")
    console.print()

    try:
        result = run_pipeline(
            genes_file=genes_file,
            fasta_file=fasta_file,
            alignability_file=alignability_file,
            chrom_info_file=chrom_info_file,
            refgene_file=refgene_file,
            output_dir=output_dir,
            panel_name=panel_name,
            genome=genome,
            preset=preset,
            config_path=config_file,
            enzymes=enzymes,
            parallel=parallel,
            max_workers=max_workers,
            debug=debug,
        )
    except FileNotFoundError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e
    except Exception as e:
        console.print(f"[bold red]Pipeline failed: {e}[/bold red]")
        raise typer.Exit(code=1) from e

    console.print()
    if result.success:
        console.print("[bold green]Pipeline completed successfully![/bold green]")
    else:
        console.print("[bold yellow]Pipeline completed with warnings:[/bold yellow]")
        for error in result.errors:
            console.print(f"  [yellow]• {error}[/yellow]")
    console.print(
        f"  Viewpoints:   {result.num_viewpoints} "
        f"({result.num_resolved_viewpoints} with selected fragments)"
    )
    if result.invalid_genes:
        console.print(f"  Unknown genes: {', '.join(result.invalid_genes)}")
    if result.failures:
        console.print(f"  Failed TSS:   {len(result.failures)}")
    console.print(f"  Output:       {result.output_dir}")


@app.command()
def enzymes(
    enzyme_file: Annotated[
        Path | None,
        typer.Option(
            "--file",
            help="Custom enzyme list (name<TAB>site).",
        ),
    ] = None,
) -> None:
    """List the available restriction enzymes."""
    from vpdesigner.designer.enzyme import DEFAULT_ENZYME_FILE, parse_enzyme_file
    from vpdesigner.exceptions import MalformedEnzymeSiteError

    try:
        available = parse_enzyme_file(enzyme_file or DEFAULT_ENZYME_FILE)
    except (FileNotFoundError, MalformedEnzymeSiteError) as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e

    for enzyme in available:
        console.print(f"  {enzyme.name:<12} {enzyme.site}")


@app.command()
def genomes() -> None:
    """List the supported genome builds."""
    from vpdesigner.config import load_genome_builds

    for build in load_genome_builds().values():
        console.print(
            f"  [bold]{build.name:<8}[/bold] {build.description} "
            f"({len(build.canonical_chromosomes)} chromosomes)"
        )


@app.command()
def register(
    genome: Annotated[
        str,
        typer.Option(
            "--genome",
            "-g",
            help="Genome build the resources belong to (e.g. hg38).",
        ),
    ] = "hg38",
    fasta: Annotated[
        Path | None,
        typer.Option("--fasta", "-f", help="Reference genome FASTA."),
    ] = None,
    alignability: Annotated[
        Path | None,
        typer.Option("--alignability", help="Gzipped alignability bedGraph."),
    ] = None,
    chrom_info: Annotated[
        Path | None,
        typer.Option("--chrom-info", help="Gzipped chromInfo file."),
    ] = None,
    refgene: Annotated[
        Path | None,
        typer.Option("--refgene", help="Gzipped UCSC refGene table."),
    ] = None,
    checksums: Annotated[
        Path | None,
        typer.Option(
            "--checksums",
            help="SHA-256 checksums file (sha256sum format) to verify the files against.",
        ),
    ] = None,
) -> None:
    """Register local genome resource files for later runs."""
    from vpdesigner.resources import (
        _parse_checksums_file,
        genome_status,
        register_genome_resources,
    )

    paths = {
        "fasta": fasta,
        "alignability": alignability,
        "chrom_info": chrom_info,
        "refgene": refgene,
    }
    if all(p is None for p in paths.values()):
        typer.echo(
            "Error: give at least one of --fasta, --alignability, --chrom-info, --refgene.",
            err=True,
        )
        raise typer.Exit(code=1)

    try:
        expected = _parse_checksums_file(checksums) if checksums else None
        register_genome_resources(genome, expected_checksums=expected, **paths)
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e

    s = genome_status(genome)
    console.print(f"[bold green]Done![/bold green] Resources for [bold]{genome}[/bold]:")
    for kind in paths:
        line = f"  {kind:<13} {'ready' if s[kind] else 'not registered'}"
        if s.get(f"{kind}_sha256"):
            line += f"  sha256:{s[f'{kind}_sha256'][:16]}…"
        console.print(line)


@app.command()
def status(
    verify: Annotated[
        bool,
        typer.Option("--verify", help="Re-hash registered files and compare checksums."),
    ] = False,
) -> None:
    """Show vpdesigner version and registered genome resources."""
    from vpdesigner.resources import (
        genome_status,
        get_cache_dir,
        list_genomes,
        verify_resource_checksums,
    )

    console.print(f"[bold green]vpdesigner[/bold green] version {__version__}")
    console.print(f"  Data directory: {get_cache_dir()}")
    console.print()

    console.print("[bold]Genome resources:[/bold]")
    for g in list_genomes():
        s = genome_status(g)
        console.print(
            f"  {g}:"
            f"  FASTA {MARKS[s['fasta']]}"
            f"  FAI {MARKS[s['fai']]}"
            f"  alignability {MARKS[s['alignability']]}"
            f"  chromInfo {MARKS[s['chrom_info']]}"
            f"  refGene {MARKS[s['refgene']]}"
        )
        if verify:
            for kind, ok in verify_resource_checksums(g).items():
                if ok is not None:
                    console.print(f"    {kind:<13} checksum {MARKS[ok]}")
