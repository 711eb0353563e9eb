"""CLI commands for corpusqa.

Operator entry point: onboard writes the config, ingest / ingest-text feed the
index, ask answers from it, and stats / reset-index / check-embedding cover
index maintenance.
"""

import asyncio
import os

# Use the bundled LiteLLM cost map so importing litellm never fetches it remotely
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from corpusqa import __logo__, __version__
from corpusqa.cli.shared.logging_utils import configure_cli_logging
from corpusqa.utils.exceptions import CorpusQAError, describe_exception

app = typer.Typer(
    name="corpusqa",
    help=f"{__logo__} corpusqa - answer questions from your documents",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} corpusqa v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """corpusqa - grounded question answering over ingested documents."""
    pass


def _load(command: str, verbose: bool = False):
    from corpusqa.config.loader import load_config

    config = load_config()
    configure_cli_logging(
        command,
        level=config.logging.level,
        file_enabled=config.logging.file_enabled,
        verbose=verbose,
    )
    return config


def _fail(exc: Exception) -> None:
    console.print(f"[red]Error:[/red] {escape(describe_exception(exc))}")
    raise typer.Exit(1)


def _run(coro):
    try:
        return asyncio.run(coro)
    except (CorpusQAError, FileNotFoundError, ValueError) as e:
        _fail(e)


async def _service(config):
    from corpusqa.services.rag_service import build_rag_service

    return await build_rag_service(config)


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """Write a default configuration file (or refresh an existing one)."""
    from corpusqa.config.loader import get_config_path, load_config, save_config
    from corpusqa.config.schema import Config

    config_path = get_config_path()
    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        console.print("  [bold]y[/bold] = overwrite with defaults (existing values will be lost)")
        console.print("  [bold]N[/bold] = refresh config, keeping existing values and adding new fields")
        if typer.confirm("Overwrite?"):
            save_config(Config())
            console.print(f"[green]✓[/green] Config reset to defaults at {config_path}")
        else:
            save_config(load_config())
            console.print(f"[green]✓[/green] Config refreshed at {config_path} (existing values preserved)")
    else:
        save_config(Config())
        console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} corpusqa is ready!")
    console.print("\nNext steps:")
    console.print(f"  1. Edit [cyan]{config_path}[/cyan] and set:")
    console.print("     • [bold]embedding.apiKey[/bold] (HuggingFace token for the default embedding model)")
    console.print("     • [bold]generation.apiKey[/bold] (OpenRouter key for the default answer model)")
    console.print("  2. Ingest: [cyan]corpusqa ingest ./handbook.pdf[/cyan]")
    console.print("  3. Ask: [cyan]corpusqa ask \"What is the refund window?\"[/cyan]")


# ============================================================================
# Ingestion
# ============================================================================


@app.command()
def ingest(
    path: Path = typer.Argument(..., help="File to ingest (text/* or PDF)"),
    mime: str = typer.Option(None, "--mime", help="MIME type; guessed from the extension when omitted"),
    source: str = typer.Option(None, "--source", help="Source label shown in answers (default: file name)"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Ingest one document into the index."""
    config = _load("ingest", verbose)

    async def _ingest():
        service = await _service(config)
        return await service.ingest_file(path, mime_type=mime, source_name=source)

    result = _run(_ingest())
    console.print(
        f"[green]✓[/green] Ingested [cyan]{source or path.name}[/cyan]: "
        f"{result.chunks_processed} chunks (document_id={result.document_id})"
    )


@app.command("ingest-text")
def ingest_text(
    text: str = typer.Argument(..., help="Raw text to ingest"),
    source: str = typer.Option(..., "--source", help="Source label shown in answers"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Ingest raw text under a source label."""
    config = _load("ingest", verbose)

    async def _ingest():
        service = await _service(config)
        return await service.ingest_raw_text(text, source)

    result = _run(_ingest())
    console.print(
        f"[green]✓[/green] Ingested [cyan]{source}[/cyan]: "
        f"{result.chunks_processed} chunks (document_id={result.document_id})"
    )


# ============================================================================
# Question answering
# ============================================================================


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to answer from the ingested documents"),
    top_k: int = typer.Option(None, "--top-k", "-k", help="Number of chunks to retrieve"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Answer a question from the ingested documents."""
    config = _load("ask", verbose)

    async def _ask():
        service = await _service(config)
        return await service.answer(question, top_k)

    answer = _run(_ask())
    console.print(answer.text, markup=False)
    if answer.sources:
        console.print(f"\n[dim]Sources: {', '.join(answer.sources)}[/dim]")
    if answer.degraded:
        raise typer.Exit(2)


# ============================================================================
# Index maintenance
# ============================================================================


@app.command()
def stats(verbose: bool = typer.Option(False, "--verbose", help="Debug logging")):
    """Show record counts per namespace."""
    from corpusqa.services.retrieval.chroma_store import ChromaVectorIndex

    config = _load("stats", verbose)

    async def _stats():
        index = await ChromaVectorIndex.from_config(config).initialize()
        return await index.describe()

    rows = _run(_stats())
    table = Table(title=f"Index {config.vector_index.index_name} ({config.vector_index.backend})")
    table.add_column("Namespace", style="cyan")
    table.add_column("Records", justify="right")
    table.add_column("Dimension", justify="right")
    table.add_column("Metric")
    for row in rows:
        table.add_row(row["namespace"], str(row["records"]), str(row["dimension"] or "-"), str(row["metric"]))
    console.print(table)


@app.command("reset-index")
def reset_index(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Delete every record in the namespace and recreate it empty."""
    from corpusqa.services.retrieval.chroma_store import ChromaVectorIndex

    config = _load("reset-index", verbose)
    vi = config.vector_index
    if not yes and not typer.confirm(f"Delete all records in {vi.index_name}/{vi.namespace}?"):
        raise typer.Exit()
    _run(ChromaVectorIndex.from_config(config).reset())
    console.print(
        f"[green]✓[/green] Recreated {vi.index_name}/{vi.namespace} "
        f"(dimension={config.embedding.dimension}, metric=cosine)"
    )


@app.command("check-embedding")
def check_embedding(verbose: bool = typer.Option(False, "--verbose", help="Debug logging")):
    """Embed a probe string and compare its dimension with the configuration."""
    from corpusqa.services.retrieval.embedding_provider import LiteLLMEmbeddingProvider

    config = _load("check-embedding", verbose)
    embedder = LiteLLMEmbeddingProvider.from_config(config)
    actual = _run(embedder.probe_dimension())
    expected = config.embedding.dimension
    console.print(f"Model: [cyan]{embedder.model_id}[/cyan]")
    if actual == expected:
        console.print(f"[green]✓[/green] Dimension {actual} matches embedding.dimension")
    else:
        console.print(f"[red]✗[/red] Model returns {actual} dimensions, embedding.dimension is {expected}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
