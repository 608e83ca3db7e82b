"""
PortMorph CLI - Main entry point.

Provides commands for porting a project to another language, analysing a
source tree, listing oracle models and generating a configuration file.
"""

import logging
from pathlib import Path
from typing import Optional

import orjson
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from portmorph import __version__
from portmorph.analyzer.project_analyzer import AnalysisError, ProjectAnalyzer
from portmorph.config.loader import (
    ConfigurationError,
    create_config_from_args,
    generate_default_config,
    load_config_from_yaml,
    parse_language,
)
from portmorph.config.models import LLMConfig, LLMProvider, PortMorphConfig
from portmorph.pipeline.orchestrator import PortingOrchestrator
from portmorph.state.persistence import SessionMismatchError
from portmorph.translator.engine import RunOptions
from portmorph.translator.llm_client import create_llm_client

app = typer.Typer(
    name="portmorph",
    help="Port multi-file projects between languages with an LLM, file by file",
    no_args_is_help=True,
)

console = Console()


# =============================================================================
# Helper Functions
# =============================================================================


def configure_logging(verbose: bool):
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(name)s: %(message)s")
    # Silence noisy HTTP libraries even in verbose mode
    for noisy in ("httpcore", "httpx", "openai._base_client", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def validate_path(path: str, must_exist: bool = True) -> Path:
    """Validate and return a Path object."""
    p = Path(path)
    if must_exist and not p.exists():
        raise typer.BadParameter(f"Path does not exist: {path}")
    return p


def display_config(cfg: PortMorphConfig, verbose: bool = False):
    """Display the run configuration."""
    info_text = f"""
[bold cyan]Port:[/bold cyan] {cfg.get_translation_type()}
[bold cyan]Source:[/bold cyan] {cfg.project.source_dir}
[bold cyan]Target:[/bold cyan] {cfg.project.target_dir}
[bold cyan]Model:[/bold cyan] {cfg.llm.model} ({cfg.llm.provider.value})
[bold cyan]Workers:[/bold cyan] {cfg.porting.max_workers}
    """
    console.print(Panel(info_text.strip(), title=f"PortMorph {__version__}", border_style="bold green"))

    if verbose:
        console.print("\n[bold]Configuration Details:[/bold]")
        console.print(f"  Package name: {cfg.project.effective_package_name}")
        console.print(f"  Max prompt tokens: {cfg.porting.max_prompt_tokens}")
        console.print(f"  Max attempts: {cfg.porting.max_attempts} (chunks: {cfg.porting.chunk_max_attempts})")
        console.print(f"  Analyzer: {'on' if cfg.verification.run_analyzer else 'off'}")
        console.print(f"  Max refine passes: {cfg.verification.max_refine_attempts}")


# =============================================================================
# Commands
# =============================================================================


@app.command()
def port(
    source: str = typer.Argument(..., help="Source project directory"),
    target: str = typer.Argument(..., help="Directory for the ported project"),
    from_lang: Optional[str] = typer.Option(None, "--from", "-f", help="Source language"),
    to_lang: Optional[str] = typer.Option(None, "--to", "-t", help="Target language"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Oracle model"),
    provider: Optional[str] = typer.Option(None, "--provider", help="Oracle provider (ollama/openai)"),
    host: Optional[str] = typer.Option(None, "--host", help="Ollama host or OpenAI-compatible base URL"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Files ported concurrently"),
    package_name: Optional[str] = typer.Option(None, "--package-name", help="Target package name"),
    resume: bool = typer.Option(False, "--resume", help="Resume the session stored in the target directory"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Analyse and plan without porting"),
    no_analyze: bool = typer.Option(False, "--no-analyze", help="Skip the external analyzer"),
    fail_on_warnings: Optional[bool] = typer.Option(None, "--fail-on-warnings", help="Analyzer warnings fail verification"),
    retry_threshold: Optional[int] = typer.Option(None, "--retry-threshold", help="Refine if analyzer issues >= count"),
    max_refine: Optional[int] = typer.Option(None, "--max-refine", help="Max refine passes"),
    error_threshold: Optional[int] = typer.Option(None, "--error-threshold", help="Refine if analyzer errors >= count"),
    warning_threshold: Optional[int] = typer.Option(None, "--warning-threshold", help="Refine if analyzer warnings >= count"),
    info_threshold: Optional[int] = typer.Option(None, "--info-threshold", help="Refine if analyzer infos >= count"),
    fail_on_issues: Optional[bool] = typer.Option(None, "--fail-on-issues", help="Exit 1 when files remain failed"),
    debug_prompt: bool = typer.Option(False, "--debug-prompt", help="Log the first prompt sent to the oracle"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to configuration YAML file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Port a project to another language.

    Examples:
        portmorph port ./my-ts-lib ./my_dart_lib --from typescript --to dart
        portmorph port ./app ./app_py --from javascript --to python --workers 4
        portmorph port ./my-ts-lib ./my_dart_lib --from typescript --to dart --resume
    """
    configure_logging(verbose)

    try:
        source_dir = Path(source)
        if not source_dir.is_dir():
            console.print(f"[bold red]Error:[/bold red] Source directory not found: {source}")
            raise typer.Exit(1)

        base = load_config_from_yaml(Path(config)) if config else None
        if not base and (not from_lang or not to_lang):
            console.print("[bold red]Error:[/bold red] --from and --to are required when not using --config")
            raise typer.Exit(1)

        llm_overrides = {"model": model, "provider": LLMProvider(provider) if provider else None}
        if host:
            if (provider or (base.llm.provider.value if base else "ollama")) == LLMProvider.OPENAI.value:
                llm_overrides["base_url"] = host
            else:
                llm_overrides["host"] = host

        cfg = create_config_from_args(
            source_dir=source_dir,
            target_dir=Path(target),
            source_lang=from_lang or base.project.source_language.value,
            target_lang=to_lang or base.project.target_language.value,
            package_name=package_name,
            base_config=base,
            llm=llm_overrides,
            porting={"max_workers": workers},
            verification={
                "run_analyzer": False if no_analyze else None,
                "fail_on_warnings": fail_on_warnings,
                "retry_threshold": retry_threshold,
                "max_refine_attempts": max_refine,
                "error_threshold": error_threshold,
                "warning_threshold": warning_threshold,
                "info_threshold": info_threshold,
                "fail_on_issues": fail_on_issues,
            },
        )
        display_config(cfg, verbose)

        try:
            client = create_llm_client(cfg.llm)
        except ConnectionError as e:
            console.print(f"[bold red]Oracle unreachable:[/bold red] {e}")
            raise typer.Exit(1)
        if not client.health_check():
            console.print(f"[bold red]Oracle unreachable:[/bold red] health check failed for {cfg.llm.model}")
            raise typer.Exit(1)

        orchestrator = PortingOrchestrator(cfg, client, options=RunOptions(debug_prompt=debug_prompt, verbose=verbose))
        result = orchestrator.run(resume=resume, dry_run=dry_run)

        if result.cancelled:
            console.print("\n[yellow]Interrupted. Run again with --resume to continue.[/yellow]")
            raise typer.Exit(130)
        if result.failures:
            console.print(f"\n[red]✗ {len(result.failures)} file(s) failed to port[/red]")
            if cfg.verification.fail_on_issues:
                raise typer.Exit(1)
        elif not dry_run:
            console.print(f"\n[green]✓[/green] Ported project written to {cfg.project.target_dir}")

    except typer.Exit:
        raise
    except SessionMismatchError as e:
        console.print(f"[bold red]Session Error:[/bold red] {e}")
        raise typer.Exit(1)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        raise typer.Exit(1)
    except AnalysisError as e:
        console.print(f"[bold red]Analysis Error:[/bold red] {e}")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        if verbose:
            console.print_exception()
        raise typer.Exit(1)


@app.command()
def analyze(
    source: str = typer.Argument(..., help="Source directory to analyze"),
    output: str = typer.Option("./analysis.json", "--output", "-o", help="Output file for analysis results"),
    from_lang: Optional[str] = typer.Option(None, "--from", "-f", help="Source language (detected if omitted)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Analyze a source project without porting it.

    Writes the analysis summary as JSON.
    """
    configure_logging(verbose)

    try:
        language = parse_language(from_lang) if from_lang else None
        summary, units = ProjectAnalyzer(validate_path(source), language).analyze()

        table = Table(title="Analysis Summary", show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Language", summary.language.value if summary.language else "unknown")
        table.add_row("Files", str(len(summary.files)))
        table.add_row("Exported symbols", str(sum(len(u.exports) for u in units)))
        table.add_row("Entry points", ", ".join(summary.entry_points) or "-")
        table.add_row("Dependencies", str(len(summary.dependencies)))
        console.print(table)

        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(orjson.dumps(summary.model_dump(mode="json"), option=orjson.OPT_INDENT_2))
        console.print(f"\n[green]✓[/green] Analysis saved to {output_path}")

    except ConfigurationError as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        raise typer.Exit(1)
    except AnalysisError as e:
        console.print(f"[bold red]Analysis Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def models(
    provider: str = typer.Option("ollama", "--provider", help="Oracle provider (ollama/openai)"),
    host: Optional[str] = typer.Option(None, "--host", help="Ollama host or OpenAI-compatible base URL"),
):
    """List the models the oracle offers."""
    try:
        llm = LLMConfig(provider=LLMProvider(provider))
        if host:
            llm = llm.model_copy(update={"host": host} if llm.provider == LLMProvider.OLLAMA else {"base_url": host})
        client = create_llm_client(llm)
        available = client.list_models()
    except (ConnectionError, RuntimeError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    table = Table(title="Available Models")
    table.add_column("Name", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    for info in available:
        size = f"{info.size / 1e9:.1f} GB" if info.size else "-"
        table.add_row(info.name, size, str(info.modified_at or "-"))
    console.print(table)


@app.command()
def init(
    output: str = typer.Option("./portmorph.yaml", "--output", "-o", help="Output path for config file"),
):
    """
    Generate a default configuration file.

    Creates a portmorph.yaml with sensible defaults that you can customize.
    """
    output_path = Path(output)

    if output_path.exists():
        if not typer.confirm(f"{output} already exists. Overwrite?"):
            console.print("[yellow]Cancelled.[/yellow]")
            raise typer.Abort()

    generate_default_config(output_path)
    console.print(f"[green]✓[/green] Generated configuration file: {output}")
    console.print("\nEdit this file to customize your porting settings.")


# =============================================================================
# Entry Point
# =============================================================================


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
