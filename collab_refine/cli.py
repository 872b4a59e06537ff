"""Click CLI: config loading, credentials, health check, refinement run, output."""

import asyncio
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from collab_refine.engine import RefinementEngine
from collab_refine.errors import RefinementError, ValidationError
from collab_refine.generation import GenerationService
from collab_refine.handoff import strategy_names
from collab_refine.healthcheck import run_health_checks
from collab_refine.models import ClarificationQuestion, ModelSelection, ProgressEvent, RefinementOutcome
from collab_refine.output import (
    console,
    format_progress,
    print_history,
    print_models,
    print_questions,
    print_result,
    save_to_file,
)
from collab_refine.prompt_files import PromptFile, archive_prompt, pending_prompts, read_prompt_file
from collab_refine.registry import ModelRegistry

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _credentials_from_env(config: AppConfig) -> dict[str, str]:
    return {name: os.environ.get(p.api_key_env, "") for name, p in config.providers.items()}


def _build_service(config: AppConfig) -> GenerationService:
    service = GenerationService(ModelRegistry.from_config(config.models), config.providers)
    service.set_credentials(_credentials_from_env(config))
    return service


def _build_selection(
    config: AppConfig,
    primary: str | None,
    refiner: str | None,
    final_model: str | None,
    strategy: str | None,
) -> ModelSelection:
    """CLI/frontmatter value wins, config default otherwise."""
    return ModelSelection(
        primary_model=primary or config.defaults.primary_model,
        refinement_model=refiner or config.defaults.refinement_model,
        final_review_model=final_model or config.defaults.final_review_model,
        handoff_strategy=strategy or config.defaults.handoff_strategy,
    )


def _check_and_filter_providers(service: GenerationService) -> None:
    """Ping providers, drop failing ones after asking. Exits when nothing works."""
    console.print("\n[bold]Checking providers...[/bold]")
    results = asyncio.run(run_health_checks(service))

    failed: list[str] = []
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed.append(name)

    if not failed:
        console.print()
        return

    if len(failed) == len(results):
        console.print("\n[bold red]Error:[/bold red] No providers passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed)} provider(s) failed:[/yellow] {', '.join(failed)}")
    if not click.confirm("Continue with working providers only?", default=True):
        sys.exit(0)

    for name in failed:
        service.remove_provider(name)
    console.print()


def _ask_answers(questions: list[ClarificationQuestion]) -> dict[str, str]:
    return {q.id: click.prompt(f"{q.id}. {q.question}", default="", show_default=False) for q in questions}


@contextmanager
def _live_progress() -> Iterator:
    """Spinner plus one printed line per progress event; yields the sink."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Refining...", total=None)

        def sink(event: ProgressEvent) -> None:
            progress.update(task, description=event.message)
            progress.print(format_progress(event))

        yield sink


def _run_single(
    engine: RefinementEngine,
    prompt: str,
    selection: ModelSelection,
    iterations: int,
    output_dir: Path,
    source: str = "cli",
    slug_override: str | None = None,
) -> Path:
    """Run one refinement end to end, asking for clarifications when needed.

    Each engine phase gets its own asyncio.run; answers are read between
    them so the terminal prompt never blocks a running event loop.
    """
    console.print(f"\n[bold cyan]Collaborative Refinement[/bold cyan] -- {iterations} iteration(s) [{selection.handoff_strategy}]")
    console.print(f"Primary: {selection.primary_model} | Refiner: {selection.refinement_model}")
    console.print(f"Prompt: [italic]{prompt[:80]}{'...' if len(prompt) > 80 else ''}[/italic]\n")

    with _live_progress() as sink:
        outcome: RefinementOutcome = asyncio.run(
            engine.start(prompt, selection, iterations, progress_sink=sink)
        )

    while outcome.needs_clarification:
        print_questions(outcome.questions)
        answers = _ask_answers(outcome.questions)
        try:
            with _live_progress() as sink:
                outcome = asyncio.run(
                    engine.submit_clarification(outcome.session_id, answers, progress_sink=sink)
                )
        except ValidationError as exc:
            for error in exc.errors:
                console.print(f"[yellow]{error}[/yellow]")

    result = outcome.result
    print_history(result)
    print_result(result)

    saved_path = save_to_file(result, output_dir, slug_override=slug_override, source=source)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return saved_path


def _run_inbox(
    engine: RefinementEngine,
    config: AppConfig,
    inbox_dir: Path,
    archive_dir: Path,
    iterations_cli: int | None,
    strategy_cli: str | None,
    primary_cli: str | None,
    refiner_cli: str | None,
    final_model_cli: str | None,
    output_dir: Path,
) -> None:
    """Process every queued prompt file.

    Precedence for per-file settings: CLI flag > frontmatter > config default.
    """
    files = pending_prompts(inbox_dir)
    if not files:
        click.echo("No files in inbox.")
        return

    for file_path in files:
        try:
            prompt_file: PromptFile = read_prompt_file(file_path)
            iterations = next(
                (n for n in (iterations_cli, prompt_file.iterations) if n is not None),
                config.defaults.iterations,
            )
            selection = _build_selection(
                config,
                primary_cli or prompt_file.primary,
                refiner_cli or prompt_file.refiner,
                final_model_cli or prompt_file.final_model,
                strategy_cli or prompt_file.strategy,
            )
            saved = _run_single(
                engine,
                prompt_file.text,
                selection,
                iterations,
                output_dir,
                source=str(file_path),
                slug_override=file_path.stem,
            )
            archived = archive_prompt(file_path, archive_dir)
            click.echo(f"Processed: {file_path.name} -> {saved} (archived: {archived.name})")
        except Exception as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_prompt(file_path, archive_dir, failed=True)


@click.command()
@click.argument("prompt", required=False)
@click.option("--file", "prompt_path", type=click.Path(exists=True), help="Read the prompt from a .md file")
@click.option("--iterations", default=None, type=int, help="Critique/improve iterations (default: from config)")
@click.option("--strategy", default=None, type=click.Choice(strategy_names()), help="Model handoff strategy")
@click.option("--primary", default=None, help="Model for the initial generation")
@click.option("--refiner", default=None, help="Fallback model for critiques")
@click.option("--final-model", default=None, help="Model for the final review (default: auto)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--inbox", "use_inbox", is_flag=True, default=False, help="Process all .md files in the inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None, help="Override inbox folder path")
@click.option("--skip-health-check", is_flag=True, default=False, help="Skip the API connectivity check")
@click.option("--list-models", is_flag=True, default=False, help="Show the model catalogue and exit")
def main(
    prompt: str | None,
    prompt_path: str | None,
    iterations: int | None,
    strategy: str | None,
    primary: str | None,
    refiner: str | None,
    final_model: str | None,
    output_path: str | None,
    verbose: bool,
    use_inbox: bool,
    inbox_dir_override: str | None,
    skip_health_check: bool,
    list_models: bool,
) -> None:
    """Collaborative LLM refinement -- several models critique and improve one answer.

    \b
    Examples:
      collab-refine "Write a launch plan for a developer newsletter" --iterations 2
      collab-refine "Explain CRDTs" --strategy cross_provider
      collab-refine --file prompt.md --final-model claude-sonnet-4
      collab-refine --inbox --inbox-dir ./queue
      collab-refine --list-models
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, KeyError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    service = _build_service(config)

    if list_models:
        print_models(service.registry.list_models(), {m.id for m in service.available_models()})
        return

    if not service.available_models():
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    if not skip_health_check:
        _check_and_filter_providers(service)

    engine = RefinementEngine(
        service,
        config.prompts,
        specializations=config.specializations,
        max_iterations=config.defaults.max_iterations,
    )
    output_dir = Path(output_path) if output_path else config.defaults.output_dir

    try:
        if use_inbox:
            inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.inbox.dir
            _run_inbox(
                engine,
                config,
                inbox_dir,
                config.inbox.archive_dir,
                iterations_cli=iterations,
                strategy_cli=strategy,
                primary_cli=primary,
                refiner_cli=refiner,
                final_model_cli=final_model,
                output_dir=output_dir,
            )
            return

        source = "cli"
        if prompt_path:
            prompt_file = read_prompt_file(Path(prompt_path))
            prompt_text = prompt_file.text
            source = prompt_path
            if iterations is None:
                iterations = prompt_file.iterations
            strategy = strategy or prompt_file.strategy
            primary = primary or prompt_file.primary
            refiner = refiner or prompt_file.refiner
            final_model = final_model or prompt_file.final_model
        elif prompt:
            prompt_text = prompt
        else:
            console.print("[bold red]Error:[/bold red] Provide a PROMPT argument, --file, or --inbox.")
            sys.exit(1)

        _run_single(
            engine,
            prompt_text,
            _build_selection(config, primary, refiner, final_model, strategy),
            iterations if iterations is not None else config.defaults.iterations,
            output_dir,
            source=source,
        )
    except RefinementError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
