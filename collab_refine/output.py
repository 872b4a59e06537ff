"""Rich console rendering and Markdown transcript for refinement runs."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from collab_refine.models import ClarificationQuestion, ModelDescriptor, ProgressEvent, RefinementResult

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_PHASE_TITLES = {
    "initial_generation": "Initial Generation",
    "critique": "Critique",
    "improvement": "Improvement",
    "final_review": "Final Review",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _words(text: str, words: int = 50) -> str:
    """Return the first N words of text."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def format_progress(event: ProgressEvent) -> str:
    """One console line per progress event."""
    if event.phase in ("analyzing", "processing_clarifications", "starting"):
        counter = ""
    elif event.phase == "final_review":
        counter = "[final] "
    else:
        counter = f"[{event.current_iteration}/{event.total_iterations}] "
    status = "[green]OK[/green] " if event.completed else ""
    return f"{status}{counter}{event.message}"


def print_models(models: list[ModelDescriptor], enabled: set[str]) -> None:
    table = Table(title="Models", show_lines=False)
    table.add_column("id", style="bold")
    table.add_column("name")
    table.add_column("provider")
    table.add_column("tier")
    table.add_column("capabilities")
    table.add_column("enabled")
    for model in models:
        table.add_row(
            model.id,
            model.display_name,
            model.provider.value,
            model.tier.value,
            ", ".join(sorted(model.capabilities)),
            "[green]yes[/green]" if model.id in enabled else "[dim]no[/dim]",
        )
    console.print(table)


def print_questions(questions: list[ClarificationQuestion]) -> None:
    console.print(Rule("[bold yellow]Clarification needed[/bold yellow]"))
    for question in questions:
        console.print(f"[bold]{question.id}[/bold] {question.question}")


def print_history(result: RefinementResult) -> None:
    """Brief panel per pipeline step."""
    console.print(Rule("[bold cyan]Refinement Timeline[/bold cyan]"))
    for step in result.iteration_history:
        title = _PHASE_TITLES.get(step.phase, step.phase)
        if step.phase in ("critique", "improvement"):
            title = f"Iteration {step.iteration}: {title}"
        console.print(
            Panel(
                _words(step.output_text),
                title=f"[bold]{title}[/bold] ({step.model})",
                border_style="dim",
            )
        )


def print_result(result: RefinementResult) -> None:
    """Print the final output using Rich markdown."""
    console.print(Rule("[bold green]Final Output[/bold green]"))
    usage = ", ".join(f"{m} x{u.total_usage}" for m, u in result.model_usage_stats.items())
    console.print(
        Text(
            f"Final review: {result.final_review_model} | "
            f"Duration: {result.session_duration_sec:.1f}s | "
            f"Iterations: {result.completed_iterations}/{result.target_iterations} | "
            f"Strategy: {result.handoff_strategy} | "
            f"Usage: {usage}",
            style="dim",
        )
    )
    console.print(Markdown(result.final_output))


def render_transcript(result: RefinementResult, source: str = "cli") -> str:
    """Full run as Markdown: prompts, every step's output, usage and final output."""
    lines: list[str] = [
        f"# Collaborative Refinement: {result.original_prompt[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Strategy:** {result.handoff_strategy}",
        f"**Iterations:** {result.completed_iterations}/{result.target_iterations}",
        f"**Final review model:** {result.final_review_model}",
        f"**Duration:** {result.session_duration_sec:.1f}s",
        f"**Source:** {source}",
        "",
        "## Original Prompt",
        "",
        result.original_prompt,
        "",
        "## Refined Prompt",
        "",
        result.refined_prompt,
        "",
        "---",
        "",
    ]

    for step in result.iteration_history:
        title = _PHASE_TITLES.get(step.phase, step.phase)
        if step.phase in ("critique", "improvement"):
            title = f"Iteration {step.iteration}: {title}"
        lines += [f"## {title} ({step.model})", "", step.output_text, ""]

    lines += ["## Model Usage", "", "| Model | Operations | Total |", "|---|---|---|"]
    for model_id, usage in result.model_usage_stats.items():
        ops = ", ".join(f"{phase}: {count}" for phase, count in usage.operations.items())
        lines.append(f"| {model_id} | {ops} | {usage.total_usage} |")

    lines += ["", "## Final Output", "", result.final_output, ""]
    return "\n".join(lines)


def save_to_file(
    result: RefinementResult,
    output_dir: Path,
    slug_override: str | None = None,
    source: str = "cli",
) -> Path:
    """Save the transcript as <timestamp>_<slug>.md in output_dir.

    Args:
        result: The completed RefinementResult.
        output_dir: Directory to save the file in (created if missing).
        slug_override: Filename stem to use instead of one derived from the prompt.
        source: Where the prompt came from, recorded in the header.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(result.original_prompt)
    filepath = output_dir / f"{timestamp}_{slug or 'refinement'}.md"

    filepath.write_text(render_transcript(result, source=source), encoding="utf-8")
    logger.info("Transcript saved to: %s", filepath)
    return filepath
