"""Markdown prompt files with optional YAML frontmatter, plus the inbox queue."""

import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import frontmatter


@dataclass
class PromptFile:
    path: Path
    text: str
    iterations: int | None = None
    strategy: str | None = None
    primary: str | None = None
    refiner: str | None = None
    final_model: str | None = None


def read_prompt_file(path: Path) -> PromptFile:
    """Load the prompt body and any per-file overrides.

    Unknown frontmatter keys are ignored. Blank values count as unset.

    Raises:
        ValueError: ``iterations`` is present but not an integer.
    """
    post = frontmatter.load(str(path))
    meta = dict(post.metadata)

    def _text(key: str) -> str | None:
        value = meta.get(key)
        if value is None or not str(value).strip():
            return None
        return str(value).strip()

    iterations = meta.get("iterations")
    return PromptFile(
        path=path,
        text=post.content.strip(),
        iterations=int(iterations) if iterations is not None else None,
        strategy=_text("strategy"),
        primary=_text("primary"),
        refiner=_text("refiner"),
        final_model=_text("final_model"),
    )


def pending_prompts(inbox_dir: Path) -> list[Path]:
    """Queued .md files, oldest first. Creates the inbox when missing."""
    inbox_dir.mkdir(parents=True, exist_ok=True)
    return sorted(inbox_dir.glob("*.md"), key=lambda p: p.stat().st_mtime)


def archive_prompt(path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move a processed prompt into archive_dir as [FAILED_]<timestamp>_<name>."""
    archive_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    dest = archive_dir / f"{'FAILED_' if failed else ''}{stamp}_{path.name}"
    shutil.move(str(path), str(dest))
    return dest
