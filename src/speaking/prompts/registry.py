"""Prompt Registry - Load prompts from template files.

Prompts live as Markdown files under ``speaking/prompts/templates`` and
support ``{variable}`` substitution.

Usage:
    from speaking.prompts.registry import get_prompt

    prompt = get_prompt(
        "scoring/response",
        question_text="Describe your hometown.",
        transcript="I come from...",
    )
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

PROMPTS_DIR = Path(__file__).parent / "templates"


def _get_prompt_uncached(key: str) -> str:
    """Load raw prompt from file without caching.

    Raises:
        FileNotFoundError: If prompt file doesn't exist
    """
    file_path = PROMPTS_DIR / f"{key}.md"
    if not file_path.exists():
        raise FileNotFoundError(f"Prompt not found: {key} (looked at {file_path})")

    return file_path.read_text(encoding="utf-8")


@lru_cache(maxsize=64)
def _get_cached_prompt(key: str) -> str:
    """Cached version of prompt loading."""
    return _get_prompt_uncached(key)


def get_prompt(key: str, use_cache: bool = True, **variables: object) -> str:
    """Load prompt from file and substitute variables.

    Variables are substituted using {variable_name} syntax. Braces that do
    not name a passed variable (JSON examples, for instance) are left as is.

    Args:
        key: Path-like key, e.g., "scoring/response"
        use_cache: Whether to use cached version (default True)
        **variables: Variables to substitute

    Returns:
        Prompt string with variables substituted

    Raises:
        FileNotFoundError: If prompt file doesn't exist
    """
    if use_cache:
        content = _get_cached_prompt(key)
    else:
        content = _get_prompt_uncached(key)

    for var_name, var_value in variables.items():
        content = content.replace(f"{{{var_name}}}", str(var_value))

    return content


def list_prompts() -> list[str]:
    """List all available prompt keys, e.g. ["scoring/part1", ...]."""
    if not PROMPTS_DIR.exists():
        logger.warning("prompts_dir_not_found", path=str(PROMPTS_DIR))
        return []

    prompts = []
    for path in PROMPTS_DIR.rglob("*.md"):
        key = path.relative_to(PROMPTS_DIR).with_suffix("").as_posix()
        prompts.append(key)

    return sorted(prompts)


def clear_prompt_cache() -> None:
    """Clear cached prompt contents."""
    _get_cached_prompt.cache_clear()
