"""Prompt templates for the trending and objectivity stages."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from string import Template
from typing import Sequence

from .models import TrendingItem

PROMPTS_DIR = Path(__file__).resolve().parent / "templates"
TRENDING_PROMPT_FILE = "trending.md"
OBJECTIVITY_PROMPT_FILE = "objectivity.md"


@lru_cache(maxsize=None)
def _load_prompt_file(filename: str) -> Template:
    path = PROMPTS_DIR / filename
    return Template(path.read_text(encoding="utf-8"))


def trending_prompt(category: str) -> str:
    return _load_prompt_file(TRENDING_PROMPT_FILE).safe_substitute(category=category)


def objectivity_prompt(item: TrendingItem, sources: Sequence[str]) -> str:
    """Ask for a neutral synthesis of one story plus a short stance per outlet."""
    return _load_prompt_file(OBJECTIVITY_PROMPT_FILE).safe_substitute(
        sources=", ".join(sources),
        title=item.title,
        summary=item.summary,
    )
