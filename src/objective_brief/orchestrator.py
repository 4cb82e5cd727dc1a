"""Two-stage news pipeline: trending list, then a concurrent objectivity pass.

Stage one asks the model for the trending stories of a category. Stage two
fans out one objectivity request per story and merges the synthesis back onto
the story, in the original order. A failure in stage one fails the run with
OrchestrationFailed; failures in stage two degrade a single story to the
fallback summary and never shorten the list.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence
from urllib.parse import unquote

from pydantic import ValidationError

from .completion import build_completion_client
from .config import (
    DEFAULT_CATEGORY,
    DEFAULT_FALLBACK_SUMMARY,
    DEFAULT_SOURCES,
    Settings,
    get_settings,
)
from .errors import BriefError, InvalidFormat, JsonRepairError, OrchestrationFailed
from .models import NewsItem, ObjectivityResult, PromptRequest, TrendingItem
from .prompts import objectivity_prompt, trending_prompt
from .repair import repair_json
from .retry import RetryPolicy
from .schema import validate_objectivity_payload, validate_trending_payload

logger = logging.getLogger(__name__)

TRENDING_TEMPERATURE = 0.7
OBJECTIVITY_TEMPERATURE = 0.5


class SupportsComplete(Protocol):
    async def complete(self, request: PromptRequest) -> str: ...


def _retry_on_brief_errors(exc: BaseException) -> bool:
    return isinstance(exc, BriefError)


def _default_item_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=1.0, retryable=_retry_on_brief_errors)


@dataclass(frozen=True)
class OrchestratorConfig:
    """
    Knobs for a pipeline run.

    Defaults: the five national outlets in DEFAULT_SOURCES, temperatures 0.7
    (trending) and 0.5 (objectivity), three objectivity attempts per story
    with 1s/2s backoff, and a Spanish "summary unavailable" fallback text.
    """

    sources: Sequence[str] = tuple(DEFAULT_SOURCES)
    trending_temperature: float = TRENDING_TEMPERATURE
    objectivity_temperature: float = OBJECTIVITY_TEMPERATURE
    fallback_summary: str = DEFAULT_FALLBACK_SUMMARY
    item_retry: RetryPolicy = field(default_factory=_default_item_policy)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> "OrchestratorConfig":
        settings = settings or get_settings()
        policy_kwargs = {} if sleep is None else {"sleep": sleep}
        return cls(
            sources=tuple(settings.sources),
            fallback_summary=settings.fallback_summary,
            item_retry=RetryPolicy(
                max_attempts=settings.objectivity_attempts,
                base_delay=settings.retry_base_delay,
                retryable=_retry_on_brief_errors,
                **policy_kwargs,
            ),
        )


def normalize_category(
    raw: Optional[str], default: str = DEFAULT_CATEGORY, *, decode: bool = True
) -> str:
    """
    Tidy a category; empty input falls back to the default.

    Pass ``decode=False`` for values a router has already URL-decoded, so a
    literal "%xx" is not decoded a second time.
    """
    if raw is None:
        return default
    text = unquote(raw) if decode else raw
    return text.strip().lower() or default


def parse_trending(text: str) -> List[TrendingItem]:
    """Parse stage-one model text into TrendingItems (InvalidFormat on wrong shape)."""
    payload = repair_json(text).unwrap()
    if not isinstance(payload, list):
        raise InvalidFormat("Invalid news format: expected a JSON array.")
    validate_trending_payload(payload)
    return [TrendingItem.model_validate(entry) for entry in payload]


def parse_objectivity(text: str) -> ObjectivityResult:
    payload = repair_json(text).unwrap()
    validate_objectivity_payload(payload)
    try:
        return ObjectivityResult.model_validate(payload)
    except ValidationError as exc:
        raise InvalidFormat(f"Invalid objectivity format: {exc}") from exc


def merge_objectivity(item: TrendingItem, result: ObjectivityResult) -> NewsItem:
    """Keep the title; replace summary and sources wholesale."""
    return NewsItem(title=item.title, summary=result.summary, sources=list(result.sources))


class NewsOrchestrator:
    """Fetch trending news for a category and enrich each story objectively."""

    def __init__(
        self,
        completion: SupportsComplete,
        config: Optional[OrchestratorConfig] = None,
    ) -> None:
        self.completion = completion
        self.config = config or OrchestratorConfig()

    async def fetch_news(self, category: str) -> List[NewsItem]:
        """
        Run both stages for ``category``.

        Returns an empty list when the model reports no stories. Raises
        OrchestrationFailed when the trending list cannot be obtained.
        """
        trending = await self.fetch_trending(category)
        if not trending:
            logger.info("No trending news returned for %r.", category)
            return []
        logger.info("Enriching %d trending stories for %r.", len(trending), category)
        enriched = await asyncio.gather(
            *(self.enrich_item(item, index) for index, item in enumerate(trending))
        )
        return list(enriched)

    async def fetch_trending(self, category: str) -> List[TrendingItem]:
        request = PromptRequest.from_user(
            trending_prompt(category), self.config.trending_temperature
        )
        try:
            text = await self.completion.complete(request)
        except BriefError as exc:
            logger.error("Trending fetch failed for %r: %s", category, exc)
            raise OrchestrationFailed(f"Failed to fetch trending news: {exc}", exc) from exc
        try:
            return parse_trending(text)
        except (JsonRepairError, InvalidFormat) as exc:
            logger.error("Trending parse failed for %r: %s", category, exc)
            raise OrchestrationFailed(f"Failed to parse trending news: {exc}", exc) from exc

    async def enrich_item(self, item: TrendingItem, index: int = 0) -> NewsItem:
        """Objectivity pass for one story; exhausting retries yields the fallback."""
        request = PromptRequest.from_user(
            objectivity_prompt(item, self.config.sources),
            self.config.objectivity_temperature,
        )

        async def _attempt() -> ObjectivityResult:
            return parse_objectivity(await self.completion.complete(request))

        try:
            result = await self.config.item_retry.run(
                _attempt, label=f"Objectivity #{index} ({item.title[:40]!r})"
            )
        except Exception as exc:
            logger.warning(
                "Objectivity failed for story #%d %r; using fallback: %s",
                index,
                item.title,
                exc,
            )
            return self.fallback_item(item)
        return merge_objectivity(item, result)

    def fallback_item(self, item: TrendingItem) -> NewsItem:
        return NewsItem(title=item.title, summary=self.config.fallback_summary, sources=[])


def build_orchestrator(settings: Optional[Settings] = None) -> NewsOrchestrator:
    """Wire a NewsOrchestrator from environment settings."""
    settings = settings or get_settings()
    return NewsOrchestrator(
        build_completion_client(settings),
        OrchestratorConfig.from_settings(settings),
    )
