import asyncio
import json
import re

import pytest

from objective_brief.config import DEFAULT_FALLBACK_SUMMARY, Settings
from objective_brief.errors import (
    BriefError,
    CompletionTimeout,
    InvalidFormat,
    JsonRepairError,
    OrchestrationFailed,
    UpstreamRejected,
)
from objective_brief.models import ObjectivityResult, SourceOpinion, TrendingItem
from objective_brief.orchestrator import (
    NewsOrchestrator,
    OrchestratorConfig,
    build_orchestrator,
    merge_objectivity,
    normalize_category,
    parse_objectivity,
    parse_trending,
)
from objective_brief.retry import RetryPolicy

TITLE_PATTERN = re.compile(r"Título: (.+)")


def _objectivity(summary, sources=()):
    return json.dumps(
        {"summary": summary, "sources": [{"name": n, "summary": s} for n, s in sources]},
        ensure_ascii=False,
    )


class FakeCompletion:
    """
    Route prompts by stage: the trending prompt gets ``trending``; each
    objectivity prompt gets the next scripted reply for its title. Replies
    may be strings or exceptions; the last reply repeats.
    """

    def __init__(self, trending, objectivity=None, delays=None):
        self.trending = trending
        self.objectivity = {title: list(replies) for title, replies in (objectivity or {}).items()}
        self.delays = delays or {}
        self.requests = []
        self.calls_by_title = {}

    async def complete(self, request):
        self.requests.append(request)
        prompt = request.messages[0].content
        match = TITLE_PATTERN.search(prompt)
        if match is None:
            reply = self.trending
        else:
            title = match.group(1).strip()
            self.calls_by_title[title] = self.calls_by_title.get(title, 0) + 1
            await asyncio.sleep(self.delays.get(title, 0))
            replies = self.objectivity[title]
            reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


def _config(delays, attempts=3, sources=("Diario Uno", "Diario Dos")):
    async def fake_sleep(delay):
        delays.append(delay)

    return OrchestratorConfig(
        sources=sources,
        item_retry=RetryPolicy(
            max_attempts=attempts,
            base_delay=1.0,
            retryable=lambda exc: isinstance(exc, BriefError),
            sleep=fake_sleep,
        ),
    )


TRENDING = json.dumps(
    [
        {"title": "X", "summary": "Y"},
        {"title": "Huelga de transporte", "summary": "Paros en Madrid."},
        {"title": "Récord turístico", "summary": "Llegan 90 millones de turistas."},
    ],
    ensure_ascii=False,
)


def test_round_trip_keeps_title_and_replaces_summary_and_sources():
    fake = FakeCompletion(
        json.dumps([{"title": "X", "summary": "Y"}]),
        {"X": ['{"summary":"Z","sources":[{"name":"A","summary":"B"}]}']},
    )
    orchestrator = NewsOrchestrator(fake, _config([]))

    news = asyncio.run(orchestrator.fetch_news("economía"))

    assert [item.model_dump() for item in news] == [
        {"title": "X", "summary": "Z", "sources": [{"name": "A", "summary": "B"}]}
    ]


def test_output_length_and_order_match_trending_list_despite_completion_order():
    fake = FakeCompletion(
        TRENDING,
        {
            "X": [_objectivity("primera")],
            "Huelga de transporte": [_objectivity("segunda")],
            "Récord turístico": [_objectivity("tercera")],
        },
        delays={"X": 0.03, "Huelga de transporte": 0.02, "Récord turístico": 0.0},
    )
    orchestrator = NewsOrchestrator(fake, _config([]))

    news = asyncio.run(orchestrator.fetch_news("actualidad"))

    assert [item.title for item in news] == ["X", "Huelga de transporte", "Récord turístico"]
    assert [item.summary for item in news] == ["primera", "segunda", "tercera"]


def test_failed_story_degrades_to_fallback_while_siblings_keep_content():
    delays = []
    fake = FakeCompletion(
        TRENDING,
        {
            "X": [_objectivity("bien", [("Diario Uno", "a favor")])],
            "Huelga de transporte": ["no es JSON"],
            "Récord turístico": [_objectivity("también bien")],
        },
    )
    orchestrator = NewsOrchestrator(fake, _config(delays))

    news = asyncio.run(orchestrator.fetch_news("actualidad"))

    assert len(news) == 3
    assert news[0].summary == "bien"
    assert news[0].sources == [SourceOpinion(name="Diario Uno", summary="a favor")]
    assert news[1].title == "Huelga de transporte"
    assert news[1].summary == DEFAULT_FALLBACK_SUMMARY
    assert news[1].sources == []
    assert news[2].summary == "también bien"
    assert fake.calls_by_title["Huelga de transporte"] == 3
    assert delays == [1.0, 2.0]


def test_objectivity_recovers_after_malformed_reply():
    delays = []
    fake = FakeCompletion(
        json.dumps([{"title": "X", "summary": "Y"}]),
        {"X": ['["no", "es", "objeto"]', "```json\n" + _objectivity("vale") + "\n```"]},
    )
    orchestrator = NewsOrchestrator(fake, _config(delays))

    news = asyncio.run(orchestrator.fetch_news("actualidad"))

    assert news[0].summary == "vale"
    assert delays == [1.0]


def test_objectivity_upstream_failure_falls_back():
    fake = FakeCompletion(
        json.dumps([{"title": "X", "summary": "Y"}]),
        {"X": [UpstreamRejected(503, "busy")]},
    )
    orchestrator = NewsOrchestrator(fake, _config([], attempts=2))

    news = asyncio.run(orchestrator.fetch_news("actualidad"))

    assert news[0].summary == DEFAULT_FALLBACK_SUMMARY
    assert fake.calls_by_title["X"] == 2


def test_trending_in_fences_with_control_chars_parses_like_clean_json():
    noisy = "```json\n" + TRENDING.replace("},", "},\x07\n") + "\n```"
    fake = FakeCompletion(noisy)
    orchestrator = NewsOrchestrator(fake, _config([]))

    trending = asyncio.run(orchestrator.fetch_trending("actualidad"))

    assert trending == parse_trending(TRENDING)


def test_trending_with_trailing_comma_still_runs():
    fake = FakeCompletion(
        '[{"title": "X", "summary": "Y"},]',
        {"X": [_objectivity("Z")]},
    )
    orchestrator = NewsOrchestrator(fake, _config([]))

    news = asyncio.run(orchestrator.fetch_news("actualidad"))

    assert [(item.title, item.summary) for item in news] == [("X", "Z")]


def test_null_trending_summary_keeps_every_story():
    fake = FakeCompletion(
        json.dumps([{"title": "X", "summary": None}, {"title": "Huelga", "summary": "Paros."}]),
        {"X": [_objectivity("Z")], "Huelga": [_objectivity("W")]},
    )
    orchestrator = NewsOrchestrator(fake, _config([]))

    trending = asyncio.run(orchestrator.fetch_trending("actualidad"))
    news = asyncio.run(orchestrator.fetch_news("actualidad"))

    assert trending[0] == TrendingItem(title="X", summary="")
    assert [item.summary for item in news] == ["Z", "W"]


def test_null_objectivity_sources_keep_the_summary():
    delays = []
    fake = FakeCompletion(
        json.dumps([{"title": "X", "summary": "Y"}]),
        {"X": ['{"summary": "Z", "sources": null}']},
    )
    orchestrator = NewsOrchestrator(fake, _config(delays))

    news = asyncio.run(orchestrator.fetch_news("actualidad"))

    assert news[0].summary == "Z"
    assert news[0].sources == []
    assert fake.calls_by_title["X"] == 1
    assert delays == []


def test_non_array_trending_fails_the_run_as_invalid_format():
    fake = FakeCompletion('{"foo": 1}')
    orchestrator = NewsOrchestrator(fake, _config([]))

    with pytest.raises(OrchestrationFailed) as excinfo:
        asyncio.run(orchestrator.fetch_news("actualidad"))

    assert isinstance(excinfo.value.cause, InvalidFormat)
    assert excinfo.value.timed_out is False
    assert len(fake.requests) == 1


def test_unparseable_trending_fails_the_run():
    fake = FakeCompletion("Aquí tienes las noticias de hoy...")
    orchestrator = NewsOrchestrator(fake, _config([]))

    with pytest.raises(OrchestrationFailed) as excinfo:
        asyncio.run(orchestrator.fetch_news("actualidad"))

    assert isinstance(excinfo.value.cause, JsonRepairError)


def test_trending_timeout_is_flagged_on_the_failure():
    fake = FakeCompletion(CompletionTimeout("slow"))
    orchestrator = NewsOrchestrator(fake, _config([]))

    with pytest.raises(OrchestrationFailed) as excinfo:
        asyncio.run(orchestrator.fetch_news("actualidad"))

    assert excinfo.value.timed_out is True


def test_empty_trending_list_means_no_news():
    fake = FakeCompletion("[]")
    orchestrator = NewsOrchestrator(fake, _config([]))

    assert asyncio.run(orchestrator.fetch_news("cultura")) == []
    assert len(fake.requests) == 1


def test_prompts_carry_category_outlets_and_fixed_temperatures():
    fake = FakeCompletion(
        json.dumps([{"title": "X", "summary": "Y"}]),
        {"X": [_objectivity("Z")]},
    )
    orchestrator = NewsOrchestrator(fake, _config([], sources=("Diario Uno", "Diario Dos")))

    asyncio.run(orchestrator.fetch_news("tecnología"))

    trending_request, objectivity_request = fake.requests
    assert trending_request.temperature == 0.7
    assert '"tecnología"' in trending_request.messages[0].content
    assert objectivity_request.temperature == 0.5
    objectivity_text = objectivity_request.messages[0].content
    assert "Diario Uno, Diario Dos" in objectivity_text
    assert "Resumen: Y" in objectivity_text
    assert "El País" not in objectivity_text


def test_duplicate_stories_are_kept():
    fake = FakeCompletion(
        json.dumps([{"title": "X", "summary": "Y"}, {"title": "X", "summary": "Y"}]),
        {"X": [_objectivity("Z")]},
    )
    orchestrator = NewsOrchestrator(fake, _config([]))

    news = asyncio.run(orchestrator.fetch_news("actualidad"))

    assert [item.title for item in news] == ["X", "X"]


def test_parse_trending_rejects_entries_without_title():
    with pytest.raises(InvalidFormat):
        parse_trending('[{"summary": "sin título"}]')
    with pytest.raises(InvalidFormat):
        parse_trending('["solo texto"]')


def test_parse_objectivity_defaults_missing_fields():
    assert parse_objectivity("{}") == ObjectivityResult(summary="", sources=[])
    nulls = parse_objectivity('{"summary": null, "sources": [{"name": "ABC", "summary": null}]}')
    assert nulls == ObjectivityResult(summary="", sources=[SourceOpinion(name="ABC", summary="")])
    with pytest.raises(InvalidFormat):
        parse_objectivity('{"summary": "x", "sources": "El País"}')


def test_merge_objectivity_replaces_wholesale():
    item = TrendingItem(title="X", summary="Y")
    merged = merge_objectivity(item, ObjectivityResult(summary="Z"))

    assert merged.title == "X"
    assert merged.summary == "Z"
    assert merged.sources == []


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("econom%C3%ADa", "economía"),
        ("  Deportes ", "deportes"),
        ("", "actualidad"),
        (None, "actualidad"),
    ],
)
def test_normalize_category(raw, expected):
    assert normalize_category(raw) == expected


def test_normalize_category_can_skip_url_decoding():
    assert normalize_category("50%25", decode=False) == "50%25"
    assert normalize_category("50%25") == "50%"
    assert normalize_category(" ", "cultura", decode=False) == "cultura"


def test_config_from_settings_uses_configured_outlets_and_attempts():
    settings = Settings(
        openai_api_key=None,
        sources=["Diario Uno"],
        objectivity_attempts=5,
        retry_base_delay=0.5,
        fallback_summary="No disponible",
    )

    config = OrchestratorConfig.from_settings(settings)

    assert tuple(config.sources) == ("Diario Uno",)
    assert config.item_retry.max_attempts == 5
    assert config.item_retry.delay_for(1) == 1.0
    assert config.fallback_summary == "No disponible"


def test_build_orchestrator_requires_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(RuntimeError):
        build_orchestrator(Settings(openai_api_key=None))
