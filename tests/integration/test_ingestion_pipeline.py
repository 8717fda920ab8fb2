"""Integration test: queue -> runner -> processor -> scorer over a real SQLite file.

Real fetchers are used; HTTP is patched at ``requests.get`` and LinkedIn posts
come from a local JSON file. The LLM provider is a mock.
"""

import json
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from src.classifier.base import LLMProvider, UsageStats
from src.classifier.service import CATEGORY_PROMPT, EXTRACTION_PROMPT, RELEVANCE_PROMPT
from src.core.config import Settings
from src.core.db import init_db
from src.core.schemas import QualityStatus, SourceType, TaskStatus
from src.pipeline.orchestrator import build_pipeline
from src.pipeline.task_runner import PENDING_RETRY

NOW = datetime(2026, 3, 10, 9, 0, 0)

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


def _answer(user_text: str, model: str | None = None, *, system: str, max_tokens: int = 1024,
            json_mode: bool = False) -> str:
    if system == RELEVANCE_PROMPT:
        return "IRRELEVANT" if "Tarot" in user_text else "RELEVANT"
    if system == CATEGORY_PROMPT:
        return "design" if "Designer" in user_text else "engineering"
    if system == EXTRACTION_PROMPT:
        if "product designer" in user_text.lower():
            return json.dumps({"title": "Product Designer", "company": "Pixel Co", "skills": ["Figma"]})
        return "{}"
    msg = "unexpected prompt"
    raise AssertionError(msg)


def _mock_provider() -> MagicMock:
    provider = MagicMock(spec=LLMProvider)
    provider.provider_id = "deepseek"
    provider.usage = UsageStats()
    provider.complete.side_effect = _answer
    return provider


def _lever_job(job_id: str, title: str) -> dict:  # type: ignore[type-arg]
    return {
        "id": job_id,
        "text": title,
        "hostedUrl": f"https://jobs.lever.co/acme/{job_id}",
        "descriptionPlain": "Remote role. Python, Django and AWS.",
        "categories": {"location": "Remote - Canada", "department": "Engineering"},
        "createdAt": int((NOW - timedelta(days=1)).timestamp() * 1000),
    }


def _ok_response(payload: object) -> MagicMock:
    resp = MagicMock()
    resp.ok = True
    resp.status_code = 200
    resp.json.return_value = payload
    return resp


def _error_response(status: int = 503) -> MagicMock:
    resp = MagicMock()
    resp.ok = False
    resp.status_code = status
    resp.reason = "Service Unavailable"
    return resp


@pytest.fixture()
def settings(tmp_path) -> Settings:  # type: ignore[no-untyped-def]
    return Settings.model_validate(
        {
            "database": {"path": str(tmp_path / "ingest.db")},
            "classifier": {"call_delay_ms": 0},
        }
    )


@pytest.fixture()
def conn(settings: Settings):  # type: ignore[no-untyped-def]
    return init_db(settings.database.path)


@pytest.fixture()
def pipeline(conn, settings: Settings):  # type: ignore[no-untyped-def]
    return build_pipeline(conn, settings, provider=_mock_provider(), clock=lambda: NOW, sleep=lambda _s: None)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestLeverEndToEnd:
    @patch("src.sources.base.requests.get")
    def test_queue_run_and_score(self, mock_get: MagicMock, pipeline, conn) -> None:  # type: ignore[no-untyped-def]
        mock_get.return_value = _ok_response([
            _lever_job("a1", "Senior Backend Engineer"),
            _lever_job("a2", "Tarot Reader"),
            _lever_job("a3", "Delivery Driver"),
        ])
        source = pipeline.registry.register("Acme", SourceType.LEVER, {"company_slug": "acme"})

        assert pipeline.queue.enqueue_active_sources() == {
            "tasksCreated": 1, "alreadyQueued": 0, "totalSources": 1,
        }
        body = pipeline.runner.run_once().to_response()

        assert body["success"] is True
        assert body["task"]["status"] == "COMPLETED"
        assert body["stats"] == {"total": 3, "created": 1, "skipped": 2, "failed": 0}
        assert body["queue"] == {"pending": 0}
        assert mock_get.call_args.args[0] == "https://api.lever.co/v0/postings/acme?mode=json"

        job = conn.execute("SELECT * FROM jobs").fetchone()
        assert job["title"] == "Senior Backend Engineer"
        assert job["country"] == "CA"
        assert job["category"] == "engineering"

        # rescored right after the run: conversion 1/3, weekly 1, no errors
        scored = pipeline.registry.select(ids=[source.id])[0]
        assert scored.last_score_at == NOW
        assert scored.weekly_imported == 1
        assert scored.conversion_rate == 33.3
        assert scored.quality_status == QualityStatus.MEDIUM

    @patch("src.sources.base.requests.get")
    def test_rerun_is_idempotent(self, mock_get: MagicMock, pipeline, conn) -> None:  # type: ignore[no-untyped-def]
        mock_get.return_value = _ok_response([_lever_job("a1", "Backend Engineer")])
        source = pipeline.registry.register("Acme", SourceType.LEVER, {"company_slug": "acme"})

        pipeline.queue.enqueue(source.id)
        first = pipeline.runner.run_once().to_response()
        pipeline.queue.enqueue(source.id)
        second = pipeline.runner.run_once().to_response()

        assert first["stats"]["created"] == 1
        assert second["stats"] == {"total": 1, "created": 0, "skipped": 1, "failed": 0}
        assert conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0] == 1

    @patch("src.sources.base.requests.get")
    def test_failing_feed_retries_then_fails(self, mock_get: MagicMock, pipeline) -> None:  # type: ignore[no-untyped-def]
        mock_get.return_value = _error_response()
        source = pipeline.registry.register("Broken", SourceType.LEVER, {"company_slug": "broken"})
        task = pipeline.queue.enqueue(source.id)

        results = [pipeline.runner.run_once() for _ in range(3)]

        assert [r.status for r in results] == [PENDING_RETRY, PENDING_RETRY, "FAILED"]
        assert "HTTP 503" in (results[-1].error or "")
        assert pipeline.runner.run_once().idle
        assert pipeline.queue.queue_stats()["failed"] == 1

        failed_source = pipeline.registry.select(ids=[source.id])[0]
        assert failed_source.error_count == 3
        assert pipeline.queue.peek_next() is None
        assert task.id == results[-1].task.id  # type: ignore[union-attr]
        assert results[-1].task.status == TaskStatus.FAILED  # type: ignore[union-attr]
        assert results[-1].task.retry_count == 3  # type: ignore[union-attr]


class TestSharedIdSpace:
    @patch("src.sources.base.requests.get")
    def test_feeds_numbering_from_one_do_not_collide(self, mock_get: MagicMock, pipeline, conn) -> None:  # type: ignore[no-untyped-def]
        def _feed(url: str, **_kw: object) -> MagicMock:
            host = "a.example.com" if "board-a" in url else "b.example.com"
            return _ok_response([
                {"id": n, "url": f"https://{host}/jobs/{n}", "title": f"Backend Engineer {n}"}
                for n in (1, 2, 3)
            ])

        mock_get.side_effect = _feed
        board_a = pipeline.registry.register("Board A", SourceType.GENERIC_ATS, {"api_url": "https://feeds/board-a"})
        board_b = pipeline.registry.register("Board B", SourceType.GENERIC_ATS, {"api_url": "https://feeds/board-b"})

        pipeline.queue.enqueue(board_a.id)
        first = pipeline.runner.run_once().to_response()
        pipeline.queue.enqueue(board_b.id)
        second = pipeline.runner.run_once().to_response()

        assert first["stats"]["created"] == 3
        assert second["stats"] == {"total": 3, "created": 3, "skipped": 0, "failed": 0}
        assert conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0] == 6


class TestLinkedInEndToEnd:
    def test_posts_are_extracted(self, tmp_path, pipeline, conn) -> None:  # type: ignore[no-untyped-def]
        posts = tmp_path / "posts.json"
        posts.write_text(json.dumps([
            {
                "id": "urn:li:activity:1",
                "linkedinUrl": "https://www.linkedin.com/posts/pixel-1",
                "content": "We're hiring a Product Designer! Fully remote, Figma heavy.",
                "postedAt": {"date": (NOW - timedelta(days=2)).isoformat()},
            },
            {"url": "https://www.linkedin.com/posts/pixel-2", "content": "Happy Friday everyone!"},
        ]))
        source = pipeline.registry.register("Pixel posts", SourceType.LINKEDIN, {"path": str(posts)})
        pipeline.queue.enqueue(source.id)

        body = pipeline.runner.run_once().to_response()

        assert body["stats"] == {"total": 2, "created": 1, "skipped": 0, "failed": 1}
        job = conn.execute("SELECT * FROM jobs").fetchone()
        assert job["title"] == "Product Designer"
        assert job["company"] == "Pixel Co"
        assert job["category"] == "design"
        assert json.loads(job["skills"]) == ["Figma"]


class TestScoringPass:
    def test_score_all_sources(self, pipeline) -> None:  # type: ignore[no-untyped-def]
        pipeline.registry.register("A", SourceType.LEVER, {"company_slug": "a"})
        pipeline.registry.register("B", SourceType.LEVER, {"company_slug": "b"}, is_active=False)

        summary = pipeline.scorer.recalculate_all_scores()

        assert summary == {"updated": 2, "high": 0, "medium": 0, "low": 2, "failed": 0}
        assert pipeline.registry.overview()["byQuality"]["low"] == 2
