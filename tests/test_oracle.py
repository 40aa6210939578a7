"""Tests for the relevance oracle (remote and local backends)."""

from __future__ import annotations

import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from flowstate.config import EngineConfig
from flowstate.relevance.oracle import RelevanceOracle
from flowstate.relevance.verdict import RelevanceVerdict, unavailable_verdict

URL = "http://test/openai/v1/chat/completions"


def _completion(content: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={"choices": [{"message": {"content": content}}]},
        request=httpx.Request("POST", URL),
    )


def _mock_client(mock_cls: MagicMock) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_cls.return_value = mock_client
    return mock_client


def _remote(**kwargs) -> RelevanceOracle:
    return RelevanceOracle(
        backend="remote", url=URL, model="llama-test", api_key="tok", timeout=5, **kwargs,
    )


class TestRemoteOracle:
    @pytest.mark.asyncio
    async def test_success_returns_verdict(self):
        """A well-formed completion becomes a verdict."""
        with patch("flowstate.relevance.oracle.httpx.AsyncClient") as mock_cls:
            mock_client = _mock_client(mock_cls)
            mock_client.post.return_value = _completion(
                '{"productive": false, "score": 2, "reason": "entertainment"}'
            )

            verdict = await _remote().judge("exam prep", "Cute Cats Compilation", None)

        assert verdict == RelevanceVerdict(productive=False, score=2, reason="entertainment")
        args, kwargs = mock_client.post.call_args
        assert args == (URL,)
        assert kwargs["headers"] == {"Authorization": "Bearer tok"}
        assert kwargs["timeout"] == 5
        assert kwargs["json"]["model"] == "llama-test"
        user_message = kwargs["json"]["messages"][1]["content"]
        assert "exam prep" in user_message
        assert "Cute Cats Compilation" in user_message

    @pytest.mark.asyncio
    async def test_description_snippet_bounded(self):
        """The description sent to the model is truncated."""
        with patch("flowstate.relevance.oracle.httpx.AsyncClient") as mock_cls:
            mock_client = _mock_client(mock_cls)
            mock_client.post.return_value = _completion(
                '{"productive": true, "score": 8, "reason": "ok"}'
            )

            await _remote(snippet_chars=20).judge("goal", "title", "d" * 500)

        user_message = mock_client.post.call_args.kwargs["json"]["messages"][1]["content"]
        assert "d" * 20 in user_message
        assert "d" * 21 not in user_message

    @pytest.mark.asyncio
    async def test_fenced_response_accepted(self):
        """A JSON answer wrapped in code fences is accepted."""
        with patch("flowstate.relevance.oracle.httpx.AsyncClient") as mock_cls:
            mock_client = _mock_client(mock_cls)
            mock_client.post.return_value = _completion(
                '```json\n{"productive": true, "score": 9, "reason": "lecture"}\n```'
            )

            verdict = await _remote().judge("goal", "title", "desc")

        assert verdict.score == 9

    @pytest.mark.asyncio
    async def test_connection_error_fails_open(self):
        """A connection error yields the fail-open verdict."""
        with patch("flowstate.relevance.oracle.httpx.AsyncClient") as mock_cls:
            mock_client = _mock_client(mock_cls)
            mock_client.post.side_effect = httpx.ConnectError("Connection refused")

            verdict = await _remote().judge("goal", "title", None)

        assert verdict == unavailable_verdict()

    @pytest.mark.asyncio
    async def test_http_error_status_fails_open(self):
        """An HTTP error status yields the fail-open verdict."""
        with patch("flowstate.relevance.oracle.httpx.AsyncClient") as mock_cls:
            mock_client = _mock_client(mock_cls)
            mock_client.post.return_value = httpx.Response(
                429, request=httpx.Request("POST", URL),
            )

            verdict = await _remote().judge("goal", "title", None)

        assert verdict.fallback

    @pytest.mark.asyncio
    async def test_timeout_fails_open(self):
        """A request timeout yields the fail-open verdict."""
        with patch("flowstate.relevance.oracle.httpx.AsyncClient") as mock_cls:
            mock_client = _mock_client(mock_cls)
            mock_client.post.side_effect = httpx.ReadTimeout("timed out")

            verdict = await _remote().judge("goal", "title", None)

        assert verdict.fallback

    @pytest.mark.asyncio
    async def test_malformed_json_fails_open(self):
        """A non-JSON answer yields the fail-open verdict."""
        with patch("flowstate.relevance.oracle.httpx.AsyncClient") as mock_cls:
            mock_client = _mock_client(mock_cls)
            mock_client.post.return_value = _completion("I think it's productive!")

            verdict = await _remote().judge("goal", "title", None)

        assert verdict == unavailable_verdict()

    @pytest.mark.asyncio
    async def test_unexpected_payload_fails_open(self):
        """A response without choices yields the fail-open verdict."""
        with patch("flowstate.relevance.oracle.httpx.AsyncClient") as mock_cls:
            mock_client = _mock_client(mock_cls)
            mock_client.post.return_value = httpx.Response(
                200, json={"error": "nope"}, request=httpx.Request("POST", URL),
            )

            verdict = await _remote().judge("goal", "title", None)

        assert verdict.fallback

    @pytest.mark.asyncio
    async def test_missing_api_key_skips_request(self):
        """No API key means no request and a fail-open verdict."""
        oracle = RelevanceOracle(backend="remote", url=URL, model="m", api_key=None)
        with patch("flowstate.relevance.oracle.httpx.AsyncClient") as mock_cls:
            verdict = await oracle.judge("goal", "title", None)

        mock_cls.assert_not_called()
        assert verdict.fallback


class TestOtherBackends:
    @pytest.mark.asyncio
    async def test_none_backend_always_unavailable(self):
        """The none backend always fails open."""
        verdict = await RelevanceOracle(backend="none").judge("goal", "title", None)
        assert verdict == unavailable_verdict()

    def test_unknown_backend_rejected(self):
        """An unknown backend name raises ValueError."""
        with pytest.raises(ValueError):
            RelevanceOracle(backend="carrier-pigeon")

    @pytest.mark.asyncio
    async def test_local_backend(self):
        """The local backend judges through the loaded model."""
        local = MagicMock()
        local.is_loaded = True
        local.chat.return_value = '{"productive": true, "score": 8, "reason": "docs"}'
        oracle = RelevanceOracle(backend="local", local_backend=local)

        verdict = await oracle.judge("goal", "title", None)

        assert verdict.score == 8
        local.chat.assert_called_once()

    @pytest.mark.asyncio
    async def test_local_load_failure_is_cached(self):
        """A failed model load is not retried."""
        local = MagicMock()
        local.is_loaded = False
        local.load.side_effect = RuntimeError("Model file not found")
        oracle = RelevanceOracle(backend="local", local_backend=local)

        assert (await oracle.judge("goal", "a", None)).fallback
        assert (await oracle.judge("goal", "b", None)).fallback
        assert local.load.call_count == 1

    @pytest.mark.asyncio
    async def test_local_timeout_fails_open(self):
        """A slow local completion fails open."""
        local = MagicMock()
        local.is_loaded = True
        oracle = RelevanceOracle(backend="local", local_backend=local, timeout=0.01)

        async def slow_to_thread(*args, **kwargs):
            await asyncio.sleep(1)

        with patch("flowstate.relevance.oracle.asyncio.to_thread", side_effect=slow_to_thread):
            verdict = await oracle.judge("goal", "title", None)

        assert verdict.fallback

    @pytest.mark.asyncio
    async def test_slow_model_load_bounded_by_timeout(self):
        """A load slower than the timeout fails open and is reused once done."""
        release = threading.Event()

        class SlowModel:
            is_loaded = False
            loads = 0

            def load(self):
                release.wait(5)
                self.loads += 1
                self.is_loaded = True

            def chat(self, system_prompt, user_prompt):
                return '{"productive": true, "score": 7, "reason": "docs"}'

            def unload(self):
                pass

        local = SlowModel()
        oracle = RelevanceOracle(backend="local", local_backend=local, timeout=0.05)

        assert (await oracle.judge("goal", "a", None)).fallback

        release.set()
        for _ in range(100):
            if local.is_loaded:
                break
            await asyncio.sleep(0.01)

        verdict = await oracle.judge("goal", "b", None)
        assert verdict.score == 7
        assert local.loads == 1

    @pytest.mark.asyncio
    async def test_preload_starts_local_load(self):
        """preload() begins loading before the first judgment."""
        local = MagicMock()
        local.is_loaded = False
        oracle = RelevanceOracle(backend="local", local_backend=local)

        oracle.preload()
        await asyncio.sleep(0.05)

        local.load.assert_called_once()

    def test_from_config(self, monkeypatch):
        """from_config reads settings and the API key from the environment."""
        monkeypatch.setenv("GROQ_API_KEY", "secret")
        oracle = RelevanceOracle.from_config(EngineConfig(oracle_backend="none"))
        assert oracle.backend == "none"
