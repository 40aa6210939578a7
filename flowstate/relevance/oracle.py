"""Relevance oracle: asks an LLM whether a page matches the user's goal.

Backends:
- "remote": OpenAI-compatible chat completions endpoint over HTTP (e.g. Groq).
- "local": llama-cpp-python model on this machine.
- "none": never asks; every judgment is the fail-open verdict.

Every failure (network error, timeout, bad status, malformed JSON, missing
model) is logged and turned into the fail-open verdict. judge() never raises.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from flowstate.config import ORACLE_BACKENDS, EngineConfig, get_oracle_api_key
from flowstate.relevance.llm_backend import LocalChatModel
from flowstate.relevance.prompts import (
    DEFAULT_SNIPPET_CHARS,
    RELEVANCE_SYSTEM_PROMPT,
    format_relevance_prompt,
)
from flowstate.relevance.verdict import (
    RelevanceVerdict,
    parse_verdict,
    unavailable_verdict,
)

logger = logging.getLogger(__name__)

BACKEND_REMOTE = "remote"
BACKEND_LOCAL = "local"
BACKEND_NONE = "none"

_BACKENDS = ORACLE_BACKENDS


class RelevanceOracle:
    """Judges content relevance against the user's goal.

    Args:
        backend: "remote", "local" or "none".
        url: Chat completions endpoint for the remote backend.
        model: Model name for the remote backend.
        api_key: Bearer token for the remote backend.
        timeout: Upper bound in seconds for one judgment.
        snippet_chars: Maximum description length sent to the model.
        local_backend: on-device model for the local backend (created lazily if None).
    """

    def __init__(
        self,
        backend: str = BACKEND_REMOTE,
        url: str = "",
        model: str = "",
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        snippet_chars: int = DEFAULT_SNIPPET_CHARS,
        local_backend: Optional[LocalChatModel] = None,
    ) -> None:
        if backend not in _BACKENDS:
            raise ValueError(f"Unknown oracle backend: {backend!r}")
        self._backend = backend
        self._url = url
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._snippet_chars = snippet_chars
        self._local = local_backend
        self._local_load_failed = False
        self._local_load: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config: EngineConfig) -> RelevanceOracle:
        """Build an oracle from engine settings (API key from the environment)."""
        local = None
        if config.oracle_backend == BACKEND_LOCAL:
            local = LocalChatModel(model_path=config.local_model_path, n_ctx=config.llm_n_ctx)
        return cls(
            backend=config.oracle_backend,
            url=config.oracle_url,
            model=config.oracle_model,
            api_key=get_oracle_api_key(),
            timeout=config.oracle_timeout,
            snippet_chars=config.description_snippet_chars,
            local_backend=local,
        )

    @property
    def backend(self) -> str:
        return self._backend

    async def judge(
        self, goal: str, title: str, description: Optional[str],
    ) -> RelevanceVerdict:
        """Judge one page view. Returns the fail-open verdict on any failure."""
        if self._backend == BACKEND_NONE:
            return unavailable_verdict()

        user_prompt = format_relevance_prompt(
            goal, title, description, max_chars=self._snippet_chars,
        )
        logger.info("Relevance analysis starting for %r", title)

        try:
            if self._backend == BACKEND_REMOTE:
                text = await self._complete_remote(user_prompt)
            else:
                text = await self._complete_local(user_prompt)
        except asyncio.TimeoutError:
            logger.warning("Relevance oracle timed out after %.1fs", self._timeout)
            return unavailable_verdict()
        except (httpx.HTTPError, RuntimeError) as e:
            logger.warning("Relevance oracle unavailable: %s", e)
            return unavailable_verdict()
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning("Invalid relevance oracle response: %s", e)
            return unavailable_verdict()

        if text is None:
            return unavailable_verdict()

        logger.debug("Relevance oracle raw response: %s", text)
        try:
            verdict = parse_verdict(text)
        except ValueError as e:
            logger.warning("Failed to parse relevance verdict (%s): %s", e, text)
            return unavailable_verdict()

        logger.info(
            "Relevance verdict for %r: score=%d productive=%s (%s)",
            title, verdict.score, verdict.productive, verdict.reason,
        )
        return verdict

    async def _complete_remote(self, user_prompt: str) -> Optional[str]:
        if not self._api_key:
            logger.warning("Relevance oracle API key missing; failing open.")
            return None

        async with httpx.AsyncClient() as client:
            resp = await client.post(
                self._url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={
                    "model": self._model,
                    "messages": [
                        {"role": "system", "content": RELEVANCE_SYSTEM_PROMPT},
                        {"role": "user", "content": user_prompt},
                    ],
                    "temperature": 0.1,
                },
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        return data["choices"][0]["message"]["content"]

    def preload(self) -> None:
        """Start loading the local model in the background.

        Must be called from a running event loop. No-op for other backends.
        """
        if self._backend == BACKEND_LOCAL:
            self._start_local_load()

    def _start_local_load(self) -> asyncio.Task:
        if self._local is None:
            self._local = LocalChatModel()
        if self._local_load is None:
            self._local_load = asyncio.create_task(asyncio.to_thread(self._local.load))
        return self._local_load

    async def _complete_local(self, user_prompt: str) -> Optional[str]:
        if self._local_load_failed:
            return None

        if self._local is None or not self._local.is_loaded:
            load = self._start_local_load()
            try:
                # The load keeps running past the timeout; later judgments reuse it
                await asyncio.wait_for(asyncio.shield(load), timeout=self._timeout)
            except asyncio.TimeoutError:
                logger.warning("Local relevance model still loading; failing open.")
                return None
            except RuntimeError as e:
                logger.warning("Failed to load local relevance model: %s", e)
                self._local_load_failed = True
                return None

        return await asyncio.wait_for(
            asyncio.to_thread(self._local.chat, RELEVANCE_SYSTEM_PROMPT, user_prompt),
            timeout=self._timeout,
        )

    def close(self) -> None:
        """Release the local model, if loaded."""
        if self._local is not None:
            self._local.unload()
