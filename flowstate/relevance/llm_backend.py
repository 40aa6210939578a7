"""On-device chat model (llama-cpp-python) for the "local" oracle backend.

Titles and descriptions never leave the machine when this backend is used.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from flowstate.config import LOCAL_RELEVANCE_MODEL

logger = logging.getLogger(__name__)

# Verdicts are one short JSON object
_MAX_TOKENS = 128
_TEMPERATURE = 0.1


class LocalChatModel:
    """A GGUF chat model loaded in-process.

    Loading is slow and blocking; callers run load() and chat() in a worker
    thread.
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        n_ctx: int = 2048,
        n_gpu_layers: int = -1,
    ) -> None:
        self.model_path = Path(model_path) if model_path else LOCAL_RELEVANCE_MODEL
        self._n_ctx = n_ctx
        self._n_gpu_layers = n_gpu_layers
        self._llama = None

    @property
    def is_loaded(self) -> bool:
        return self._llama is not None

    def load(self) -> None:
        """Load the model weights.

        Raises:
            RuntimeError: If llama-cpp-python is missing or the model file
                does not exist.
        """
        if self._llama is not None:
            return

        try:
            from llama_cpp import Llama
        except ImportError as e:
            raise RuntimeError(
                "llama-cpp-python is not installed. "
                "Install with: pip install 'flow-facilitator-engine[llama]'"
            ) from e

        if not self.model_path.is_file():
            raise RuntimeError(f"Relevance model not found at {self.model_path}")

        logger.info("Loading local relevance model %s", self.model_path.name)
        self._llama = Llama(
            model_path=str(self.model_path),
            n_ctx=self._n_ctx,
            n_gpu_layers=self._n_gpu_layers,
            verbose=False,
        )

    def unload(self) -> None:
        if self._llama is None:
            return
        self._llama = None
        logger.info("Local relevance model unloaded")

    def chat(self, system_prompt: str, user_prompt: str) -> str:
        """Return the assistant reply text for one system/user exchange."""
        if self._llama is None:
            raise RuntimeError("Local relevance model is not loaded")

        completion = self._llama.create_chat_completion(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=_MAX_TOKENS,
            temperature=_TEMPERATURE,
        )
        return completion["choices"][0]["message"]["content"]
