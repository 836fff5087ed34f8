# crm_nlq/nl/oracle.py
"""
Intent oracles: the external language model behind the classifier.

An oracle takes the rendered prompt and returns whatever the model produced
(usually JSON text). Decoding and validation happen in the classifier, so
backends stay thin. Heavy libraries (torch/transformers, openai) are only
imported when a backend actually runs.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from crm_nlq.settings import (
    ORACLE_BACKEND, ORACLE_MAX_NEW_TOKENS, ORACLE_MODEL_ID,
    OPENAI_API_KEY, OPENAI_BASE_URL, OPENAI_MODEL,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptPayload:
    system: str
    user: str


class IntentOracle(Protocol):
    name: str

    async def classify_raw(self, payload: PromptPayload) -> Any:
        """Return the model's raw answer (dict or text). May raise."""
        ...


class LocalModelOracle:
    """Hugging Face model loaded in-process (see model_loader)."""
    name = "local"

    def __init__(self, max_new_tokens: int = ORACLE_MAX_NEW_TOKENS):
        self.model_id = ORACLE_MODEL_ID
        self.max_new_tokens = max_new_tokens

    async def classify_raw(self, payload: PromptPayload) -> str:
        from crm_nlq.nl import model_loader
        # generation is blocking; keep it off the event loop
        return await asyncio.to_thread(
            model_loader.generate, payload.system, payload.user, self.max_new_tokens
        )


class OpenAIOracle:
    """Any OpenAI-compatible chat completions endpoint."""
    name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 base_url: Optional[str] = None):
        self.api_key = api_key or OPENAI_API_KEY
        self.model_id = model or OPENAI_MODEL
        self.base_url = base_url or OPENAI_BASE_URL
        self._client = None

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise RuntimeError("OPENAI_API_KEY is not set")
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def classify_raw(self, payload: PromptPayload) -> str:
        client = self._get_client()
        resp = await client.chat.completions.create(
            model=self.model_id,
            messages=[
                {"role": "system", "content": payload.system},
                {"role": "user", "content": payload.user},
            ],
            temperature=0,
            response_format={"type": "json_object"},
        )
        return resp.choices[0].message.content


def build_oracle(backend: str = ORACLE_BACKEND) -> IntentOracle:
    if backend == "local":
        return LocalModelOracle()
    if backend == "openai":
        return OpenAIOracle()
    raise ValueError(f"unknown oracle backend {backend!r} (expected 'local' or 'openai')")


_default_oracle: Optional[IntentOracle] = None


def get_oracle() -> IntentOracle:
    """FastAPI dependency: the process-wide oracle for the configured backend."""
    global _default_oracle
    if _default_oracle is None:
        _default_oracle = build_oracle()
        log.info("intent oracle backend=%s model=%s", _default_oracle.name,
                 getattr(_default_oracle, "model_id", None))
    return _default_oracle
