import asyncio

import pytest

from crm_nlq.nl import oracle as oracle_mod
from crm_nlq.nl.classifier import classify
from crm_nlq.nl.oracle import LocalModelOracle, OpenAIOracle, PromptPayload, build_oracle


def test_build_oracle_by_backend():
    assert isinstance(build_oracle("local"), LocalModelOracle)
    assert isinstance(build_oracle("openai"), OpenAIOracle)
    with pytest.raises(ValueError):
        build_oracle("gemini")


def test_openai_oracle_needs_api_key(monkeypatch):
    monkeypatch.setattr(oracle_mod, "OPENAI_API_KEY", None)
    o = OpenAIOracle()
    with pytest.raises(RuntimeError):
        asyncio.run(o.classify_raw(PromptPayload("sys", "user")))


def test_missing_api_key_becomes_fallback(monkeypatch):
    monkeypatch.setattr(oracle_mod, "OPENAI_API_KEY", None)
    r = asyncio.run(classify("how many leads?", oracle=OpenAIOracle()))
    assert r.confidence == 0.3
    assert "Failed to classify intent: OPENAI_API_KEY is not set" in r.explanation


def test_misconfigured_backend_becomes_fallback(monkeypatch):
    def _unknown_backend(backend="gemini"):
        raise ValueError(f"unknown oracle backend {backend!r} (expected 'local' or 'openai')")

    monkeypatch.setattr(oracle_mod, "_default_oracle", None)
    monkeypatch.setattr(oracle_mod, "build_oracle", _unknown_backend)
    r = asyncio.run(classify("how many contacts?"))
    assert r.confidence == 0.3
    assert r.intent.tables == ["contacts"]
    assert "Failed to classify intent: unknown oracle backend 'gemini'" in r.explanation
