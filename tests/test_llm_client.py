from __future__ import annotations

from typing import Any

import pytest
import requests

from budgetsphere.llm import client, service
from budgetsphere.llm.client import LLMFatalError, LLMTransientError


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, bad_json: bool = False) -> None:
        self.status_code = status_code
        self._body = body
        self._bad_json = bad_json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error", response=self)

    def json(self) -> Any:
        if self._bad_json:
            raise ValueError("not json")
        return self._body


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
    calls: dict[str, Any] = {"response": FakeResponse(body={"choices": [{"message": {"content": " hi "}}]})}

    def fake_post(url: str, headers: dict, json: dict, timeout: float) -> FakeResponse:
        calls["url"] = url
        calls["headers"] = headers
        calls["json"] = json
        return calls["response"]

    monkeypatch.setattr(client.requests, "post", fake_post)
    return calls


def test_local_provider_returns_stripped_text(captured: dict[str, Any]) -> None:
    payload = service.build_payload("system", "user")

    assert client.send_request(payload, provider="local") == "hi"
    assert captured["json"]["messages"][0] == {"role": "system", "content": "system"}
    assert "Authorization" not in captured["headers"]


@pytest.mark.parametrize("status", [429, 500, 503])
def test_retryable_status_is_transient(captured: dict[str, Any], status: int) -> None:
    captured["response"] = FakeResponse(status_code=status)

    with pytest.raises(LLMTransientError) as exc:
        client.send_request(service.build_payload("s", "u"), provider="local")

    assert exc.value.transient is True
    assert str(status) in str(exc.value)


def test_client_error_status_is_fatal(captured: dict[str, Any]) -> None:
    captured["response"] = FakeResponse(status_code=401)

    with pytest.raises(LLMFatalError):
        client.send_request(service.build_payload("s", "u"), provider="local")


def test_connection_error_is_transient(monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(*args: Any, **kwargs: Any) -> None:
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(client.requests, "post", refuse)

    with pytest.raises(LLMTransientError):
        client.send_request(service.build_payload("s", "u"), provider="local")


def test_malformed_bodies_are_fatal(captured: dict[str, Any]) -> None:
    captured["response"] = FakeResponse(body={"unexpected": True})
    with pytest.raises(LLMFatalError):
        client.send_request(service.build_payload("s", "u"), provider="local")

    captured["response"] = FakeResponse(bad_json=True)
    with pytest.raises(LLMFatalError):
        client.send_request(service.build_payload("s", "u"), provider="local")


def test_unknown_provider_is_fatal() -> None:
    with pytest.raises(LLMFatalError):
        client.send_request(service.build_payload("s", "u"), provider="carrier-pigeon")


def test_anthropic_lifts_system_prompt(
    captured: dict[str, Any], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    captured["response"] = FakeResponse(body={"content": [{"text": "answer"}]})

    assert client.send_request(service.build_payload("be brief", "hello"), provider="anthropic") == "answer"
    assert captured["json"]["system"] == "be brief"
    assert captured["json"]["messages"] == [{"role": "user", "content": "hello"}]
    assert captured["headers"]["x-api-key"] == "test-key"


def test_missing_key_is_fatal(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)

    with pytest.raises(LLMFatalError):
        client.send_request(service.build_payload("s", "u"), provider="openai")


def test_empty_completion_is_fatal(captured: dict[str, Any]) -> None:
    captured["response"] = FakeResponse(body={"choices": [{"message": {"content": "   "}}]})

    with pytest.raises(LLMFatalError):
        service.complete("s", "u", provider="local")


def test_key_file_used_when_env_unset(
    captured: dict[str, Any], monkeypatch: pytest.MonkeyPatch, tmp_path
) -> None:
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "groq.key").write_text("file-key\n", encoding="utf-8")

    client.send_request(service.build_payload("s", "u"), provider="groq")

    assert captured["headers"]["Authorization"] == "Bearer file-key"


def test_gemini_url_carries_model(captured: dict[str, Any], monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    captured["response"] = FakeResponse(body={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]})
    payload = service.build_payload("sys", "hello")
    payload["model"] = "gemini-test"

    assert client.send_request(payload, provider="gemini") == "ok"
    assert captured["url"].endswith("/models/gemini-test:generateContent")
    assert captured["json"]["systemInstruction"] == {"parts": [{"text": "sys"}]}
