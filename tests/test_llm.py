import asyncio

import pytest

from certcheck.config import Settings
from certcheck.errors import AnalyzerError, ErrorCode
from certcheck.llm import ExtractionClient, build_messages, classify_error, is_retryable
from certcheck.schema import SYSTEM_INSTRUCTION
from tests.conftest import FakeOpenAI


@pytest.fixture
def delays(monkeypatch):
    recorded = []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    monkeypatch.setattr("certcheck.llm.asyncio.sleep", fake_sleep)
    return recorded


def _client(settings, *outcomes):
    fake = FakeOpenAI(*outcomes)
    return ExtractionClient(settings, client=fake), fake.completions


def test_returns_raw_content(settings):
    client, completions = _client(settings, '{"sections": {}}')
    assert asyncio.run(client.extract("certificate text")) == '{"sections": {}}'
    assert len(completions.calls) == 1


def test_request_shape(settings):
    client, completions = _client(settings, "{}")
    asyncio.run(client.extract("Unit 1203, TSCC 1511"))

    call = completions.calls[0]
    assert call["model"] == settings.model
    assert call["max_tokens"] == settings.max_output_tokens
    system, user = call["messages"]
    assert system == {"role": "system", "content": SYSTEM_INSTRUCTION}
    assert user["role"] == "user"
    assert "--- STATUS CERTIFICATE TEXT ---" in user["content"]
    assert user["content"].rstrip().endswith("Unit 1203, TSCC 1511")


def test_service_unavailable_is_retried_then_classified(settings, delays):
    client, completions = _client(settings, Exception("503 Service Unavailable"))
    with pytest.raises(AnalyzerError) as excinfo:
        asyncio.run(client.extract("text"))

    assert excinfo.value.code == ErrorCode.UNAVAILABLE
    assert len(completions.calls) == 3
    assert "503" not in excinfo.value.message


def test_invalid_api_key_is_never_retried(settings, delays):
    client, completions = _client(settings, Exception("invalid API key"))
    with pytest.raises(AnalyzerError) as excinfo:
        asyncio.run(client.extract("text"))

    assert excinfo.value.code == ErrorCode.ANALYSIS_FAILED
    assert len(completions.calls) == 1
    assert delays == []


def test_backoff_is_linear(delays):
    settings = Settings(api_key="k", retry_base_delay=2.0)
    client, _ = _client(settings, Exception("Connection reset by peer"))
    with pytest.raises(AnalyzerError):
        asyncio.run(client.extract("text"))
    assert delays == [2.0, 4.0]


def test_recovers_after_transient_failure(settings, delays):
    client, completions = _client(settings, Exception("Request timed out."), '{"ok": true}')
    assert asyncio.run(client.extract("text")) == '{"ok": true}'
    assert len(completions.calls) == 2


def test_rate_limit_exhaustion(settings, delays):
    client, completions = _client(
        settings, Exception("Error code: 429 - Rate limit reached for requests")
    )
    with pytest.raises(AnalyzerError) as excinfo:
        asyncio.run(client.extract("text"))
    assert excinfo.value.code == ErrorCode.RATE_LIMIT
    assert len(completions.calls) == 3


def test_max_attempts_is_configurable(delays):
    settings = Settings(api_key="k", max_attempts=1, retry_base_delay=0.0)
    client, completions = _client(settings, Exception("502 Bad Gateway"))
    with pytest.raises(AnalyzerError):
        asyncio.run(client.extract("text"))
    assert len(completions.calls) == 1


def test_empty_content_fails_without_retry(settings, delays):
    client, completions = _client(settings, "")
    with pytest.raises(AnalyzerError) as excinfo:
        asyncio.run(client.extract("text"))
    assert excinfo.value.code == ErrorCode.ANALYSIS_FAILED
    assert len(completions.calls) == 1


def test_cancellation_aborts_the_request(settings):
    started = []

    async def hang():
        started.append(True)
        await asyncio.sleep(30)

    client, completions = _client(settings, hang)

    async def run():
        await asyncio.wait_for(client.extract("text"), timeout=0.05)

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(run())
    assert started == [True]
    assert len(completions.calls) == 1


def test_missing_credential():
    with pytest.raises(AnalyzerError) as excinfo:
        ExtractionClient(Settings(api_key=""))
    assert excinfo.value.code == ErrorCode.ANALYSIS_FAILED


@pytest.mark.parametrize(
    "message,retryable,code",
    [
        ("503 Service Unavailable", True, ErrorCode.UNAVAILABLE),
        ("502 Bad Gateway", True, ErrorCode.UNAVAILABLE),
        ("Service temporarily unavailable", True, ErrorCode.UNAVAILABLE),
        ("read ECONNRESET", True, ErrorCode.UNAVAILABLE),
        ("Connection error.", True, ErrorCode.UNAVAILABLE),
        ("Request timed out.", True, ErrorCode.TIMEOUT),
        ("Gateway Timeout", True, ErrorCode.TIMEOUT),
        ("Rate limit exceeded", True, ErrorCode.RATE_LIMIT),
        ("invalid API key", False, ErrorCode.ANALYSIS_FAILED),
        ("Error code: 400 - context length exceeded", False, ErrorCode.ANALYSIS_FAILED),
    ],
)
def test_classification(message, retryable, code):
    assert is_retryable(message) is retryable
    assert classify_error(message) == code


def test_build_messages_carries_contract():
    _, user = build_messages("body")
    assert '"risk_rating"' in user["content"]
    assert "reserve_fund" in user["content"]
