import asyncio

import httpx
import pytest
from ollama import ResponseError

from conftest import FakeLLM
from flightlog.core.errors import StructuredOutputError
from flightlog.core.extraction_agent.extraction_agent import TRUNCATION_MARKER, ExtractionAgent
from flightlog.core.extraction_agent.models import EmailInput, FlightExtraction, ParsedFlightSegment
from flightlog.core.llm import is_retryable_error, retry_async

USER = "traveler@example.com"

SFO_JFK = FlightExtraction(
    is_valid=True,
    flights=[
        ParsedFlightSegment(
            confirmation_number="ABC123",
            flight_date_local="2023-03-10",
            departure_airport="SFO",
            arrival_airport="JFK",
            flight_number="UA100",
        )
    ],
)

LAX_ORD = FlightExtraction(
    is_valid=True,
    flights=[
        ParsedFlightSegment(
            confirmation_number="XYZ789",
            flight_date_local="2024-06-01",
            departure_airport="LAX",
            arrival_airport="ORD",
            flight_number="AA200",
        )
    ],
)


def email(email_id: str, content: str = "Flight confirmation") -> EmailInput:
    return EmailInput(id=email_id, content=content, subject="Trip", sent_date="2023-01-05T10:00:00Z")


def make_agent(llm, directory, **kwargs) -> ExtractionAgent:
    kwargs.setdefault("retry_delay", 0)
    return ExtractionAgent(llm, directory, **kwargs)


async def test_failed_email_does_not_fail_the_batch(directory):
    llm = FakeLLM(structured={
        "m1": SFO_JFK,
        "m2": StructuredOutputError("bad json", content="{"),
        "m3": LAX_ORD,
    })
    agent = make_agent(llm, directory)

    results = await agent.parse_emails([email("m1"), email("m2"), email("m3")], USER)

    assert [len(records) for records in results] == [1, 0, 1]
    assert results[0][0].departure_airport == "SFO"
    assert results[2][0].departure_airport == "LAX"


async def test_retryable_error_is_retried(directory):
    llm = FakeLLM(structured={"m1": [ConnectionError("reset"), SFO_JFK]})
    agent = make_agent(llm, directory, max_retries=3)

    records = await agent.parse_email(email("m1"), USER)

    assert len(records) == 1
    assert llm.structured_calls == ["m1", "m1"]


async def test_connection_reset_mid_response_is_retried(directory):
    llm = FakeLLM(structured={"m1": [httpx.ReadError("[Errno 104] Connection reset by peer"), SFO_JFK]})
    agent = make_agent(llm, directory, max_retries=3)

    records = await agent.parse_email(email("m1"), USER)

    assert [r.departure_airport for r in records] == ["SFO"]
    assert llm.structured_calls == ["m1", "m1"]


async def test_non_retryable_error_is_not_retried(directory):
    llm = FakeLLM(structured={"m1": [StructuredOutputError("bad"), SFO_JFK]})
    agent = make_agent(llm, directory, max_retries=3)

    assert await agent.parse_email(email("m1"), USER) == []
    assert llm.structured_calls == ["m1"]


async def test_retries_are_bounded(directory):
    llm = FakeLLM(structured={"m1": [TimeoutError("slow")] * 5})
    agent = make_agent(llm, directory, max_retries=2)

    assert await agent.parse_email(email("m1"), USER) == []
    assert len(llm.structured_calls) == 3


async def test_concurrency_is_bounded(directory):
    active = 0
    peak = 0

    class SlowLLM(FakeLLM):
        async def chat_structured(self, messages, schema, temperature=0.0, max_tokens=4000):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return await super().chat_structured(messages, schema, temperature, max_tokens)

    agent = make_agent(SlowLLM(), directory, concurrency=2)

    results = await agent.parse_emails([email(f"m{i}") for i in range(7)], USER)

    assert len(results) == 7
    assert peak == 2


def test_long_email_is_truncated(directory):
    agent = make_agent(FakeLLM(), directory, max_email_chars=100)

    messages = agent.build_messages(email("m1", content="x" * 500))

    assert messages[0]["role"] == "system"
    assert TRUNCATION_MARKER in messages[1]["content"]
    assert "x" * 101 not in messages[1]["content"]


@pytest.mark.parametrize("error, expected", [
    (ResponseError("rate limited", 429), True),
    (ResponseError("unavailable", 503), True),
    (ResponseError("bad request", 400), False),
    (ConnectionError("reset"), True),
    (httpx.ReadError("[Errno 104] Connection reset by peer"), True),
    (httpx.RemoteProtocolError("Server disconnected without sending a response."), True),
    (httpx.ReadTimeout("timed out"), True),
    (ValueError("nope"), False),
])
def test_retryable_errors(error, expected):
    assert is_retryable_error(error) is expected


async def test_retry_async_returns_first_success():
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("reset")
        return "ok"

    assert await retry_async(flaky, retries=3, delay=0) == "ok"
    assert len(attempts) == 3


async def test_retry_async_reraises_last_error():
    async def always_down():
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        await retry_async(always_down, retries=1, delay=0)
