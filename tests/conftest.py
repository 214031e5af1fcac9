from datetime import date
from typing import Dict, List, Optional, Union

import pytest

from flightlog.core.airports.directory import Airport, AirportDirectory
from flightlog.core.extraction_agent.models import FlightExtraction, FlightRecord
from flightlog.core.llm import LLMReply
from flightlog.database.db import FlightDatabase

MEMORY_DB_URL = "sqlite+aiosqlite://"

TEST_AIRPORTS = [
    Airport("SFO", "San Francisco International Airport", "San Francisco", "US", 37.6213, -122.379),
    Airport("JFK", "John F Kennedy International Airport", "New York", "US", 40.6413, -73.7781),
    Airport("LAX", "Los Angeles International Airport", "Los Angeles", "US", 33.9416, -118.4085),
    Airport("ORD", "Chicago O'Hare International Airport", "Chicago", "US", 41.9742, -87.9073),
    Airport("SEA", "Seattle Tacoma International Airport", "Seattle", "US", 47.4502, -122.3088),
    Airport("BOS", "Logan International Airport", "Boston", "US", 42.3656, -71.0096),
    Airport("DEN", "Denver International Airport", "Denver", "US", 39.8561, -104.6737),
    Airport("LHR", "London Heathrow Airport", "London", "GB", 51.47, -0.4543),
]


class FakeLLM:
    """
    Scripted stand-in for OllamaCloudLLM.

    ``structured`` maps an email id (found in the user prompt) to a
    FlightExtraction or to an exception, or a list of those consumed one
    per attempt. ``replies`` is consumed one per chat_with_tools call.
    """

    def __init__(
        self,
        structured: Optional[Dict[str, Union[FlightExtraction, Exception, list]]] = None,
        replies: Optional[List[LLMReply]] = None,
    ):
        self.structured = structured or {}
        self.replies = list(replies or [])
        self.structured_calls: List[str] = []
        self.chat_calls: List[list] = []

    def _email_id(self, messages: list) -> str:
        for line in messages[-1]["content"].splitlines():
            if line.startswith("Message ID: "):
                return line[len("Message ID: "):]
        raise AssertionError("prompt without message id")

    async def chat_structured(self, messages, schema, temperature=0.0, max_tokens=4000):
        email_id = self._email_id(messages)
        self.structured_calls.append(email_id)

        outcome = self.structured.get(email_id, FlightExtraction())
        if isinstance(outcome, list):
            outcome = outcome.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def chat_with_tools(self, messages, tools, temperature=0.0):
        self.chat_calls.append(list(messages))
        if not self.replies:
            raise AssertionError("no scripted reply left")
        if len(self.replies) == 1:
            return self.replies[0]
        return self.replies.pop(0)


def make_record(**overrides) -> FlightRecord:
    data = dict(
        user_email="traveler@example.com",
        confirmation_number="ABC123",
        flight_date=date(2023, 3, 10),
        departure_time_local="08:15",
        arrival_time_local="16:40",
        departure_airport="SFO",
        arrival_airport="JFK",
        departure_city="San Francisco",
        arrival_city="New York",
        airline="United Airlines",
        flight_number="UA100",
        email_message_id="msg-1",
        email_sent_date="2023-01-05T10:00:00Z",
        email_subject="Your United trip confirmation",
        raw_email_content="Confirmation ABC123 UA100 SFO to JFK",
    )
    data.update(overrides)
    return FlightRecord(**data)


@pytest.fixture
def directory() -> AirportDirectory:
    return AirportDirectory(TEST_AIRPORTS)


@pytest.fixture
async def db():
    database = FlightDatabase(MEMORY_DB_URL)
    await database.init()
    yield database
    await database.dispose()
