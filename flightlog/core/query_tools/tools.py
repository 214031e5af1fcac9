import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from flightlog.core.extraction_agent.models import FlightRecord
from flightlog.core.query_tools.catalogue import (
    GetAirlineStats,
    GetAirportVisits,
    GetEmailBodies,
    GetFlightsByAirport,
    GetFlightsByDateRange,
    GetTotalFlights,
    ToolCall,
)
from flightlog.database.db import FlightDatabase
from flightlog.database.repostries.flight_repo import FlightRepository

logger = logging.getLogger("query_tools")


def sanitize_flight_record(flight) -> Dict[str, Any]:
    """
    JSON-ready flight without the raw email body.
    camelCase provenance aliases let the model reuse message ids in follow-up calls.
    """
    record = flight if isinstance(flight, FlightRecord) else FlightRecord.from_row(flight)
    data = record.model_dump(mode="json", exclude={"raw_email_content"})
    data["emailMessageId"] = record.email_message_id
    data["emailSentDate"] = record.email_sent_date
    data["emailSubject"] = record.email_subject
    return data


class FlightQueryTools:
    """Read-only, per-user queries over the flight store."""

    def __init__(self, db: FlightDatabase, repo: Optional[FlightRepository] = None):
        self.db = db
        self.repo = repo or FlightRepository()

    async def all_flights(self, user_email: str) -> List[Dict[str, Any]]:
        async with self.db.get_session() as session:
            rows = await self.repo.get_by_user(session, user_email)
        return [sanitize_flight_record(row) for row in rows]

    async def flights_by_ids(self, user_email: str, flight_ids: Sequence[int]) -> List[Dict[str, Any]]:
        async with self.db.get_session() as session:
            rows = await self.repo.get_by_ids(session, user_email, flight_ids)
        return [sanitize_flight_record(row) for row in rows]

    async def flights_by_date_range(self, user_email: str, start: date, end: date) -> List[Dict[str, Any]]:
        async with self.db.get_session() as session:
            rows = await self.repo.get_by_date_range(session, user_email, start, end)
        logger.info(f"Found {len(rows)} flights between {start} and {end}")
        return [sanitize_flight_record(row) for row in rows]

    async def airport_visits(self, user_email: str, year: Optional[int] = None) -> List[Dict[str, Any]]:
        async with self.db.get_session() as session:
            airports = await self.repo.get_airport_visits(session, user_email, year)
        logger.info(f"Found {len(airports)} unique airports" + (f" in {year}" if year else ""))
        return airports

    async def total_flights(self, user_email: str, year: Optional[int] = None) -> int:
        async with self.db.get_session() as session:
            return await self.repo.count(session, user_email, year)

    async def flights_by_airport(self, user_email: str, airport_code: str) -> List[Dict[str, Any]]:
        code = (airport_code or "").strip().upper()
        async with self.db.get_session() as session:
            rows = await self.repo.get_by_airport(session, user_email, code)
        logger.info(f"Found {len(rows)} flights for airport {code}")
        return [sanitize_flight_record(row) for row in rows]

    async def airline_stats(self, user_email: str) -> List[Dict[str, Any]]:
        async with self.db.get_session() as session:
            return await self.repo.get_airline_stats(session, user_email)

    async def email_bodies(self, user_email: str, message_ids: Sequence[str]) -> List[Dict[str, Any]]:
        async with self.db.get_session() as session:
            bodies = await self.repo.get_email_bodies(session, user_email, message_ids)
        logger.info(f"Returning {len(bodies)} email bodies")
        return [
            {
                **body,
                "emailMessageId": body["email_message_id"],
                "emailSubject": body["email_subject"],
                "emailSentDate": body["email_sent_date"],
            }
            for body in bodies
        ]

    async def execute(self, user_email: str, call: ToolCall) -> Any:
        """Run one validated tool call and return a JSON-ready result."""
        logger.info(f"Executing tool: {call.name} with args: {call.arguments.model_dump(mode='json')}")
        args = call.arguments

        if isinstance(call, GetFlightsByDateRange):
            return await self.flights_by_date_range(user_email, args.startDate, args.endDate)
        if isinstance(call, GetAirportVisits):
            return await self.airport_visits(user_email, args.year)
        if isinstance(call, GetTotalFlights):
            total = await self.total_flights(user_email, args.year)
            return {"total": total, "year": args.year if args.year is not None else "all time"}
        if isinstance(call, GetFlightsByAirport):
            return await self.flights_by_airport(user_email, args.airportCode)
        if isinstance(call, GetAirlineStats):
            return await self.airline_stats(user_email)
        if isinstance(call, GetEmailBodies):
            return await self.email_bodies(user_email, args.emailMessageIds)

        raise TypeError(f"Unhandled tool call type: {type(call).__name__}")
