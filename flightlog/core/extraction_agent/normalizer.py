import logging
import re
from datetime import date
from typing import List, Optional

from flightlog.core.airports.directory import AirportDirectory
from flightlog.core.extraction_agent.models import (
    EmailInput,
    FlightExtraction,
    FlightRecord,
    ParsedFlightSegment,
)

logger = logging.getLogger("normalizer")

_WHITESPACE = re.compile(r"\s+")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _iata(value: Optional[str]) -> str:
    return (value or "").strip().upper()


def normalize_flight_number(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return _WHITESPACE.sub("", value).upper() or None


def normalize_confirmation_number(value: Optional[str]) -> Optional[str]:
    value = _clean(value)
    return value.upper() if value else None


def normalize_segment(
    segment: ParsedFlightSegment,
    user_email: str,
    directory: AirportDirectory,
) -> Optional[FlightRecord]:
    """
    Turn one raw segment into a FlightRecord without provenance.
    Returns None when the segment has to be dropped.
    """
    dep_code = _iata(segment.departure_airport)
    arr_code = _iata(segment.arrival_airport)

    if len(dep_code) != 3 or len(arr_code) != 3:
        logger.warning(f"Invalid IATA codes: {dep_code} -> {arr_code}")
        return None

    dep = directory.lookup(dep_code)
    if dep is None:
        logger.warning(f"Departure airport {dep_code} not found in directory")
        return None

    arr = directory.lookup(arr_code)
    if arr is None:
        logger.warning(f"Arrival airport {arr_code} not found in directory")
        return None

    try:
        flight_date = date.fromisoformat((segment.flight_date_local or "").strip())
    except ValueError:
        logger.warning(f"Unparsable flight date {segment.flight_date_local!r} for {dep_code} -> {arr_code}")
        return None

    passenger_names = [name.strip() for name in (segment.passenger_names or []) if name and name.strip()]

    return FlightRecord(
        user_email=user_email,
        confirmation_number=normalize_confirmation_number(segment.confirmation_number),
        flight_date=flight_date,
        departure_time_local=_clean(segment.departure_time_local),
        arrival_time_local=_clean(segment.arrival_time_local),
        departure_airport=dep_code,
        arrival_airport=arr_code,
        departure_city=dep.city or None,
        arrival_city=arr.city or None,
        departure_lat=dep.lat,
        departure_lng=dep.lng,
        arrival_lat=arr.lat,
        arrival_lng=arr.lng,
        airline=_clean(segment.airline),
        flight_number=normalize_flight_number(segment.flight_number),
        cabin=_clean(segment.cabin),
        passenger_names=passenger_names or None,
        notes=_clean(segment.notes),
    )


def normalize_extraction(
    extraction: FlightExtraction,
    email: EmailInput,
    user_email: str,
    directory: AirportDirectory,
) -> List[FlightRecord]:
    """Normalize every segment of one email and attach the email's provenance."""
    if not extraction.is_valid or not extraction.flights:
        logger.info(f"No valid flight information found in email {email.id}")
        return []

    metadata = extraction.email_metadata
    message_id = _clean(metadata.message_id if metadata else None) or email.id
    subject = _clean(metadata.subject if metadata else None) or email.subject
    sent_date = _clean(metadata.sent_date if metadata else None) or email.sent_date

    records: List[FlightRecord] = []
    for segment in extraction.flights:
        record = normalize_segment(segment, user_email, directory)
        if record is None:
            continue

        record.email_message_id = message_id
        record.email_subject = subject
        record.email_sent_date = sent_date
        record.raw_email_content = email.content
        records.append(record)

        logger.info(
            f"Parsed: {record.departure_airport} -> {record.arrival_airport} on {record.flight_date}"
            + (f" ({record.flight_number})" if record.flight_number else "")
        )

    return records
