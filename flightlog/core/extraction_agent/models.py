"""
Data models for email flight extraction
"""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class EmailInput(BaseModel):
    """Input: one cleaned email handed over by the mail transport"""
    id: str
    content: str
    snippet: str = ""
    subject: Optional[str] = None
    sent_date: Optional[str] = None


class ParsedFlightSegment(BaseModel):
    """Raw, unvalidated segment as the model returned it"""
    confirmation_number: Optional[str] = Field(None, description="PNR/record locator (5-8 alphanumeric chars)")
    flight_date_local: Optional[str] = Field(None, description="YYYY-MM-DD on departure airport local date")
    departure_time_local: Optional[str] = Field(None, description="HH:mm 24h format, departure local time")
    arrival_time_local: Optional[str] = Field(None, description="HH:mm 24h format, arrival local time")
    departure_airport: Optional[str] = Field(None, description="3-letter IATA departure airport code")
    arrival_airport: Optional[str] = Field(None, description="3-letter IATA arrival airport code")
    airline: Optional[str] = Field(None, description="Airline name")
    flight_number: Optional[str] = Field(None, description="Flight number (e.g., UA123, AA456)")
    cabin: Optional[str] = Field(None, description="Cabin class (economy, business, first, etc.)")
    passenger_names: Optional[List[str]] = Field(None, description="Passenger names if present")
    notes: Optional[str] = Field(None, description="Any additional notes or special information")


class EmailMetadata(BaseModel):
    message_id: Optional[str] = None
    subject: Optional[str] = None
    sent_date: Optional[str] = Field(None, description="ISO8601 date")


class FlightExtraction(BaseModel):
    """Structured output requested from the model for one email"""
    flights: List[ParsedFlightSegment] = Field(default_factory=list, description="All flight segments (connections, round trips, etc.)")
    is_valid: bool = Field(False, description="False if no clear flight information found")
    email_metadata: Optional[EmailMetadata] = None


# Columns copied one-to-one between FlightRecord and FlightRecordDB
RECORD_FIELDS = (
    "user_email",
    "confirmation_number",
    "flight_date",
    "departure_time_local",
    "arrival_time_local",
    "departure_airport",
    "arrival_airport",
    "departure_city",
    "arrival_city",
    "departure_lat",
    "departure_lng",
    "arrival_lat",
    "arrival_lng",
    "airline",
    "flight_number",
    "cabin",
    "passenger_names",
    "notes",
    "email_message_id",
    "email_sent_date",
    "email_subject",
    "raw_email_content",
)


class FlightRecord(BaseModel):
    """Canonical flight record, ready for reconciliation"""
    id: Optional[int] = None
    user_email: str
    confirmation_number: Optional[str] = None
    flight_date: date
    departure_time_local: Optional[str] = None
    arrival_time_local: Optional[str] = None
    departure_airport: str
    arrival_airport: str
    departure_city: Optional[str] = None
    arrival_city: Optional[str] = None
    departure_lat: Optional[float] = None
    departure_lng: Optional[float] = None
    arrival_lat: Optional[float] = None
    arrival_lng: Optional[float] = None
    airline: Optional[str] = None
    flight_number: Optional[str] = None
    cabin: Optional[str] = None
    passenger_names: Optional[List[str]] = None
    notes: Optional[str] = None

    # Provenance, kept for back-reference only
    email_message_id: Optional[str] = None
    email_sent_date: Optional[str] = None
    email_subject: Optional[str] = None
    raw_email_content: Optional[str] = None

    created_at: Optional[datetime] = None

    def to_row_data(self) -> dict:
        return {name: getattr(self, name) for name in RECORD_FIELDS}

    @classmethod
    def from_row(cls, row) -> "FlightRecord":
        data = {name: getattr(row, name) for name in RECORD_FIELDS}
        return cls(id=row.id, created_at=row.created_at, **data)
