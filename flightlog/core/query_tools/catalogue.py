"""
Tools offered to the chat model.

Every tool has one arguments model; ``parse_tool_call`` validates what the
model sent before anything touches the database.
"""
from datetime import date
from typing import Annotated, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from flightlog.core.errors import ToolArgumentsError, UnknownToolError


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


class FlightsByDateRangeArgs(ToolArgs):
    startDate: date = Field(..., description="Start date in YYYY-MM-DD format (inclusive)")
    endDate: date = Field(..., description="End date in YYYY-MM-DD format (inclusive)")


class AirportVisitsArgs(ToolArgs):
    year: Optional[int] = Field(None, description="Optional year to filter by (e.g., 2023, 2024). If not provided, returns all airports ever visited.")


class TotalFlightsArgs(ToolArgs):
    year: Optional[int] = Field(None, description="Optional year to filter by (e.g., 2023, 2024). If not provided, returns total across all time.")


class FlightsByAirportArgs(ToolArgs):
    airportCode: str = Field(..., description="Three-letter IATA airport code (e.g., SFO, JFK, LAX).")

    @field_validator("airportCode")
    @classmethod
    def _three_letters(cls, value: str) -> str:
        value = value.strip().upper()
        if len(value) != 3 or not value.isalpha():
            raise ValueError("airportCode must be a 3-letter IATA code")
        return value


class AirlineStatsArgs(ToolArgs):
    pass


class EmailBodiesArgs(ToolArgs):
    emailMessageIds: List[str] = Field(..., min_length=1, description="List of email message IDs to retrieve the raw email bodies for.")


# Tagged union: tool name -> arguments model
class GetFlightsByDateRange(BaseModel):
    name: Literal["getFlightsByDateRange"] = "getFlightsByDateRange"
    arguments: FlightsByDateRangeArgs


class GetAirportVisits(BaseModel):
    name: Literal["getAirportVisits"] = "getAirportVisits"
    arguments: AirportVisitsArgs


class GetTotalFlights(BaseModel):
    name: Literal["getTotalFlights"] = "getTotalFlights"
    arguments: TotalFlightsArgs


class GetFlightsByAirport(BaseModel):
    name: Literal["getFlightsByAirport"] = "getFlightsByAirport"
    arguments: FlightsByAirportArgs


class GetAirlineStats(BaseModel):
    name: Literal["getAirlineStats"] = "getAirlineStats"
    arguments: AirlineStatsArgs


class GetEmailBodies(BaseModel):
    name: Literal["getEmailBodies"] = "getEmailBodies"
    arguments: EmailBodiesArgs


ToolCall = Annotated[
    Union[
        GetFlightsByDateRange,
        GetAirportVisits,
        GetTotalFlights,
        GetFlightsByAirport,
        GetAirlineStats,
        GetEmailBodies,
    ],
    Field(discriminator="name"),
]

TOOL_ARGUMENTS: Dict[str, Type[ToolArgs]] = {
    "getFlightsByDateRange": FlightsByDateRangeArgs,
    "getAirportVisits": AirportVisitsArgs,
    "getTotalFlights": TotalFlightsArgs,
    "getFlightsByAirport": FlightsByAirportArgs,
    "getAirlineStats": AirlineStatsArgs,
    "getEmailBodies": EmailBodiesArgs,
}

_TOOL_CALL_ADAPTER = TypeAdapter(ToolCall)

TOOL_DESCRIPTIONS: Dict[str, str] = {
    "getFlightsByDateRange": (
        "Get all flights within a specific date range. Use this when the user asks about flights during "
        'a specific period, between dates, or mentions time ranges like "last year", "in 2023", etc.'
    ),
    "getAirportVisits": (
        "Get a list of unique airports the user has visited (departed from or arrived at). "
        "Returns airport codes and city names. Optionally filter by year."
    ),
    "getTotalFlights": (
        "Count the total number of flights. Optionally filter by year. "
        'Use this when the user asks "how many flights", "total flights", etc.'
    ),
    "getFlightsByAirport": (
        "Get all flights that either departed from or arrived at a specific airport. "
        "Use when the user asks about a specific airport, city, or airport code."
    ),
    "getAirlineStats": (
        "Get statistics showing how many flights were taken on each airline. Returns airline names and "
        "flight counts, sorted by frequency. Use when the user asks about airlines or favorite carriers."
    ),
    "getEmailBodies": "Retrieve the full email bodies for specific flight confirmation emails.",
}


def _parameters_schema(args_model: Type[ToolArgs]) -> dict:
    schema = args_model.model_json_schema()
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    schema.setdefault("properties", {})
    return schema


def build_tool_catalogue() -> List[dict]:
    """Function tool definitions in the format ollama (and OpenAI) expect."""
    return [
        {
            "type": "function",
            "function": {
                "name": name,
                "description": TOOL_DESCRIPTIONS[name],
                "parameters": _parameters_schema(args_model),
            },
        }
        for name, args_model in TOOL_ARGUMENTS.items()
    ]


TOOL_CATALOGUE = build_tool_catalogue()


def parse_tool_call(name: str, arguments: Optional[dict]) -> ToolCall:
    """Validate one model-requested call. Unknown names are an error, never ignored."""
    if name not in TOOL_ARGUMENTS:
        raise UnknownToolError(name)

    # Some models send explicit nulls for optional arguments
    cleaned = {k: v for k, v in (arguments or {}).items() if v is not None}
    try:
        return _TOOL_CALL_ADAPTER.validate_python({"name": name, "arguments": cleaned})
    except ValidationError as e:
        raise ToolArgumentsError(name, str(e)) from e
