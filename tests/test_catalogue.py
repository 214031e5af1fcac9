from datetime import date

import pytest

from flightlog.core.errors import ToolArgumentsError, UnknownToolError
from flightlog.core.query_tools.catalogue import (
    TOOL_ARGUMENTS,
    TOOL_CATALOGUE,
    GetAirportVisits,
    GetFlightsByAirport,
    GetFlightsByDateRange,
    parse_tool_call,
)

TOOL_NAMES = [
    "getFlightsByDateRange",
    "getAirportVisits",
    "getTotalFlights",
    "getFlightsByAirport",
    "getAirlineStats",
    "getEmailBodies",
]


def test_catalogue_lists_every_tool():
    assert [tool["function"]["name"] for tool in TOOL_CATALOGUE] == TOOL_NAMES
    for tool in TOOL_CATALOGUE:
        assert tool["type"] == "function"
        assert tool["function"]["description"]
        assert tool["function"]["parameters"]["type"] == "object"


def test_catalogue_required_arguments():
    params = {tool["function"]["name"]: tool["function"]["parameters"] for tool in TOOL_CATALOGUE}

    assert sorted(params["getFlightsByDateRange"]["required"]) == ["endDate", "startDate"]
    assert params["getFlightsByAirport"]["required"] == ["airportCode"]
    assert "required" not in params["getAirportVisits"]
    assert params["getAirlineStats"]["properties"] == {}


def test_parse_date_range():
    call = parse_tool_call("getFlightsByDateRange", {"startDate": "2023-01-01", "endDate": "2023-12-31"})

    assert isinstance(call, GetFlightsByDateRange)
    assert call.arguments.startDate == date(2023, 1, 1)
    assert call.arguments.endDate == date(2023, 12, 31)


def test_null_optional_argument_is_dropped():
    call = parse_tool_call("getAirportVisits", {"year": None})

    assert isinstance(call, GetAirportVisits)
    assert call.arguments.year is None


def test_airport_code_is_uppercased():
    call = parse_tool_call("getFlightsByAirport", {"airportCode": " sfo "})

    assert isinstance(call, GetFlightsByAirport)
    assert call.arguments.airportCode == "SFO"


MINIMAL_ARGUMENTS = {
    "getFlightsByDateRange": {"startDate": "2023-01-01", "endDate": "2023-01-31"},
    "getAirportVisits": {},
    "getTotalFlights": {},
    "getFlightsByAirport": {"airportCode": "SFO"},
    "getAirlineStats": {},
    "getEmailBodies": {"emailMessageIds": ["msg-1"]},
}


@pytest.mark.parametrize("name", TOOL_NAMES)
def test_every_catalogued_tool_parses_to_its_call(name):
    call = parse_tool_call(name, MINIMAL_ARGUMENTS[name])

    assert call.name == name
    assert isinstance(call.arguments, TOOL_ARGUMENTS[name])


def test_unknown_tool_is_an_error():
    with pytest.raises(UnknownToolError) as exc_info:
        parse_tool_call("deleteAllFlights", {})

    assert exc_info.value.tool_name == "deleteAllFlights"
    assert "Unknown tool: deleteAllFlights" in str(exc_info.value)


@pytest.mark.parametrize("name, arguments", [
    ("getFlightsByDateRange", {"startDate": "2023-01-01"}),
    ("getFlightsByDateRange", {"startDate": "yesterday", "endDate": "2023-12-31"}),
    ("getFlightsByAirport", {"airportCode": "San Francisco"}),
    ("getTotalFlights", {"year": 2023, "airline": "United"}),
    ("getEmailBodies", {"emailMessageIds": []}),
])
def test_invalid_arguments_are_rejected(name, arguments):
    with pytest.raises(ToolArgumentsError):
        parse_tool_call(name, arguments)
