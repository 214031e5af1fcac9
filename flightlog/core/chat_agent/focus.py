import json
import logging
import re
from typing import List, Optional, Tuple

from pydantic import ValidationError

from flightlog.core.chat_agent.models import FocusAirport, FocusDirective, FocusPayload, ToolInvocation

logger = logging.getLogger("focus")

FOCUS_OPEN = "<globe_focus>"
FOCUS_CLOSE = "</globe_focus>"

_FOCUS_BLOCK = re.compile(re.escape(FOCUS_OPEN) + r"(.*?)" + re.escape(FOCUS_CLOSE), re.DOTALL)
_UNTERMINATED_BLOCK = re.compile(re.escape(FOCUS_OPEN) + r".*\Z", re.DOTALL)
_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")

FLIGHT_LIST_TOOLS = ("getFlightsByDateRange", "getFlightsByAirport")
AIRPORT_LIST_TOOLS = ("getAirportVisits",)


def _parse_payload(raw: str) -> Optional[FocusPayload]:
    raw = _CODE_FENCE.sub("", raw.strip())
    try:
        return FocusPayload.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Discarding malformed focus block: {e}")
        return None


def extract_focus_directive(text: str) -> Tuple[str, Optional[FocusPayload]]:
    """
    Split the model answer into user-visible text and the focus payload.
    Every focus block is removed from the text even when its payload is unusable;
    when several are present the last one counts.
    """
    if not text:
        return "", None

    blocks = _FOCUS_BLOCK.findall(text)
    cleaned = _FOCUS_BLOCK.sub("", text)
    cleaned = _UNTERMINATED_BLOCK.sub("", cleaned).replace(FOCUS_CLOSE, "")

    payload = _parse_payload(blocks[-1]) if blocks else None
    return cleaned.strip(), payload


def derive_focus_from_tools(tool_calls: List[ToolInvocation]) -> FocusDirective:
    """Fallback when the answer carries no usable block: the latest list result wins."""
    for invocation in reversed(tool_calls):
        if invocation.tool in FLIGHT_LIST_TOOLS and isinstance(invocation.result, list) and invocation.result:
            return FocusDirective(mode="flights", flights=invocation.result)
        if invocation.tool in AIRPORT_LIST_TOOLS and isinstance(invocation.result, list) and invocation.result:
            return FocusDirective(
                mode="airports",
                airports=[FocusAirport(code=a["code"], city=a.get("city")) for a in invocation.result],
            )
    return FocusDirective(mode="all")


def flights_seen(tool_calls: List[ToolInvocation]) -> dict:
    """Flight records returned by tools this turn, keyed by id."""
    seen = {}
    for invocation in tool_calls:
        if invocation.tool in FLIGHT_LIST_TOOLS and isinstance(invocation.result, list):
            for flight in invocation.result:
                if isinstance(flight, dict) and flight.get("id") is not None:
                    seen[flight["id"]] = flight
    return seen


def airport_cities_seen(tool_calls: List[ToolInvocation]) -> dict:
    """Airport code -> city from any tool result of this turn."""
    cities = {}
    for invocation in tool_calls:
        if not isinstance(invocation.result, list):
            continue
        for item in invocation.result:
            if not isinstance(item, dict):
                continue
            if invocation.tool in AIRPORT_LIST_TOOLS:
                cities.setdefault(item.get("code"), item.get("city"))
            elif invocation.tool in FLIGHT_LIST_TOOLS:
                cities.setdefault(item.get("departure_airport"), item.get("departure_city"))
                cities.setdefault(item.get("arrival_airport"), item.get("arrival_city"))
    return cities
