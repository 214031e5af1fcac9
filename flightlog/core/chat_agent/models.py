from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ToolInvocation(BaseModel):
    """One executed tool call, returned for the UI only"""
    tool: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None


class FocusAirport(BaseModel):
    code: str
    city: Optional[str] = None


class FocusDirective(BaseModel):
    """What the globe should highlight after this turn"""
    mode: Literal["all", "flights", "airports"] = "all"
    flights: List[Dict[str, Any]] = Field(default_factory=list)
    airports: List[FocusAirport] = Field(default_factory=list)


class FocusPayload(BaseModel):
    """Raw block the model appends to its answer"""
    mode: Literal["all", "flights", "airports"]
    flightIds: List[int] = Field(default_factory=list)
    airportCodes: List[str] = Field(default_factory=list)


class ChatResult(BaseModel):
    answer: str
    tool_calls: List[ToolInvocation] = Field(default_factory=list)
    focus: FocusDirective = Field(default_factory=FocusDirective)
