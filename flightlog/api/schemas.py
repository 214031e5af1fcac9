"""
API Schemas for the flight history service
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from flightlog.core.chat_agent.models import ChatMessage, FocusDirective, ToolInvocation
from flightlog.core.extraction_agent.models import EmailInput


# ============================================================================
# Scanning
# ============================================================================

class ScanRequest(BaseModel):
    """Batch of cleaned emails for one user"""
    user_email: str
    emails: List[EmailInput] = Field(default_factory=list)


class ScanResponse(BaseModel):
    message: str
    scanned: int
    parsed: int
    saved: int
    flights: List[Dict[str, Any]]


# ============================================================================
# Listing / queries
# ============================================================================

class FlightsResponse(BaseModel):
    count: int
    flights: List[Dict[str, Any]]


class AirportVisit(BaseModel):
    code: str
    city: Optional[str] = None


class AirportVisitsResponse(BaseModel):
    year: Optional[int] = None
    airports: List[AirportVisit]


class TotalFlightsResponse(BaseModel):
    total: int
    year: Optional[int] = None


class AirlineStat(BaseModel):
    airline: str
    count: int


class AirlineStatsResponse(BaseModel):
    airlines: List[AirlineStat]


class EmailBodiesRequest(BaseModel):
    user_email: str
    message_ids: List[str] = Field(default_factory=list)


class EmailBodiesResponse(BaseModel):
    emails: List[Dict[str, Any]]


# ============================================================================
# Chat
# ============================================================================

class ChatRequest(BaseModel):
    user_email: str
    message: str
    history: List[ChatMessage] = Field(default_factory=list)


class ChatResponse(BaseModel):
    message: ChatMessage
    toolCalls: List[ToolInvocation] = Field(default_factory=list)
    globeFocus: FocusDirective


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
