import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from flightlog.api.schemas import (
    AirlineStatsResponse,
    AirportVisitsResponse,
    ChatRequest,
    ChatResponse,
    EmailBodiesRequest,
    EmailBodiesResponse,
    FlightsResponse,
    HealthResponse,
    ScanRequest,
    ScanResponse,
    TotalFlightsResponse,
)
from flightlog.core.airports.directory import AirportDirectory
from flightlog.core.chat_agent.chat_agent import ChatAgent
from flightlog.core.chat_agent.models import ChatMessage
from flightlog.core.config import config
from flightlog.core.errors import ToolArgumentsError, UnknownToolError
from flightlog.core.extraction_agent.extraction_agent import ExtractionAgent
from flightlog.core.llm import OllamaCloudLLM
from flightlog.core.query_tools.tools import FlightQueryTools
from flightlog.core.reconciliation.engine import ReconciliationEngine
from flightlog.core.scan_service import ScanService
from flightlog.core.tracing_config import init_tracing
from flightlog.database.db import FlightDatabase

logger = logging.getLogger("api")


@dataclass
class Services:
    db: FlightDatabase
    tools: FlightQueryTools
    scan_service: ScanService
    chat_agent: ChatAgent


def build_services() -> Services:
    """Construct every collaborator once, at process start."""
    db = FlightDatabase(config.DATABASE_URL)
    directory = AirportDirectory.from_csv(config.AIRPORTS_CSV_PATH)
    tools = FlightQueryTools(db)

    extraction_agent = ExtractionAgent(OllamaCloudLLM(model_name=config.EXTRACTION_MODEL), directory)
    scan_service = ScanService(extraction_agent, ReconciliationEngine(db))
    chat_agent = ChatAgent(OllamaCloudLLM(model_name=config.CHAT_MODEL), tools)

    return Services(db=db, tools=tools, scan_service=scan_service, chat_agent=chat_agent)


def create_app(services: Optional[Services] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services = services or build_services()
        await app.state.services.db.init()
        init_tracing()
        yield
        await app.state.services.db.dispose()

    app = FastAPI(title="Flight History API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _services(request: Request) -> Services:
        return request.app.state.services

    @app.get("/")
    async def root():
        return {
            "status": "online",
            "message": "Flight History API is running",
            "endpoints": {
                "health": "/health",
                "scan": "/api/flights/scan",
                "flights": "/api/flights?user_email=...",
                "chat": "/api/chat",
            }
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(status="healthy", timestamp=datetime.now(timezone.utc))

    @app.post("/api/flights/scan", response_model=ScanResponse)
    async def scan_flights(body: ScanRequest, request: Request):
        """
        Extract flights from a batch of emails and reconcile them with the stored history.

        Individual emails that fail extraction count as zero flights;
        the counts in the response reflect what actually succeeded.
        """
        result = await _services(request).scan_service.scan(body.user_email, body.emails)
        if result.scanned == 0:
            message = "No flight emails found"
        else:
            message = f"Successfully scanned {result.scanned} emails and parsed {result.parsed} flights"
        return ScanResponse(
            message=message,
            scanned=result.scanned,
            parsed=result.parsed,
            saved=result.saved,
            flights=result.records,
        )

    @app.get("/api/flights", response_model=FlightsResponse)
    async def list_flights(request: Request, user_email: str = Query(...)):
        flights = await _services(request).tools.all_flights(user_email)
        return FlightsResponse(count=len(flights), flights=flights)

    @app.get("/api/flights/query/date-range", response_model=FlightsResponse)
    async def flights_by_date_range(request: Request, user_email: str = Query(...), start: date = Query(...), end: date = Query(...)):
        flights = await _services(request).tools.flights_by_date_range(user_email, start, end)
        return FlightsResponse(count=len(flights), flights=flights)

    @app.get("/api/flights/query/airport-visits", response_model=AirportVisitsResponse)
    async def airport_visits(request: Request, user_email: str = Query(...), year: Optional[int] = Query(None)):
        airports = await _services(request).tools.airport_visits(user_email, year)
        return AirportVisitsResponse(year=year, airports=airports)

    @app.get("/api/flights/query/total", response_model=TotalFlightsResponse)
    async def total_flights(request: Request, user_email: str = Query(...), year: Optional[int] = Query(None)):
        total = await _services(request).tools.total_flights(user_email, year)
        return TotalFlightsResponse(total=total, year=year)

    @app.get("/api/flights/query/airport/{airport_code}", response_model=FlightsResponse)
    async def flights_by_airport(airport_code: str, request: Request, user_email: str = Query(...)):
        flights = await _services(request).tools.flights_by_airport(user_email, airport_code)
        return FlightsResponse(count=len(flights), flights=flights)

    @app.get("/api/flights/query/airlines", response_model=AirlineStatsResponse)
    async def airline_stats(request: Request, user_email: str = Query(...)):
        stats = await _services(request).tools.airline_stats(user_email)
        return AirlineStatsResponse(airlines=stats)

    @app.post("/api/flights/query/email-bodies", response_model=EmailBodiesResponse)
    async def email_bodies(body: EmailBodiesRequest, request: Request):
        emails = await _services(request).tools.email_bodies(body.user_email, body.message_ids)
        return EmailBodiesResponse(emails=emails)

    @app.post("/api/chat", response_model=ChatResponse)
    async def chat(body: ChatRequest, request: Request):
        """
        Send a message and get a response from the assistant.
        The turn is all-or-nothing: any failure returns an error and no partial answer.
        """
        if not body.message.strip():
            raise HTTPException(status_code=400, detail="Message is required and must be a non-empty string")

        try:
            result = await _services(request).chat_agent.ask(body.user_email, body.message, body.history)
        except (UnknownToolError, ToolArgumentsError) as e:
            logger.error(f"Chat tool error: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to process chat request: {e}")
        except Exception as e:
            logger.exception("Chat error")
            raise HTTPException(status_code=502, detail=f"Failed to process chat request: {e}")

        return ChatResponse(
            message=ChatMessage(role="assistant", content=result.answer),
            toolCalls=result.tool_calls,
            globeFocus=result.focus,
        )

    return app


def main():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
