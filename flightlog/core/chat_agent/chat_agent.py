import json
from datetime import date
from logging import getLogger
from typing import List, Optional

from langsmith import traceable

from flightlog.core.chat_agent.focus import (
    FOCUS_CLOSE,
    FOCUS_OPEN,
    airport_cities_seen,
    derive_focus_from_tools,
    extract_focus_directive,
    flights_seen,
)
from flightlog.core.chat_agent.models import (
    ChatMessage,
    ChatResult,
    FocusAirport,
    FocusDirective,
    FocusPayload,
    ToolInvocation,
)
from flightlog.core.config import config
from flightlog.core.prompts.prompt_loader import PromptLoader
from flightlog.core.query_tools.catalogue import TOOL_CATALOGUE, parse_tool_call
from flightlog.core.query_tools.tools import FlightQueryTools
from flightlog.core.tracing_config import get_metadata

logger = getLogger("chat_agent")

FALLBACK_ANSWER = "Sorry, I could not process your request."


class ChatAgent:
    """
    Answers questions about a user's flights by letting the model call the
    query tools, at most ``max_iterations`` rounds per question.

    Model errors are not retried here: they propagate and fail the turn.
    """

    def __init__(
        self,
        llm,
        tools: FlightQueryTools,
        max_iterations: int = config.CHAT_MAX_ITERATIONS,
    ):
        self.llm = llm
        self.tools = tools
        self.max_iterations = max_iterations
        self.system_prompt = PromptLoader.load_prompt("chat_agent_prompt.yaml")

    def build_messages(self, question: str, history: Optional[List[ChatMessage]] = None) -> list[dict]:
        system_prompt = self.system_prompt.format(
            today=date.today().isoformat(),
            focus_open=FOCUS_OPEN,
            focus_close=FOCUS_CLOSE,
        )
        messages = [{"role": "system", "content": system_prompt}]
        for msg in history or []:
            messages.append({"role": msg.role, "content": msg.content})
        messages.append({"role": "user", "content": question})
        return messages

    @traceable(run_type="chain", name="chat_turn", metadata=get_metadata("chat_agent"))
    async def ask(
        self,
        user_email: str,
        question: str,
        history: Optional[List[ChatMessage]] = None,
    ) -> ChatResult:
        logger.info(f"Chat request from {user_email}: {question!r}")

        messages = self.build_messages(question, history)
        invocations: List[ToolInvocation] = []

        reply = await self.llm.chat_with_tools(messages, tools=TOOL_CATALOGUE)
        iterations = 0

        while reply.tool_calls and iterations < self.max_iterations:
            iterations += 1
            logger.info(f"Tool calling iteration {iterations}")

            messages.append(reply.as_message())

            # Results are appended in request order
            for requested in reply.tool_calls:
                call = parse_tool_call(requested.name, requested.arguments)
                result = await self.tools.execute(user_email, call)

                invocations.append(ToolInvocation(tool=requested.name, arguments=requested.arguments, result=result))
                messages.append({
                    "role": "tool",
                    "tool_name": requested.name,
                    "content": json.dumps(result, default=str),
                })

            reply = await self.llm.chat_with_tools(messages, tools=TOOL_CATALOGUE)

        if reply.tool_calls:
            logger.warning(f"Stopped after {iterations} tool iterations; using the partial answer")

        answer, payload = extract_focus_directive(reply.content)
        if not answer:
            answer = FALLBACK_ANSWER

        focus = None
        if payload is not None:
            focus = await self.resolve_focus(user_email, payload, invocations)
        if focus is None:
            focus = derive_focus_from_tools(invocations)

        logger.info(f"Chat response: {answer[:100]!r} (focus={focus.mode}, tools={len(invocations)})")
        return ChatResult(answer=answer, tool_calls=invocations, focus=focus)

    async def resolve_focus(
        self,
        user_email: str,
        payload: FocusPayload,
        invocations: List[ToolInvocation],
    ) -> Optional[FocusDirective]:
        """Turn the model's ids/codes into records. None when nothing resolves."""
        if payload.mode == "all":
            return FocusDirective(mode="all")

        if payload.mode == "flights":
            seen = flights_seen(invocations)
            missing = [fid for fid in payload.flightIds if fid not in seen]
            if missing:
                for flight in await self.tools.flights_by_ids(user_email, missing):
                    seen[flight["id"]] = flight
            flights = [seen[fid] for fid in payload.flightIds if fid in seen]
            return FocusDirective(mode="flights", flights=flights) if flights else None

        codes = []
        for code in payload.airportCodes:
            code = code.strip().upper()
            if len(code) == 3 and code not in codes:
                codes.append(code)
        if not codes:
            return None

        cities = airport_cities_seen(invocations)
        if any(code not in cities for code in codes):
            for airport in await self.tools.airport_visits(user_email):
                cities.setdefault(airport["code"], airport["city"])
        return FocusDirective(
            mode="airports",
            airports=[FocusAirport(code=code, city=cities.get(code)) for code in codes],
        )
