import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from langchain_core.exceptions import OutputParserException
from langchain_core.output_parsers import JsonOutputParser
from langsmith import traceable
from ollama import AsyncClient, ResponseError
from pydantic import BaseModel, ValidationError

from flightlog.core.config import config
from flightlog.core.errors import StructuredOutputError

logger = logging.getLogger("llm")

T = TypeVar("T")


@dataclass
class RequestedToolCall:
    """One tool invocation requested by the model."""
    name: str
    arguments: dict


@dataclass
class LLMReply:
    content: str
    tool_calls: list[RequestedToolCall] = field(default_factory=list)
    stop_reason: Optional[str] = None

    def as_message(self) -> dict:
        """Assistant message to append to the running conversation."""
        message: dict = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {"function": {"name": call.name, "arguments": call.arguments}}
                for call in self.tool_calls
            ]
        return message


def _coerce_arguments(raw: Any) -> dict:
    # Some backends send arguments as a JSON string instead of an object
    if raw is None:
        return {}
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return {}
        return json.loads(raw)
    return dict(raw)


class OllamaCloudLLM:
    def __init__(
        self,
        model_name: str = "gpt-oss:20b-cloud",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[AsyncClient] = None,
    ):
        self.model_name = model_name

        if client is not None:
            self.client = client
            return

        api_key = api_key or config.OLLAMA_API_KEY
        base_url = base_url or config.OLLAMA_BASE_URL

        if not api_key:
            raise ValueError(
                "OLLAMA_API_KEY not found in environment variables. "
                "Please set it in your .env file or as a system environment variable."
            )

        self.client = AsyncClient(
            host=base_url,
            headers={"Authorization": f"Bearer {api_key}"}
        )

    @traceable(run_type="llm", name="chat_structured")
    async def chat_structured(
        self,
        messages: list[dict],
        schema: type[BaseModel],
        temperature: float = 0.0,
        max_tokens: int = 4000,
    ) -> BaseModel:
        """
        Chat method that forces output to match a Pydantic schema
        and returns the validated Pydantic object.
        """
        response = await self.client.chat(
            model=self.model_name,
            messages=messages,
            format=schema.model_json_schema(),
            options={
                "temperature": temperature,
                "num_predict": max_tokens
            }
        )

        content = response["message"]["content"] or ""

        # JsonOutputParser also strips ```json fences some models add
        try:
            data_dict = JsonOutputParser().parse(content)
            return schema.model_validate(data_dict)
        except (OutputParserException, ValidationError) as e:
            logger.warning(f"Failed to parse structured output: {content[:200]}")
            raise StructuredOutputError(str(e), content=content) from e

    @traceable(run_type="llm", name="chat_with_tools")
    async def chat_with_tools(
        self,
        messages: list[dict],
        tools: list[dict],
        temperature: float = 0.0,
    ) -> LLMReply:
        """Single model turn with the tool catalogue offered."""
        response = await self.client.chat(
            model=self.model_name,
            messages=messages,
            tools=tools,
            options={"temperature": temperature}
        )

        message = response.message
        tool_calls = [
            RequestedToolCall(
                name=call.function.name,
                arguments=_coerce_arguments(call.function.arguments),
            )
            for call in (message.tool_calls or [])
        ]
        return LLMReply(
            content=message.content or "",
            tool_calls=tool_calls,
            stop_reason=getattr(response, "done_reason", None),
        )


def is_retryable_error(error: BaseException) -> bool:
    """429, 5xx and dropped connections are worth another attempt."""
    if isinstance(error, ResponseError):
        status = getattr(error, "status_code", None) or 0
        return status == 429 or 500 <= status < 600
    # ollama only maps ConnectError; resets and read timeouts arrive as raw httpx errors
    return isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError, httpx.TransportError))


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    retries: int = 3,
    delay: float = 1.0,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
) -> T:
    """
    Run ``fn`` with exponential backoff on retryable errors.

    ``retries`` counts extra attempts, so ``fn`` runs at most ``retries + 1`` times.
    Non-retryable errors and the last failure are re-raised.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if not is_retryable(e) or attempt >= retries:
                raise
            wait_time = delay * (2 ** attempt)
            attempt += 1
            logger.warning(f"Retrying after {wait_time:.1f}s (attempt {attempt}/{retries}): {e}")
            await asyncio.sleep(wait_time)
