import asyncio
from logging import getLogger
from typing import List

from langsmith import traceable

from flightlog.core.airports.directory import AirportDirectory
from flightlog.core.config import config
from flightlog.core.extraction_agent.models import EmailInput, FlightExtraction, FlightRecord
from flightlog.core.extraction_agent.normalizer import normalize_extraction
from flightlog.core.llm import retry_async
from flightlog.core.prompts.prompt_loader import PromptLoader
from flightlog.core.tracing_config import get_metadata

logger = getLogger("extraction_agent")

TRUNCATION_MARKER = "\n[... content truncated ...]"


class ExtractionAgent:
    """
    Extracts flight segments from one email with the LLM and normalizes them.
    A failing email yields no flights instead of an exception.
    """

    def __init__(
        self,
        llm,
        directory: AirportDirectory,
        max_retries: int = config.EXTRACTION_MAX_RETRIES,
        retry_delay: float = config.EXTRACTION_RETRY_DELAY,
        concurrency: int = config.EXTRACTION_CONCURRENCY,
        max_email_chars: int = config.MAX_EMAIL_CHARS,
    ):
        self.llm = llm
        self.directory = directory
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.concurrency = concurrency
        self.max_email_chars = max_email_chars
        self.system_prompt = PromptLoader.load_prompt("extraction_agent_prompt.yaml")

    def build_messages(self, email: EmailInput) -> list[dict]:
        content = email.content
        if len(content) > self.max_email_chars:
            content = content[:self.max_email_chars] + TRUNCATION_MARKER

        user_prompt = (
            "Email Metadata:\n"
            f"Subject: {email.subject or 'N/A'}\n"
            f"Snippet: {email.snippet}\n"
            f"Sent: {email.sent_date or 'N/A'}\n"
            f"Message ID: {email.id}\n\n"
            "Email Content:\n"
            f"{content}\n\n"
            "Extract all flight information from this email."
        )
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": user_prompt},
        ]

    async def _extract(self, email: EmailInput) -> FlightExtraction:
        return await self.llm.chat_structured(
            self.build_messages(email),
            FlightExtraction,
            temperature=config.LLM_TEMPERATURE,
        )

    @traceable(run_type="chain", name="parse_flight_email", metadata=get_metadata("extraction_agent"))
    async def parse_email(self, email: EmailInput, user_email: str) -> List[FlightRecord]:
        try:
            extraction = await retry_async(
                lambda: self._extract(email),
                retries=self.max_retries,
                delay=self.retry_delay,
            )
        except Exception:
            logger.exception(f"Error parsing email {email.id}")
            return []

        return normalize_extraction(extraction, email, user_email, self.directory)

    async def parse_emails(self, emails: List[EmailInput], user_email: str) -> List[List[FlightRecord]]:
        """
        Parse a batch with bounded concurrency.
        Returns one list of records per email, in input order.
        """
        logger.info(f"Parsing {len(emails)} emails with concurrency {self.concurrency}")
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _limited(email: EmailInput) -> List[FlightRecord]:
            async with semaphore:
                return await self.parse_email(email, user_email)

        results = await asyncio.gather(*(_limited(email) for email in emails))

        total = sum(len(records) for records in results)
        logger.info(f"Parsed {total} flight segments from {len(emails)} emails")
        return list(results)
