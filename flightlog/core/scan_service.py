import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from flightlog.core.extraction_agent.extraction_agent import ExtractionAgent
from flightlog.core.extraction_agent.models import EmailInput
from flightlog.core.query_tools.tools import sanitize_flight_record
from flightlog.core.reconciliation.engine import ReconcileOutcome, ReconciliationEngine

logger = logging.getLogger("scan_service")


@dataclass
class ScanResult:
    scanned: int = 0
    parsed: int = 0
    saved: int = 0
    records: List[Dict[str, Any]] = field(default_factory=list)
    outcomes: List[ReconcileOutcome] = field(default_factory=list)


class ScanService:
    """Extraction, normalization and reconciliation for one batch of a user's emails."""

    def __init__(self, extraction_agent: ExtractionAgent, engine: ReconciliationEngine):
        self.extraction_agent = extraction_agent
        self.engine = engine

    async def scan(self, user_email: str, emails: List[EmailInput]) -> ScanResult:
        result = ScanResult(scanned=len(emails))
        if not emails:
            return result

        logger.info(f"Scanning {len(emails)} emails for user: {user_email}")
        parsed_per_email = await self.extraction_agent.parse_emails(emails, user_email)

        for records in parsed_per_email:
            result.parsed += len(records)
            for record in records:
                outcome = await self.engine.reconcile(record)
                result.outcomes.append(outcome)
                if outcome.saved:
                    result.saved += 1
                    result.records.append(sanitize_flight_record(outcome.record))

        logger.info(
            f"Scanned {result.scanned} emails, parsed {result.parsed} flights, saved {result.saved}"
        )
        return result
