"""
Reconciliation of parsed flights against a user's stored flights.

Each candidate goes through three checks, in this order:

1. exact duplicate  - same confirmation number, date, route and flight number
                      -> skipped, nothing written
2. change detection - same route and same confirmation number or flight
                      number, any date -> step 3
3. supersession     - the candidate replaces every matched row when its email
                      is strictly newer than all of them (or none of them has
                      a usable sent date); otherwise it is stale and dropped

Anything else is inserted as a new flight. The exact duplicate check must run
first: every exact duplicate is also a change-detection match and would
otherwise be deleted and inserted again.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import pandas as pd
from sqlalchemy.exc import IntegrityError

from flightlog.core.extraction_agent.models import FlightRecord
from flightlog.database.db import FlightDatabase
from flightlog.database.repostries.flight_repo import FlightRepository

logger = logging.getLogger("reconciliation")

INSERTED = "inserted"
REPLACED = "replaced"
SKIPPED_DUPLICATE = "skipped-duplicate"
SKIPPED_STALE = "skipped-stale"


@dataclass
class ReconcileOutcome:
    status: str
    record: Optional[FlightRecord] = None
    replaced: int = 0

    @property
    def saved(self) -> bool:
        return self.status in (INSERTED, REPLACED)


def parse_sent_date(value: Optional[str]) -> Optional[datetime]:
    """Email sent date as an aware UTC datetime, None when missing or unparsable."""
    if not value or not str(value).strip():
        return None
    try:
        timestamp = pd.to_datetime(str(value).strip(), utc=True, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(timestamp):
        return None
    return timestamp.to_pydatetime()


def is_newer_than_all(candidate_sent: Optional[str], existing_sent: List[Optional[str]]) -> bool:
    """
    True when the candidate should replace the existing rows.
    Unknown dates sort oldest: a candidate with an unknown date only wins
    when no existing row has a known date either.
    """
    known = [ts for ts in (parse_sent_date(v) for v in existing_sent) if ts is not None]
    if not known:
        return True

    candidate_ts = parse_sent_date(candidate_sent)
    if candidate_ts is None:
        return False
    return candidate_ts > max(known)


class ReconciliationEngine:

    def __init__(self, db: FlightDatabase, repo: Optional[FlightRepository] = None):
        self.db = db
        self.repo = repo or FlightRepository()

    async def reconcile(self, candidate: FlightRecord) -> ReconcileOutcome:
        route = f"{candidate.departure_airport} -> {candidate.arrival_airport} on {candidate.flight_date}"

        async with self.db.user_lock(candidate.user_email):
            async with self.db.get_session() as session:
                try:
                    async with session.begin():
                        return await self._apply(session, candidate, route)
                except IntegrityError:
                    # Lost a race with the unique index; same result as the duplicate check
                    logger.warning(f"Duplicate flight skipped (unique constraint): {route}")
                    return ReconcileOutcome(status=SKIPPED_DUPLICATE)

    async def _apply(self, session, candidate: FlightRecord, route: str) -> ReconcileOutcome:
        duplicate = await self.repo.find_exact_duplicate(session, candidate)
        if duplicate is not None:
            logger.info(f"Duplicate flight skipped: {route}")
            return ReconcileOutcome(status=SKIPPED_DUPLICATE, record=FlightRecord.from_row(duplicate))

        existing = await self.repo.find_flight_changes(session, candidate)
        if existing:
            logger.info(
                f"Flight change detected for {candidate.departure_airport} -> {candidate.arrival_airport} "
                f"({candidate.flight_number or candidate.confirmation_number or 'unknown'})"
            )
            if not is_newer_than_all(candidate.email_sent_date, [row.email_sent_date for row in existing]):
                logger.info(f"Skipped stale flight from email dated {candidate.email_sent_date or 'unknown'}")
                return ReconcileOutcome(status=SKIPPED_STALE)

            for row in existing:
                await self.repo.delete(session, row.id)
                logger.info(f"Removed outdated flight ({row.flight_date}) with ID {row.id}")

            saved = await self.repo.create(session, candidate)
            return ReconcileOutcome(status=REPLACED, record=FlightRecord.from_row(saved), replaced=len(existing))

        saved = await self.repo.create(session, candidate)
        logger.info(f"Saved flight {saved.id}: {route}")
        return ReconcileOutcome(status=INSERTED, record=FlightRecord.from_row(saved))

    async def reconcile_many(self, candidates: List[FlightRecord]) -> List[ReconcileOutcome]:
        return [await self.reconcile(candidate) for candidate in candidates]
