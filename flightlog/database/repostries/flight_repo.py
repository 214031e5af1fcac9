from datetime import date
from typing import Dict, List, Optional, Sequence

from sqlalchemy import and_, delete, func, or_, select, union
from sqlalchemy.ext.asyncio import AsyncSession

from flightlog.core.extraction_agent.models import FlightRecord
from flightlog.database.models.flights import FlightRecordDB


def _year_bounds(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


class FlightRepository:
    """
    Repository for FlightRecordDB.
    Encapsulates all database access logic (async). Write methods only flush;
    the caller owns the transaction.
    """

    async def create(self, db: AsyncSession, record: FlightRecord) -> FlightRecordDB:
        flight = FlightRecordDB(**record.to_row_data())
        db.add(flight)
        await db.flush()
        await db.refresh(flight)
        return flight

    async def delete(self, db: AsyncSession, flight_id: int) -> None:
        await db.execute(delete(FlightRecordDB).where(FlightRecordDB.id == flight_id))

    async def get_by_id(self, db: AsyncSession, flight_id: int) -> Optional[FlightRecordDB]:
        result = await db.execute(select(FlightRecordDB).where(FlightRecordDB.id == flight_id))
        return result.scalar_one_or_none()

    async def find_exact_duplicate(self, db: AsyncSession, record: FlightRecord) -> Optional[FlightRecordDB]:
        """Row sharing every identity key field. Never matches when a key field is missing."""
        if not record.confirmation_number or not record.flight_number:
            return None

        stmt = select(FlightRecordDB).where(
            FlightRecordDB.user_email == record.user_email,
            FlightRecordDB.confirmation_number == record.confirmation_number,
            FlightRecordDB.flight_date == record.flight_date,
            FlightRecordDB.departure_airport == record.departure_airport,
            FlightRecordDB.arrival_airport == record.arrival_airport,
            FlightRecordDB.flight_number == record.flight_number,
        ).limit(1)
        result = await db.execute(stmt)
        return result.scalars().first()

    async def find_flight_changes(self, db: AsyncSession, record: FlightRecord) -> List[FlightRecordDB]:
        """
        Rows describing the same booking on the same route, whatever their date:
        same confirmation number or same flight number.
        """
        key_matches = []
        if record.confirmation_number:
            key_matches.append(FlightRecordDB.confirmation_number == record.confirmation_number)
        if record.flight_number:
            key_matches.append(FlightRecordDB.flight_number == record.flight_number)
        if not key_matches:
            return []

        stmt = (
            select(FlightRecordDB)
            .where(
                FlightRecordDB.user_email == record.user_email,
                FlightRecordDB.departure_airport == record.departure_airport,
                FlightRecordDB.arrival_airport == record.arrival_airport,
                or_(*key_matches),
            )
            .order_by(FlightRecordDB.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Read queries
    # ------------------------------------------------------------------

    def _most_recent_first(self, stmt):
        return stmt.order_by(FlightRecordDB.flight_date.desc(), FlightRecordDB.id.desc())

    async def get_by_user(self, db: AsyncSession, user_email: str) -> List[FlightRecordDB]:
        stmt = self._most_recent_first(select(FlightRecordDB).where(FlightRecordDB.user_email == user_email))
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_ids(self, db: AsyncSession, user_email: str, flight_ids: Sequence[int]) -> List[FlightRecordDB]:
        if not flight_ids:
            return []
        stmt = self._most_recent_first(
            select(FlightRecordDB).where(
                FlightRecordDB.user_email == user_email,
                FlightRecordDB.id.in_(list(flight_ids)),
            )
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_date_range(self, db: AsyncSession, user_email: str, start: date, end: date) -> List[FlightRecordDB]:
        stmt = self._most_recent_first(
            select(FlightRecordDB).where(
                FlightRecordDB.user_email == user_email,
                FlightRecordDB.flight_date.between(start, end),
            )
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_airport(self, db: AsyncSession, user_email: str, airport_code: str) -> List[FlightRecordDB]:
        stmt = self._most_recent_first(
            select(FlightRecordDB).where(
                FlightRecordDB.user_email == user_email,
                or_(
                    FlightRecordDB.departure_airport == airport_code,
                    FlightRecordDB.arrival_airport == airport_code,
                ),
            )
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_airport_visits(self, db: AsyncSession, user_email: str, year: Optional[int] = None) -> List[Dict]:
        conditions = [FlightRecordDB.user_email == user_email]
        if year is not None:
            start, end = _year_bounds(year)
            conditions.append(FlightRecordDB.flight_date.between(start, end))

        stmt = union(
            select(
                FlightRecordDB.departure_airport.label("code"),
                FlightRecordDB.departure_city.label("city"),
            ).where(and_(*conditions)),
            select(
                FlightRecordDB.arrival_airport.label("code"),
                FlightRecordDB.arrival_city.label("city"),
            ).where(and_(*conditions)),
        )
        result = await db.execute(stmt)

        airports: Dict[str, Dict] = {}
        for code, city in result.all():
            if code not in airports or (city and not airports[code]["city"]):
                airports[code] = {"code": code, "city": city}
        return [airports[code] for code in sorted(airports)]

    async def count(self, db: AsyncSession, user_email: str, year: Optional[int] = None) -> int:
        stmt = select(func.count(FlightRecordDB.id)).where(FlightRecordDB.user_email == user_email)
        if year is not None:
            start, end = _year_bounds(year)
            stmt = stmt.where(FlightRecordDB.flight_date.between(start, end))
        result = await db.execute(stmt)
        return int(result.scalar_one())

    async def get_airline_stats(self, db: AsyncSession, user_email: str) -> List[Dict]:
        flight_count = func.count(FlightRecordDB.id).label("count")
        stmt = (
            select(FlightRecordDB.airline, flight_count)
            .where(
                FlightRecordDB.user_email == user_email,
                FlightRecordDB.airline.is_not(None),
            )
            .group_by(FlightRecordDB.airline)
            .order_by(flight_count.desc(), FlightRecordDB.airline.asc())
        )
        result = await db.execute(stmt)
        return [{"airline": airline, "count": int(count)} for airline, count in result.all()]

    async def get_email_bodies(self, db: AsyncSession, user_email: str, message_ids: Sequence[str]) -> List[Dict]:
        if not message_ids:
            return []
        stmt = (
            select(
                FlightRecordDB.email_message_id,
                FlightRecordDB.email_subject,
                FlightRecordDB.email_sent_date,
                FlightRecordDB.raw_email_content,
            )
            .where(
                FlightRecordDB.user_email == user_email,
                FlightRecordDB.email_message_id.in_(list(message_ids)),
            )
            .order_by(FlightRecordDB.id)
        )
        result = await db.execute(stmt)

        bodies: Dict[str, Dict] = {}
        for message_id, subject, sent_date, content in result.all():
            bodies.setdefault(message_id, {
                "email_message_id": message_id,
                "email_subject": subject,
                "email_sent_date": sent_date,
                "raw_email_content": content,
            })
        return list(bodies.values())
