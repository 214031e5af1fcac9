import asyncio
from datetime import date

import pytest

from conftest import make_record
from flightlog.core.reconciliation.engine import (
    INSERTED,
    REPLACED,
    SKIPPED_DUPLICATE,
    SKIPPED_STALE,
    ReconciliationEngine,
    is_newer_than_all,
    parse_sent_date,
)
from flightlog.database.repostries.flight_repo import FlightRepository

USER = "traveler@example.com"


async def stored(db, user_email=USER):
    async with db.get_session() as session:
        return await FlightRepository().get_by_user(session, user_email)


async def test_new_flight_is_inserted(db):
    engine = ReconciliationEngine(db)

    outcome = await engine.reconcile(make_record())

    assert outcome.status == INSERTED
    assert outcome.saved
    assert outcome.record.id is not None
    assert len(await stored(db)) == 1


async def test_rescan_is_idempotent(db):
    engine = ReconciliationEngine(db)
    await engine.reconcile(make_record())

    outcome = await engine.reconcile(make_record())

    assert outcome.status == SKIPPED_DUPLICATE
    assert not outcome.saved
    assert len(await stored(db)) == 1


async def test_rows_missing_key_fields_are_never_duplicates(db):
    engine = ReconciliationEngine(db)
    record = make_record(confirmation_number=None, flight_number=None)

    first = await engine.reconcile(record)
    second = await engine.reconcile(record)

    assert (first.status, second.status) == (INSERTED, INSERTED)
    assert len(await stored(db)) == 2


async def test_newer_email_supersedes_older_flight(db):
    engine = ReconciliationEngine(db)
    await engine.reconcile(make_record(email_sent_date="2023-01-05T10:00:00Z"))

    outcome = await engine.reconcile(
        make_record(flight_date=date(2023, 3, 12), email_message_id="msg-2", email_sent_date="2023-02-01T09:00:00Z")
    )

    assert outcome.status == REPLACED
    assert outcome.replaced == 1
    [flight] = await stored(db)
    assert flight.flight_date == date(2023, 3, 12)
    assert flight.email_message_id == "msg-2"


async def test_older_email_is_stale_when_processed_last(db):
    engine = ReconciliationEngine(db)
    await engine.reconcile(
        make_record(flight_date=date(2023, 3, 12), email_message_id="msg-2", email_sent_date="2023-02-01T09:00:00Z")
    )

    outcome = await engine.reconcile(make_record(email_sent_date="2023-01-05T10:00:00Z"))

    assert outcome.status == SKIPPED_STALE
    [flight] = await stored(db)
    assert flight.flight_date == date(2023, 3, 12)


async def test_change_matched_by_flight_number_alone(db):
    engine = ReconciliationEngine(db)
    await engine.reconcile(make_record(confirmation_number=None, email_sent_date="2023-01-05"))

    outcome = await engine.reconcile(
        make_record(confirmation_number=None, flight_date=date(2023, 3, 11), email_sent_date="2023-01-20")
    )

    assert outcome.status == REPLACED
    assert len(await stored(db)) == 1


async def test_candidate_without_sent_date_does_not_replace_dated_rows(db):
    engine = ReconciliationEngine(db)
    await engine.reconcile(make_record(email_sent_date="2023-01-05T10:00:00Z"))

    outcome = await engine.reconcile(make_record(flight_date=date(2023, 3, 12), email_sent_date=None))

    assert outcome.status == SKIPPED_STALE


async def test_return_leg_is_not_a_change(db):
    engine = ReconciliationEngine(db)
    await engine.reconcile(make_record())

    outcome = await engine.reconcile(
        make_record(departure_airport="JFK", arrival_airport="SFO", flight_date=date(2023, 3, 15), flight_number="UA101")
    )

    assert outcome.status == INSERTED
    assert len(await stored(db)) == 2


async def test_users_are_isolated(db):
    engine = ReconciliationEngine(db)
    await engine.reconcile(make_record())

    outcome = await engine.reconcile(make_record(user_email="other@example.com"))

    assert outcome.status == INSERTED
    assert len(await stored(db)) == 1
    assert len(await stored(db, "other@example.com")) == 1


async def test_unique_constraint_violation_counts_as_duplicate(db):
    class BlindRepository(FlightRepository):
        # Simulates a writer that lost the race after both lookups came back empty
        async def find_exact_duplicate(self, db, record):
            return None

        async def find_flight_changes(self, db, record):
            return []

    engine = ReconciliationEngine(db, repo=BlindRepository())
    await engine.reconcile(make_record())

    outcome = await engine.reconcile(make_record())

    assert outcome.status == SKIPPED_DUPLICATE
    assert len(await stored(db)) == 1


async def test_concurrent_scans_store_one_row(db):
    engine = ReconciliationEngine(db)

    outcomes = await asyncio.gather(*(engine.reconcile(make_record()) for _ in range(4)))

    assert sorted(o.status for o in outcomes) == [INSERTED] + [SKIPPED_DUPLICATE] * 3
    assert len(await stored(db)) == 1


async def test_reconcile_many_keeps_order(db):
    engine = ReconciliationEngine(db)

    outcomes = await engine.reconcile_many([make_record(), make_record(), make_record(confirmation_number="QWE456", flight_number="UA999")])

    assert [o.status for o in outcomes] == [INSERTED, SKIPPED_DUPLICATE, INSERTED]


def test_parse_sent_date():
    assert parse_sent_date("2023-01-05T10:00:00Z").year == 2023
    assert parse_sent_date("2023-01-05T12:00:00+02:00") == parse_sent_date("2023-01-05T10:00:00Z")
    assert parse_sent_date("2023-01-05T10:00:00") == parse_sent_date("2023-01-05T10:00:00Z")
    assert parse_sent_date("not a date") is None
    assert parse_sent_date("") is None
    assert parse_sent_date(None) is None


@pytest.mark.parametrize("candidate, existing, expected", [
    ("2023-02-01", ["2023-01-01"], True),
    ("2023-01-01", ["2023-02-01"], False),
    ("2023-01-01", ["2023-01-01"], False),
    ("2023-02-01", ["2023-01-01", "2023-03-01"], False),
    (None, [None], True),
    (None, ["2023-01-01"], False),
    ("2023-01-01", [None, "garbage"], True),
])
def test_is_newer_than_all(candidate, existing, expected):
    assert is_newer_than_all(candidate, existing) is expected


async def test_user_lock_is_shared_while_in_use(db):
    lock = db.user_lock(USER)

    async with lock:
        assert db.user_lock(USER) is lock
        assert db.user_lock("other@example.com") is not lock


async def test_user_locks_are_released_after_reconcile(db):
    engine = ReconciliationEngine(db)

    await engine.reconcile(make_record())
    await engine.reconcile(make_record(user_email="other@example.com"))

    assert len(db._user_locks) == 0
