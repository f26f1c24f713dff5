# Overview: Income entry CRUD, filtering and summary statistics for one farm.

"""
Income Entry Service

LIFECYCLE:
- Entries are created unsettled and stay editable until a settlement claims
  them. Once settled they are frozen: update and delete raise ConflictError.
- Entry dates cannot be in the future (UTC calendar date).

SCOPING: Every function takes (owner_id, farm) explicitly.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import func

from ..extensions import db
from ..errors import ConflictError, NoActiveFarmError, NotFoundError, ValidationError
from ..models import IncomeEntry
from ..time_utils import parse_iso_date, today
from ..validation import ModelValidationPolicy, coerce_int, enforce_amount, validate_payload
from .concurrency import run_with_retry


INCOME_POLICY = ModelValidationPolicy(
    writable_fields={"entry_date", "description", "value_cents"},
    required_on_create={"entry_date", "description", "value_cents"},
)

MAX_LIST_LIMIT = 500


def _check_entry_fields(patch: dict) -> None:
    if "value_cents" in patch:
        enforce_amount("value_cents", patch["value_cents"], allow_zero=False)
    if "entry_date" in patch and patch["entry_date"] > today():
        raise ValidationError("entry_date cannot be in the future")


def get_income_entry(owner_id: int, farm: str, entry_id: int) -> IncomeEntry:
    entry = (
        db.session.query(IncomeEntry)
        .filter_by(id=entry_id, owner_id=owner_id, farm=farm)
        .first()
    )
    if not entry:
        raise NotFoundError("Income entry not found")
    return entry


def create_income_entry(*, owner_id: int, farm: str | None, payload: dict, recorded_by: str | None = None) -> IncomeEntry:
    if not farm:
        raise NoActiveFarmError()

    patch = validate_payload(model=IncomeEntry, payload=payload, policy=INCOME_POLICY, partial=False)
    _check_entry_fields(patch)

    entry = IncomeEntry(owner_id=owner_id, farm=farm, recorded_by=recorded_by, settled=False, **patch)
    db.session.add(entry)
    db.session.commit()
    return entry


def update_income_entry(*, owner_id: int, farm: str | None, entry_id: int, payload: dict) -> IncomeEntry:
    if not farm:
        raise NoActiveFarmError()

    patch = validate_payload(model=IncomeEntry, payload=payload, policy=INCOME_POLICY, partial=True)
    _check_entry_fields(patch)

    def _op() -> IncomeEntry:
        entry = get_income_entry(owner_id, farm, entry_id)
        if entry.settled:
            raise ConflictError("Settled income entries cannot be modified")
        for key, value in patch.items():
            setattr(entry, key, value)
        db.session.commit()
        return entry

    return run_with_retry(_op)


def delete_income_entry(*, owner_id: int, farm: str | None, entry_id: int) -> None:
    if not farm:
        raise NoActiveFarmError()

    def _op() -> None:
        entry = get_income_entry(owner_id, farm, entry_id)
        if entry.settled:
            raise ConflictError("Settled income entries cannot be deleted")
        db.session.delete(entry)
        db.session.commit()

    run_with_retry(_op)


def list_income_entries(
    owner_id: int,
    farm: str,
    *,
    start_date: str | None = None,
    end_date: str | None = None,
    description: str | None = None,
    min_value_cents=None,
    max_value_cents=None,
    limit=None,
) -> list[IncomeEntry]:
    """Filtered listing, newest entry date first. Date bounds are inclusive."""
    query = db.session.query(IncomeEntry).filter_by(owner_id=owner_id, farm=farm)

    try:
        start = parse_iso_date(start_date) if start_date else None
        end = parse_iso_date(end_date) if end_date else None
    except ValueError:
        raise ValidationError("start_date/end_date must be ISO-8601 dates")
    if start:
        query = query.filter(IncomeEntry.entry_date >= start)
    if end:
        query = query.filter(IncomeEntry.entry_date <= end)

    if description:
        query = query.filter(IncomeEntry.description.ilike(f"%{description.strip()}%"))

    if min_value_cents not in (None, ""):
        query = query.filter(IncomeEntry.value_cents >= coerce_int("min_value_cents", min_value_cents))
    if max_value_cents not in (None, ""):
        query = query.filter(IncomeEntry.value_cents <= coerce_int("max_value_cents", max_value_cents))

    query = query.order_by(IncomeEntry.entry_date.desc(), IncomeEntry.created_at.desc(), IncomeEntry.id.desc())

    if limit not in (None, ""):
        limit = coerce_int("limit", limit)
        query = query.limit(max(1, min(limit, MAX_LIST_LIMIT)))

    return query.all()


def summarize(entries: list[IncomeEntry]) -> dict:
    total = sum(e.value_cents for e in entries)
    return {
        "count": len(entries),
        "total_cents": total,
        "avg_cents": total / len(entries) if entries else 0.0,
    }


def income_stats(owner_id: int, farm: str) -> dict:
    """Totals for all entries of the farm plus current month and week (weeks start on Sunday)."""
    base = db.session.query(IncomeEntry).filter(
        IncomeEntry.owner_id == owner_id,
        IncomeEntry.farm == farm,
    )

    def _totals(query) -> tuple[int, int]:
        count, total = query.with_entities(
            func.count(IncomeEntry.id),
            func.coalesce(func.sum(IncomeEntry.value_cents), 0),
        ).one()
        return int(count), int(total)

    count, total = _totals(base)
    highest = base.with_entities(func.max(IncomeEntry.value_cents)).scalar() or 0

    now = today()
    month_start = now.replace(day=1)
    week_start = now - timedelta(days=(now.weekday() + 1) % 7)

    month_count, month_total = _totals(base.filter(IncomeEntry.entry_date >= month_start))
    week_count, week_total = _totals(base.filter(IncomeEntry.entry_date >= week_start))

    return {
        "count": count,
        "total_cents": total,
        "avg_cents": total / count if count else 0.0,
        "highest_cents": int(highest),
        "month_count": month_count,
        "month_total_cents": month_total,
        "week_count": week_count,
        "week_total_cents": week_total,
    }
