# Overview: Read-only settlement history and aggregate statistics per farm.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError
from ..models import Settlement
from ..time_utils import parse_range_bound


DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 500


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_range_bound(start, end=False)
        end_dt = parse_range_bound(end, end=True)
    except ValueError:
        raise ValidationError("start_date/end_date must be ISO-8601 dates")
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start_date must be before end_date")
    return start_dt, end_dt


def list_settlements(
    owner_id: int,
    farm: str | None,
    start: str | None = None,
    end: str | None = None,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[Settlement]:
    """Settlements of (owner, farm), newest first; bounds are inclusive."""
    start_dt, end_dt = _parse_range(start, end)
    if not farm:
        return []
    limit = max(1, min(limit, MAX_HISTORY_LIMIT))

    query = db.session.query(Settlement).filter_by(owner_id=owner_id, farm=farm)
    if start_dt:
        query = query.filter(Settlement.settled_at >= start_dt)
    if end_dt:
        query = query.filter(Settlement.settled_at <= end_dt)

    return (
        query.order_by(Settlement.settled_at.desc(), Settlement.id.desc())
        .limit(limit)
        .all()
    )


def settlement_stats(owner_id: int, farm: str | None) -> dict:
    """Totals over every settlement of the farm; all zero when no farm is selected."""
    count = income_total = egress_total = 0
    if farm:
        row = (
            db.session.query(
                func.count(Settlement.id),
                func.coalesce(func.sum(Settlement.total_income_cents), 0),
                func.coalesce(func.sum(Settlement.total_egress_cents), 0),
            )
            .filter(Settlement.owner_id == owner_id, Settlement.farm == farm)
            .one()
        )
        count, income_total, egress_total = int(row[0]), int(row[1]), int(row[2])

    return {
        "count": count,
        "income_total_cents": income_total,
        "egress_total_cents": egress_total,
        "avg_income_cents": income_total / count if count else 0.0,
        "avg_egress_cents": egress_total / count if count else 0.0,
    }
