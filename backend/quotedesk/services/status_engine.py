"""
Quote Status Machine — status changes with an append-only audit trail.

Transitions are permissive: any status may follow any other, including a
repeat of the current one, and every committed change appends exactly one
QuoteStatusHistory row.
"""
import logging
import os
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple

from quotedesk.models.quote_schema import Quote, QuoteStatus, QuoteStatusHistoryEntry
from quotedesk.services.errors import InvalidStatusError

logger = logging.getLogger("quotedesk-status")

DEFAULT_CURRENCY = os.getenv("QUOTE_DEFAULT_CURRENCY", "UAH")


def parse_status(value) -> QuoteStatus:
    if isinstance(value, QuoteStatus):
        return value
    try:
        return QuoteStatus(value)
    except ValueError:
        raise InvalidStatusError(value, [s.value for s in QuoteStatus]) from None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def apply_status_change(
    quote: Quote,
    new_status,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
    changed_by: Optional[str] = None,
) -> Tuple[Quote, QuoteStatusHistoryEntry]:
    """Pure step: the updated quote and the history row that records the change."""
    target = parse_status(new_status)
    now = now or _utcnow()
    entry = QuoteStatusHistoryEntry(
        id=str(uuid.uuid4()),
        quote_id=quote.id,
        from_status=quote.status,
        to_status=target,
        note=(note or "").strip() or None,
        changed_by=changed_by,
        created_at=now,
    )
    return quote.model_copy(update={"status": target, "updated_at": now}), entry


async def set_status(
    store,
    quote_id: str,
    new_status,
    note: Optional[str] = None,
    changed_by: Optional[str] = None,
) -> Quote:
    target = parse_status(new_status)
    quote = await store.get_quote(quote_id)
    updated, entry = apply_status_change(quote, target, note, changed_by=changed_by)
    await store.save_status_change(updated, entry)
    logger.info(
        f"Quote {quote_id} status {entry.from_status.value if entry.from_status else None} -> {entry.to_status.value}",
        extra={"quote_id": quote_id},
    )
    return updated


async def list_status_history(store, quote_id: str) -> List[QuoteStatusHistoryEntry]:
    """Newest first."""
    await store.get_quote(quote_id)
    return await store.list_status_history(quote_id)


async def create_quote(
    store,
    team_id: str,
    customer_id: Optional[str] = None,
    currency: Optional[str] = None,
    title: Optional[str] = None,
    comment: Optional[str] = None,
    deadline_at: Optional[date] = None,
    deadline_note: Optional[str] = None,
    created_by: Optional[str] = None,
) -> Quote:
    """New quotes start in draft; the initial history row has no from-status."""
    now = _utcnow()
    quote = Quote(
        id=str(uuid.uuid4()),
        team_id=team_id,
        status=QuoteStatus.DRAFT,
        currency=currency or DEFAULT_CURRENCY,
        customer_id=customer_id,
        title=title,
        comment=comment,
        deadline_at=deadline_at,
        deadline_note=deadline_note,
        created_at=now,
        updated_at=now,
    )
    entry = QuoteStatusHistoryEntry(
        id=str(uuid.uuid4()),
        quote_id=quote.id,
        from_status=None,
        to_status=QuoteStatus.DRAFT,
        changed_by=created_by,
        created_at=now,
    )
    await store.insert_quote(quote, entry)
    logger.info(f"Quote {quote.id} created for team {team_id}", extra={"quote_id": quote.id})
    return quote


async def delete_quote(store, quote_id: str) -> None:
    await store.delete_quote(quote_id)
    logger.info(f"Quote {quote_id} deleted with its items and history", extra={"quote_id": quote_id})
