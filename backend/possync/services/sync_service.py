# Overview: Offline sale sync; confirms a batch of client events one by one and reports per-event results.

"""
Sync coordinator.

Offline devices queue sales for hours or days and upload them in one batch.
Each event is confirmed in its own transaction: one malformed or
conflicting event (a product deactivated since it was recorded, stock sold
out by another device) becomes an "error" entry and the rest of the batch
still goes through. Results come back in submission order so the client can
reconcile its queue entry by entry.

Only StoreUnavailable escapes: without a database there is nothing to
report per event.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from sqlalchemy.orm import Session

from ..models import Sale
from ..time_utils import to_utc_z
from ..validation import parse_sale_event, raw_client_id
from .concurrency import is_disconnect
from .errors import SaleConfirmationError, StoreUnavailable
from .sale_service import Actor, confirm_sale, find_sale_by_client_id


logger = logging.getLogger(__name__)

STATUS_ERROR = "error"
SERVER_ERROR_CODE = "SERVER_ERROR"


@dataclass(frozen=True)
class SyncSettings:
    lock_timeout_ms: int | None = None
    max_age_hours: int | None = None
    attempts: int = 3

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SyncSettings":
        return cls(
            lock_timeout_ms=config.get("STOCK_LOCK_TIMEOUT_MS"),
            max_age_hours=config.get("OFFLINE_SALE_MAX_AGE_HOURS"),
            attempts=config.get("SALE_RETRY_ATTEMPTS") or 1,
        )


def _sync_one(session: Session, raw: Any, actor: Actor, settings: SyncSettings) -> dict:
    client_id = raw_client_id(raw)
    try:
        event = parse_sale_event(raw)
        outcome = confirm_sale(
            session,
            event,
            actor,
            lock_timeout_ms=settings.lock_timeout_ms,
            max_age_hours=settings.max_age_hours,
            synced_from_offline=True,
            attempts=settings.attempts,
        )
    except SaleConfirmationError as err:
        logger.warning("Sync event client_id=%s rejected: %s %s", client_id, err.code, err.payload())
        return {"client_id": client_id, **err.to_result()}
    except StoreUnavailable:
        raise
    except Exception as exc:
        session.rollback()
        if is_disconnect(exc):
            raise StoreUnavailable(str(exc)) from exc
        logger.exception("Sync event client_id=%s failed unexpectedly", client_id)
        return {"client_id": client_id, "status": STATUS_ERROR, "code": SERVER_ERROR_CODE}

    return {"client_id": event.client_id, **outcome.to_result()}


def sync_sales(
    session: Session,
    raw_events: Iterable[Any],
    actor: Actor,
    *,
    settings: SyncSettings | None = None,
) -> list[dict]:
    """
    Confirm each raw sale event independently, in order.

    Returns one result per event: {"client_id", "status", "sale_id"} for
    synced/duplicate, {"client_id", "status": "error", "code", ...} for
    failures. Raises StoreUnavailable only.
    """
    settings = settings or SyncSettings()
    results = [_sync_one(session, raw, actor, settings) for raw in raw_events]

    counts = Counter(r["status"] for r in results)
    logger.info(
        "Sync batch from seller %s: %d events (%d synced, %d duplicate, %d error)",
        actor.seller_id, len(results), counts["synced"], counts["duplicate"], counts[STATUS_ERROR],
    )
    return results


def get_sync_status(session: Session, client_id: str) -> dict | None:
    """Server-side record of a client event, or None if it never landed."""
    sale: Sale | None = find_sale_by_client_id(session, client_id)
    if sale is None:
        return None
    return {
        "sale_id": sale.id,
        "client_id": sale.client_id,
        "shop_id": sale.shop_id,
        "synced_from_offline": sale.synced_from_offline,
        "synced_at": to_utc_z(sale.synced_at),
        "created_at": to_utc_z(sale.created_at),
    }
