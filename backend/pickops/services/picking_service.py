"""
Picking Session Service

Lifecycle of one order's pick:

    start -> pick / unpick / mark_missing ... -> complete | cancel
                                                  -> pack

Every quantity change goes through LineItemProgress and is written back at
the same item position. complete() is a two-step saga: the completion (and
the fulfillment it calls for) is committed first, then the Fulfillment
Coordinator submits it to the Order Service. A remote failure never undoes
the completion.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from pickops.core.settings import Settings
from pickops.db.base import utcnow
from pickops.exceptions import InvalidStateError, NotFoundError, ValidationError
from pickops.logging_config import get_logger
from pickops.models.audit_log import AuditAction
from pickops.models.picking_session import (
    FaltanteResolution,
    FulfillmentKind,
    FulfillmentStatus,
    PickingItem,
    PickingSession,
    SessionStatus,
)
from pickops.services import session_store
from pickops.services.audit_service import record_audit
from pickops.services.fulfillment_coordinator import FulfillmentCoordinator
from pickops.services.line_items import SCAN_METHODS, LineItemProgress
from pickops.services.user_directory import find_active_user, get_user

logger = get_logger(__name__)


def round_half_up(value) -> int:
    """Round to the nearest integer, .5 away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_duration(seconds: int) -> str:
    minutes, secs = divmod(max(int(seconds), 0), 60)
    return f"{minutes}m {secs}s" if minutes > 0 else f"{secs}s"


@dataclass
class SessionTotals:
    total_required: int
    total_picked: int
    total_missing: int
    total_received: int
    is_complete: bool
    progress_percent: int
    elapsed_seconds: int


def session_totals(session: PickingSession, now: Optional[datetime] = None) -> SessionTotals:
    """Derived values, always recomputed from the items."""
    items = [LineItemProgress.from_row(row) for row in session.items]
    total_required = sum(i.quantity_required for i in items)
    total_picked = sum(i.quantity_picked for i in items)
    total_missing = sum(i.quantity_missing for i in items)
    total_received = sum(i.quantity_received for i in items)

    if total_required == 0:
        progress = 100
    else:
        progress = round_half_up(Decimal(total_picked + total_missing) * 100 / Decimal(total_required))

    ended_at = session.completed_at or session.cancelled_at or now or utcnow()
    elapsed = max(int((ended_at - session.started_at).total_seconds()), 0)

    return SessionTotals(
        total_required=total_required,
        total_picked=total_picked,
        total_missing=total_missing,
        total_received=total_received,
        is_complete=all(i.is_complete for i in items),
        progress_percent=progress,
        elapsed_seconds=elapsed,
    )


@dataclass
class CompletionResult:
    session: PickingSession
    duration_seconds: int
    duration_formatted: str
    fulfillment_created: bool
    fulfillment_error: Optional[str] = None
    missing_items: List[PickingItem] = field(default_factory=list)


@dataclass
class HistoryPage:
    sessions: List[PickingSession]
    total: int
    today: session_store.TodayStats


class PickingService:
    """Start, mutate and finish picking sessions for one request."""

    def __init__(self, db: Session, coordinator: FulfillmentCoordinator, settings: Settings):
        self.db = db
        self.coordinator = coordinator
        self.settings = settings

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_active(self, order_id: str) -> PickingSession:
        session = session_store.get_active_session(self.db, order_id, for_update=True)
        if session is None:
            raise NotFoundError(
                "Active picking session",
                order_id,
                message=f"No active picking session for order {order_id}",
            )
        return session

    @staticmethod
    def _index_of(values: List[LineItemProgress], line_item_id: Optional[str]) -> int:
        if not line_item_id:
            raise ValidationError("line_item_id is required", field="line_item_id")
        for index, value in enumerate(values):
            if value.line_item_id == line_item_id:
                return index
        raise ValidationError(
            f"Item {line_item_id} not found in session", field="line_item_id", value=line_item_id
        )

    def _replace(self, session: PickingSession, index: int, value: LineItemProgress) -> PickingItem:
        row = session.items[index]
        value.apply_to(row)
        return row

    @staticmethod
    def _snapshot(items: Iterable[Mapping[str, Any]]) -> List[LineItemProgress]:
        snapshot = []
        seen = set()
        for raw in items:
            value = LineItemProgress(
                line_item_id=raw.get("line_item_id"),
                quantity_required=int(raw.get("quantity_required") or 0),
                variant_id=raw.get("variant_id"),
                sku=raw.get("sku"),
                barcode=raw.get("barcode"),
            )
            if value.line_item_id in seen:
                raise ValidationError(
                    f"Duplicate line item {value.line_item_id}",
                    field="items",
                    value=value.line_item_id,
                )
            seen.add(value.line_item_id)
            snapshot.append(value)
        return snapshot

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, order_id: str, include_completed: bool = False) -> PickingSession:
        session = session_store.get_active_session(self.db, order_id)
        if session is None and include_completed:
            session = session_store.get_latest_completed_session(self.db, order_id)
        if session is None:
            raise NotFoundError(
                "Active picking session",
                order_id,
                message=f"No active picking session for order {order_id}",
            )
        return session

    def history(
        self,
        *,
        user_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> HistoryPage:
        sessions, total = session_store.list_history(
            self.db,
            user_id=user_id,
            date_from=date_from,
            date_to=date_to,
            offset=offset,
            limit=limit,
        )
        return HistoryPage(sessions=sessions, total=total, today=session_store.today_stats(self.db))

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start(
        self,
        order_id: str,
        user_id: int,
        order_display_id: int,
        items: Iterable[Mapping[str, Any]],
    ) -> Tuple[PickingSession, bool]:
        """
        Open a session for the order, or return the one already in progress.

        Returns:
            (session, created)

        Raises:
            ValidationError: unknown user or malformed items
            AuthenticationError: inactive user
        """
        existing = session_store.get_active_session(self.db, order_id)
        if existing is not None:
            return existing, False

        user = find_active_user(self.db, user_id)
        snapshot = self._snapshot(items)

        session, created = session_store.create_session(
            self.db,
            order_id=order_id,
            order_display_id=order_display_id or 0,
            user_id=user.id,
            user_name=user.name,
            items=snapshot,
        )
        if not created:
            return session, False

        total_required = sum(i.quantity_required for i in snapshot)
        record_audit(
            self.db,
            AuditAction.SESSION_START,
            user.name,
            user_id=user.id,
            order_id=order_id,
            order_display_id=session.order_display_id,
            details=f"Picking started for order #{session.order_display_id} ({total_required} units)",
            metadata={"total_required": total_required, "line_count": len(snapshot)},
        )
        logger.info(
            "Picking session started",
            extra={"order_id": order_id, "session_id": session.id, "user_id": user.id},
        )
        return session, True

    # ------------------------------------------------------------------
    # Item mutations
    # ------------------------------------------------------------------

    def pick(
        self,
        order_id: str,
        line_item_id: Optional[str] = None,
        barcode: Optional[str] = None,
        method: str = "manual",
    ) -> Tuple[PickingSession, PickingItem]:
        if method not in SCAN_METHODS:
            raise ValidationError(
                f"method must be one of: {', '.join(SCAN_METHODS)}", field="method", value=method
            )
        if method == "barcode" and not barcode:
            raise ValidationError("barcode is required for barcode picks", field="barcode")

        session = self._require_active(order_id)
        values = [LineItemProgress.from_row(row) for row in session.items]

        if method == "barcode":
            index = next(
                (
                    i for i, value in enumerate(values)
                    if value.barcode == barcode and value.quantity_picked < value.quantity_required
                ),
                None,
            )
            if index is None:
                outstanding = [v.barcode for v in values if v.barcode and v.remaining > 0]
                raise ValidationError(
                    f"No pending item with barcode {barcode}. "
                    f"Pending barcodes: {', '.join(outstanding) or 'none'}",
                    field="barcode",
                    value=barcode,
                    details={"outstanding_barcodes": outstanding},
                )
        else:
            index = self._index_of(values, line_item_id)

        picked = values[index].pick(method, utcnow())
        row = self._replace(session, index, picked)
        session_store.save(self.db, session)

        record_audit(
            self.db,
            AuditAction.ITEM_PICK,
            session.user_name,
            user_id=session.user_id,
            order_id=order_id,
            order_display_id=session.order_display_id,
            details=f"Picked {picked.sku or picked.line_item_id} "
                    f"({picked.quantity_picked}/{picked.quantity_required})",
            metadata={
                "line_item_id": picked.line_item_id,
                "method": method,
                "quantity_picked": picked.quantity_picked,
                "quantity_required": picked.quantity_required,
            },
        )
        return session, row

    def unpick(self, order_id: str, line_item_id: str) -> Tuple[PickingSession, PickingItem]:
        session = self._require_active(order_id)
        values = [LineItemProgress.from_row(row) for row in session.items]
        index = self._index_of(values, line_item_id)

        unpicked = values[index].unpick()
        row = self._replace(session, index, unpicked)
        session_store.save(self.db, session)

        record_audit(
            self.db,
            AuditAction.ITEM_UNPICK,
            session.user_name,
            user_id=session.user_id,
            order_id=order_id,
            order_display_id=session.order_display_id,
            details=f"Removed one {unpicked.sku or unpicked.line_item_id} "
                    f"({unpicked.quantity_picked}/{unpicked.quantity_required})",
            metadata={"line_item_id": line_item_id, "quantity_picked": unpicked.quantity_picked},
        )
        return session, row

    def mark_missing(
        self, order_id: str, line_item_id: str, quantity: int
    ) -> Tuple[PickingSession, PickingItem]:
        if quantity is None or quantity < 0:
            raise ValidationError("quantity must be >= 0", field="quantity", value=quantity)

        session = self._require_active(order_id)
        values = [LineItemProgress.from_row(row) for row in session.items]
        index = self._index_of(values, line_item_id)

        updated = values[index].with_missing(quantity)
        row = self._replace(session, index, updated)
        session_store.save(self.db, session)

        record_audit(
            self.db,
            AuditAction.ITEM_MISSING,
            session.user_name,
            user_id=session.user_id,
            order_id=order_id,
            order_display_id=session.order_display_id,
            details=f"Marked {updated.quantity_missing} missing of "
                    f"{updated.sku or updated.line_item_id}",
            metadata={
                "line_item_id": line_item_id,
                "quantity_requested": quantity,
                "quantity_missing": updated.quantity_missing,
            },
        )
        return session, row

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def complete(self, order_id: str, user_id: int) -> CompletionResult:
        """
        Finish the pick.

        Phase 1 commits the completion, the session_complete audit entry and,
        when nothing is missing, the enqueued full fulfillment. Phase 2
        submits it; a failure there is reported in the result, not raised.
        """
        user = get_user(self.db, user_id)
        session = self._require_active(order_id)
        values = [LineItemProgress.from_row(row) for row in session.items]

        incomplete = [v for v in values if not v.is_complete]
        if incomplete:
            summary = ", ".join(
                f"{v.sku or v.line_item_id}: {v.quantity_picked}+{v.quantity_missing}/{v.quantity_required}"
                for v in incomplete
            )
            raise InvalidStateError(
                f"Items not fully accounted for (picked+missing/required): {summary}",
                current_state=session.status,
                details={
                    "incomplete_items": [
                        {
                            "line_item_id": v.line_item_id,
                            "quantity_required": v.quantity_required,
                            "quantity_picked": v.quantity_picked,
                            "quantity_missing": v.quantity_missing,
                        }
                        for v in incomplete
                    ]
                },
            )

        now = utcnow()
        duration = max(int((now - session.started_at).total_seconds()), 0)
        session.status = SessionStatus.COMPLETED
        session.completed_at = now
        session.duration_seconds = duration
        session.completed_by_name = user.name

        has_missing = any(v.quantity_missing > 0 for v in values)
        if has_missing:
            session.faltante_resolution = FaltanteResolution.PENDING
        else:
            self.coordinator.enqueue(
                session,
                [(v.line_item_id, v.quantity_picked) for v in values],
                FulfillmentKind.FULL,
            )
        session_store.save(self.db, session)

        totals = session_totals(session, now)
        record_audit(
            self.db,
            AuditAction.SESSION_COMPLETE,
            user.name,
            user_id=user.id,
            order_id=order_id,
            order_display_id=session.order_display_id,
            details=f"Picking completed in {format_duration(duration)} ({totals.total_picked} units)",
            metadata={
                "duration_seconds": duration,
                "total_picked": totals.total_picked,
                "total_required": totals.total_required,
                "total_missing": totals.total_missing,
            },
        )
        # Phase 1: local truth is durable before the remote is touched
        self.db.commit()

        fulfillment_created = False
        fulfillment_error = None
        if session.fulfillment_status == FulfillmentStatus.PENDING:
            result = self.coordinator.submit(session, user.name, user.id)
            fulfillment_created = result.submitted
            fulfillment_error = result.error

        logger.info(
            "Picking session completed",
            extra={
                "order_id": order_id,
                "duration_seconds": duration,
                "has_missing": has_missing,
                "fulfillment_created": fulfillment_created,
            },
        )
        return CompletionResult(
            session=session,
            duration_seconds=duration,
            duration_formatted=format_duration(duration),
            fulfillment_created=fulfillment_created,
            fulfillment_error=fulfillment_error,
            missing_items=[row for row in session.items if row.quantity_missing > 0],
        )

    def cancel(self, order_id: str, reason: Optional[str]) -> PickingSession:
        reason = (reason or "").strip()
        if len(reason) < self.settings.CANCEL_REASON_MIN_LENGTH:
            raise ValidationError(
                f"Cancel reason must be at least {self.settings.CANCEL_REASON_MIN_LENGTH} characters",
                field="reason",
            )

        session = self._require_active(order_id)
        session.status = SessionStatus.CANCELLED
        session.cancelled_at = utcnow()
        session.cancel_reason = reason
        session_store.save(self.db, session)

        record_audit(
            self.db,
            AuditAction.SESSION_CANCEL,
            session.user_name,
            user_id=session.user_id,
            order_id=order_id,
            order_display_id=session.order_display_id,
            details=f"Picking cancelled: {reason}",
            metadata={"reason": reason},
        )
        return session

    def pack(self, order_id: str, user_id: Optional[int] = None) -> PickingSession:
        session = session_store.get_latest_completed_session(self.db, order_id, for_update=True)
        if session is None:
            raise NotFoundError(
                "Completed picking session",
                order_id,
                message=f"No completed picking session for order {order_id}",
            )
        if session.packed:
            raise InvalidStateError(
                f"Order {order_id} is already packed",
                current_state="packed",
                details={"packed_by_name": session.packed_by_name},
            )

        packed_by = get_user(self.db, user_id).name if user_id is not None else session.user_name
        session.packed = True
        session.packed_at = utcnow()
        session.packed_by_name = packed_by
        session_store.save(self.db, session)
        return session
