"""
Reconciliation Service - resolving faltantes (shortfalls) on completed sessions.

A session completed with missing units starts at faltante_resolution=pending:

    pending -> voucher | resolved            (write-off, picked-only fulfillment)
    pending -> waiting -> ... -> resolved    (scan-to-receive, combined fulfillment)

Only pending/waiting sessions accept resolutions or receipts. Each outcome
enqueues exactly one fulfillment, committed before it is submitted.
"""
import secrets
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from pickops.core.settings import Settings
from pickops.db.base import utcnow
from pickops.exceptions import InvalidStateError, NotFoundError, OrderServiceError, ValidationError
from pickops.integrations.order_service_port import OrderServicePort
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
from pickops.services.line_items import LineItemProgress
from pickops.services.picking_service import round_half_up

logger = get_logger(__name__)

# Base32-like, without 0/O and 1/I
VOUCHER_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
VOUCHER_SUFFIX_LENGTH = 6

RESOLUTIONS = (FaltanteResolution.VOUCHER, FaltanteResolution.WAITING, FaltanteResolution.RESOLVED)


def generate_voucher_code(display_id: int, prefix: str = "VOUCHER") -> str:
    suffix = "".join(secrets.choice(VOUCHER_ALPHABET) for _ in range(VOUCHER_SUFFIX_LENGTH))
    return f"{prefix}-{display_id}-{suffix}"


@dataclass
class ResolveResult:
    session: PickingSession
    resolution: str
    fulfillment_created: bool
    fulfillment_error: Optional[str] = None


@dataclass
class VoucherResult:
    session: PickingSession
    code: str
    value: int
    promotion_id: Optional[str]
    customer_name: str
    customer_phone: str
    fulfillment_created: bool
    fulfillment_error: Optional[str] = None


@dataclass
class ReceiveResult:
    session: PickingSession
    matched: PickingItem
    all_received: bool
    fulfillment_created: bool
    fulfillment_error: Optional[str] = None
    missing_items: List[PickingItem] = field(default_factory=list)


def missing_items_of(session: PickingSession) -> List[PickingItem]:
    return [row for row in session.items if (row.quantity_missing or 0) > 0]


class ReconciliationService:
    """Resolve, compensate or receive the missing units of a completed pick."""

    def __init__(
        self,
        db: Session,
        coordinator: FulfillmentCoordinator,
        order_service: OrderServicePort,
        settings: Settings,
    ):
        self.db = db
        self.coordinator = coordinator
        self.order_service = order_service
        self.settings = settings

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _completed_session(self, order_id: str, for_update: bool = False) -> PickingSession:
        session = session_store.get_latest_completed_session(self.db, order_id, for_update=for_update)
        if session is None:
            raise NotFoundError(
                "Completed picking session",
                order_id,
                message=f"No completed picking session for order {order_id}",
            )
        return session

    def _open_session(self, order_id: str, for_update: bool = True) -> PickingSession:
        session = self._completed_session(order_id, for_update=for_update)
        if session.faltante_resolution not in FaltanteResolution.OPEN:
            raise InvalidStateError(
                f"Order {order_id} has no open shortfall",
                current_state=session.faltante_resolution or "none",
                allowed_states=list(FaltanteResolution.OPEN),
            )
        return session

    def _submit_if_pending(self, session: PickingSession, user_name: str) -> Tuple[bool, Optional[str]]:
        if session.fulfillment_status != FulfillmentStatus.PENDING:
            return False, None
        result = self.coordinator.submit(session, user_name)
        return result.submitted, result.error

    def _set_resolution(self, session: PickingSession, resolution: str, notes: Optional[str]) -> None:
        session.faltante_resolution = resolution
        session.faltante_resolved_at = utcnow()
        session.faltante_notes = notes

        if resolution in FaltanteResolution.TERMINAL:
            # Missing units are written off; only what was picked ships
            self.coordinator.enqueue(
                session,
                [(row.line_item_id, row.quantity_picked) for row in session.items],
                FulfillmentKind.PICKED_ONLY,
            )
        session_store.save(self.db, session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def outstanding(self, order_id: str) -> Tuple[PickingSession, List[PickingItem]]:
        session = self._completed_session(order_id)
        return session, missing_items_of(session)

    def list_unresolved(self, offset: int = 0, limit: int = 50) -> Tuple[List[PickingSession], int]:
        query = (
            self.db.query(PickingSession)
            .filter(
                PickingSession.status == SessionStatus.COMPLETED,
                PickingSession.faltante_resolution.in_(FaltanteResolution.OPEN),
            )
        )
        total = query.count()
        sessions = (
            query.order_by(PickingSession.completed_at.desc(), PickingSession.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return sessions, total

    # ------------------------------------------------------------------
    # Resolutions
    # ------------------------------------------------------------------

    def resolve(
        self,
        order_id: str,
        resolution: str,
        notes: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> ResolveResult:
        if resolution not in RESOLUTIONS:
            raise ValidationError(
                f"resolution must be one of: {', '.join(RESOLUTIONS)}",
                field="resolution",
                value=resolution,
            )

        session = self._open_session(order_id)
        actor = user_name or session.user_name
        self._set_resolution(session, resolution, notes)
        self.db.commit()

        created, error = self._submit_if_pending(session, actor)

        record_audit(
            self.db,
            AuditAction.ITEM_MISSING,
            actor,
            order_id=order_id,
            order_display_id=session.order_display_id,
            details=f"Shortfall resolved: {resolution}" + (f" - {notes}" if notes else ""),
            metadata={
                "resolution": resolution,
                "notes": notes,
                "fulfillment_created": created,
                "total_missing": sum(row.quantity_missing for row in session.items),
            },
        )
        logger.info(
            "Shortfall resolution recorded",
            extra={"order_id": order_id, "resolution": resolution, "fulfillment_created": created},
        )
        return ResolveResult(
            session=session, resolution=resolution, fulfillment_created=created, fulfillment_error=error
        )

    def issue_voucher(
        self,
        order_id: str,
        value,
        notes: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> VoucherResult:
        """
        Compensate the customer with a single-use, fixed-value code and close
        the shortfall as "voucher".

        The promotion is created before anything local changes, so an Order
        Service failure leaves the session untouched.
        """
        try:
            fixed_value = round_half_up(value)
        except (InvalidOperation, TypeError, ValueError) as e:
            raise ValidationError("value must be a number", field="value", value=value) from e
        if Decimal(str(value)) <= 0 or fixed_value <= 0:
            raise ValidationError("value must be greater than 0", field="value", value=value)

        # Remote calls happen before the row is locked
        snapshot = self._open_session(order_id, for_update=False)
        actor = user_name or snapshot.user_name
        display_id = snapshot.order_display_id
        code = generate_voucher_code(display_id, self.settings.VOUCHER_CODE_PREFIX)

        promotion = self.order_service.create_promotion(
            code,
            fixed_value,
            self.settings.VOUCHER_CURRENCY,
            order_id,
            metadata={
                "order_display_id": display_id,
                "reason": "faltante_compensation",
                "notes": notes or "",
            },
        )
        code = promotion.get("code") or code
        customer_name, customer_phone = self._customer_contact(order_id)

        try:
            session = self._open_session(order_id)
        except InvalidStateError:
            logger.warning(
                f"Shortfall for order {order_id} was closed while voucher {code} was being issued",
                extra={"order_id": order_id, "promotion_id": promotion.get("id")},
            )
            raise

        voucher_notes = f"Voucher: {code} - Value: ${fixed_value}" + (f" - {notes}" if notes else "")
        self._set_resolution(session, FaltanteResolution.VOUCHER, voucher_notes)
        self.db.commit()

        created, error = self._submit_if_pending(session, actor)

        record_audit(
            self.db,
            AuditAction.ITEM_MISSING,
            actor,
            order_id=order_id,
            order_display_id=session.order_display_id,
            details=f"Voucher issued: {code} for ${fixed_value}",
            metadata={
                "resolution": FaltanteResolution.VOUCHER,
                "notes": notes,
                "voucher_code": code,
                "voucher_value": fixed_value,
                "promotion_id": promotion.get("id"),
                "fulfillment_created": created,
            },
        )
        return VoucherResult(
            session=session,
            code=code,
            value=fixed_value,
            promotion_id=promotion.get("id"),
            customer_name=customer_name,
            customer_phone=customer_phone,
            fulfillment_created=created,
            fulfillment_error=error,
        )

    def _customer_contact(self, order_id: str) -> Tuple[str, str]:
        """Best-effort name and phone for notifying the customer."""
        try:
            order: Dict[str, Any] = self.order_service.get_order(order_id)
        except OrderServiceError as e:
            logger.warning(f"Could not load customer contact for order {order_id}: {e.message}")
            return "", ""
        shipping = order.get("shipping_address") or {}
        customer = order.get("customer") or {}
        name = shipping.get("first_name") or customer.get("first_name") or ""
        phone = shipping.get("phone") or ""
        return name, phone

    # ------------------------------------------------------------------
    # Scan-to-receive
    # ------------------------------------------------------------------

    def receive(
        self,
        order_id: str,
        line_item_id: Optional[str] = None,
        barcode: Optional[str] = None,
        sku: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> ReceiveResult:
        """
        Count one received unit against the first missing item that matches.

        Per item, line_item_id is tried first, then barcode, then sku. Items
        already fully received are skipped. When the last missing unit comes
        in, the shortfall is resolved and one fulfillment for the full
        quantities is sent.
        """
        if not (line_item_id or barcode or sku):
            raise ValidationError("line_item_id, barcode or sku is required", field="barcode")

        session = self._open_session(order_id)
        values = [LineItemProgress.from_row(row) for row in session.items]

        index = None
        for i, value in enumerate(values):
            if value.quantity_missing == 0 or value.outstanding_receipt <= 0:
                continue
            if (
                (line_item_id and value.line_item_id == line_item_id)
                or (barcode and value.barcode == barcode)
                or (sku and value.sku == sku)
            ):
                index = i
                break
        if index is None:
            raise NotFoundError(
                "Missing item",
                line_item_id or barcode or sku,
                message="No missing item matches, or it was already fully received",
            )

        received = values[index].receive()
        received.apply_to(session.items[index])
        values[index] = received
        matched = session.items[index]

        all_received = all(v.quantity_received >= v.quantity_missing for v in values if v.quantity_missing > 0)
        actor = user_name or session.user_name

        if not all_received:
            session_store.save(self.db, session)
            record_audit(
                self.db,
                AuditAction.ITEM_MISSING,
                actor,
                order_id=order_id,
                order_display_id=session.order_display_id,
                details=f"Received {received.sku or received.line_item_id} "
                        f"({received.quantity_received}/{received.quantity_missing})",
                metadata={
                    "method": "scan",
                    "line_item_id": received.line_item_id,
                    "quantity_received": received.quantity_received,
                    "quantity_missing": received.quantity_missing,
                },
            )
            return ReceiveResult(
                session=session,
                matched=matched,
                all_received=False,
                fulfillment_created=False,
                missing_items=missing_items_of(session),
            )

        session.faltante_resolution = FaltanteResolution.RESOLVED
        session.faltante_resolved_at = utcnow()
        session.faltante_notes = " | ".join(
            note for note in (session.faltante_notes, "All missing units received") if note
        )
        # Shortfall made whole: ship everything originally required
        self.coordinator.enqueue(
            session,
            [(v.line_item_id, v.quantity_picked + v.quantity_missing) for v in values],
            FulfillmentKind.COMBINED,
        )
        session_store.save(self.db, session)
        self.db.commit()

        created, error = self._submit_if_pending(session, actor)

        record_audit(
            self.db,
            AuditAction.ITEM_MISSING,
            actor,
            order_id=order_id,
            order_display_id=session.order_display_id,
            details="All missing units received by scan",
            metadata={
                "resolution": FaltanteResolution.RESOLVED,
                "method": "scan",
                "fulfillment_created": created,
            },
        )
        logger.info(
            "Shortfall received in full",
            extra={"order_id": order_id, "fulfillment_created": created},
        )
        return ReceiveResult(
            session=session,
            matched=matched,
            all_received=True,
            fulfillment_created=created,
            fulfillment_error=error,
            missing_items=missing_items_of(session),
        )
