"""
Fulfillment Coordinator

Decides what gets sent to the Order Service and records what happened, in
two phases on the picking session row itself (an outbox):

1. enqueue() - written in the same transaction as the business transition
   that produced the outcome. Status goes none -> pending, with the lines.
2. submit()  - after that transaction is committed. Calls the remote and
   records pending/failed -> submitted or failed, plus an audit entry.

A session gets at most one outcome: enqueue() refuses once the status has
left "none". Failed submissions stay failed until an operator calls retry();
nothing is retried automatically.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from pickops.db.base import utcnow
from pickops.exceptions import InvalidStateError, NotFoundError, OrderServiceError
from pickops.integrations.order_service_port import OrderServicePort
from pickops.logging_config import get_logger
from pickops.models.audit_log import AuditAction
from pickops.models.picking_session import FulfillmentStatus, PickingSession, SessionStatus
from pickops.services import session_store
from pickops.services.audit_service import record_audit

logger = get_logger(__name__)

SUBMITTABLE = (FulfillmentStatus.PENDING, FulfillmentStatus.FAILED)


@dataclass
class SubmissionResult:
    submitted: bool
    remote_id: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0


class FulfillmentCoordinator:
    """Owns the fulfillment outbox columns of PickingSession."""

    def __init__(self, db: Session, order_service: OrderServicePort):
        self.db = db
        self.order_service = order_service

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def enqueue(
        self,
        session: PickingSession,
        lines: Iterable[Tuple[str, int]],
        kind: str,
    ) -> bool:
        """
        Record the fulfillment this session's outcome calls for.

        Args:
            session: Completed picking session
            lines: (line_item_id, quantity) pairs; zero quantities are dropped
            kind: FulfillmentKind the lines were computed by

        Returns:
            True if something was enqueued, False if every line was zero.

        Raises:
            InvalidStateError: the session already has an outcome
        """
        if session.fulfillment_status != FulfillmentStatus.NONE:
            raise InvalidStateError(
                f"Fulfillment for order {session.order_id} was already recorded",
                current_state=session.fulfillment_status,
                allowed_states=[FulfillmentStatus.NONE],
            )

        payload = [
            {"line_item_id": line_item_id, "quantity": quantity}
            for line_item_id, quantity in lines
            if quantity > 0
        ]
        if not payload:
            logger.info(
                "Nothing to fulfill, outcome has no units",
                extra={"order_id": session.order_id, "kind": kind},
            )
            return False

        session.fulfillment_status = FulfillmentStatus.PENDING
        session.fulfillment_kind = kind
        session.fulfillment_lines = payload
        session.fulfillment_error = None
        return True

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    def _remote_items(self, order_id: str, lines: List[Dict]) -> List[Dict]:
        order = self.order_service.get_order(order_id)
        remote_ids = {item.get("id") for item in order.get("items") or []}
        unknown = [line["line_item_id"] for line in lines if line["line_item_id"] not in remote_ids]
        if unknown:
            raise OrderServiceError(f"Line items not on remote order: {', '.join(unknown)}")
        return [{"id": line["line_item_id"], "quantity": line["quantity"]} for line in lines]

    def submit(
        self,
        session: PickingSession,
        user_name: str,
        user_id: Optional[int] = None,
    ) -> SubmissionResult:
        """
        Send the enqueued fulfillment. Remote failures are recorded, not raised.
        """
        if session.fulfillment_status not in SUBMITTABLE:
            raise InvalidStateError(
                f"No fulfillment waiting to be submitted for order {session.order_id}",
                current_state=session.fulfillment_status,
                allowed_states=list(SUBMITTABLE),
            )

        lines = list(session.fulfillment_lines or [])
        session.fulfillment_attempts = (session.fulfillment_attempts or 0) + 1
        session.fulfillment_attempted_at = utcnow()

        try:
            result = self.order_service.create_fulfillment(
                session.order_id, self._remote_items(session.order_id, lines)
            )
        except OrderServiceError as e:
            session.fulfillment_status = FulfillmentStatus.FAILED
            session.fulfillment_error = e.message
            session_store.save(self.db, session)

            logger.warning(
                f"Fulfillment failed for order {session.order_id}: {e.message}",
                extra={
                    "order_id": session.order_id,
                    "attempts": session.fulfillment_attempts,
                    "kind": session.fulfillment_kind,
                },
            )
            record_audit(
                self.db,
                AuditAction.FULFILLMENT_ERROR,
                user_name,
                user_id=user_id,
                order_id=session.order_id,
                order_display_id=session.order_display_id,
                details=f"Fulfillment error: {e.message}",
                metadata={
                    "kind": session.fulfillment_kind,
                    "lines": lines,
                    "attempt": session.fulfillment_attempts,
                },
            )
            return SubmissionResult(
                submitted=False, error=e.message, attempts=session.fulfillment_attempts
            )

        remote_id = result.get("id")
        session.fulfillment_status = FulfillmentStatus.SUBMITTED
        session.fulfillment_submitted_at = utcnow()
        session.fulfillment_remote_id = str(remote_id) if remote_id else None
        session.fulfillment_error = None
        session_store.save(self.db, session)

        logger.info(
            "Fulfillment submitted",
            extra={"order_id": session.order_id, "remote_id": remote_id, "kind": session.fulfillment_kind},
        )
        record_audit(
            self.db,
            AuditAction.FULFILLMENT_CREATE,
            user_name,
            user_id=user_id,
            order_id=session.order_id,
            order_display_id=session.order_display_id,
            details=f"Fulfillment created for order #{session.order_display_id}",
            metadata={"kind": session.fulfillment_kind, "lines": lines, "remote_id": remote_id},
        )
        return SubmissionResult(
            submitted=True,
            remote_id=session.fulfillment_remote_id,
            attempts=session.fulfillment_attempts,
        )

    # ------------------------------------------------------------------
    # Manual compensation
    # ------------------------------------------------------------------

    def retry(self, order_id: str, user_name: str) -> Tuple[PickingSession, SubmissionResult]:
        """Operator-triggered resubmission of a failed (or stuck pending) fulfillment."""
        session = (
            self.db.query(PickingSession)
            .filter(
                PickingSession.order_id == order_id,
                PickingSession.status == SessionStatus.COMPLETED,
                PickingSession.fulfillment_status.in_(SUBMITTABLE),
            )
            .order_by(PickingSession.completed_at.desc())
            .with_for_update()
            .first()
        )
        if session is None:
            latest = session_store.get_latest_completed_session(self.db, order_id)
            if latest is None:
                raise NotFoundError("Completed picking session", order_id)
            raise InvalidStateError(
                f"No failed fulfillment to retry for order {order_id}",
                current_state=latest.fulfillment_status,
                allowed_states=list(SUBMITTABLE),
            )

        logger.info(
            "Manual fulfillment retry",
            extra={"order_id": order_id, "attempts": session.fulfillment_attempts, "by": user_name},
        )
        return session, self.submit(session, user_name)

    def list_failed(self, include_pending: bool = False) -> List[PickingSession]:
        statuses = [FulfillmentStatus.FAILED]
        if include_pending:
            statuses.append(FulfillmentStatus.PENDING)
        return session_store.list_sessions_by_fulfillment_status(self.db, statuses)
