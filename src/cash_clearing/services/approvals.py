"""Approval queue for ambiguous transaction matches.

Items enter the queue as ``pending`` unless their confidence meets the
auto-approval threshold, and are then decided exactly once.
"""

from typing import Callable, Iterable, Optional, Union

from cash_clearing.core import (
    AlreadyDecidedError,
    CashClearingError,
    Clock,
    EngineConfig,
    InvalidInputError,
    KeyedLock,
    NotFoundError,
    get_logger,
    utc_now,
)
from cash_clearing.models.approval import (
    MANUAL_DECISIONS,
    ApprovalCounts,
    ApprovalDecision,
    ApprovalItem,
    BulkDecisionOutcome,
    BulkDecisionResult,
)
from cash_clearing.models.audit import AuditAction
from cash_clearing.repository.base import CashClearingRepository
from cash_clearing.services.audit import AuditTrail

logger = get_logger(__name__)

ApprovalListener = Callable[[ApprovalItem], None]


class ApprovalQueue:
    """Owns approval decisions for matched items, keyed by batch."""

    def __init__(
        self,
        repository: CashClearingRepository,
        config: Optional[EngineConfig] = None,
        audit: Optional[AuditTrail] = None,
        clock: Clock = utc_now,
        locks: Optional[KeyedLock] = None,
    ):
        """Initialize the approval queue.

        Args:
            repository: Store holding approval items.
            config: Engine configuration (auto-approval threshold).
            audit: Audit trail; one is created over ``repository`` if omitted.
            clock: Time source.
            locks: Shared per-key lock registry.
        """
        self.config = config or EngineConfig()
        self._repository = repository
        self._audit = audit or AuditTrail(repository, clock)
        self._clock = clock
        self._locks = locks or KeyedLock(self.config.lock_timeout_seconds)
        self._listeners: list[ApprovalListener] = []

    def add_listener(self, callback: ApprovalListener) -> None:
        """Register a callback invoked after every enqueue and decision."""
        self._listeners.append(callback)

    def _notify(self, item: ApprovalItem) -> None:
        for listener in self._listeners:
            listener(item)

    # ==================== Mutations ====================

    def enqueue(
        self,
        batch_id: str,
        item_id: str,
        confidence: float,
        transaction_id: Optional[str] = None,
    ) -> ApprovalItem:
        """Add a matched item to the queue.

        Items whose confidence meets ``confidence_threshold`` are
        auto-approved on entry.

        Args:
            batch_id: Owning batch.
            item_id: Unique item identifier.
            confidence: Match confidence in [0, 1].
            transaction_id: Matched transaction, if known.

        Returns:
            The stored ApprovalItem.

        Raises:
            InvalidInputError: If confidence is out of range or item_id exists.
        """
        if not 0.0 <= confidence <= 1.0:
            raise InvalidInputError(
                f"Confidence must be within [0, 1], got {confidence}",
                field="confidence",
                value=confidence,
            )

        # Lock order: queue before item.
        with self._locks.hold(f"queue:{batch_id}"), self._locks.hold(f"item:{item_id}"):
            if self._repository.get_approval_item(item_id) is not None:
                raise InvalidInputError(
                    f"Approval item already exists: {item_id}",
                    field="item_id",
                    value=item_id,
                )

            now = self._clock()
            auto = confidence >= self.config.confidence_threshold
            item = ApprovalItem(
                item_id=item_id,
                batch_id=batch_id,
                transaction_id=transaction_id,
                confidence=confidence,
                decision=ApprovalDecision.AUTO_APPROVED if auto else ApprovalDecision.PENDING,
                decided_by="system" if auto else None,
                decided_at=now if auto else None,
                reason="Confidence at or above auto-approval threshold" if auto else None,
                sequence=len(self._repository.list_approval_items(batch_id=batch_id)),
                created_at=now,
            )
            self._repository.put_approval_item(item)

        self._audit.record(
            actor="system",
            action=AuditAction.APPROVAL_ENQUEUED,
            entity_type="approval_item",
            entity_id=item_id,
            batch_id=batch_id,
            details={"confidence": confidence, "decision": item.decision.value},
        )
        logger.info(
            "approval_item_enqueued",
            item_id=item_id,
            batch_id=batch_id,
            confidence=confidence,
            decision=item.decision.value,
        )
        self._notify(item)
        return item

    def decide(
        self,
        item_id: str,
        decision: Union[ApprovalDecision, str],
        decided_by: str,
        reason: Optional[str] = None,
    ) -> ApprovalItem:
        """Record a human decision for a pending item.

        Args:
            item_id: Item to decide.
            decision: ``approved`` or ``rejected``.
            decided_by: User making the decision.
            reason: Optional justification.

        Returns:
            The decided ApprovalItem.

        Raises:
            InvalidInputError: If decision is not approved or rejected.
            NotFoundError: If the item does not exist.
            AlreadyDecidedError: If the item is no longer pending.
        """
        decision = self._manual_decision(decision)

        with self._locks.hold(f"item:{item_id}"):
            item = self.get(item_id)
            if not item.is_pending:
                raise AlreadyDecidedError(
                    f"Approval item {item_id} was already {item.decision.value}",
                    item_id=item_id,
                    decision=item.decision.value,
                )

            item.decision = decision
            item.decided_by = decided_by
            item.decided_at = self._clock()
            item.reason = reason
            self._repository.put_approval_item(item)

        self._audit.record(
            actor=decided_by,
            action=AuditAction.APPROVAL_DECIDED,
            entity_type="approval_item",
            entity_id=item_id,
            batch_id=item.batch_id,
            details={"decision": decision.value, "reason": reason},
        )
        logger.info(
            "approval_item_decided",
            item_id=item_id,
            batch_id=item.batch_id,
            decision=decision.value,
            decided_by=decided_by,
        )
        self._notify(item)
        return item

    def decide_many(
        self,
        item_ids: Iterable[str],
        decision: Union[ApprovalDecision, str],
        decided_by: str,
        reason: Optional[str] = None,
    ) -> BulkDecisionResult:
        """Decide several items, collecting a per-item outcome.

        One item failing does not stop the others. An invalid decision value
        is rejected up front since it would fail every item.
        """
        decision = self._manual_decision(decision)
        result = BulkDecisionResult(decision=decision)

        for item_id in item_ids:
            try:
                self.decide(item_id, decision, decided_by, reason)
                result.outcomes.append(BulkDecisionOutcome(item_id=item_id, success=True))
            except CashClearingError as e:
                result.outcomes.append(BulkDecisionOutcome(
                    item_id=item_id,
                    success=False,
                    error_code=e.error_code,
                    message=e.message,
                ))

        logger.info(
            "bulk_decision_completed",
            decision=decision.value,
            succeeded=result.succeeded,
            failed=result.failed,
        )
        return result

    @staticmethod
    def _manual_decision(decision: Union[ApprovalDecision, str]) -> ApprovalDecision:
        try:
            parsed = ApprovalDecision(decision)
        except ValueError:
            parsed = None
        if parsed not in MANUAL_DECISIONS:
            raise InvalidInputError(
                "Decision must be 'approved' or 'rejected'",
                field="decision",
                value=getattr(decision, "value", decision),
            )
        return parsed

    # ==================== Queries ====================

    def get(self, item_id: str) -> ApprovalItem:
        """Get an approval item by ID.

        Raises:
            NotFoundError: If the item does not exist.
        """
        item = self._repository.get_approval_item(item_id)
        if item is None:
            raise NotFoundError(
                f"Approval item not found: {item_id}",
                entity_type="approval_item",
                entity_id=item_id,
            )
        return item

    def list_items(
        self,
        batch_id: str,
        decision: Optional[ApprovalDecision] = None,
    ) -> list[ApprovalItem]:
        """List a batch's items in insertion order."""
        return self._repository.list_approval_items(batch_id=batch_id, decision=decision)

    def counts_for(self, batch_id: str) -> ApprovalCounts:
        """Aggregate decision counts for a batch."""
        counts = ApprovalCounts()
        for item in self._repository.list_approval_items(batch_id=batch_id):
            if item.decision == ApprovalDecision.PENDING:
                counts.pending += 1
            elif item.decision == ApprovalDecision.APPROVED:
                counts.approved += 1
            elif item.decision == ApprovalDecision.REJECTED:
                counts.rejected += 1
            else:
                counts.auto_approved += 1
        return counts

    def next_pending(self, batch_id: str) -> Optional[ApprovalItem]:
        """Oldest pending item of a batch, or None when nothing is pending."""
        pending = self._repository.list_approval_items(
            batch_id=batch_id, decision=ApprovalDecision.PENDING
        )
        return pending[0] if pending else None
