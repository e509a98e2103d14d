"""
Backfill of the food-distribution volunteer sequence.

When volunteer1 or volunteer2 cancels, the later volunteers move up one
position so the sequence stays gap-free. The store has no multi-record
transactions, so each promotion is an independent role update and a final
verification pass re-reads the date and alerts the operator if a gap is
left. Gaps are reported, never repaired automatically.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from models import ROLE, VOLUNTEER_SEQUENCE, Role
from notifications import build_error_notification, build_gap_alert, send_quietly
from signup_store import StoreError

logger = logging.getLogger(__name__)

HEAD_ROLES = (Role.VOLUNTEER1, Role.VOLUNTEER2)


@dataclass
class PromotionStep:
    source: Role
    target: Role
    record_id: Optional[str] = None
    status: str = "pending"  # pending, promoted, skipped, failed, abandoned
    error: Optional[str] = None


@dataclass
class BackfillResult:
    service_date: str
    cancelled_role: Role
    steps: List[PromotionStep] = field(default_factory=list)
    gaps: list = field(default_factory=list)
    verified: bool = False

    @property
    def gap_detected(self) -> bool:
        return bool(self.gaps)

    @property
    def incomplete(self) -> bool:
        """True when some promotion failed or never ran."""
        return any(step.status in ("failed", "abandoned") for step in self.steps)

    def to_dict(self):
        return {
            "serviceDate": self.service_date,
            "cancelledRole": self.cancelled_role.value,
            "promotions": [
                {"from": s.source.value, "to": s.target.value, "recordId": s.record_id, "status": s.status}
                for s in self.steps
            ],
            "gapDetected": self.gap_detected,
            "verified": self.verified,
        }


def plan_promotions(cancelled_role):
    """Promotion steps for a cancelled role, in execution order.

    Only head positions trigger promotions; volunteer3/volunteer4 are
    already at the tail.
    """
    if cancelled_role not in HEAD_ROLES:
        return []
    start = cancelled_role.volunteer_number
    return [
        PromotionStep(source=Role.volunteer(n + 1), target=Role.volunteer(n))
        for n in range(start, len(VOLUNTEER_SEQUENCE))
    ]


def _records_on(records, service_date):
    return [record for record in records if record.service_date == service_date]


def occupied_positions(records):
    positions = {}
    for record in records:
        role = record.parsed_role
        if role is not None and role.volunteer_number:
            positions.setdefault(role, record)
    return positions


def find_gaps(records):
    """Return (present, missing) pairs where a volunteer sits behind an empty position."""
    positions = occupied_positions(records)
    gaps = []
    for later, earlier in zip(VOLUNTEER_SEQUENCE[1:], VOLUNTEER_SEQUENCE):
        if later in positions and earlier not in positions:
            gaps.append((later.value, earlier.value))
    return gaps


class BackfillEngine:
    """Runs promotions for one cancellation, then verifies the sequence."""

    def __init__(self, store, dispatcher, operator_email):
        self.store = store
        self.dispatcher = dispatcher
        self.operator_email = operator_email

    def should_run(self, cancelled_role) -> bool:
        return cancelled_role in HEAD_ROLES

    def run(self, resource_type, service_date, cancelled_role) -> BackfillResult:
        result = BackfillResult(service_date, cancelled_role, plan_promotions(cancelled_role))
        if not result.steps:
            return result

        logger.info(f"Backfill {resource_type.value} {service_date}: {cancelled_role.value} cancelled")
        try:
            positions = occupied_positions(_records_on(self.store.list(resource_type), service_date))
        except StoreError as e:
            logger.error(f"Backfill could not load {resource_type.value} signups for {service_date}: {e}")
            positions = None
            for step in result.steps:
                step.status = "abandoned"

        if positions is not None:
            self._promote(resource_type, result, positions)
        self.verify(resource_type, result)
        return result

    def _promote(self, resource_type, result, positions):
        for index, step in enumerate(result.steps):
            record = positions.get(step.source)
            if record is None:
                step.status = "skipped"
                continue
            step.record_id = record.record_id
            try:
                self.store.update(resource_type, record.record_id, {ROLE: step.target.value})
            except StoreError as e:
                step.status = "failed"
                step.error = str(e)
                logger.error(f"Backfill promotion {step.source.value}->{step.target.value} failed: {e}")
                send_quietly(self.dispatcher, build_error_notification(
                    resource_type, "Backfill Promotion Failed", e, self.operator_email,
                    user_name=record.name, user_email=record.email, service_date=result.service_date,
                ))
                # Later steps would collide with the record that did not move
                for remaining in result.steps[index + 1:]:
                    remaining.status = "abandoned"
                return
            step.status = "promoted"
            logger.info(f"Promoted {record.name} ({record.record_id}) {step.source.value}->{step.target.value}")

    def verify(self, resource_type, result):
        """Re-read the date and alert the operator on any gap."""
        try:
            records = _records_on(self.store.list(resource_type), result.service_date)
        except StoreError as e:
            logger.critical(f"Backfill verification could not read {result.service_date}: {e}")
            if result.incomplete:
                # Sequence state is unknown; the operator has to check it by hand
                send_quietly(self.dispatcher, build_error_notification(
                    resource_type, "Backfill Verification Failed", e, self.operator_email,
                    service_date=result.service_date,
                ))
            return result
        result.verified = True
        result.gaps = find_gaps(records)
        if result.gaps:
            logger.critical(
                f"Volunteer gap after cancelling {result.cancelled_role.value} on "
                f"{result.service_date} ({resource_type.value}): {result.gaps}"
            )
            send_quietly(self.dispatcher, build_gap_alert(
                resource_type, result.service_date, result.cancelled_role.value,
                result.gaps, self.operator_email,
            ))
        else:
            logger.info(f"Backfill verified: no gaps on {result.service_date}")
        return result
