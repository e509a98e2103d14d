"""
Signup coordination: slot views, signups, cancellations and the
cross-service busy-volunteer check.

Every store or notification failure is caught here and turned into a
result object; nothing escapes to the route handlers as an exception
except genuinely unexpected errors.
"""
import logging
import threading
import zlib
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from werkzeug.datastructures import MultiDict
from wtforms import Form, StringField, TextAreaField
from wtforms.validators import DataRequired, Email, Length, Optional as OptionalField

from backfill import BackfillEngine, find_gaps
from models import (
    BusyVolunteer,
    ResourceType,
    Role,
    SignupRecord,
)
from notifications import (
    build_cancellation_notification,
    build_day_of_reminder,
    build_error_notification,
    build_gap_alert,
    build_signup_notification,
    send_quietly,
)
from service_calendar import generate_slots, parse_period
from signup_store import RecordNotFound, StoreError
from slot_assembler import assemble_slots, summarize_slots
from slot_cache import MISS, cache_key

logger = logging.getLogger(__name__)


class SignupForm(Form):
    serviceDate = StringField("Service Date", validators=[DataRequired(), Length(max=64)])
    displayDate = StringField("Display Date", validators=[DataRequired(), Length(max=120)])
    name = StringField("Name", validators=[DataRequired(), Length(max=120)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    phone = StringField("Phone", validators=[OptionalField(), Length(max=40)])
    role = StringField("Role", validators=[DataRequired(), Length(max=40)])
    attendanceStatus = StringField("Attendance Status", validators=[OptionalField(), Length(max=20)])
    notes = TextAreaField("Notes", validators=[OptionalField(), Length(max=2000)])


@dataclass
class SignupResult:
    ok: bool
    status: int
    record_id: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    occupant: Optional[str] = None
    fields: Optional[dict] = None

    def to_dict(self):
        if self.ok:
            return {"ok": True, "recordId": self.record_id, "message": self.message}
        data = {"ok": False, "error": self.error, "message": self.message}
        if self.occupant:
            data["occupant"] = self.occupant
        if self.fields:
            data["fields"] = self.fields
        return data


@dataclass
class CancelResult:
    ok: bool
    status: int
    error: Optional[str] = None
    message: Optional[str] = None
    already_cancelled: bool = False
    backfill: Optional[object] = None

    def to_dict(self):
        data = {"ok": self.ok, "message": self.message}
        if self.error:
            data["error"] = self.error
        if self.already_cancelled:
            data["alreadyCancelled"] = True
        if self.backfill is not None:
            data["backfill"] = self.backfill.to_dict()
        return data


class SlotLocks:
    """Striped locks keyed by (resource type, date, role).

    Narrows the check-then-write window for concurrent signups handled by
    this process. Other processes are not covered.
    """

    def __init__(self, stripes=64):
        self._locks = [threading.Lock() for _ in range(stripes)]

    def for_slot(self, resource_type, service_date, role):
        parsed = Role.parse(role)
        role_key = parsed.value if parsed else (role or "").strip()
        key = f"{resource_type.value}|{service_date}|{role_key}"
        return self._locks[zlib.crc32(key.encode("utf-8")) % len(self._locks)]


def same_role(a, b) -> bool:
    """Compare roles by their parsed value, falling back to the raw strings."""
    parsed_a, parsed_b = Role.parse(a), Role.parse(b)
    if parsed_a is not None and parsed_b is not None:
        return parsed_a is parsed_b
    return a == b


class SignupCoordinator:
    def __init__(self, store, cache, dispatcher, operator_email, coordinator_email=None,
                 default_period="Q4-2025", food_dates=(), busy_check_types=None, locks=None):
        self.store = store
        self.cache = cache
        self.dispatcher = dispatcher
        self.operator_email = operator_email
        self.coordinator_email = coordinator_email or None
        self.default_period = default_period
        self.food_dates = tuple(food_dates)
        self.busy_check_types = list(busy_check_types or (ResourceType.GREETERS, ResourceType.FOOD))
        self.locks = locks or SlotLocks()
        self.backfill = BackfillEngine(store, dispatcher, operator_email)

    @classmethod
    def from_config(cls, config, store, cache, dispatcher):
        return cls(
            store,
            cache,
            dispatcher,
            operator_email=config["OPERATOR_EMAIL"],
            coordinator_email=config.get("FOOD_COORDINATOR_EMAIL"),
            default_period=config.get("DEFAULT_PERIOD", "Q4-2025"),
            food_dates=config.get("FOOD_DISTRIBUTION_DATES", ()),
            busy_check_types=[ResourceType.from_token(t) for t in config.get("BUSY_CHECK_RESOURCE_TYPES", [])],
        )

    # ==========================
    # READS
    # ==========================

    def template(self, resource_type, period=None):
        """Empty slots for a period; used directly as the fallback view."""
        period = period or parse_period(self.default_period)
        return generate_slots(resource_type, period, self.food_dates)

    def slot_view(self, resource_type, period_token):
        """Return (period, slot dicts, cache_hit) for a resource type and quarter."""
        period = parse_period(period_token, default=self.default_period)
        key = cache_key(resource_type, period)
        cached = self.cache.get(key)
        if cached is not MISS:
            return period, cached, True

        records = self.store.list(resource_type)
        logger.debug(f"Fetched {len(records)} {resource_type.value} signups")
        slots = assemble_slots(self.template(resource_type, period), records)
        data = [slot.to_dict() for slot in slots]
        self.cache.set(key, data)
        return period, data, False

    def schedule_summary(self, resource_type, period_token):
        period = parse_period(period_token, default=self.default_period)
        records = self.store.list(resource_type)
        slots = assemble_slots(self.template(resource_type, period), records)
        summary = summarize_slots(slots)
        summary["period"] = period.token
        summary["resourceType"] = resource_type.value
        return summary

    def assembled_slots(self, resource_type, period_token):
        period = parse_period(period_token, default=self.default_period)
        return period, assemble_slots(self.template(resource_type, period), self.store.list(resource_type))

    def busy_volunteers(self, service_date):
        """People already committed on `service_date`, grouped by email.

        A table that fails to load is skipped, so the answer may be partial.
        """
        by_email = {}
        for resource_type in self.busy_check_types:
            try:
                records = self.store.list(resource_type)
            except StoreError as e:
                logger.error(f"Error fetching {resource_type.value} signups for busy check: {e}")
                continue
            for record in records:
                if record.service_date != service_date or Role.parse(record.role) is Role.ATTENDANCE:
                    continue
                email = (record.email or "").strip().lower()
                if not email or not record.name:
                    continue
                volunteer = by_email.setdefault(email, BusyVolunteer(email, record.name))
                if resource_type.service_name not in volunteer.services:
                    volunteer.services.append(resource_type.service_name)
        return list(by_email.values())

    # ==========================
    # MUTATIONS
    # ==========================

    def invalidate(self, resource_type):
        dropped = self.cache.invalidate_prefix(f"{resource_type.value}-")
        logger.info(f"Invalidated {dropped} cached {resource_type.value} views")

    def _notify_operator(self, resource_type, error_type, error, **details):
        send_quietly(self.dispatcher, build_error_notification(
            resource_type, error_type, error, self.operator_email, **details
        ))

    def create_signup(self, resource_type, payload) -> SignupResult:
        form = SignupForm(MultiDict({k: str(v) for k, v in (payload or {}).items() if v is not None}))
        if not form.validate():
            logger.warning(f"Rejected {resource_type.value} signup, invalid fields: {sorted(form.errors)}")
            return SignupResult(
                ok=False, status=400, error="MISSING_FIELDS",
                message="Missing or invalid required fields",
                fields={name: errors for name, errors in form.errors.items()},
            )

        data = form.data
        service_date = data["serviceDate"].strip()
        role = data["role"].strip()

        with self.locks.for_slot(resource_type, service_date, role):
            try:
                existing = self.store.list(resource_type)
            except StoreError as e:
                logger.error(f"Duplicate pre-check failed for {resource_type.value}: {e}")
                self._notify_operator(resource_type, "Signup Failed", e,
                                      user_name=data["name"], user_email=data["email"],
                                      service_date=data["displayDate"])
                return SignupResult(ok=False, status=500, error="STORE_FAILURE",
                                    message="Failed to submit signup. Please try again later.")

            duplicate = next(
                (r for r in existing if r.service_date == service_date and same_role(r.role, role)),
                None,
            )
            if duplicate is not None:
                logger.warning(
                    f"Duplicate signup blocked: {resource_type.value} {service_date} {role} "
                    f"held by {duplicate.name}, attempted by {data['name']}"
                )
                return SignupResult(
                    ok=False, status=409, error="SLOT_TAKEN", occupant=duplicate.name,
                    message=(f"This role is already taken by {duplicate.name}. "
                             "Please refresh the page to see updated availability."),
                )

            # Attendance status only exists on the liturgist table
            attendance_status = None
            if resource_type is ResourceType.LITURGISTS:
                attendance_status = (data.get("attendanceStatus") or "").strip() or None
            record = SignupRecord(
                record_id="",
                service_date=service_date,
                display_date=data["displayDate"].strip(),
                name=data["name"].strip(),
                email=data["email"].strip(),
                role=role,
                phone=(data.get("phone") or "").strip() or None,
                attendance_status=attendance_status,
                notes=(data.get("notes") or "").strip() or None,
                submitted_at=datetime.now(timezone.utc).isoformat(),
            )

            try:
                record.record_id = self.store.create(resource_type, record.to_fields())
            except StoreError as e:
                logger.error(f"{resource_type.value} signup write failed: {e}")
                self._notify_operator(resource_type, "Signup Failed", e,
                                      user_name=record.name, user_email=record.email,
                                      service_date=record.display_date)
                return SignupResult(ok=False, status=500, error="STORE_FAILURE",
                                    message="Failed to submit signup. Please try again later.")

        logger.info(f"Signup saved: {resource_type.value} {service_date} {role} -> {record.record_id}")
        self.invalidate(resource_type)
        send_quietly(self.dispatcher, build_signup_notification(
            resource_type, record, self.operator_email, self.coordinator_email
        ))
        return SignupResult(ok=True, status=200, record_id=record.record_id,
                            message="Signup submitted successfully!")

    def cancel_signup(self, resource_type, record_id) -> CancelResult:
        try:
            record = self.store.find(resource_type, record_id)
        except RecordNotFound:
            logger.info(f"Cancel of {resource_type.value} {record_id}: already gone")
            return CancelResult(ok=True, status=200, already_cancelled=True,
                                message="Signup was already cancelled")
        except StoreError as e:
            logger.error(f"Could not load {resource_type.value} signup {record_id}: {e}")
            self._notify_operator(resource_type, "Cancellation Failed", e)
            return CancelResult(ok=False, status=500, error="STORE_FAILURE",
                                message="Failed to cancel signup. Please try again later.")

        try:
            self.store.delete(resource_type, record_id)
        except RecordNotFound:
            logger.info(f"Cancel of {resource_type.value} {record_id}: deleted concurrently")
            self.invalidate(resource_type)
            return CancelResult(ok=True, status=200, already_cancelled=True,
                                message="Signup was already cancelled")
        except StoreError as e:
            logger.error(f"{resource_type.value} cancellation of {record_id} failed: {e}")
            self._notify_operator(resource_type, "Cancellation Failed", e,
                                  user_name=record.name, user_email=record.email,
                                  service_date=record.display_date)
            return CancelResult(ok=False, status=500, error="STORE_FAILURE",
                                message="Failed to cancel signup. Please try again later.")

        logger.info(f"Signup cancelled: {resource_type.value} {record.service_date} {record.role} ({record_id})")
        role = Role.parse(record.role)
        backfill = None
        if resource_type is ResourceType.FOOD and self.backfill.should_run(role):
            backfill = self.backfill.run(resource_type, record.service_date, role)
        self.invalidate(resource_type)

        send_quietly(self.dispatcher, build_cancellation_notification(
            resource_type, record, self.operator_email, self.coordinator_email
        ))
        return CancelResult(ok=True, status=200, message="Signup cancelled successfully", backfill=backfill)

    # ==========================
    # SCHEDULED JOBS
    # ==========================

    def send_day_of_reminders(self, run_date=None):
        """Remind everyone serving on `run_date` (default today). Returns emails sent."""
        target = (run_date or date.today()).isoformat()
        sent = 0
        for resource_type in ResourceType:
            try:
                records = self.store.list(resource_type)
            except StoreError as e:
                logger.error(f"Reminder run could not load {resource_type.value} signups: {e}")
                continue
            for record in records:
                if record.service_date != target or Role.parse(record.role) in (None, Role.ATTENDANCE):
                    continue
                if send_quietly(self.dispatcher, build_day_of_reminder(resource_type, record, self.operator_email)):
                    sent += 1
        logger.info(f"Sent {sent} day-of reminders for {target}")
        return sent

    def audit_volunteer_sequences(self, from_date=None):
        """Alert on food-distribution dates whose volunteer sequence has a hole."""
        start = (from_date or date.today()).isoformat()
        records = self.store.list(ResourceType.FOOD)
        by_date = {}
        for record in records:
            if record.service_date >= start:
                by_date.setdefault(record.service_date, []).append(record)

        flagged = {}
        for service_date in sorted(by_date):
            gaps = find_gaps(by_date[service_date])
            if not gaps:
                continue
            flagged[service_date] = gaps
            logger.critical(f"Sequence audit: gap on {service_date}: {gaps}")
            send_quietly(self.dispatcher, build_gap_alert(
                ResourceType.FOOD, service_date, None, gaps, self.operator_email
            ))
        logger.info(f"Sequence audit checked {len(by_date)} dates, {len(flagged)} with gaps")
        return flagged
