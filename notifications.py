"""
Email notifications for signups, cancellations and operator alerts.

The coordinator builds Notification objects and hands them to a
NotificationDispatcher. Dispatch is fire-and-forget relative to the store
mutation: callers catch and log dispatch failures.
"""
import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from flask_mail import Mail, Message
from markupsafe import escape

from models import ResourceType, Role

logger = logging.getLogger(__name__)

mail = Mail()

PACIFIC_TZ = ZoneInfo("America/Los_Angeles")
HEADER_COLOR = "#2c5282"
ALERT_COLOR = "#c53030"


@dataclass
class Notification:
    to: List[str]
    subject: str
    html_body: str
    from_display_name: str
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    reply_to: Optional[str] = None


class NotificationDispatcher:
    """Sends a Notification; raises on delivery failure."""

    def send(self, notification: Notification) -> None:
        raise NotImplementedError


class MailDispatcher(NotificationDispatcher):
    """Delivers through Flask-Mail using the app's SMTP settings."""

    def __init__(self, mail_ext, from_address):
        self.mail = mail_ext
        self.from_address = from_address

    def send(self, notification):
        msg = Message(
            notification.subject,
            recipients=notification.to,
            cc=notification.cc or None,
            bcc=notification.bcc or None,
            reply_to=notification.reply_to,
            html=notification.html_body,
            sender=(notification.from_display_name, self.from_address),
        )
        self.mail.send(msg)
        logger.info(f"Email sent: {notification.subject!r} to {', '.join(notification.to)}")


class NullDispatcher(NotificationDispatcher):
    """Logs notifications instead of sending them (mail not configured)."""

    def send(self, notification):
        logger.info(f"Email suppressed: {notification.subject!r} to {', '.join(notification.to)}")


# ==========================
# ROUTING
# ==========================

def _same_address(a, b):
    return bool(a) and bool(b) and a.strip().lower() == b.strip().lower()


def _domain(address):
    return address.strip().lower().rpartition("@")[2]


def route_recipients(resource_type, signer_email, operator_email, coordinator_email=None):
    """Return (cc, bcc) for a confirmation or cancellation email.

    Food distribution copies the coordinator (unless they signed up) and
    blind-copies the operator (unless the signer is on the operator's
    domain). Liturgists and greeters copy the operator unless the operator
    is the signer.
    """
    cc, bcc = [], []
    if resource_type is ResourceType.FOOD:
        if coordinator_email and not _same_address(coordinator_email, signer_email):
            cc.append(coordinator_email)
        if operator_email and _domain(signer_email) != _domain(operator_email):
            bcc.append(operator_email)
    elif operator_email and not _same_address(operator_email, signer_email):
        cc.append(operator_email)
    return cc, bcc


def role_label(resource_type, role):
    parsed = Role.parse(role)
    if parsed is not None:
        return parsed.label
    if resource_type is ResourceType.FOOD:
        return "Food Distribution Volunteer"
    return resource_type.service_name


def first_name(name):
    return (name or "").split(" ")[0] or name or "Unknown"


def format_date_for_subject(display_date):
    """Some old records stored an ISO timestamp as the display date."""
    if display_date and "T" in display_date and display_date.endswith("Z"):
        try:
            parsed = datetime.fromisoformat(display_date.replace("Z", "+00:00"))
            return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"
        except ValueError:
            logger.warning(f"Failed to parse display date {display_date!r}")
    return display_date


# ==========================
# CONTENT
# ==========================

def _page(title, header_color, rows, intro, footer):
    row_html = "".join(
        f'<tr><td style="padding:6px 12px;color:#4a5568;font-weight:600">{escape(label)}</td>'
        f'<td style="padding:6px 12px">{escape(value)}</td></tr>'
        for label, value in rows if value
    )
    return f"""<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; background:#f5f5f5; margin:0; padding:0;">
  <div style="max-width:600px; margin:20px auto; background:#ffffff; border-radius:8px; overflow:hidden;">
    <div style="background:{header_color}; color:white; padding:32px 30px; text-align:center;">
      <h1 style="margin:0; font-size:22px;">{escape(title)}</h1>
    </div>
    <div style="padding:30px;">
      <p>{intro}</p>
      <table style="border-left:4px solid {header_color}; background:#f8f9fa; width:100%;">{row_html}</table>
      <p style="color:#718096; font-size:13px; margin-top:24px;">{footer}</p>
    </div>
  </div>
</body>
</html>"""


def build_signup_notification(resource_type, record, operator_email, coordinator_email=None):
    label = role_label(resource_type, record.role)
    display_date = format_date_for_subject(record.display_date)
    cc, bcc = route_recipients(resource_type, record.email, operator_email, coordinator_email)
    html = _page(
        f"{label} Sign-up Confirmed",
        HEADER_COLOR,
        [
            ("Name", record.name),
            ("Role", label),
            ("Date", display_date),
            ("Email", record.email),
            ("Phone", record.phone),
            ("Notes", record.notes),
        ],
        f"Thank you, {escape(first_name(record.name))}! You're signed up to serve.",
        f"To cancel, use the {escape(resource_type.service_name)} signup page. Reference: {escape(record.record_id)}",
    )
    return Notification(
        to=[record.email],
        cc=cc,
        bcc=bcc,
        reply_to=operator_email,
        subject=f"{label} Sign-up Confirmed: {first_name(record.name)} | {display_date}",
        html_body=html,
        from_display_name=resource_type.sender_name,
    )


def build_cancellation_notification(resource_type, record, operator_email, coordinator_email=None):
    label = role_label(resource_type, record.role)
    display_date = format_date_for_subject(record.display_date)
    cc, bcc = route_recipients(resource_type, record.email, operator_email, coordinator_email)
    html = _page(
        f"{label} Sign-up Cancelled",
        HEADER_COLOR,
        [("Name", record.name), ("Role", label), ("Date", display_date)],
        f"{escape(first_name(record.name))}, your signup has been cancelled. Thank you for letting us know.",
        "You can sign up for another date at any time.",
    )
    return Notification(
        to=[record.email],
        cc=cc,
        bcc=bcc,
        reply_to=operator_email,
        subject=f"{label} Sign-up Cancelled: {first_name(record.name)} | {display_date}",
        html_body=html,
        from_display_name=resource_type.sender_name,
    )


def build_error_notification(resource_type, error_type, error, operator_email,
                             user_name=None, user_email=None, service_date=None, stack_trace=None):
    """Operator report for a failed store call or an unexpected server error."""
    if stack_trace is None and isinstance(error, BaseException) and error.__traceback__ is not None:
        stack_trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    service_name = resource_type.service_name if resource_type else "Signup"
    timestamp = datetime.now(PACIFIC_TZ).strftime("%m/%d/%Y %I:%M %p") + " PT"
    html = _page(
        "System Error Alert",
        ALERT_COLOR,
        [
            ("Error Type", error_type),
            ("Error Message", str(error)),
            ("Service Type", service_name),
            ("User Name", user_name),
            ("User Email", user_email),
            ("Service Date", service_date),
            ("Timestamp", timestamp),
        ],
        "An error occurred in the UUMC signup system.",
        f"<pre>{escape(stack_trace)}</pre>" if stack_trace else "Automated error notification.",
    )
    return Notification(
        to=[operator_email],
        subject=f"ERROR: {service_name} {error_type}",
        html_body=html,
        from_display_name=resource_type.sender_name if resource_type else "UUMC System",
    )


def build_gap_alert(resource_type, service_date, cancelled_role, gaps, operator_email):
    """Critical alert: a volunteer sequence has a hole after backfill."""
    html = _page(
        "CRITICAL: Volunteer Sequence Gap",
        ALERT_COLOR,
        [
            ("Service Type", resource_type.service_name),
            ("Service Date", service_date),
            ("Cancelled Role", cancelled_role or "n/a"),
            ("Gaps", ", ".join(f"{present} without {missing}" for present, missing in gaps)),
        ],
        "Volunteers were not renumbered cleanly after a cancellation. No automatic repair was attempted.",
        "Please fix the roles in the signup table by hand.",
    )
    return Notification(
        to=[operator_email],
        subject=f"CRITICAL: {resource_type.service_name} volunteer gap on {service_date}",
        html_body=html,
        from_display_name=resource_type.sender_name,
    )


def build_day_of_reminder(resource_type, record, operator_email):
    label = role_label(resource_type, record.role)
    html = _page(
        "You're serving today",
        HEADER_COLOR,
        [("Role", label), ("Date", format_date_for_subject(record.display_date)), ("Notes", record.notes)],
        f"Good morning, {escape(first_name(record.name))}! A quick reminder that you're scheduled today.",
        "Thanks for stepping up to serve!",
    )
    return Notification(
        to=[record.email],
        reply_to=operator_email,
        subject=f"Reminder: {label} today | {format_date_for_subject(record.display_date)}",
        html_body=html,
        from_display_name=resource_type.sender_name,
    )


def send_quietly(dispatcher, notification) -> bool:
    """Send and swallow failures; a lost email never undoes a committed signup."""
    try:
        dispatcher.send(notification)
        return True
    except Exception as e:
        logger.error(f"Failed to send email {notification.subject!r}: {e}")
        return False
