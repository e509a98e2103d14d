import logging
import os
import re
import time
import traceback
from datetime import date, timedelta

from dotenv import load_dotenv
from flask import Flask, current_app, g, jsonify, make_response, request
from icalendar import Calendar, Event

# Load environment variables from .env file BEFORE importing Config so it can read envs
load_dotenv()

from config import Config
from coordinator import SignupCoordinator
from models import ResourceType
from notifications import MailDispatcher, NullDispatcher, build_error_notification, mail, send_quietly
from service_calendar import parse_period
from signup_store import SqlSignupStore, build_store, db
from slot_cache import SlotCache

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}
ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def create_app(config_object=Config, store=None, dispatcher=None, cache=None, **overrides):
    """Build the signup API.

    Collaborators default to what the config describes; tests pass their own.
    """
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config.update(overrides)

    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite:///"):
        os.makedirs(os.path.dirname(uri[len("sqlite:///"):]) or ".", exist_ok=True)
    db.init_app(app)
    mail.init_app(app)

    if store is None:
        store = build_store(app.config)
    if isinstance(store, SqlSignupStore):
        with app.app_context():
            db.create_all()
    if dispatcher is None:
        if app.config.get("MAIL_USERNAME"):
            dispatcher = MailDispatcher(mail, app.config["MAIL_FROM_ADDRESS"])
        else:
            app.logger.warning("MAIL_USERNAME not set, emails will be logged instead of sent")
            dispatcher = NullDispatcher()
    if cache is None:
        cache = SlotCache(ttl=app.config.get("SLOT_CACHE_TTL", 3600))

    app.extensions["signup_coordinator"] = SignupCoordinator.from_config(app.config, store, cache, dispatcher)

    register_routes(app)
    register_commands(app)
    return app


def _coordinator() -> SignupCoordinator:
    return current_app.extensions["signup_coordinator"]


def _resource_type(token):
    """Parse a resourceType/table parameter; missing means liturgists."""
    return ResourceType.from_token(token, default=ResourceType.LITURGISTS)


def _bad_request(error, message, **extra):
    return jsonify({"ok": False, "error": error, "message": message, **extra}), 400


def _system_error(resource_type, error_type, error, **details):
    """Log an unexpected failure, report it to the operator, and answer 500."""
    stack_trace = traceback.format_exc()
    current_app.logger.error(f"{error_type}: {error}")
    current_app.logger.error(stack_trace)
    coordinator = _coordinator()
    send_quietly(coordinator.dispatcher, build_error_notification(
        resource_type, error_type, error, coordinator.operator_email,
        stack_trace=stack_trace, **details
    ))
    return jsonify({
        "ok": False,
        "error": "SERVER_ERROR",
        "message": "Something went wrong on our end. The administrator has been notified.",
    }), 500


def register_routes(app):

    # Performance monitoring
    @app.before_request
    def before_request():
        g.start_time = time.time()

    @app.after_request
    def after_request(response):
        if hasattr(g, "start_time"):
            response.headers["X-Response-Time"] = f"{time.time() - g.start_time:.3f}s"

        # Slot state changes under other users; never let a browser or proxy reuse it
        for header, value in NO_STORE_HEADERS.items():
            response.headers[header] = value

        # Security headers
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    # ==========================
    # SLOTS
    # ==========================

    def _slots_response(resource_token, period_token, list_key):
        try:
            resource_type = _resource_type(resource_token)
        except ValueError as e:
            return _bad_request("INVALID_RESOURCE_TYPE", str(e))

        coordinator = _coordinator()
        try:
            period, slots, hit = coordinator.slot_view(resource_type, period_token)
        except Exception as e:
            app.logger.error(f"Error building {resource_type.value} slots for {period_token!r}: {e}")
            app.logger.error(traceback.format_exc())
            period = parse_period(coordinator.default_period)
            slots = [slot.to_dict() for slot in coordinator.template(resource_type, period)]
            response = jsonify({
                "ok": True,
                "resourceType": resource_type.value,
                "period": period.token,
                list_key: slots,
                "fallback": True,
            })
            response.headers["X-Cache"] = "MISS"
            return response

        response = jsonify({
            "ok": True,
            "resourceType": resource_type.value,
            "period": period.token,
            list_key: slots,
        })
        response.headers["X-Cache"] = "HIT" if hit else "MISS"
        return response

    @app.route("/slots")
    def slots():
        return _slots_response(request.args.get("resourceType"), request.args.get("period"), "slots")

    @app.route("/services")
    def services():
        """Older pages ask for ?table=&quarter= and read `services`."""
        return _slots_response(request.args.get("table"), request.args.get("quarter"), "services")

    @app.route("/schedule-summary")
    def schedule_summary():
        try:
            resource_type = _resource_type(request.args.get("resourceType"))
        except ValueError as e:
            return _bad_request("INVALID_RESOURCE_TYPE", str(e))
        try:
            summary = _coordinator().schedule_summary(resource_type, request.args.get("period"))
        except Exception as e:
            return _system_error(resource_type, "Schedule Summary Failed", e)
        return jsonify({"ok": True, **summary})

    @app.route("/schedule.ics")
    def schedule_ics():
        """Export a quarter's slots as all-day iCal events."""
        try:
            resource_type = _resource_type(request.args.get("resourceType"))
        except ValueError as e:
            return _bad_request("INVALID_RESOURCE_TYPE", str(e))
        try:
            period, slots = _coordinator().assembled_slots(resource_type, request.args.get("period"))
        except Exception as e:
            return _system_error(resource_type, "Calendar Export Failed", e)

        cal = Calendar()
        cal.add("prodid", "-//UUMC Volunteer Signups//ukiahumc.org//")
        cal.add("version", "2.0")
        cal.add("x-wr-calname", f"UUMC {resource_type.service_name} Schedule - {period.token}")

        for slot in slots:
            day = date.fromisoformat(slot.date)
            lines = []
            for role in slot.roles:
                occupant = slot.role_slots.get(role)
                lines.append(f"{role.label}: {occupant.name if occupant else 'Open'}")
            if slot.notes:
                lines.append("")
                lines.append(slot.notes)

            event = Event()
            event.add("summary", f"{resource_type.service_name} - {slot.display_date}")
            event.add("dtstart", day)
            event.add("dtend", day + timedelta(days=1))
            event.add("description", "\n".join(lines))
            event.add("uid", f"{resource_type.value}-{slot.date}@ukiahumc.org")
            cal.add_component(event)

        response = make_response(cal.to_ical())
        response.headers["Content-Type"] = "text/calendar; charset=utf-8"
        response.headers["Content-Disposition"] = (
            f"attachment; filename=uumc-{resource_type.value}-{period.token}.ics"
        )
        return response

    # ==========================
    # SIGNUPS
    # ==========================

    @app.route("/signup", methods=["POST"])
    def create_signup():
        payload = request.get_json(silent=True)
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            return _bad_request("INVALID_BODY", "JSON object body is required")
        try:
            resource_type = _resource_type(payload.get("resourceType") or request.args.get("resourceType"))
        except ValueError as e:
            return _bad_request("INVALID_RESOURCE_TYPE", str(e))

        try:
            result = _coordinator().create_signup(resource_type, payload)
        except Exception as e:
            return _system_error(
                resource_type, "Signup Failed", e,
                user_name=payload.get("name"), user_email=payload.get("email"),
                service_date=payload.get("displayDate") or payload.get("serviceDate"),
            )
        return jsonify(result.to_dict()), result.status

    @app.route("/signup", methods=["DELETE"])
    def cancel_signup():
        record_id = request.args.get("recordId")
        if not record_id:
            return _bad_request("MISSING_RECORD_ID", "Record ID is required")
        try:
            resource_type = _resource_type(request.args.get("resourceType"))
        except ValueError as e:
            return _bad_request("INVALID_RESOURCE_TYPE", str(e))

        try:
            result = _coordinator().cancel_signup(resource_type, record_id)
        except Exception as e:
            return _system_error(resource_type, "Cancellation Failed", e)
        return jsonify(result.to_dict()), result.status

    @app.route("/busy-volunteers")
    def busy_volunteers():
        raw = request.args.get("date", "")
        try:
            if not ISO_DATE.match(raw):
                raise ValueError(raw)
            service_date = date.fromisoformat(raw).isoformat()
        except ValueError:
            return _bad_request("INVALID_DATE", "Valid date parameter (YYYY-MM-DD) is required")

        try:
            volunteers = _coordinator().busy_volunteers(service_date)
        except Exception as e:
            return _system_error(None, "Busy Volunteer Check Failed", e, service_date=service_date)
        return jsonify({
            "ok": True,
            "date": service_date,
            "busyVolunteers": [volunteer.to_dict() for volunteer in volunteers],
        })

    # ==========================
    # OPERATIONS
    # ==========================

    @app.route("/clear-cache", methods=["GET", "POST"])
    def clear_cache():
        """Drop cached slot views after editing the store by hand."""
        key = request.args.get("key")
        cache = _coordinator().cache
        cache.invalidate(key)
        return jsonify({"ok": True, "cleared": key or "all", "cache": cache.stats()})

    @app.route("/health")
    def health():
        return jsonify({"ok": True, "status": "healthy", "cache": _coordinator().cache.stats()})


def register_commands(app):

    @app.cli.command("init-db")
    def init_db_command():
        """
        Create the signups table for the SQL store.
        Run with: flask --app app.py init-db
        """
        db.create_all()
        print("Database initialized.")

    @app.cli.command("send-reminders")
    def send_reminders_command():
        """Send today's day-of reminders now."""
        sent = _coordinator().send_day_of_reminders()
        print(f"Sent {sent} reminders.")

    @app.cli.command("audit-sequences")
    def audit_sequences_command():
        """Check upcoming food-distribution dates for volunteer gaps."""
        flagged = _coordinator().audit_volunteer_sequences()
        if flagged:
            for service_date, gaps in flagged.items():
                print(f"{service_date}: {gaps}")
        else:
            print("No gaps found.")


app = create_app()


def send_day_of_reminders(run_date: date = None):
    """Send reminder emails to everyone serving on `run_date` (default today)."""
    with app.app_context():
        return _coordinator().send_day_of_reminders(run_date)


def audit_volunteer_sequences():
    with app.app_context():
        return _coordinator().audit_volunteer_sequences()


if __name__ == "__main__":
    app.run(debug=os.environ.get("FLASK_DEBUG", "False").lower() == "true")
