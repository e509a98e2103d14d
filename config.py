import os


def _csv(value):
    return [item.strip() for item in (value or "").split(",") if item.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "change-this-in-production")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Database configuration (used by the SQL signup store when Airtable is not configured)
    # Use DATABASE_URL if provided (Heroku), otherwise a local SQLite file
    if os.getenv('DATABASE_URL'):
        raw_url = os.environ.get("DATABASE_URL")
        # Heroku may provide postgres://; SQLAlchemy expects postgresql+psycopg2://
        if raw_url.startswith("postgres://"):
            raw_url = raw_url.replace("postgres://", "postgresql+psycopg2://", 1)
        elif raw_url.startswith("postgresql://"):
            raw_url = raw_url.replace("postgresql://", "postgresql+psycopg2://", 1)
        SQLALCHEMY_DATABASE_URI = raw_url
    else:
        basedir = os.path.abspath(os.path.dirname(__file__))
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{os.path.join(basedir, 'instance', 'volunteer_signups.sqlite3')}"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Airtable signup store. When both values are set the app talks to Airtable,
    # otherwise signups are kept in the SQL database above.
    AIRTABLE_PAT = os.environ.get("AIRTABLE_PAT") or os.environ.get("AIRTABLE_PAT_TOKEN")
    AIRTABLE_BASE_ID = os.environ.get("AIRTABLE_BASE_ID")
    AIRTABLE_API_URL = os.environ.get("AIRTABLE_API_URL", "https://api.airtable.com/v0")
    AIRTABLE_TIMEOUT = float(os.environ.get("AIRTABLE_TIMEOUT", "10"))
    AIRTABLE_LITURGISTS_TABLE = os.environ.get("AIRTABLE_LITURGISTS_TABLE", "Liturgists")
    AIRTABLE_GREETERS_TABLE = os.environ.get("AIRTABLE_GREETERS_TABLE", "Greeters")
    AIRTABLE_FOOD_TABLE = os.environ.get("AIRTABLE_FOOD_TABLE", "Food Distribution")

    # Email configuration (Zoho SMTP relay)
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "smtp.zoho.com")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", 465))
    MAIL_USE_TLS = os.environ.get("MAIL_USE_TLS", "False").lower() == "true"
    MAIL_USE_SSL = os.environ.get("MAIL_USE_SSL", "True").lower() == "true"
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_FROM_ADDRESS = os.environ.get("MAIL_FROM_ADDRESS", "alerts@samuelholley.com")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", MAIL_FROM_ADDRESS)
    MAIL_SUPPRESS_SEND = os.environ.get("MAIL_SUPPRESS_SEND", "False").lower() == "true"

    # Notification routing
    # The operator receives error reports and is copied on liturgist/greeter signups.
    OPERATOR_EMAIL = os.environ.get("OPERATOR_EMAIL", "sam@samuelholley.com")
    FOOD_COORDINATOR_EMAIL = os.environ.get("FOOD_COORDINATOR_EMAIL", "")

    # Slot calendar
    SLOT_CACHE_TTL = int(os.environ.get("SLOT_CACHE_TTL", 60 * 60))  # 1 hour
    DEFAULT_PERIOD = os.environ.get("DEFAULT_PERIOD", "Q4-2025")
    FOOD_DISTRIBUTION_DATES = _csv(
        os.environ.get("FOOD_DISTRIBUTION_DATES", "2025-12-06,2025-12-13,2025-12-20,2025-12-27")
    )
    # Resource types scanned by the busy-volunteer check
    BUSY_CHECK_RESOURCE_TYPES = _csv(os.environ.get("BUSY_CHECK_RESOURCE_TYPES", "greeters,food"))

    # Scheduler configuration (worker.py)
    REMINDER_HOUR = int(os.environ.get("REMINDER_HOUR", 6))
    AUDIT_HOUR = int(os.environ.get("AUDIT_HOUR", 2))
