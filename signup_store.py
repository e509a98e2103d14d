"""
Signup store adapters.

The coordinator only relies on the SignupStore contract: create, list,
find, update and delete of flat field bags per resource type. Production
talks to Airtable over its REST API; local development and tests use a
SQL table through Flask-SQLAlchemy.
"""
import logging
from datetime import datetime
from urllib.parse import quote

import requests
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import SQLAlchemyError

from models import (
    ATTENDANCE_STATUS,
    DISPLAY_DATE,
    EMAIL,
    NAME,
    NOTES,
    PHONE,
    ROLE,
    SERVICE_DATE,
    SUBMITTED_AT,
    ResourceType,
    SignupRecord,
)

logger = logging.getLogger(__name__)

db = SQLAlchemy()


class StoreError(Exception):
    """A create/list/find/update/delete call against the store failed."""


class RecordNotFound(StoreError):
    """The requested record does not exist (or no longer exists)."""


class SignupStore:
    """Contract for the external signup store."""

    def create(self, resource_type: ResourceType, fields: dict) -> str:
        raise NotImplementedError

    def list(self, resource_type: ResourceType):
        """Full scan of a resource type's records."""
        raise NotImplementedError

    def find(self, resource_type: ResourceType, record_id: str) -> SignupRecord:
        raise NotImplementedError

    def update(self, resource_type: ResourceType, record_id: str, fields: dict) -> None:
        raise NotImplementedError

    def delete(self, resource_type: ResourceType, record_id: str) -> None:
        raise NotImplementedError


# ==========================
# SQL BACKEND
# ==========================

class Signup(db.Model):
    """A signup row; `resource_type` plays the part of the Airtable table."""
    __tablename__ = "signups"

    id = db.Column(db.Integer, primary_key=True)
    resource_type = db.Column(db.String(20), nullable=False, index=True)
    service_date = db.Column(db.String(64), nullable=False, index=True)  # ISO date, or a legacy display string
    display_date = db.Column(db.String(120), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(40), nullable=True)
    role = db.Column(db.String(40), nullable=False)
    attendance_status = db.Column(db.String(20), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    submitted_at = db.Column(db.String(40), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_fields(self):
        return {
            SERVICE_DATE: self.service_date,
            DISPLAY_DATE: self.display_date,
            NAME: self.name,
            EMAIL: self.email,
            PHONE: self.phone,
            ROLE: self.role,
            ATTENDANCE_STATUS: self.attendance_status,
            NOTES: self.notes,
            SUBMITTED_AT: self.submitted_at,
        }

    def to_record(self) -> SignupRecord:
        return SignupRecord.from_fields(self.id, self.to_fields())


FIELD_COLUMNS = {
    SERVICE_DATE: "service_date",
    DISPLAY_DATE: "display_date",
    NAME: "name",
    EMAIL: "email",
    PHONE: "phone",
    ROLE: "role",
    ATTENDANCE_STATUS: "attendance_status",
    NOTES: "notes",
    SUBMITTED_AT: "submitted_at",
}
OPTIONAL_COLUMNS = ("phone", "attendance_status", "notes")


class SqlSignupStore(SignupStore):
    """Signup store backed by the app's SQLAlchemy database. Needs an app context."""

    def _get(self, resource_type, record_id):
        try:
            pk = int(record_id)
        except (TypeError, ValueError):
            raise RecordNotFound(f"No signup {record_id!r}")
        row = db.session.get(Signup, pk)
        if row is None or row.resource_type != resource_type.value:
            raise RecordNotFound(f"No {resource_type.value} signup {record_id!r}")
        return row

    def _apply(self, row, fields):
        for field_name, value in fields.items():
            column = FIELD_COLUMNS.get(field_name)
            if column is None:
                logger.warning(f"Ignoring unknown signup field {field_name!r}")
                continue
            if column in OPTIONAL_COLUMNS:
                value = value or None
            setattr(row, column, value)

    def create(self, resource_type, fields):
        row = Signup(resource_type=resource_type.value)
        self._apply(row, fields)
        try:
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreError(f"Failed to save signup: {e}") from e
        return str(row.id)

    def list(self, resource_type):
        try:
            rows = (
                Signup.query
                .filter_by(resource_type=resource_type.value)
                .order_by(Signup.id.asc())
                .all()
            )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list signups: {e}") from e
        return [row.to_record() for row in rows]

    def find(self, resource_type, record_id):
        try:
            return self._get(resource_type, record_id).to_record()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load signup {record_id}: {e}") from e

    def update(self, resource_type, record_id, fields):
        try:
            row = self._get(resource_type, record_id)
            self._apply(row, fields)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreError(f"Failed to update signup {record_id}: {e}") from e

    def delete(self, resource_type, record_id):
        try:
            row = self._get(resource_type, record_id)
            db.session.delete(row)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreError(f"Failed to delete signup {record_id}: {e}") from e


# ==========================
# AIRTABLE BACKEND
# ==========================

class AirtableSignupStore(SignupStore):
    """Signup store talking to the Airtable REST API, one table per resource type."""

    PAGE_SIZE = 100

    def __init__(self, token, base_id, tables, api_url="https://api.airtable.com/v0",
                 timeout=10.0, session=None):
        self.base_id = base_id
        self.tables = tables
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        })

    def _url(self, resource_type, record_id=None):
        table = quote(self.tables[resource_type], safe="")
        url = f"{self.api_url}/{self.base_id}/{table}"
        if record_id is not None:
            url += f"/{quote(str(record_id), safe='')}"
        return url

    def _request(self, method, url, **kwargs):
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StoreError(f"Airtable {method} failed: {e}") from e
        if response.status_code == 404:
            raise RecordNotFound(f"Airtable {method} {url}: not found")
        if not response.ok:
            raise StoreError(f"Airtable {method} {url} returned {response.status_code}: {response.text[:200]}")
        return response.json() if response.content else {}

    def create(self, resource_type, fields):
        payload = self._request("POST", self._url(resource_type), json={"fields": fields})
        return payload["id"]

    def list(self, resource_type):
        records = []
        params = {"pageSize": self.PAGE_SIZE}
        while True:
            try:
                payload = self._request("GET", self._url(resource_type), params=params)
            except RecordNotFound as e:
                # A missing table is a configuration problem, not a missing record
                raise StoreError(str(e)) from e
            for item in payload.get("records", []):
                records.append(SignupRecord.from_fields(item["id"], item.get("fields", {})))
            offset = payload.get("offset")
            if not offset:
                return records
            params = {"pageSize": self.PAGE_SIZE, "offset": offset}

    def find(self, resource_type, record_id):
        payload = self._request("GET", self._url(resource_type, record_id))
        return SignupRecord.from_fields(payload["id"], payload.get("fields", {}))

    def update(self, resource_type, record_id, fields):
        self._request("PATCH", self._url(resource_type, record_id), json={"fields": fields})

    def delete(self, resource_type, record_id):
        self._request("DELETE", self._url(resource_type, record_id))


def build_store(config) -> SignupStore:
    """Pick the Airtable backend when credentials are configured, SQL otherwise."""
    if config.get("AIRTABLE_PAT") and config.get("AIRTABLE_BASE_ID"):
        tables = {rt: config[rt.table_setting] for rt in ResourceType}
        logger.info(f"Using Airtable signup store (base {config['AIRTABLE_BASE_ID']})")
        return AirtableSignupStore(
            config["AIRTABLE_PAT"],
            config["AIRTABLE_BASE_ID"],
            tables,
            api_url=config.get("AIRTABLE_API_URL", "https://api.airtable.com/v0"),
            timeout=config.get("AIRTABLE_TIMEOUT", 10.0),
        )
    logger.info("Using SQL signup store")
    return SqlSignupStore()
