"""
Shared fixtures: an in-memory signup store, a recording email dispatcher,
a controllable clock and an app wired to all three.
"""
import dataclasses

import pytest

from app import create_app
from coordinator import SignupCoordinator
from models import (
    DISPLAY_DATE,
    EMAIL,
    NAME,
    ROLE,
    SERVICE_DATE,
    ResourceType,
    SignupRecord,
)
from signup_store import RecordNotFound, SignupStore, StoreError
from slot_cache import SlotCache

OPERATOR = "sam@samuelholley.com"
FOOD_COORDINATOR = "karen.coordinator@ukiahumc.org"
FOOD_DATES = ["2025-12-06", "2025-12-13", "2025-12-20", "2025-12-27"]


class FakeSignupStore(SignupStore):
    """Dict-backed store with switches for injecting failures."""

    def __init__(self):
        self.records = {rt: {} for rt in ResourceType}
        self.calls = []
        self.fail_list = set()
        self.fail_create = False
        self.fail_delete = False
        self.fail_update_ids = set()
        self._next_id = 0

    def add(self, resource_type, service_date, role, name, email=None, display_date=None, **extra):
        fields = {
            SERVICE_DATE: service_date,
            DISPLAY_DATE: display_date or service_date,
            NAME: name,
            EMAIL: email or f"{name.split()[0].lower()}@gmail.com",
            ROLE: role,
        }
        fields.update(extra)
        return self.create(resource_type, fields, record_call=False)

    def create(self, resource_type, fields, record_call=True):
        if record_call:
            self.calls.append(("create", resource_type, fields))
            if self.fail_create:
                raise StoreError("create failed")
        self._next_id += 1
        record_id = f"rec{self._next_id}"
        self.records[resource_type][record_id] = SignupRecord.from_fields(record_id, fields)
        return record_id

    def list(self, resource_type):
        self.calls.append(("list", resource_type))
        if resource_type in self.fail_list:
            raise StoreError(f"{resource_type.value} table unavailable")
        return [dataclasses.replace(r) for r in self.records[resource_type].values()]

    def find(self, resource_type, record_id):
        self.calls.append(("find", resource_type, record_id))
        record = self.records[resource_type].get(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return dataclasses.replace(record)

    def update(self, resource_type, record_id, fields):
        self.calls.append(("update", resource_type, record_id, fields))
        if record_id in self.fail_update_ids:
            raise StoreError(f"update of {record_id} failed")
        record = self.records[resource_type].get(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        merged = record.to_fields()
        merged.update(fields)
        self.records[resource_type][record_id] = SignupRecord.from_fields(record_id, merged)

    def delete(self, resource_type, record_id):
        self.calls.append(("delete", resource_type, record_id))
        if self.fail_delete:
            raise StoreError("delete failed")
        if self.records[resource_type].pop(record_id, None) is None:
            raise RecordNotFound(record_id)

    def roles_on(self, resource_type, service_date):
        """Map of role -> name for one date."""
        return {
            r.role: r.name
            for r in self.records[resource_type].values()
            if r.service_date == service_date
        }

    def mutations(self):
        return [call for call in self.calls if call[0] in ("create", "update", "delete")]


class RecordingDispatcher:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, notification):
        if self.fail:
            raise RuntimeError("SMTP unavailable")
        self.sent.append(notification)

    def subjects(self):
        return [n.subject for n in self.sent]


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def store():
    return FakeSignupStore()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return SlotCache(ttl=3600, clock=clock)


@pytest.fixture
def coordinator(store, cache, dispatcher):
    return SignupCoordinator(
        store,
        cache,
        dispatcher,
        operator_email=OPERATOR,
        coordinator_email=FOOD_COORDINATOR,
        default_period="Q4-2025",
        food_dates=FOOD_DATES,
    )


@pytest.fixture
def app(store, dispatcher, cache):
    app = create_app(
        store=store,
        dispatcher=dispatcher,
        cache=cache,
        TESTING=True,
        SQLALCHEMY_DATABASE_URI="sqlite://",
        OPERATOR_EMAIL=OPERATOR,
        FOOD_COORDINATOR_EMAIL=FOOD_COORDINATOR,
        DEFAULT_PERIOD="Q4-2025",
        FOOD_DISTRIBUTION_DATES=FOOD_DATES,
        BUSY_CHECK_RESOURCE_TYPES=["greeters", "food"],
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()
