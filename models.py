"""
Domain types shared by the calendar, the assembler and the coordinator.

Signup records live in an external store as flat field bags keyed by
human-readable names ("Service Date", "Role", ...). Everything here is a
read projection built fresh for each request.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# Field names used by the signup store
SERVICE_DATE = "Service Date"
DISPLAY_DATE = "Display Date"
NAME = "Name"
EMAIL = "Email"
PHONE = "Phone"
ROLE = "Role"
ATTENDANCE_STATUS = "Attendance Status"
NOTES = "Notes"
SUBMITTED_AT = "Submitted At"


class ResourceType(Enum):
    """A category of service, each backed by its own store table."""

    LITURGISTS = "liturgists"
    GREETERS = "greeters"
    FOOD = "food"

    @classmethod
    def from_token(cls, token, default=None):
        """Parse a request token such as 'food' or the legacy 'Food Distribution'.

        Missing tokens return `default`; unknown tokens raise ValueError.
        """
        if token is None or not str(token).strip():
            if default is None:
                raise ValueError("resource type is required")
            return default
        normalized = str(token).strip().lower()
        alias = _RESOURCE_ALIASES.get(normalized)
        if alias is None:
            raise ValueError(f"Unknown resource type: {token}")
        return alias

    @property
    def service_name(self) -> str:
        return _SERVICE_NAMES[self]

    @property
    def sender_name(self) -> str:
        """From display name for emails about this service."""
        return _SENDER_NAMES[self]

    @property
    def table_setting(self) -> str:
        """Config key holding the external table name."""
        return _TABLE_SETTINGS[self]


_RESOURCE_ALIASES = {
    "liturgists": ResourceType.LITURGISTS,
    "liturgist": ResourceType.LITURGISTS,
    "greeters": ResourceType.GREETERS,
    "greeter": ResourceType.GREETERS,
    "food": ResourceType.FOOD,
    "food distribution": ResourceType.FOOD,
    "food-distribution": ResourceType.FOOD,
}

_SERVICE_NAMES = {
    ResourceType.LITURGISTS: "Liturgist",
    ResourceType.GREETERS: "Greeter",
    ResourceType.FOOD: "Food Distribution",
}

_SENDER_NAMES = {
    ResourceType.LITURGISTS: "UUMC Liturgist Scheduling",
    ResourceType.GREETERS: "UUMC Greeter Scheduling",
    ResourceType.FOOD: "UUMC Food Distribution",
}

_TABLE_SETTINGS = {
    ResourceType.LITURGISTS: "AIRTABLE_LITURGISTS_TABLE",
    ResourceType.GREETERS: "AIRTABLE_GREETERS_TABLE",
    ResourceType.FOOD: "AIRTABLE_FOOD_TABLE",
}


class Role(Enum):
    LITURGIST = "liturgist"
    SECOND_LITURGIST = "liturgist2"
    BACKUP = "backup"
    SECOND_BACKUP = "backup2"
    GREETER1 = "greeter1"
    GREETER2 = "greeter2"
    GREETER3 = "greeter3"
    VOLUNTEER1 = "volunteer1"
    VOLUNTEER2 = "volunteer2"
    VOLUNTEER3 = "volunteer3"
    VOLUNTEER4 = "volunteer4"
    ATTENDANCE = "attendance"

    @classmethod
    def parse(cls, raw) -> Optional["Role"]:
        """Resolve a stored role string, including legacy spellings.

        Case and surrounding whitespace are ignored, so "Liturgist",
        "liturgist" and " LITURGIST " are the same role. Returns None for
        anything unrecognized.
        """
        if raw is None:
            return None
        return _ROLE_ALIASES.get(str(raw).strip().lower())

    @property
    def label(self) -> str:
        return _ROLE_LABELS[self]

    @property
    def volunteer_number(self) -> Optional[int]:
        """Position in the food-distribution sequence, or None."""
        return _VOLUNTEER_NUMBERS.get(self)

    @classmethod
    def volunteer(cls, number: int) -> "Role":
        return VOLUNTEER_SEQUENCE[number - 1]


_ROLE_ALIASES = {role.value: role for role in Role}
_ROLE_ALIASES.update({
    "second liturgist": Role.SECOND_LITURGIST,
    "backup liturgist": Role.BACKUP,
    "second backup": Role.SECOND_BACKUP,
    "second backup liturgist": Role.SECOND_BACKUP,
})

_ROLE_LABELS = {
    Role.LITURGIST: "Liturgist",
    Role.SECOND_LITURGIST: "Second Liturgist",
    Role.BACKUP: "Backup Liturgist",
    Role.SECOND_BACKUP: "Second Backup Liturgist",
    Role.GREETER1: "Greeter",
    Role.GREETER2: "Greeter",
    Role.GREETER3: "Greeter",
    Role.VOLUNTEER1: "Food Distribution Volunteer",
    Role.VOLUNTEER2: "Food Distribution Volunteer",
    Role.VOLUNTEER3: "Food Distribution Volunteer",
    Role.VOLUNTEER4: "Food Distribution Volunteer",
    Role.ATTENDANCE: "Attendance",
}

VOLUNTEER_SEQUENCE = (Role.VOLUNTEER1, Role.VOLUNTEER2, Role.VOLUNTEER3, Role.VOLUNTEER4)
_VOLUNTEER_NUMBERS = {role: index + 1 for index, role in enumerate(VOLUNTEER_SEQUENCE)}

# Role shapes per slot kind
LITURGIST_ROLES = (Role.LITURGIST, Role.BACKUP)
CHRISTMAS_EVE_ROLES = (Role.LITURGIST, Role.SECOND_LITURGIST, Role.BACKUP, Role.SECOND_BACKUP)
GREETER_ROLES = (Role.GREETER1, Role.GREETER2, Role.GREETER3)
FOOD_ROLES = VOLUNTEER_SEQUENCE


@dataclass
class Occupant:
    record_id: str
    name: str
    email: str
    phone: Optional[str] = None

    def to_dict(self):
        return {
            "id": self.record_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "preferredContact": "email",
        }


@dataclass
class SignupRecord:
    """A signup as persisted in the external store."""

    record_id: str
    service_date: str
    display_date: str
    name: str
    email: str
    role: str
    phone: Optional[str] = None
    attendance_status: Optional[str] = None
    notes: Optional[str] = None
    submitted_at: Optional[str] = None

    @classmethod
    def from_fields(cls, record_id, fields):
        return cls(
            record_id=str(record_id),
            service_date=fields.get(SERVICE_DATE) or "",
            display_date=fields.get(DISPLAY_DATE) or "",
            name=fields.get(NAME) or "",
            email=fields.get(EMAIL) or "",
            role=fields.get(ROLE) or "",
            phone=fields.get(PHONE) or None,
            attendance_status=fields.get(ATTENDANCE_STATUS) or None,
            notes=fields.get(NOTES) or None,
            submitted_at=fields.get(SUBMITTED_AT) or None,
        )

    def to_fields(self):
        fields = {
            SERVICE_DATE: self.service_date,
            DISPLAY_DATE: self.display_date,
            NAME: self.name,
            EMAIL: self.email,
            PHONE: self.phone or "",
            ROLE: self.role,
            NOTES: self.notes or "",
            SUBMITTED_AT: self.submitted_at or "",
        }
        if self.attendance_status:
            fields[ATTENDANCE_STATUS] = self.attendance_status
        return fields

    @property
    def parsed_role(self) -> Optional[Role]:
        return Role.parse(self.role)

    def to_occupant(self) -> Occupant:
        return Occupant(self.record_id, self.name, self.email, self.phone)


@dataclass
class ServiceSlot:
    """One assignable date for one resource type."""

    date: str
    display_date: str
    roles: tuple
    notes: Optional[str] = None
    role_slots: dict = field(default_factory=dict)
    attendance: list = field(default_factory=list)

    def __post_init__(self):
        for role in self.roles:
            self.role_slots.setdefault(role, None)

    @property
    def id(self) -> str:
        return self.date

    def accepts(self, role: Role) -> bool:
        return role in self.role_slots

    def filled_roles(self):
        return [role for role in self.roles if self.role_slots.get(role) is not None]

    def open_roles(self):
        return [role for role in self.roles if self.role_slots.get(role) is None]

    def to_dict(self):
        data = {
            "id": self.date,
            "date": self.date,
            "displayDate": self.display_date,
        }
        for role in self.roles:
            occupant = self.role_slots.get(role)
            data[role.value] = occupant.to_dict() if occupant else None
        data["attendance"] = list(self.attendance)
        data["notes"] = self.notes
        return data


@dataclass
class BusyVolunteer:
    email: str
    name: str
    services: list = field(default_factory=list)

    def to_dict(self):
        return {"email": self.email, "name": self.name, "services": list(self.services)}
