"""
Directory and holiday lookups consumed by the calendar core
Staff, departments, organizations and recipients live in an outside directory;
only the capability records below cross the boundary
"""

import json
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional, Protocol

import holidays

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaffUser:
    id: int
    first_name: str
    last_name: str
    email: Optional[str] = None
    textable_phone: Optional[str] = None
    timezone: Optional[str] = None
    organization_id: Optional[int] = None
    is_parent_admin: bool = False
    department_ids: tuple[int, ...] = ()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Department:
    id: int
    name: str


@dataclass(frozen=True)
class Organization:
    """A campus"""

    id: int
    name: str
    short_code: Optional[str] = None
    timezone: Optional[str] = None


@dataclass(frozen=True)
class ParentOrganization:
    id: int
    name: str
    timezone: Optional[str] = None


@dataclass(frozen=True)
class Holiday:
    date: date
    name: str


@dataclass(frozen=True)
class Recipient:
    """
    Uniform view of an event recipient, whatever entity backs it.
    entity_type is one of STUDENT, STUDENT_LEAD, USER, DEPARTMENT, EXTERNAL
    """

    entity_type: str
    id: Optional[int]
    first_name: str = ""
    last_name: str = ""
    full_name: str = ""
    email: Optional[str] = None
    textable_phone: Optional[str] = None
    timezone: Optional[str] = None
    internal_id: Optional[str] = None
    label: str = ""
    organization_id: Optional[int] = None
    do_not_text: bool = False

    @property
    def is_external(self) -> bool:
        return self.entity_type == "EXTERNAL"

    @classmethod
    def from_external_snapshot(cls, data: dict[str, Any]) -> "Recipient":
        """Build an EXTERNAL recipient from the snapshot embedded on the event"""
        first_name = (data.get("first_name") or "").strip()
        last_name = (data.get("last_name") or "").strip()
        return cls(
            entity_type="EXTERNAL",
            id=None,
            first_name=first_name,
            last_name=last_name,
            full_name=f"{first_name} {last_name}".strip(),
            email=data.get("email") or None,
            textable_phone=data.get("phone") or None,
            timezone=data.get("time_zone") or None,
            label="External",
        )


class Directory(Protocol):
    def resolve_user(self, user_id: int) -> Optional[StaffUser]: ...

    def resolve_department(self, department_id: int) -> Optional[Department]: ...

    def resolve_department_members(
        self, department_id: int, organization_id: Optional[int] = None
    ) -> list[int]: ...

    def resolve_organization(self, organization_id: int) -> Optional[Organization]: ...

    def resolve_parent_organization(self, parent_organization_id: int) -> Optional[ParentOrganization]: ...

    def resolve_entity(self, entity_type: str, entity_id: int) -> Optional[Recipient]: ...

    def is_do_not_text(self, organization_id: Optional[int], phone: str) -> bool: ...


class HolidayCalendar(Protocol):
    def is_federal_holiday(self, day: date) -> Optional[str]: ...

    def federal_holidays_between(self, start: date, end: date) -> list[Holiday]: ...


class UsFederalHolidayCalendar:
    """US federal holidays from the holidays package"""

    def __init__(self, categories: tuple[str, ...] = ("public",)):
        self.categories = categories
        self._cache: dict[int, holidays.HolidayBase] = {}

    def _year(self, year: int) -> holidays.HolidayBase:
        if year not in self._cache:
            self._cache[year] = holidays.US(years=year, categories=self.categories)
        return self._cache[year]

    def is_federal_holiday(self, day: date) -> Optional[str]:
        return self._year(day.year).get(day)

    def federal_holidays_between(self, start: date, end: date) -> list[Holiday]:
        if end < start:
            return []
        found = []
        for year in range(start.year, end.year + 1):
            for day, name in self._year(year).items():
                if start <= day <= end:
                    found.append(Holiday(date=day, name=name))
        return sorted(found, key=lambda h: h.date)


def resolve_event_recipient(event, directory: Directory) -> Optional[Recipient]:
    """The event's designated recipient, EXTERNAL snapshots resolve without a directory call"""
    if event.external_rcpt_data:
        return Recipient.from_external_snapshot(event.external_rcpt_data)
    if event.recipient_type and event.recipient_id:
        recipient = directory.resolve_entity(event.recipient_type, event.recipient_id)
        if not recipient:
            logger.warning(
                f"⚠️ Recipient {event.recipient_type}-{event.recipient_id} not found for calendar event {event.id}"
            )
        return recipient
    return None


class InMemoryDirectory:
    """
    Directory held in memory, seeded in code or from a JSON file.
    Used for local development and tests; production wires the real directory service
    """

    def __init__(self):
        self.users: dict[int, StaffUser] = {}
        self.departments: dict[int, Department] = {}
        self.department_members: dict[int, list[int]] = {}
        self.organizations: dict[int, Organization] = {}
        self.parent_organizations: dict[int, ParentOrganization] = {}
        self.entities: dict[tuple[str, int], Recipient] = {}
        self.do_not_text: set[tuple[Optional[int], str]] = set()

    def add_user(self, user: StaffUser) -> StaffUser:
        self.users[user.id] = user
        for department_id in user.department_ids:
            members = self.department_members.setdefault(department_id, [])
            if user.id not in members:
                members.append(user.id)
        self.entities[("USER", user.id)] = Recipient(
            entity_type="USER",
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            email=user.email,
            textable_phone=user.textable_phone,
            timezone=user.timezone,
            label="Staff",
            organization_id=user.organization_id,
        )
        return user

    def add_department(self, department: Department) -> Department:
        self.departments[department.id] = department
        self.department_members.setdefault(department.id, [])
        return department

    def add_organization(self, organization: Organization) -> Organization:
        self.organizations[organization.id] = organization
        return organization

    def add_parent_organization(self, parent: ParentOrganization) -> ParentOrganization:
        self.parent_organizations[parent.id] = parent
        return parent

    def add_entity(self, recipient: Recipient) -> Recipient:
        self.entities[(recipient.entity_type, recipient.id)] = recipient
        return recipient

    def block_texts(self, organization_id: Optional[int], phone: str) -> None:
        self.do_not_text.add((organization_id, phone))

    def resolve_user(self, user_id: int) -> Optional[StaffUser]:
        return self.users.get(user_id)

    def resolve_department(self, department_id: int) -> Optional[Department]:
        return self.departments.get(department_id)

    def resolve_department_members(self, department_id: int, organization_id: Optional[int] = None) -> list[int]:
        members = self.department_members.get(department_id, [])
        if organization_id is None:
            return list(members)
        return [
            uid
            for uid in members
            if uid in self.users and self.users[uid].organization_id in (None, organization_id)
        ]

    def resolve_organization(self, organization_id: int) -> Optional[Organization]:
        return self.organizations.get(organization_id)

    def resolve_parent_organization(self, parent_organization_id: int) -> Optional[ParentOrganization]:
        return self.parent_organizations.get(parent_organization_id)

    def resolve_entity(self, entity_type: str, entity_id: int) -> Optional[Recipient]:
        return self.entities.get((entity_type, entity_id))

    def is_do_not_text(self, organization_id: Optional[int], phone: str) -> bool:
        return (organization_id, phone) in self.do_not_text or (None, phone) in self.do_not_text

    @classmethod
    def from_file(cls, path: str) -> "InMemoryDirectory":
        """
        Load {"parent_organizations": [...], "organizations": [...], "departments": [...],
        "users": [...], "recipients": [...]} where each item holds the record's fields
        """
        with open(path) as f:
            data = json.load(f)

        directory = cls()
        for item in data.get("parent_organizations", []):
            directory.add_parent_organization(ParentOrganization(**item))
        for item in data.get("organizations", []):
            directory.add_organization(Organization(**item))
        for item in data.get("departments", []):
            directory.add_department(Department(**item))
        for item in data.get("users", []):
            item = dict(item)
            item["department_ids"] = tuple(item.get("department_ids", ()))
            directory.add_user(StaffUser(**item))
        for item in data.get("recipients", []):
            directory.add_entity(Recipient(**item))
        for item in data.get("do_not_text", []):
            directory.block_texts(item.get("organization_id"), item["phone"])

        logger.info(f"✅ Loaded directory from {path}: {len(directory.users)} users")
        return directory
