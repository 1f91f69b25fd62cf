"""
Recipient roster reconciliation
Rows are keyed by (entity_type, entity_id); write_access and view_only are payload
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...directory import StaffUser
from ...exceptions import ValidationError
from ...models import Actor, CalendarEvent, CalendarEventRecipient
from .constants import ROSTER_ENTITY_TYPES

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no", ""}


@dataclass(frozen=True)
class RosterEntry:
    entity_type: str
    entity_id: int
    write_access: bool = False
    view_only: bool = False

    @property
    def identity(self) -> tuple[str, int]:
        return (self.entity_type, self.entity_id)

    @classmethod
    def from_row(cls, row: CalendarEventRecipient) -> "RosterEntry":
        return cls(
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            write_access=bool(row.write_access),
            view_only=bool(row.view_only),
        )


@dataclass
class RosterDiff:
    to_create: list[RosterEntry] = field(default_factory=list)
    to_update: list[RosterEntry] = field(default_factory=list)
    to_delete: list[RosterEntry] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_update or self.to_delete)


def _by_identity(entries: Iterable[RosterEntry]) -> dict[tuple[str, int], RosterEntry]:
    # Later duplicates replace earlier ones
    keyed: dict[tuple[str, int], RosterEntry] = {}
    for entry in entries:
        keyed[entry.identity] = entry
    return keyed


def diff_roster(current: Iterable[RosterEntry], desired: Iterable[RosterEntry]) -> RosterDiff:
    """
    Set algebra over roster identities:
    desired - current are created, desired & current are updated in place,
    current - desired are soft deleted
    """
    current_by_id = _by_identity(current)
    desired_by_id = _by_identity(desired)

    diff = RosterDiff()
    for identity, entry in desired_by_id.items():
        if identity in current_by_id:
            diff.to_update.append(entry)
        else:
            diff.to_create.append(entry)
    for identity, entry in current_by_id.items():
        if identity not in desired_by_id:
            diff.to_delete.append(entry)
    return diff


def apply_roster(
    db: Session, event: CalendarEvent, desired: Iterable[RosterEntry], actor: Optional[Actor]
) -> RosterDiff:
    """Stage the roster diff on the session, the caller owns the commit"""
    rows = {row.identity: row for row in event.active_recipients}
    diff = diff_roster((RosterEntry.from_row(row) for row in rows.values()), desired)

    for entry in diff.to_create:
        row = CalendarEventRecipient(
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            write_access=entry.write_access,
            view_only=entry.view_only,
        )
        event.recipients.append(row)
        db.add(row)

    for entry in diff.to_update:
        row = rows[entry.identity]
        if row.write_access != entry.write_access:
            row.write_access = entry.write_access
        if row.view_only != entry.view_only:
            row.view_only = entry.view_only

    for entry in diff.to_delete:
        rows[entry.identity].soft_delete(actor)

    if diff.to_create or diff.to_delete:
        logger.info(
            f"👥 Calendar event {event.id} roster: +{len(diff.to_create)} "
            f"~{len(diff.to_update)} -{len(diff.to_delete)}"
        )
    return diff


def _parse_flag(value: str, segment: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValidationError(f"Invalid access flag in recipient entry: {segment}")


def parse_roster_string(value: Optional[str]) -> list[RosterEntry]:
    """Parse the form payload "USER-5-true-false|DEPARTMENT-2-false-false" into entries"""
    entries: list[RosterEntry] = []
    if not value:
        return entries

    for segment in value.split("|"):
        segment = segment.strip()
        if not segment:
            continue
        parts = segment.split("-")
        if len(parts) < 2 or len(parts) > 4:
            raise ValidationError(f"Invalid recipient entry: {segment}")

        entity_type = parts[0].strip().upper()
        if entity_type not in ROSTER_ENTITY_TYPES:
            raise ValidationError(f"Invalid recipient type: {entity_type}")
        try:
            entity_id = int(parts[1])
        except ValueError:
            raise ValidationError(f"Invalid recipient id in entry: {segment}")

        write_access = _parse_flag(parts[2], segment) if len(parts) > 2 else False
        view_only = _parse_flag(parts[3], segment) if len(parts) > 3 else False
        entries.append(RosterEntry(entity_type, entity_id, write_access, view_only))
    return entries


def format_roster_string(entries: Iterable[RosterEntry]) -> str:
    return "|".join(
        f"{e.entity_type}-{e.entity_id}-{str(e.write_access).lower()}-{str(e.view_only).lower()}"
        for e in entries
    )


def group_roster(entries: Iterable[RosterEntry], creator_id: Optional[int]) -> dict[str, list[RosterEntry]]:
    """Split into involved and view-only groups, creator first, then write access holders"""
    involved = []
    view_only = []
    for entry in entries:
        (view_only if entry.view_only else involved).append(entry)

    def sort_key(entry: RosterEntry):
        is_creator = entry.entity_type == "USER" and entry.entity_id == creator_id
        return (not is_creator, not entry.write_access)

    return {
        "involved": sorted(involved, key=sort_key),
        "view_only": sorted(view_only, key=sort_key),
    }


def user_has_write_access(
    event: CalendarEvent, user: Optional[StaffUser], roster: Optional[Iterable[RosterEntry]] = None
) -> bool:
    """Parent admins always; otherwise a non-view-only USER or DEPARTMENT grant with write access"""
    if user is None:
        return False
    if user.is_parent_admin:
        return True

    if roster is None:
        roster = [RosterEntry.from_row(row) for row in event.active_recipients]

    for entry in roster:
        if entry.view_only or not entry.write_access:
            continue
        if entry.entity_type == "USER" and entry.entity_id == user.id:
            return True
        if entry.entity_type == "DEPARTMENT" and entry.entity_id in user.department_ids:
            return True
    return False


def involved_user_ids(
    entries: Iterable[RosterEntry], directory, organization_id: Optional[int] = None
) -> list[int]:
    """Staff user ids behind the non-view-only entries, departments expanded to members, first seen order"""
    seen: dict[int, None] = {}
    for entry in entries:
        if entry.view_only:
            continue
        if entry.entity_type == "USER":
            seen.setdefault(entry.entity_id, None)
        elif entry.entity_type == "DEPARTMENT":
            for member_id in directory.resolve_department_members(entry.entity_id, organization_id):
                seen.setdefault(member_id, None)
    return list(seen)
