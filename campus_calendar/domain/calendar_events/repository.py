"""Calendar event repository - Database operations for events, rosters and actions"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Query, Session, selectinload

from ...models import Actor, CalendarEvent, CalendarEventAction, CalendarEventRecipient
from .constants import HOLIDAY_TYPE


class CalendarEventRepository:
    """Repository for calendar event database operations. Nothing here commits"""

    @staticmethod
    def _active(db: Session) -> Query:
        return (
            db.query(CalendarEvent)
            .options(selectinload(CalendarEvent.recipients), selectinload(CalendarEvent.actions))
            .filter(CalendarEvent.deleted_at.is_(None))
        )

    @staticmethod
    def _overlapping(query: Query, start: datetime, end: datetime) -> Query:
        """Events whose span intersects [start, end], bounds are naive UTC"""
        return query.filter(CalendarEvent.start_at <= end, CalendarEvent.end_at >= start)

    @staticmethod
    def _excluding(query: Query, exclude_event_id: Optional[int]) -> Query:
        if exclude_event_id:
            query = query.filter(CalendarEvent.id != exclude_event_id)
        return query

    @staticmethod
    def get_event(db: Session, event_id: int, include_deleted: bool = False) -> Optional[CalendarEvent]:
        """Get a calendar event by ID"""
        query = db.query(CalendarEvent).filter(CalendarEvent.id == event_id)
        if not include_deleted:
            query = query.filter(CalendarEvent.deleted_at.is_(None))
        return query.first()

    @staticmethod
    def create_event(db: Session, **event_data) -> CalendarEvent:
        """Add a new event and flush so it has an id"""
        event = CalendarEvent(**event_data)
        db.add(event)
        db.flush()
        return event

    @staticmethod
    def update_event(db: Session, event: CalendarEvent, **updates) -> CalendarEvent:
        """Apply field updates, None values clear the column"""
        for key, value in updates.items():
            if hasattr(event, key):
                setattr(event, key, value)
        db.flush()
        return event

    @staticmethod
    def soft_delete_event(db: Session, event: CalendarEvent, actor: Optional[Actor]) -> None:
        """
        Soft delete the event row. Roster rows stay as they were so cancel notices
        still reach everyone involved; queries drop them with the event
        """
        event.soft_delete(actor)
        db.flush()

    @staticmethod
    def upsert_action(
        db: Session, event: CalendarEvent, data: Optional[dict], actor: Optional[Actor]
    ) -> Optional[CalendarEventAction]:
        """Keep at most one active action row, empty data removes it"""
        active = [a for a in event.actions if a.deleted_at is None]
        current = active[-1] if active else None

        # Stray extras from earlier writers
        for stale in active[:-1]:
            stale.soft_delete(actor)

        if not data:
            if current:
                current.soft_delete(actor)
            return None

        if current:
            if current.data != data:
                current.data = data
            return current

        action = CalendarEventAction(data=data)
        event.actions.append(action)
        db.add(action)
        return action

    @staticmethod
    def events_in_range(
        db: Session,
        parent_organization_id: int,
        start: datetime,
        end: datetime,
        organization_id: Optional[int] = None,
        type_of: Optional[str] = None,
        exclude_event_id: Optional[int] = None,
    ) -> list[CalendarEvent]:
        """Active events of a parent organization in range, organization_id also matches campus-wide events"""
        query = CalendarEventRepository._active(db).filter(
            CalendarEvent.parent_organization_id == parent_organization_id
        )
        if organization_id:
            query = query.filter(
                or_(CalendarEvent.organization_id == organization_id, CalendarEvent.organization_id.is_(None))
            )
        if type_of:
            query = query.filter(CalendarEvent.type_of == type_of)
        query = CalendarEventRepository._excluding(query, exclude_event_id)
        query = CalendarEventRepository._overlapping(query, start, end)
        return query.order_by(CalendarEvent.start_at, CalendarEvent.id).all()

    @staticmethod
    def holiday_events_in_range(
        db: Session, parent_organization_id: int, organization_id: Optional[int], start: datetime, end: datetime
    ) -> list[CalendarEvent]:
        return CalendarEventRepository.events_in_range(
            db, parent_organization_id, start, end, organization_id=organization_id, type_of=HOLIDAY_TYPE
        )

    @staticmethod
    def user_events_in_range(
        db: Session,
        user_id: int,
        start: datetime,
        end: datetime,
        department_ids: Iterable[int] = (),
        exclude_event_id: Optional[int] = None,
        strict: bool = False,
    ) -> list[CalendarEvent]:
        """
        Events a staff user is involved in: a non-view-only USER entry, a non-view-only
        entry for one of their departments, or the assigned appointment user.
        strict=True drops events that only touch the range at its edges
        """
        department_ids = list(department_ids)
        roster_match = [and_(CalendarEventRecipient.entity_type == "USER", CalendarEventRecipient.entity_id == user_id)]
        if department_ids:
            roster_match.append(
                and_(
                    CalendarEventRecipient.entity_type == "DEPARTMENT",
                    CalendarEventRecipient.entity_id.in_(department_ids),
                )
            )

        involved = CalendarEvent.recipients.any(
            and_(
                CalendarEventRecipient.deleted_at.is_(None),
                CalendarEventRecipient.view_only.is_(False),
                or_(*roster_match),
            )
        )
        query = CalendarEventRepository._active(db).filter(or_(involved, CalendarEvent.appt_user_id == user_id))
        query = CalendarEventRepository._excluding(query, exclude_event_id)
        if strict:
            query = query.filter(CalendarEvent.start_at < end, CalendarEvent.end_at > start)
        else:
            query = CalendarEventRepository._overlapping(query, start, end)
        return query.order_by(CalendarEvent.start_at, CalendarEvent.id).all()

    @staticmethod
    def recipient_events_in_range(
        db: Session,
        recipient_type: str,
        recipient_id: int,
        start: datetime,
        end: datetime,
        exclude_event_id: Optional[int] = None,
    ) -> list[CalendarEvent]:
        """Events with the given internal recipient that strictly overlap the range"""
        query = CalendarEventRepository._active(db).filter(
            CalendarEvent.recipient_type == recipient_type,
            CalendarEvent.recipient_id == recipient_id,
            CalendarEvent.start_at < end,
            CalendarEvent.end_at > start,
        )
        query = CalendarEventRepository._excluding(query, exclude_event_id)
        return query.order_by(CalendarEvent.start_at, CalendarEvent.id).all()

    @staticmethod
    def events_needing_completion(
        db: Session, appt_user_id: int, appointment_types: list[str], now: datetime
    ) -> list[CalendarEvent]:
        """Past appointments of a staff user with no status set yet"""
        return (
            CalendarEventRepository._active(db)
            .filter(
                CalendarEvent.appt_user_id == appt_user_id,
                CalendarEvent.type_of.in_(appointment_types),
                CalendarEvent.appointment_status.is_(None),
                CalendarEvent.start_at <= now,
            )
            .order_by(CalendarEvent.start_at)
            .all()
        )
