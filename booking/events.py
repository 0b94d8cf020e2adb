"""Event management with ownership-gated mutations, plus registrations."""
from __future__ import annotations

import logging
from typing import List

from .database import Database
from .errors import EventNotFoundError, NotEventOwnerError
from .models import Event, EventDraft, Identity, Registration

logger = logging.getLogger("booking.events")


class EventService:
    """Domain operations over events and registrations.

    Reads are unrestricted. Updates and deletes load the stored event first and
    only proceed when the caller owns it. Registrations need an authenticated
    caller but no ownership.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def list_events(self) -> List[Event]:
        return self._database.list_events()

    def get_event(self, event_id: int) -> Event:
        event = self._database.get_event(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    def create_event(self, identity: Identity, draft: EventDraft) -> Event:
        event = self._database.create_event(identity.user_id, draft)
        logger.info("User %s created event %s", identity.user_id, event.id)
        return event

    def update_event(self, identity: Identity, event_id: int, draft: EventDraft) -> Event:
        self._require_owner(identity, event_id, action="update")
        updated = self._database.update_event(event_id, draft)
        if updated is None:
            raise EventNotFoundError(event_id)
        logger.info("User %s updated event %s", identity.user_id, event_id)
        return updated

    def delete_event(self, identity: Identity, event_id: int) -> Event:
        event = self._require_owner(identity, event_id, action="delete")
        if not self._database.delete_event(event_id):
            raise EventNotFoundError(event_id)
        logger.info("User %s deleted event %s", identity.user_id, event_id)
        return event

    def register(self, identity: Identity, event_id: int) -> Registration:
        self.get_event(event_id)
        registration = self._database.create_registration(event_id, identity.user_id)
        logger.info("User %s registered for event %s", identity.user_id, event_id)
        return registration

    def cancel_registration(self, identity: Identity, event_id: int) -> bool:
        """Remove the caller's registration; returns ``False`` when none existed."""
        removed = self._database.delete_registration(event_id, identity.user_id)
        if removed:
            logger.info("User %s cancelled registration for event %s", identity.user_id, event_id)
        return removed

    def list_registrations(self) -> List[Registration]:
        return self._database.list_registrations()

    def list_attendees(self, event_id: int) -> List[Registration]:
        self.get_event(event_id)
        return self._database.list_registrations_for_event(event_id)

    def _require_owner(self, identity: Identity, event_id: int, *, action: str) -> Event:
        event = self.get_event(event_id)
        if event.user_id != identity.user_id:
            logger.warning(
                "User %s attempted to %s event %s owned by user %s",
                identity.user_id,
                action,
                event_id,
                event.user_id,
            )
            raise NotEventOwnerError(event_id, identity.user_id)
        return event


__all__ = ["EventService"]
