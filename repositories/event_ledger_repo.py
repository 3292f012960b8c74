"""Ledger of provider events whose side effects were fully applied."""

from typing import Optional

from sqlmodel import Session

from models.models import ProcessedEvent


class EventLedgerRepository:
    """
    Insert-only store keyed by the provider event id.

    The primary key is what stops two concurrent deliveries of one event from
    both being recorded: the second insert fails with IntegrityError on flush.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, event_id: str) -> Optional[ProcessedEvent]:
        return self.session.get(ProcessedEvent, event_id)

    def is_processed(self, event_id: str) -> bool:
        return self.get(event_id) is not None

    def record(self, event_id: str, event_type: str) -> ProcessedEvent:
        entry = ProcessedEvent(event_id=event_id, event_type=event_type)
        self.session.add(entry)
        self.session.flush()
        return entry
