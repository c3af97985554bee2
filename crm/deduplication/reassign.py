"""
Registry of records that hang off a contact.

Merging never relies on database cascades: every table holding a contact id
is listed here with the operation that moves its rows to the surviving
contact. A new child table is only handled once it is registered.
"""

from dataclasses import dataclass
from typing import Callable

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from crm.database import (
    Activity,
    Call,
    ContactAssignment,
    ContactTag,
    Conversation,
    Deal,
    Document,
    Message,
    Tag,
    Task,
)

Reassign = Callable[[Session, str, str], int]


def reassign_foreign_key(model, column: str = "contact_id") -> Reassign:
    """Build a reassign operation that rewrites ``model.column``."""
    fk = getattr(model, column)

    def reassign(session: Session, from_contact_id: str, to_contact_id: str) -> int:
        result = session.execute(
            update(model)
            .where(fk == from_contact_id)
            .values({column: to_contact_id})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    return reassign


def union_tags(session: Session, from_contact_id: str, to_contact_id: str) -> int:
    """Move tag assignments, dropping those the target already has."""
    target_tags = select(ContactTag.tag_id).where(ContactTag.contact_id == to_contact_id)

    session.execute(
        delete(ContactTag)
        .where(ContactTag.contact_id == from_contact_id, ContactTag.tag_id.in_(target_tags))
        .execution_options(synchronize_session=False)
    )
    result = session.execute(
        update(ContactTag)
        .where(ContactTag.contact_id == from_contact_id)
        .values(contact_id=to_contact_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def get_or_create_tag(session: Session, tag_name: str) -> Tag:
    tag = session.scalar(select(Tag).where(Tag.name == tag_name))
    if tag is None:
        tag = Tag(name=tag_name)
        session.add(tag)
        session.flush()
    return tag


def ensure_tag(session: Session, contact_id: str, tag_name: str) -> bool:
    """Assign a tag by name, creating the tag if needed. Returns True if added."""
    tag = get_or_create_tag(session, tag_name)

    exists = session.scalar(
        select(ContactTag.tag_id).where(ContactTag.contact_id == contact_id, ContactTag.tag_id == tag.id)
    )
    if exists is not None:
        return False
    session.add(ContactTag(contact_id=contact_id, tag_id=tag.id))
    session.flush()
    return True


@dataclass(frozen=True)
class RelatedRecord:
    name: str
    reassign: Reassign


# Order matters only for logging
RELATED_RECORDS: tuple[RelatedRecord, ...] = (
    RelatedRecord("activity", reassign_foreign_key(Activity)),
    RelatedRecord("task", reassign_foreign_key(Task)),
    RelatedRecord("deal", reassign_foreign_key(Deal)),
    RelatedRecord("document", reassign_foreign_key(Document)),
    RelatedRecord("message", reassign_foreign_key(Message)),
    RelatedRecord("call", reassign_foreign_key(Call)),
    RelatedRecord("conversation", reassign_foreign_key(Conversation)),
    RelatedRecord("contact_assignment", reassign_foreign_key(ContactAssignment)),
    RelatedRecord("tag_assignment", union_tags),
)


def reassign_all(session: Session, from_contact_id: str, to_contact_id: str) -> dict[str, int]:
    """Run every registered reassignment; returns rows moved per record type."""
    return {
        related.name: related.reassign(session, from_contact_id, to_contact_id)
        for related in RELATED_RECORDS
    }
