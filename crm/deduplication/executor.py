"""
Merge executor: applies one duplicate group in a single transaction.

Steps, all inside one transaction per group:
1. reload and lock the members, rejecting groups that went stale;
2. move child records and tag assignments to the primary;
3. apply the property consolidation plan;
4. delete the non-primary contacts.

Any failure rolls the whole group back and surfaces as a TransactionError.
"""

import time

from loguru import logger
from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from crm.config import DedupeSettings
from crm.database import Contact, ContactProperty
from crm.deduplication.consolidation import ConsolidationPlan, consolidate
from crm.deduplication.errors import GroupTimeoutError, StaleGroupError, TransactionError
from crm.deduplication.keys import normalize_name_location, normalize_phone
from crm.deduplication.models import DuplicateGroup, GroupOutcome, MatchType
from crm.deduplication.reassign import ensure_tag, reassign_all


def contact_matches(contact: Contact, group: DuplicateGroup) -> bool:
    """Does the live row still produce the group's key?"""
    if group.match_type is MatchType.PHONE:
        phones = (contact.phone1, contact.phone2, contact.phone3)
        return group.match_key in {normalize_phone(p) for p in phones}
    key = normalize_name_location(contact.first_name, contact.last_name, contact.city, contact.state)
    return key == group.match_key


class MergeExecutor:
    """Merges duplicate groups, one transaction each."""

    def __init__(self, session_factory: sessionmaker, settings: DedupeSettings):
        self.session_factory = session_factory
        self.settings = settings

    def merge(self, group: DuplicateGroup) -> GroupOutcome:
        """Merge one group. Raises TransactionError (or a subclass) on failure."""
        deadline = time.monotonic() + self.settings.group_timeout_seconds
        session = self.session_factory()
        try:
            with session.begin():
                self._set_statement_timeout(session)

                members = self._load_members(session, group)
                primary, duplicates = members[0], members[1:]
                primary_id = primary.id
                duplicate_ids = [d.id for d in duplicates]
                plan = consolidate(members)
                self._check_deadline(group, deadline)

                moved = 0
                for duplicate in duplicates:
                    counts = reassign_all(session, duplicate.id, primary.id)
                    moved += sum(counts.values())
                    logger.debug(f"[{group.match_key}] {duplicate.id} -> {primary.id}: {counts}")
                self._check_deadline(group, deadline)

                self._apply_plan(session, plan, members)

                if self.settings.multiple_property_tag and plan.final_count > 1:
                    ensure_tag(session, primary.id, self.settings.multiple_property_tag)

                session.execute(
                    delete(Contact)
                    .where(Contact.id.in_(duplicate_ids))
                    .execution_options(synchronize_session=False)
                )
                self._check_deadline(group, deadline)
        except TransactionError:
            raise
        except SQLAlchemyError as e:
            raise TransactionError(group.match_key, f"{type(e).__name__}: {e}") from e
        finally:
            session.close()

        logger.info(
            f"Merged {group.match_type.value} group {group.match_key}: kept {primary_id}, "
            f"deleted {len(duplicate_ids)}, {plan.consolidated_count} properties consolidated, "
            f"{moved} related records moved"
        )
        return GroupOutcome(
            match_key=group.match_key,
            primary_id=primary_id,
            contacts_deleted=len(duplicate_ids),
            properties_consolidated=plan.consolidated_count,
            records_reassigned=moved,
        )

    def _set_statement_timeout(self, session: Session) -> None:
        if session.get_bind().dialect.name != "postgresql":
            return
        timeout_ms = max(1, int(self.settings.group_timeout_seconds * 1000))
        session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))

    def _check_deadline(self, group: DuplicateGroup, deadline: float) -> None:
        if time.monotonic() > deadline:
            raise GroupTimeoutError(
                group.match_key,
                f"Timed out after {self.settings.group_timeout_seconds:g}s",
            )

    def _load_members(self, session: Session, group: DuplicateGroup) -> list[Contact]:
        """Re-read the members in group order, locking their rows."""
        ids = group.member_ids
        rows = session.scalars(
            select(Contact)
            .where(Contact.id.in_(ids))
            .options(selectinload(Contact.properties))
            .with_for_update()
        ).all()
        by_id = {c.id: c for c in rows}

        missing = [i for i in ids if i not in by_id]
        if missing:
            raise StaleGroupError(group.match_key, f"Contacts no longer exist: {', '.join(missing)}")

        changed = [i for i in ids if not contact_matches(by_id[i], group)]
        if changed:
            raise StaleGroupError(group.match_key, f"Contacts no longer match this group: {', '.join(changed)}")

        return [by_id[i] for i in ids]

    def _apply_plan(self, session: Session, plan: ConsolidationPlan, members: list[Contact]) -> None:
        primary = members[0]
        rows_by_id = {row.id: row for member in members for row in member.properties}

        if plan.embedded is not None:
            plan.embedded.apply_to_contact(primary)

        for planned in plan.rows:
            if planned.keep_row_id is None:
                session.add(ContactProperty(contact_id=primary.id, **planned.record.values()))
                continue
            row = rows_by_id[planned.keep_row_id]
            planned.record.apply_to_row(row)
            row.contact_id = primary.id

        for row_id in plan.delete_row_ids:
            session.delete(rows_by_id[row_id])

        session.flush()
