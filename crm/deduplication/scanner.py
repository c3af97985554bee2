"""Candidate scanner: one read pass over the contact store."""

from dataclasses import dataclass, field

from loguru import logger
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, selectinload

from crm.database import Contact
from crm.deduplication.keys import normalize_name_location, normalize_phone
from crm.deduplication.models import ContactSnapshot


@dataclass
class ScanResult:
    """Key indexes built from a contact snapshot.

    Only contacts that produced at least one key are kept in ``contacts``.
    """

    contacts: dict[str, ContactSnapshot] = field(default_factory=dict)
    phone_index: dict[str, list[str]] = field(default_factory=dict)
    name_location_index: dict[str, list[str]] = field(default_factory=dict)
    phone_keys_by_contact: dict[str, list[str]] = field(default_factory=dict)
    scanned: int = 0


def snapshot_contact(contact: Contact) -> ContactSnapshot:
    return ContactSnapshot(
        id=contact.id,
        first_name=contact.first_name,
        last_name=contact.last_name,
        phones=(contact.phone1, contact.phone2, contact.phone3),
        city=contact.city,
        state=contact.state,
        property_address=contact.property_address,
        property_addresses=tuple(p.address or "" for p in contact.properties),
        created_at=contact.created_at,
    )


def phone_keys(snapshot: ContactSnapshot) -> list[str]:
    """Distinct phone keys in phone1, phone2, phone3 order."""
    keys: list[str] = []
    for raw in snapshot.phones:
        key = normalize_phone(raw)
        if key and key not in keys:
            keys.append(key)
    return keys


def name_location_key(snapshot: ContactSnapshot) -> str | None:
    return normalize_name_location(snapshot.first_name, snapshot.last_name, snapshot.city, snapshot.state)


def iter_contacts(session: Session, batch_size: int):
    """Yield contacts page by page, oldest first.

    Pages are keyed on (created_at, id) rather than OFFSET so rows inserted
    while the scan runs cannot shift a page and repeat a contact.
    """
    last = None
    while True:
        stmt = (
            select(Contact)
            .options(selectinload(Contact.properties))
            .order_by(Contact.created_at, Contact.id)
            .limit(batch_size)
        )
        if last is not None:
            last_created, last_id = last
            stmt = stmt.where(
                or_(
                    Contact.created_at > last_created,
                    and_(Contact.created_at == last_created, Contact.id > last_id),
                )
            )
        page = session.scalars(stmt).all()
        if not page:
            break
        yield from page
        last = (page[-1].created_at, page[-1].id)
        # Detach the page so a long scan does not grow the identity map
        session.expunge_all()


def add_snapshot(result: ScanResult, snapshot: ContactSnapshot) -> None:
    """Index one contact. Phone keys win; name+location is the fallback."""
    result.scanned += 1

    keys = phone_keys(snapshot)
    if keys:
        result.contacts[snapshot.id] = snapshot
        result.phone_keys_by_contact[snapshot.id] = keys
        for key in keys:
            result.phone_index.setdefault(key, []).append(snapshot.id)
        return

    key = name_location_key(snapshot)
    if key:
        result.contacts[snapshot.id] = snapshot
        result.name_location_index.setdefault(key, []).append(snapshot.id)


def scan_snapshots(snapshots) -> ScanResult:
    result = ScanResult()
    for snapshot in snapshots:
        add_snapshot(result, snapshot)
    return result


def scan_contacts(session: Session, batch_size: int = 1000) -> ScanResult:
    """Read every contact once and build the phone and name+location indexes."""
    result = scan_snapshots(snapshot_contact(c) for c in iter_contacts(session, batch_size))

    logger.info(
        f"Scanned {result.scanned} contacts: {len(result.phone_index)} phone keys, "
        f"{len(result.name_location_index)} name+location keys, "
        f"{result.scanned - len(result.contacts)} without a usable key"
    )
    return result
