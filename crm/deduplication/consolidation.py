"""
Property consolidation for a duplicate group.

Every member contributes its embedded property (when it has an address) and
its ContactProperty rows. Records sharing a normalized
(address, city, state, zip) are folded into one; for each field the first
non-empty value wins, scanning members oldest first and, within a member,
the embedded property before its rows. Rows without an address are never
folded, they simply move to the primary.

The primary's own columns are never overwritten. When its embedded slot is
empty, only a record that agrees with the columns it already has may fill
it; every other record becomes a ContactProperty row.

The plan is pure data: the merge executor applies it inside its transaction.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Optional

from crm.database import Contact, ContactProperty
from crm.deduplication.keys import normalize_address_key, normalize_text

# ContactProperty column -> Contact column for the embedded slot
EMBEDDED_COLUMNS = {
    "address": "property_address",
    "county": "property_county",
}


def _missing(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass(frozen=True)
class PropertyRecord:
    """Typed property; field names match ContactProperty columns."""

    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    county: Optional[str] = None
    llc_name: Optional[str] = None
    property_type: Optional[str] = None
    bedrooms: Optional[int] = None
    total_bathrooms: Optional[float] = None
    building_sqft: Optional[int] = None
    lot_size_sqft: Optional[int] = None
    effective_year_built: Optional[int] = None
    last_sale_date: Optional[datetime] = None
    last_sale_amount: Optional[int] = None
    est_value: Optional[int] = None
    est_equity: Optional[int] = None

    @property
    def key(self) -> tuple[str, str, str, str] | None:
        return normalize_address_key(self.address, self.city, self.state, self.zip_code)

    def values(self) -> dict:
        return {name: getattr(self, name) for name in PROPERTY_FIELDS}

    def merged_with(self, other: "PropertyRecord") -> "PropertyRecord":
        """Keep this record's values, fill the gaps from ``other``."""
        updates = {
            name: getattr(other, name)
            for name in PROPERTY_FIELDS
            if _missing(getattr(self, name)) and not _missing(getattr(other, name))
        }
        return replace(self, **updates) if updates else self

    @classmethod
    def from_row(cls, row: ContactProperty) -> "PropertyRecord":
        return cls(**{name: getattr(row, name) for name in PROPERTY_FIELDS})

    @classmethod
    def from_contact(cls, contact: Contact) -> Optional["PropertyRecord"]:
        """The contact's embedded property, or None when it has no address."""
        if _missing(contact.property_address):
            return None
        return cls(**{name: getattr(contact, EMBEDDED_COLUMNS.get(name, name)) for name in PROPERTY_FIELDS})

    def apply_to_row(self, row: ContactProperty) -> None:
        for name, value in self.values().items():
            setattr(row, name, value)

    def fits_contact(self, contact: Contact) -> bool:
        """True when no field disagrees with a value already on the contact."""
        for name, value in self.values().items():
            current = getattr(contact, EMBEDDED_COLUMNS.get(name, name))
            if _missing(value) or _missing(current):
                continue
            if isinstance(value, str) and isinstance(current, str):
                if normalize_text(value) != normalize_text(current):
                    return False
            elif value != current:
                return False
        return True

    def apply_to_contact(self, contact: Contact) -> None:
        """Fill the embedded slot. Values already on the contact are never overwritten."""
        for name, value in self.values().items():
            column = EMBEDDED_COLUMNS.get(name, name)
            if not _missing(value) and _missing(getattr(contact, column)):
                setattr(contact, column, value)


PROPERTY_FIELDS = tuple(f.name for f in fields(PropertyRecord))


@dataclass(frozen=True)
class PropertySource:
    contact_id: str
    row_id: Optional[str] = None  # None = the contact's embedded slot

    @property
    def is_embedded(self) -> bool:
        return self.row_id is None


@dataclass
class ConsolidatedProperty:
    record: PropertyRecord
    sources: list[PropertySource] = field(default_factory=list)

    def absorb(self, record: PropertyRecord, source: PropertySource) -> None:
        self.record = self.record.merged_with(record)
        self.sources.append(source)

    @property
    def row_ids(self) -> list[str]:
        return [s.row_id for s in self.sources if s.row_id is not None]

    def owned_by(self, contact_id: str) -> bool:
        return any(s.contact_id == contact_id for s in self.sources)


@dataclass(frozen=True)
class PlannedRow:
    record: PropertyRecord
    keep_row_id: Optional[str]  # None = insert a new row


@dataclass
class ConsolidationPlan:
    primary_id: str
    embedded: Optional[PropertyRecord] = None
    rows: list[PlannedRow] = field(default_factory=list)
    delete_row_ids: list[str] = field(default_factory=list)
    consolidated_count: int = 0
    source_count: int = 0

    @property
    def final_count(self) -> int:
        """Properties the primary owns once the plan is applied."""
        return (1 if self.embedded else 0) + len(self.rows)


def collect_properties(members: list[Contact]) -> list[ConsolidatedProperty]:
    """Fold every member's property records by normalized address."""
    entries: dict[tuple, ConsolidatedProperty] = {}

    for member in members:
        candidates: list[tuple[PropertyRecord, PropertySource]] = []
        embedded = PropertyRecord.from_contact(member)
        if embedded is not None:
            candidates.append((embedded, PropertySource(member.id)))
        for row in sorted(member.properties, key=lambda r: (r.created_at or datetime.min, r.id)):
            candidates.append((PropertyRecord.from_row(row), PropertySource(member.id, row.id)))

        for record, source in candidates:
            key = record.key or ("row", source.row_id)
            if key in entries:
                entries[key].absorb(record, source)
            else:
                entries[key] = ConsolidatedProperty(record=record, sources=[source])

    return list(entries.values())


def consolidate(members: list[Contact]) -> ConsolidationPlan:
    """Plan the primary's final property set. ``members[0]`` is the primary."""
    primary = members[0]
    entries = collect_properties(members)
    plan = ConsolidationPlan(primary_id=primary.id, source_count=sum(len(e.sources) for e in entries))

    embedded_entry = next(
        (e for e in entries if PropertySource(primary.id) in e.sources),
        None,
    )
    if embedded_entry is None:
        # Empty slot: the first addressed record that agrees with the
        # contact's own city, state, zip and other columns moves into it
        embedded_entry = next(
            (e for e in entries if e.record.key is not None and e.record.fits_contact(primary)),
            None,
        )

    for entry in entries:
        if not entry.owned_by(primary.id):
            plan.consolidated_count += 1

        if entry is embedded_entry:
            plan.embedded = entry.record
            plan.delete_row_ids.extend(entry.row_ids)
            continue

        row_ids = entry.row_ids
        if not row_ids:
            plan.rows.append(PlannedRow(record=entry.record, keep_row_id=None))
            continue

        owned_rows = [s.row_id for s in entry.sources if s.row_id and s.contact_id == primary.id]
        keep = owned_rows[0] if owned_rows else row_ids[0]
        plan.rows.append(PlannedRow(record=entry.record, keep_row_id=keep))
        plan.delete_row_ids.extend(r for r in row_ids if r != keep)

    return plan
