"""
Value types produced by the duplicate scrubber.

None of these are persisted: they are rebuilt from the contact store on
every preview and every execute.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class MatchType(str, Enum):
    PHONE = "phone"
    NAME_LOCATION = "name_location"


@dataclass(frozen=True)
class ContactSnapshot:
    """Read-only view of a contact taken during a scan."""

    id: str
    first_name: str | None
    last_name: str | None
    phones: tuple[str | None, str | None, str | None]
    city: str | None
    state: str | None
    property_address: str | None
    property_addresses: tuple[str, ...]  # additional ContactProperty rows
    created_at: datetime

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """Oldest first, lowest id on ties."""
        return (self.created_at, self.id)

    @property
    def name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip() or "Unknown"

    @property
    def phone(self) -> str:
        """First non-empty phone, for display."""
        return next((p for p in self.phones if p), "")

    @property
    def properties_count(self) -> int:
        return len(self.property_addresses)


@dataclass
class DuplicateGroup:
    """Two or more contacts sharing one identity key.

    ``members`` is ordered oldest first; ``members[0]`` is the primary.
    """

    match_type: MatchType
    match_key: str
    members: list[ContactSnapshot]
    unique_properties: list[str] = field(default_factory=list)

    @property
    def member_ids(self) -> list[str]:
        return [m.id for m in self.members]

    @property
    def contacts_to_merge(self) -> int:
        return len(self.members) - 1

    def to_dict(self) -> dict[str, Any]:
        is_phone = self.match_type is MatchType.PHONE
        return {
            "matchType": self.match_type.value,
            "matchKey": self.match_key,
            "phone": self.members[0].phone if is_phone else "",
            "normalizedPhone": self.match_key if is_phone else "",
            "uniqueProperties": list(self.unique_properties),
            "contacts": [
                {
                    "id": m.id,
                    "name": m.name,
                    "phone": m.phone,
                    "city": m.city,
                    "state": m.state,
                    "propertyAddress": m.property_address,
                    "propertiesCount": m.properties_count,
                    "createdAt": m.created_at.isoformat(),
                    "isPrimary": idx == 0,
                }
                for idx, m in enumerate(self.members)
            ],
        }


@dataclass
class ScrubPreview:
    total_duplicate_groups: int
    total_contacts_to_merge: int
    total_properties_to_consolidate: int
    groups: list[DuplicateGroup]

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalDuplicateGroups": self.total_duplicate_groups,
            "totalContactsToMerge": self.total_contacts_to_merge,
            "totalPropertiesToConsolidate": self.total_properties_to_consolidate,
            "groups": [g.to_dict() for g in self.groups],
        }


@dataclass(frozen=True)
class GroupOutcome:
    """What one committed group merge did."""

    match_key: str
    primary_id: str
    contacts_deleted: int
    properties_consolidated: int
    records_reassigned: int = 0


@dataclass(frozen=True)
class MergeFailure:
    match_key: str
    reason: str


@dataclass
class MergeResult:
    merged_groups: int = 0
    contacts_deleted: int = 0
    properties_consolidated: int = 0
    failures: list[MergeFailure] = field(default_factory=list)

    def record_success(self, outcome: GroupOutcome) -> None:
        self.merged_groups += 1
        self.contacts_deleted += outcome.contacts_deleted
        self.properties_consolidated += outcome.properties_consolidated

    def record_failure(self, match_key: str, reason: str) -> None:
        self.failures.append(MergeFailure(match_key=match_key, reason=reason))

    def to_dict(self) -> dict[str, Any]:
        return {
            "mergedGroups": self.merged_groups,
            "propertiesConsolidated": self.properties_consolidated,
            "contactsDeleted": self.contacts_deleted,
            "failures": [{"matchKey": f.match_key, "reason": f.reason} for f in self.failures],
        }
