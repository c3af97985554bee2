"""
Grouping engine: turns scan indexes into duplicate groups.

A contact ends up in at most one group:
- contacts with any usable phone only ever join phone groups;
- a contact whose phones hit several shared keys joins the first of them
  (phone1 before phone2 before phone3);
- keys left with fewer than two members are dropped.
"""

from loguru import logger

from crm.deduplication.keys import normalize_address
from crm.deduplication.models import ContactSnapshot, DuplicateGroup, MatchType
from crm.deduplication.scanner import ScanResult


def sort_members(members: list[ContactSnapshot]) -> list[ContactSnapshot]:
    """Oldest created_at first, lexicographically smaller id on ties."""
    return sorted(members, key=lambda m: m.sort_key)


def unique_property_addresses(members: list[ContactSnapshot]) -> list[str]:
    """Normalized addresses held by the group, minus the primary's own.

    Informational only; the merge consolidates from the live rows.
    """
    primary_address = normalize_address(members[0].property_address)
    seen: list[str] = []
    for member in members:
        for raw in (member.property_address, *member.property_addresses):
            address = normalize_address(raw)
            if address and address != primary_address and address not in seen:
                seen.append(address)
    return seen


def assign_phone_groups(scan: ScanResult) -> dict[str, list[str]]:
    """Map each shared phone key to the contacts that keep it."""
    qualifying = {key for key, ids in scan.phone_index.items() if len(ids) >= 2}

    assigned: dict[str, list[str]] = {}
    for contact_id, keys in scan.phone_keys_by_contact.items():
        first = next((k for k in keys if k in qualifying), None)
        if first is not None:
            assigned.setdefault(first, []).append(contact_id)

    return {key: ids for key, ids in assigned.items() if len(ids) >= 2}


def _make_group(scan: ScanResult, match_type: MatchType, key: str, ids: list[str]) -> DuplicateGroup:
    members = sort_members([scan.contacts[i] for i in ids])
    return DuplicateGroup(
        match_type=match_type,
        match_key=key,
        members=members,
        unique_properties=unique_property_addresses(members),
    )


def build_groups(scan: ScanResult) -> list[DuplicateGroup]:
    """Build every duplicate group for a scan, phone groups first."""
    phone_groups = [
        _make_group(scan, MatchType.PHONE, key, ids)
        for key, ids in assign_phone_groups(scan).items()
    ]
    name_groups = [
        _make_group(scan, MatchType.NAME_LOCATION, key, ids)
        for key, ids in scan.name_location_index.items()
        if len(ids) >= 2
    ]

    phone_groups.sort(key=lambda g: (g.members[0].sort_key, g.match_key))
    name_groups.sort(key=lambda g: (g.members[0].sort_key, g.match_key))

    logger.info(f"Found {len(phone_groups)} phone groups and {len(name_groups)} name+location groups")
    return phone_groups + name_groups
