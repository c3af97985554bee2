"""
Primary selection.

Kept apart from grouping so a different survivor policy (for example a
pinned primary) only has to replace these functions.
"""

from crm.deduplication.models import ContactSnapshot, DuplicateGroup


def select_primary(group: DuplicateGroup) -> ContactSnapshot:
    """The oldest member survives; members are already sorted by grouping."""
    return group.members[0]


def split_group(group: DuplicateGroup) -> tuple[ContactSnapshot, list[ContactSnapshot]]:
    """Return (primary, duplicates)."""
    primary = select_primary(group)
    return primary, [m for m in group.members if m.id != primary.id]
