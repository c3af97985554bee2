# SPDX-License-Identifier: MIT
"""Tests for the scanner, grouping engine and preview."""

from datetime import datetime

import pytest

from crm.deduplication import MatchType, ValidationError
from crm.deduplication.grouping import build_groups
from crm.deduplication.models import ContactSnapshot
from crm.deduplication.primary import select_primary, split_group
from crm.deduplication.scanner import scan_snapshots


def snapshot(id, day=1, phones=(None, None, None), first=None, last=None,
             city=None, state=None, address=None, rows=()):
    return ContactSnapshot(
        id=id,
        first_name=first,
        last_name=last,
        phones=tuple(phones),
        city=city,
        state=state,
        property_address=address,
        property_addresses=tuple(rows),
        created_at=datetime(2024, 1, day),
    )


class TestPhoneGroups:
    """Grouping on the last 10 phone digits."""

    def test_formatted_phones_group_oldest_first(self, scrubber, make_contact):
        """Example A: two spellings of one number form one phone group."""
        b = make_contact(day=3, first_name="Bea", phone1="(555) 123-4567")
        a = make_contact(day=1, first_name="Al", phone1="5551234567")

        groups = scrubber.find_groups()

        assert len(groups) == 1
        group = groups[0]
        assert group.match_type is MatchType.PHONE
        assert group.match_key == "5551234567"
        assert group.member_ids == [a.id, b.id]

    def test_singleton_phone_is_not_a_group(self, scrubber, make_contact):
        """Example C: a phone nobody else has produces nothing."""
        make_contact(phone1="5550000000", first_name="Eve", city="Austin", state="TX")
        make_contact(phone1="5559999999", first_name="Ann", city="Austin", state="TX")

        assert scrubber.find_groups() == []

    def test_match_on_secondary_phone(self, scrubber, make_contact):
        make_contact(day=1, phone1="5551111111")
        make_contact(day=2, phone1="5552222222", phone2="+1 (555) 111-1111")

        groups = scrubber.find_groups()
        assert [g.match_key for g in groups] == ["5551111111"]

    def test_same_phone_twice_on_one_contact_is_not_a_group(self, scrubber, make_contact):
        make_contact(phone1="5551111111", phone2="555-111-1111")
        assert scrubber.find_groups() == []

    def test_contact_joins_first_shared_phone_only(self):
        """A contact bridging two shared numbers lands in exactly one group."""
        scan = scan_snapshots([
            snapshot("a", day=1, phones=("5551111111", None, None)),
            snapshot("b", day=2, phones=("5552222222", None, None)),
            snapshot("c", day=3, phones=("5551111111", "5552222222", None)),
            snapshot("d", day=4, phones=("5552222222", None, None)),
        ])

        groups = build_groups(scan)

        by_key = {g.match_key: g.member_ids for g in groups}
        assert by_key == {"5551111111": ["a", "c"], "5552222222": ["b", "d"]}

    def test_group_left_with_one_member_is_dropped(self):
        scan = scan_snapshots([
            snapshot("a", day=1, phones=("5551111111", None, None)),
            snapshot("b", day=2, phones=("5551111111", "5552222222", None)),
            snapshot("c", day=3, phones=("5552222222", None, None)),
        ])

        groups = build_groups(scan)

        # b joins its phone1 group, leaving c alone under 5552222222
        assert [(g.match_key, g.member_ids) for g in groups] == [("5551111111", ["a", "b"])]


class TestNameLocationGroups:
    """Fallback grouping for contacts without any usable phone."""

    def test_case_insensitive_name_city_state(self, scrubber, make_contact):
        """Example B: the earlier contact becomes primary."""
        d = make_contact(day=2, first_name="john", last_name="smith", city="austin", state="tx")
        c = make_contact(day=5, first_name="John", last_name="Smith", city="Austin", state="TX")

        groups = scrubber.find_groups()

        assert len(groups) == 1
        assert groups[0].match_type is MatchType.NAME_LOCATION
        assert groups[0].match_key == "john smith|austin|tx"
        assert groups[0].member_ids == [d.id, c.id]

    def test_contact_with_phone_never_joins_name_group(self, scrubber, make_contact):
        make_contact(day=1, first_name="John", last_name="Smith", city="Austin", state="TX")
        make_contact(day=2, first_name="John", last_name="Smith", city="Austin", state="TX",
                     phone1="5553334444")

        assert scrubber.find_groups() == []

    def test_short_phone_falls_back_to_name(self, scrubber, make_contact):
        make_contact(day=1, first_name="John", last_name="Smith", city="Austin", state="TX",
                     phone1="123-4567")
        make_contact(day=2, first_name="John", last_name="Smith", city="Austin", state="TX")

        groups = scrubber.find_groups()
        assert [g.match_type for g in groups] == [MatchType.NAME_LOCATION]

    def test_different_city_is_not_a_duplicate(self, scrubber, make_contact):
        make_contact(first_name="John", last_name="Smith", city="Austin", state="TX")
        make_contact(first_name="John", last_name="Smith", city="Dallas", state="TX")

        assert scrubber.find_groups() == []

    def test_contacts_without_any_key_are_ignored(self, scrubber, make_contact):
        make_contact(first_name="John")
        make_contact(first_name="John")

        assert scrubber.find_groups() == []


class TestGroupOrdering:
    """Deterministic member and group order."""

    def test_created_at_tie_broken_by_id(self, scrubber, make_contact):
        make_contact(day=1, id="bbbbbbbb-0000-0000-0000-000000000000", phone1="5551234567")
        make_contact(day=1, id="aaaaaaaa-0000-0000-0000-000000000000", phone1="5551234567")

        group = scrubber.find_groups()[0]
        assert group.member_ids[0].startswith("aaaaaaaa")
        assert select_primary(group).id == group.member_ids[0]

    def test_phone_groups_precede_name_groups(self, scrubber, make_contact):
        make_contact(day=1, first_name="Ann", last_name="Lee", city="Waco", state="TX")
        make_contact(day=2, first_name="Ann", last_name="Lee", city="Waco", state="TX")
        make_contact(day=3, phone1="5551234567")
        make_contact(day=4, phone1="5551234567")

        groups = scrubber.find_groups()
        assert [g.match_type for g in groups] == [MatchType.PHONE, MatchType.NAME_LOCATION]

    def test_contact_in_at_most_one_group(self, scrubber, make_contact):
        for day in range(6):
            make_contact(day=day, first_name="Sam", last_name="Ray", city="Waco", state="TX",
                         phone1="5551234567" if day % 2 else None)

        groups = scrubber.find_groups()
        ids = [i for g in groups for i in g.member_ids]
        assert len(ids) == len(set(ids)) == 6
        assert all(len(g.members) >= 2 for g in groups)

    def test_split_group(self):
        scan = scan_snapshots([
            snapshot("x", day=2, phones=("5551111111", None, None)),
            snapshot("y", day=1, phones=("5551111111", None, None)),
        ])
        primary, duplicates = split_group(build_groups(scan)[0])
        assert primary.id == "y"
        assert [d.id for d in duplicates] == ["x"]


class TestPreview:
    """Read-only preview."""

    def test_preview_shape(self, scrubber, make_contact, make_property):
        a = make_contact(day=1, first_name="Al", last_name="Ng", phone1="5551234567",
                         city="Austin", state="TX", property_address="1 Main St")
        b = make_contact(day=2, phone1="555-123-4567", property_address="2 Oak Ave")
        make_property(b.id, "3 Elm Rd")

        preview = scrubber.preview()

        assert preview.total_duplicate_groups == 1
        assert preview.total_contacts_to_merge == 1
        assert preview.total_properties_to_consolidate == 2

        data = preview.to_dict()
        group = data["groups"][0]
        assert group["matchType"] == "phone"
        assert group["normalizedPhone"] == "5551234567"
        assert group["phone"] == "5551234567"
        assert group["uniqueProperties"] == ["2 oak ave", "3 elm rd"]
        primary, duplicate = group["contacts"]
        assert primary["id"] == a.id and primary["isPrimary"] is True
        assert primary["name"] == "Al Ng"
        assert duplicate["name"] == "Unknown"
        assert duplicate["propertiesCount"] == 1
        assert duplicate["isPrimary"] is False

    def test_preview_is_idempotent_and_read_only(self, scrubber, make_contact, db_session):
        from crm.database import Contact

        make_contact(day=1, phone1="5551234567")
        make_contact(day=2, phone1="5551234567")

        first = scrubber.preview().to_dict()
        second = scrubber.preview().to_dict()

        assert first == second
        assert db_session.query(Contact).count() == 2

    def test_limit_truncates_groups_not_totals(self, scrubber, make_contact):
        for n in range(3):
            make_contact(day=n, phone1=f"555000000{n}")
            make_contact(day=n + 10, phone1=f"555000000{n}")

        preview = scrubber.preview(limit=2)

        assert preview.total_duplicate_groups == 3
        assert preview.total_contacts_to_merge == 3
        assert len(preview.groups) == 2

    def test_limit_zero_returns_everything(self, scrubber, make_contact):
        for n in range(3):
            make_contact(day=n, phone1=f"555000000{n}")
            make_contact(day=n + 10, phone1=f"555000000{n}")

        assert len(scrubber.preview(limit=0).groups) == 3

    @pytest.mark.parametrize("limit", [-1, "10", 1.5, True])
    def test_invalid_limit_rejected(self, scrubber, limit):
        with pytest.raises(ValidationError):
            scrubber.preview(limit=limit)

    def test_empty_store(self, scrubber):
        preview = scrubber.preview()
        assert preview.to_dict() == {
            "totalDuplicateGroups": 0,
            "totalContactsToMerge": 0,
            "totalPropertiesToConsolidate": 0,
            "groups": [],
        }
