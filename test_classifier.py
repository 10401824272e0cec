"""Tests for classifying import entries into add/update/delete/replace/no_change."""

from datetime import datetime

import pytest

from classifier import build_key_index, classify, differences


def bag_of(operations):
    """Name of the only non-empty bag."""
    bags = [name for name, count in operations.counts().items() if count]
    assert len(bags) == 1, operations.counts()
    return bags[0]


# ---------------------------------------------------------------------------
# build_key_index
# ---------------------------------------------------------------------------

class TestKeyIndex:

    def test_newest_first(self, make_record):
        older = make_record(1, created=datetime(2025, 8, 25, 10))
        newer = make_record(2, created=datetime(2025, 8, 25, 12))
        unknown_created = make_record(3)
        index = build_key_index([older, unknown_created, newer])
        group = next(iter(index.values()))
        assert [r.remote_id for r in group] == [2, 1, 3]

    def test_tie_falls_back_to_higher_id(self, make_record):
        index = build_key_index([make_record(5), make_record(7)])
        assert [r.remote_id for r in next(iter(index.values()))] == [7, 5]

    def test_unknown_issue_excluded(self, make_record):
        assert build_key_index([make_record(1, issue="UNKNOWN")]) == {}


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------

class TestClassify:

    def test_add_when_nothing_exists(self, make_entry):
        operations = classify([make_entry()], [])
        assert operations.add[0].duration_hours == 2.0
        assert bag_of(operations) == "add"

    def test_add_next_to_other_worklogs(self, make_entry, make_record):
        records = [make_record(1, start="07:00:00", hours=2), make_record(2, start="11:00:00", hours=1)]
        assert bag_of(classify([make_entry()], records)) == "add"

    def test_no_change(self, make_entry, make_record):
        assert bag_of(classify([make_entry()], [make_record(1)])) == "no_change"

    def test_update_description(self, make_entry, make_record):
        operations = classify([make_entry(description="New text")], [make_record(1, description="Old")])
        assert bag_of(operations) == "update"
        op = operations.update[0]
        assert op.remote_id == 1
        assert op.previous_description == "Old"
        assert op.previous_duration_hours == 2.0

    def test_longer_entry_replaces_its_own_worklog(self, make_entry, make_record):
        # 09:00-11:00 extends past the 09:00-10:00 worklog at the same key
        operations = classify([make_entry()], [make_record(1, hours=1)])
        assert bag_of(operations) == "replace"
        assert [r.remote_id for r in operations.replace[0].conflicting_worklogs] == [1]

    def test_shorter_entry_replaces_its_own_worklog(self, make_entry, make_record):
        operations = classify([make_entry(end="10:00:00")], [make_record(1, hours=2)])
        assert bag_of(operations) == "replace"

    def test_replace_other_issue(self, make_entry, make_record):
        entry = make_entry(start="09:30:00", end="11:00:00", issue="ITST-2")
        operations = classify([entry], [make_record(1, hours=1, issue="ITST-1")])
        assert bag_of(operations) == "replace"
        assert operations.replace[0].entry is entry
        assert len(operations.replace[0].conflicting_worklogs) == 1

    def test_replace_includes_candidate_and_overlaps(self, make_entry, make_record):
        records = [
            make_record(1),  # identical at the key
            make_record(2, start="10:00:00", hours=2, issue="ITST-2"),
        ]
        operations = classify([make_entry()], records)
        assert bag_of(operations) == "replace"
        assert [r.remote_id for r in operations.replace[0].conflicting_worklogs] == [1, 2]

    def test_unknown_issue_worklog_is_replaced(self, make_entry, make_record):
        operations = classify([make_entry()], [make_record(1, issue="UNKNOWN")])
        assert bag_of(operations) == "replace"

    def test_duplicates_fold_into_replace(self, make_entry, make_record):
        records = [
            make_record(1, created=datetime(2025, 8, 25, 10)),
            make_record(2, created=datetime(2025, 8, 25, 12)),
        ]
        operations = classify([make_entry()], records)
        assert bag_of(operations) == "replace"
        assert [r.remote_id for r in operations.replace[0].conflicting_worklogs] == [1, 2]

    def test_delete_with_target(self, make_entry, make_record):
        entry = make_entry(end=None, should_delete=True)
        operations = classify([entry], [make_record(1, hours=1)])
        assert bag_of(operations) == "delete"
        assert operations.delete[0].remote_id == 1

    def test_delete_picks_newest_duplicate(self, make_entry, make_record):
        records = [
            make_record(1, created=datetime(2025, 8, 25, 12)),
            make_record(2, created=datetime(2025, 8, 25, 10)),
        ]
        operations = classify([make_entry(should_delete=True)], records)
        assert operations.delete[0].remote_id == 1

    def test_delete_without_target_is_skipped(self, make_entry, make_record):
        entry = make_entry(should_delete=True, issue="ITST-2")
        operations = classify([entry], [make_record(1)])
        assert operations.counts() == {"add": 0, "update": 0, "delete": 0, "replace": 0, "no_change": 0}

    def test_delete_never_targets_unknown_issue(self, make_entry, make_record):
        operations = classify([make_entry(should_delete=True)], [make_record(1, issue="UNKNOWN")])
        assert not operations.has_writes

    def test_partition(self, make_entry, make_record):
        entries = [
            make_entry(day="2025-08-25"),  # no change
            make_entry(day="2025-08-26", description="changed"),  # update
            make_entry(day="2025-08-27"),  # add
            make_entry(day="2025-08-28", issue="ITST-2"),  # replace
            make_entry(day="2025-08-29", should_delete=True),  # delete
            make_entry(day="2025-08-30", should_delete=True),  # skipped
        ]
        records = [
            make_record(1, day="2025-08-25"),
            make_record(2, day="2025-08-26"),
            make_record(3, day="2025-08-28"),
            make_record(4, day="2025-08-29"),
        ]
        operations = classify(entries, records)
        assert operations.counts() == {"add": 1, "update": 1, "delete": 1, "replace": 1, "no_change": 1}

        seen = []
        for bag in ("add", "update", "delete", "replace", "no_change"):
            seen.extend(id(e) for e in operations.entries(bag))
        assert len(seen) == len(set(seen)) == 5
        assert all(op.conflicting_worklogs for op in operations.replace)

    def test_worklog_at_another_entrys_key_is_kept(self, make_entry, make_record):
        # 09:00-10:10 is booked as 1.25h, so its worklog runs until 10:15
        entries = [
            make_entry(start="09:00:00", end="10:10:00", duration_hours=1.25),
            make_entry(start="10:10:00", end="11:00:00", duration_hours=0.75, issue="ITST-2"),
        ]
        records = [
            make_record(1, start="09:00:00", hours=1.25),
            make_record(2, start="10:10:00", hours=0.75, issue="ITST-2"),
        ]
        operations = classify(entries, records)
        assert operations.counts()["no_change"] == 2
        assert not operations.has_writes

    def test_shorter_entry_owns_its_worklog(self, make_entry, make_record):
        entries = [
            make_entry(start="09:00:00", end="09:30:00"),
            make_entry(start="09:30:00", end="10:00:00", issue="ITST-2"),
        ]
        operations = classify(entries, [make_record(1, hours=1)])
        assert [op.entry for op in operations.replace] == [entries[0]]
        assert operations.add == [entries[1]]

    def test_shared_overlap_goes_to_first_replace(self, make_entry, make_record):
        entries = [
            make_entry(start="09:00:00", end="10:00:00"),
            make_entry(start="10:00:00", end="11:00:00", issue="ITST-2"),
        ]
        operations = classify(entries, [make_record(1, hours=3, issue="ITST-3")])
        assert [r.remote_id for r in operations.replace[0].conflicting_worklogs] == [1]
        assert len(operations.replace) == 1
        assert operations.add == [entries[1]]

    def test_delete_target_is_not_replaced_again(self, make_entry, make_record):
        entries = [
            make_entry(end=None, should_delete=True),
            make_entry(start="10:00:00", end="11:00:00", issue="ITST-2"),
        ]
        operations = classify(entries, [make_record(1, hours=2)])
        assert [op.remote_id for op in operations.delete] == [1]
        assert operations.replace == []
        assert operations.add == [entries[1]]


class TestDifferences:

    def test_none(self, make_entry, make_record):
        assert differences(make_entry(), make_record(1)) == []

    @pytest.mark.parametrize(
        "changes, label",
        [
            ({"hours": 1.5}, "hours"),
            ({"description": "other"}, "description"),
            ({"start": "08:00:00"}, "time"),
            ({"day": "2025-08-24"}, "date"),
            ({"issue": "ITST-2"}, "issue"),
        ],
    )
    def test_single_field(self, make_entry, make_record, changes, label):
        diffs = differences(make_entry(), make_record(1, **changes))
        assert len(diffs) == 1
        assert diffs[0].startswith(label)
