from __future__ import annotations

import pytest

from ticsync.models import Comment, NewComment, QueueEntry, WorkItem
from ticsync.parser import ParseError, parse_item_file, render_item_file, split_frontmatter


def _item(**overrides) -> WorkItem:
    base = WorkItem(
        id="42",
        title="Fix login: redirect loop",
        type="task",
        status="todo",
        iteration="sprint-1",
        priority="high",
        assignee="alice",
        labels=["bug", "auth"],
        description="Users bounce between /login and /home.\n\nRepro on staging.",
        comments=[
            Comment(author="alice", date="2026-01-01T00:00:00+00:00", body="Looking into it."),
            Comment(author="bob", date="2026-01-02T09:30:00+00:00", body="Seen it too.\nSecond line."),
        ],
        parent="7",
        depends_on=["3", "5"],
        created="2026-01-01T00:00:00+00:00",
        updated="2026-01-02T09:30:00+00:00",
    )
    return base.copy(**overrides)


def test_round_trip_preserves_every_field():
    item = _item()
    assert parse_item_file(render_item_file(item)) == item


def test_round_trip_without_relationships_or_comments():
    item = _item(parent=None, depends_on=[], comments=[], description="")
    text = render_item_file(item)
    assert "parent:" not in text
    assert "depends_on:" not in text
    assert "comments:" not in text
    assert parse_item_file(text) == item


def test_numeric_ids_stay_strings():
    item = _item(id="7", parent="1", depends_on=["2"])
    parsed = parse_item_file(render_item_file(item))
    assert parsed.id == "7"
    assert parsed.parent == "1"
    assert parsed.depends_on == ["2"]


def test_hand_edited_file_with_unquoted_values():
    raw = (
        "---\n"
        "id: 12\n"
        "title: Hand written\n"
        "created: 2026-03-01 10:00:00\n"
        "labels: [docs]\n"
        "---\n"
        "Body text\n"
    )
    item = parse_item_file(raw)
    assert item.id == "12"
    assert item.created.startswith("2026-03-01")
    assert item.labels == ["docs"]
    assert item.priority == "medium"
    assert item.description == "Body text"


def test_missing_id_is_parse_error():
    with pytest.raises(ParseError):
        parse_item_file("---\ntitle: no id\n---\n")


def test_non_mapping_front_matter_is_parse_error():
    with pytest.raises(ParseError):
        split_frontmatter("---\n- a\n- b\n---\nbody")


def test_no_front_matter_returns_raw_body():
    data, body = split_frontmatter("just text")
    assert data == {}
    assert body == "just text"


def test_copy_does_not_share_lists():
    item = _item()
    clone = item.copy()
    clone.labels.append("extra")
    clone.comments[0].body = "changed"
    assert "extra" not in item.labels
    assert item.comments[0].body == "Looking into it."


def test_snapshot_has_only_writable_fields():
    snap = _item().snapshot()
    assert "id" not in snap
    assert "comments" not in snap
    assert snap["depends_on"] == ["3", "5"]


def test_queue_entry_dict_round_trip():
    entry = QueueEntry(action="comment", item_id="local-1", comment_data=NewComment(author="a", body="b"))
    assert QueueEntry.from_dict(entry.to_dict()) == entry
    assert "comment_data" not in QueueEntry(action="update", item_id="3").to_dict()


def test_queue_entry_rejects_unknown_action():
    with pytest.raises(ValueError):
        QueueEntry.from_dict({"action": "archive", "item_id": "1"})


def test_comment_body_with_horizontal_rule_round_trips():
    item = _item(comments=[Comment(author="a", date="d", body="before\n---\nafter")])
    parsed = parse_item_file(render_item_file(item))
    assert parsed.comments == [Comment(author="a", date="d", body="before\n---\nafter")]


def test_description_mentioning_comments_heading_round_trips():
    item = _item(description="Notes\n\n## Comments\n\nnot a comment thread", comments=[])
    parsed = parse_item_file(render_item_file(item))
    assert parsed.description == "Notes\n\n## Comments\n\nnot a comment thread"
    assert parsed.comments == []


def test_description_whitespace_is_preserved():
    for description in ("    code block\n", "\n\nleading blank lines", "trailing spaces   "):
        item = _item(description=description)
        assert parse_item_file(render_item_file(item)).description == description


def test_description_with_front_matter_fence_round_trips():
    item = _item(description="intro\n---\nmore", comments=[Comment(author="a", date="d", body="---")])
    assert parse_item_file(render_item_file(item)) == item


def test_comments_must_be_a_list_of_mappings():
    with pytest.raises(ParseError):
        parse_item_file("---\nid: 1\ncomments: nope\n---\n")
    with pytest.raises(ParseError):
        parse_item_file("---\nid: 1\ncomments: [just text]\n---\n")
