"""Work item record format.

Each item lives in ``.tic/items/<id>.md``::

    ---
    id: '42'
    title: Fix login
    ...
    comments:
    - author: alice
      date: '2026-01-01T00:00:00+00:00'
      body: Comment body.
    ---
    Free-text description.

Front matter is YAML; ``parent``, ``depends_on`` and ``comments`` are
omitted when empty. Everything after the closing ``---`` is the description,
kept verbatim apart from the single newline that terminates the file.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, cast

import yaml

from .models import DEFAULT_PRIORITY, Comment, WorkItem, unique_ordered


class ParseError(ValueError):
    pass


_frontmatter_re = re.compile(r"^---\r?\n([\s\S]*?)\r?\n---\r?\n?([\s\S]*)$")


def _scalar(value: Any) -> str:
    # Hand-edited files may carry unquoted timestamps that YAML turns into datetimes.
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return "" if value is None else str(value)


def split_frontmatter(raw: str) -> tuple[dict[str, Any], str]:
    m = _frontmatter_re.match(raw)
    if not m:
        return {}, raw
    try:
        loaded = yaml.safe_load(m.group(1))
    except yaml.YAMLError as exc:
        raise ParseError(f"Invalid front matter: {exc}") from exc
    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ParseError("Front matter must be a mapping")
    return cast(dict[str, Any], loaded), m.group(2)


def parse_comments(raw: Any) -> list[Comment]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ParseError("comments must be a list")
    comments: list[Comment] = []
    for entry in raw:
        if not isinstance(entry, Mapping):
            raise ParseError("Each comment must be a mapping with author, date and body")
        comments.append(
            Comment(
                author=_scalar(entry.get("author")),
                date=_scalar(entry.get("date")),
                body=_scalar(entry.get("body")),
            )
        )
    return comments


def parse_item_file(raw: str) -> WorkItem:
    data, content = split_frontmatter(raw)
    if "id" not in data or data.get("id") in (None, ""):
        raise ParseError("Work item file has no id")
    if content.endswith("\n"):
        content = content[:-1]
    parent = data.get("parent")
    depends = data.get("depends_on")
    labels = data.get("labels")
    return WorkItem(
        id=_scalar(data["id"]),
        title=_scalar(data.get("title")),
        type=_scalar(data.get("type")) or "issue",
        status=_scalar(data.get("status")),
        iteration=_scalar(data.get("iteration")),
        priority=_scalar(data.get("priority")) or DEFAULT_PRIORITY,
        assignee=_scalar(data.get("assignee")),
        labels=unique_ordered(labels) if isinstance(labels, list) else [],
        description=content,
        comments=parse_comments(data.get("comments")),
        parent=_scalar(parent) if parent not in (None, "") else None,
        depends_on=unique_ordered(depends) if isinstance(depends, list) else [],
        created=_scalar(data.get("created")),
        updated=_scalar(data.get("updated")),
    )


def render_item_file(item: WorkItem) -> str:
    frontmatter: dict[str, Any] = {
        "id": item.id,
        "title": item.title,
        "type": item.type,
        "status": item.status,
        "iteration": item.iteration,
        "priority": item.priority,
        "assignee": item.assignee,
        "labels": list(item.labels),
        "created": item.created,
        "updated": item.updated,
    }
    if item.parent is not None:
        frontmatter["parent"] = item.parent
    if item.depends_on:
        frontmatter["depends_on"] = list(item.depends_on)
    if item.comments:
        frontmatter["comments"] = [
            {"author": c.author, "date": c.date, "body": c.body} for c in item.comments
        ]
    header = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True, width=4096).rstrip()
    return f"---\n{header}\n---\n{item.description}\n"


__all__ = [
    "ParseError",
    "parse_comments",
    "parse_item_file",
    "render_item_file",
    "split_frontmatter",
]
