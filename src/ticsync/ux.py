"""Terminal output helpers for the CLI.

Colour is applied only when the stream is a TTY and neither ``NO_COLOR``
is set nor ``TERM`` is ``dumb``; tests and pipes always see plain text.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Sequence
from typing import TextIO

from .models import PRIORITIES, WorkItem


class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"


_PRIORITY_COLORS = dict(zip(PRIORITIES, (Colors.DIM, "", Colors.YELLOW, Colors.RED)))


def _supports_color(stream: TextIO | None = None) -> bool:
    stream = stream or sys.stdout
    if os.environ.get("NO_COLOR"):
        return False
    if not hasattr(stream, "isatty") or not stream.isatty():
        return False
    return os.environ.get("TERM") != "dumb"


def colorize(text: str, color: str, bold: bool = False, stream: TextIO | None = None) -> str:
    if not color or not _supports_color(stream):
        return text
    prefix = (Colors.BOLD if bold else "") + color
    return f"{prefix}{text}{Colors.RESET}"


def print_success(message: str, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    print(colorize("✓", Colors.GREEN, bold=True, stream=stream) + " " + message, file=stream)


def print_error(message: str, stream: TextIO | None = None) -> None:
    stream = stream or sys.stderr
    print(colorize("Error:", Colors.RED, bold=True, stream=stream) + " " + message, file=stream)


def print_warning(message: str, stream: TextIO | None = None) -> None:
    stream = stream or sys.stderr
    print(colorize("⚠", Colors.YELLOW, bold=True, stream=stream) + " " + message, file=stream)


def print_summary_box(
    title: str, items: Sequence[tuple[str, str | int]], stream: TextIO | None = None
) -> None:
    """Key/value block used by ``status``, ``push`` and ``sync``."""
    stream = stream or sys.stdout
    width = max((len(k) for k, _ in items), default=0)
    print(colorize(title, Colors.CYAN, bold=True, stream=stream), file=stream)
    for key, value in items:
        text = str(value)
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            text = colorize(text, Colors.GREEN, bold=True, stream=stream)
        print(f"  {key.ljust(width)}  {text}", file=stream)


def format_item_line(item: WorkItem, stream: TextIO | None = None) -> str:
    ident = colorize(f"#{item.id}", Colors.CYAN, bold=True, stream=stream)
    priority = colorize(item.priority, _PRIORITY_COLORS.get(item.priority, ""), stream=stream)
    return f"{ident}  [{item.status}]  {item.title}  ({item.type}, {priority})"


def format_item_detail(item: WorkItem, stream: TextIO | None = None) -> str:
    lines = [format_item_line(item, stream)]
    fields = [
        ("iteration", item.iteration),
        ("assignee", item.assignee),
        ("labels", ", ".join(item.labels)),
        ("parent", f"#{item.parent}" if item.parent else ""),
        ("depends on", ", ".join(f"#{d}" for d in item.depends_on)),
        ("created", item.created),
        ("updated", item.updated),
    ]
    for label, value in fields:
        if value:
            lines.append(f"  {colorize(label + ':', Colors.DIM, stream=stream)} {value}")
    if item.description:
        lines.extend(["", item.description])
    if item.comments:
        lines.extend(["", colorize("Comments:", Colors.BOLD, stream=stream)])
        for comment in item.comments:
            lines.append(f"  {comment.author} ({comment.date}):")
            lines.extend(f"    {line}" for line in comment.body.splitlines())
    return "\n".join(lines)


__all__ = [
    "Colors",
    "colorize",
    "format_item_detail",
    "format_item_line",
    "print_error",
    "print_success",
    "print_summary_box",
    "print_warning",
]
