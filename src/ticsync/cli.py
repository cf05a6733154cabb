"""ticsync command line interface.

Subcommands:
  init       -> create ``.tic/`` with a default config
  list       -> items in the current iteration (``--all`` for every item)
  show       -> one item with description and comments
  create     -> new item (queued for the remote when one is configured)
  update     -> change fields of an item
  delete     -> delete an item, clearing references to it
  comment    -> append a comment
  children   -> items whose parent is the given id
  iteration  -> list iterations / set the current one
  push       -> send queued mutations to the remote
  sync       -> push, then pull the remote state
  status     -> backend, pending queue entries

Every command exits 1 on error with ``Error: <message>`` on stderr (or a
``{"error": ...}`` object with ``--json``).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from typing import Any

from .config import VALID_BACKENDS
from .errors import ConfigError, TicError
from .models import PRIORITIES, NewComment, PushResult, SyncError, WorkItem
from .runtime import Workspace, execute_command, init_workspace
from .ux import format_item_detail, format_item_line, print_error, print_success, print_summary_box

_MAX_HELP_WIDTH = 100

Handler = Callable[[Workspace, argparse.Namespace], Awaitable[int]]


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _add_field_flags(parser: argparse.ArgumentParser, *, with_title: bool) -> None:
    if with_title:
        parser.add_argument("--title")
    parser.add_argument("--type", dest="item_type")
    parser.add_argument("--status")
    parser.add_argument("--priority", choices=PRIORITIES)
    parser.add_argument("--assignee")
    parser.add_argument("--labels", help="Comma-separated labels (empty string clears)")
    parser.add_argument("--iteration")
    parser.add_argument("--description")
    parser.add_argument("--parent", help="Parent id (empty string clears)")
    parser.add_argument("--depends-on", help="Comma-separated ids (empty string clears)")


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(prog="ticsync", description="Local-first work item tracker")
    p.add_argument("--root", default=".", help="Directory containing .tic/ (default: .)")
    p.add_argument("--json", action="store_true", help="Machine-readable JSON output")
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress informational logging (env: TICSYNC_QUIET=1)",
    )
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    init = sub.add_parser("init", help="Create .tic/ with a default config")
    init.add_argument("--backend", choices=VALID_BACKENDS, default="local")
    init.add_argument("--repo", help="owner/repo for the github backend")

    ls = sub.add_parser("list", help="List work items")
    ls.add_argument("--all", action="store_true", help="Every iteration, not just the current one")
    ls.add_argument("--iteration")
    ls.add_argument("--status")
    ls.add_argument("--type", dest="item_type")

    show = sub.add_parser("show", help="Show one work item")
    show.add_argument("id")

    create = sub.add_parser("create", help="Create a work item")
    create.add_argument("title")
    _add_field_flags(create, with_title=False)

    update = sub.add_parser("update", help="Update a work item")
    update.add_argument("id")
    _add_field_flags(update, with_title=True)

    delete = sub.add_parser("delete", help="Delete a work item")
    delete.add_argument("id")

    comment = sub.add_parser("comment", help="Add a comment to a work item")
    comment.add_argument("id")
    comment.add_argument("text")
    comment.add_argument("--author", help="Comment author (default: $TICSYNC_AUTHOR or $USER)")

    children = sub.add_parser("children", help="List the children of a work item")
    children.add_argument("id")

    iteration = sub.add_parser("iteration", help="List or set iterations")
    it_sub = iteration.add_subparsers(
        dest="iteration_cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<action>",
    )
    it_sub.add_parser("list", help="List known iterations")
    it_set = it_sub.add_parser("set", help="Set the current iteration")
    it_set.add_argument("name")

    sub.add_parser("push", help="Push queued mutations to the remote")
    sub.add_parser("sync", help="Push queued mutations, then pull remote state")
    sub.add_parser("status", help="Show backend and pending queue entries")
    return p


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _collect_fields(args: argparse.Namespace) -> dict[str, Any]:
    data: dict[str, Any] = {}
    simple = {
        "title": "title",
        "item_type": "type",
        "status": "status",
        "priority": "priority",
        "assignee": "assignee",
        "iteration": "iteration",
        "description": "description",
        "parent": "parent",
    }
    for attr, key in simple.items():
        value = getattr(args, attr, None)
        if value is not None:
            data[key] = value
    if args.labels is not None:
        data["labels"] = _split_csv(args.labels)
    if args.depends_on is not None:
        data["depends_on"] = _split_csv(args.depends_on)
    return data


def _emit_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


def _sync_error_dict(error: SyncError) -> dict[str, Any]:
    return {
        "action": error.entry.action if error.entry else None,
        "item_id": error.entry.item_id if error.entry else None,
        "message": error.message,
        "category": error.category,
        "transient": error.transient,
        "timestamp": error.timestamp,
    }


def _print_items(items: list[WorkItem], args: argparse.Namespace) -> None:
    if args.json:
        _emit_json([i.to_dict() for i in items])
        return
    if not items:
        print("No work items.")
        return
    for item in items:
        print(format_item_line(item))


def _require_manager(ws: Workspace) -> None:
    if ws.manager is None:
        raise ConfigError("No remote backend configured; nothing to sync")


async def _cmd_list(ws: Workspace, args: argparse.Namespace) -> int:
    iteration = args.iteration or (None if args.all else ws.store.current_iteration() or None)
    items = await ws.tracker.list(iteration)
    if args.status:
        items = [i for i in items if i.status == args.status]
    if args.item_type:
        items = [i for i in items if i.type == args.item_type]
    _print_items(items, args)
    return 0


async def _cmd_show(ws: Workspace, args: argparse.Namespace) -> int:
    item = await ws.tracker.get(args.id)
    if args.json:
        _emit_json(item.to_dict())
    else:
        print(format_item_detail(item))
    return 0


async def _cmd_create(ws: Workspace, args: argparse.Namespace) -> int:
    data = _collect_fields(args)
    data["title"] = args.title
    item = await ws.tracker.create(data)
    if args.json:
        _emit_json(item.to_dict())
    else:
        print_success(f"Created #{item.id}: {item.title}")
    return 0


async def _cmd_update(ws: Workspace, args: argparse.Namespace) -> int:
    data = _collect_fields(args)
    if not data:
        raise ConfigError("Nothing to update; pass at least one field flag")
    item = await ws.tracker.update(args.id, data)
    if args.json:
        _emit_json(item.to_dict())
    else:
        print_success(f"Updated #{item.id}: {', '.join(sorted(data))}")
    return 0


async def _cmd_delete(ws: Workspace, args: argparse.Namespace) -> int:
    await ws.tracker.delete(args.id)
    if args.json:
        _emit_json({"deleted": args.id})
    else:
        print_success(f"Deleted #{args.id}")
    return 0


async def _cmd_comment(ws: Workspace, args: argparse.Namespace) -> int:
    author = args.author or os.environ.get("TICSYNC_AUTHOR") or os.environ.get("USER") or "anonymous"
    comment = await ws.tracker.add_comment(args.id, NewComment(author=author, body=args.text))
    if args.json:
        _emit_json(asdict(comment))
    else:
        print_success(f"Commented on #{args.id}")
    return 0


async def _cmd_children(ws: Workspace, args: argparse.Namespace) -> int:
    _print_items(await ws.tracker.children(args.id), args)
    return 0


async def _cmd_iteration(ws: Workspace, args: argparse.Namespace) -> int:
    if args.iteration_cmd == "set":
        await ws.tracker.set_current_iteration(args.name)
        if not args.json:
            print_success(f"Current iteration: {args.name}")
    current = ws.store.current_iteration()
    if args.json:
        _emit_json({"current": current, "iterations": ws.store.iterations()})
    elif args.iteration_cmd == "list":
        for name in ws.store.iterations():
            print(f"{'*' if name == current else ' '} {name}")
    return 0


def _report_push(push: PushResult, args: argparse.Namespace, extra: list[tuple[str, str | int]]) -> None:
    if args.json:
        return
    rows: list[tuple[str, str | int]] = [("pushed", push.pushed), ("failed", push.failed), *extra]
    print_summary_box("Sync summary", rows)
    for local_id, remote_id in push.id_mappings.items():
        print(f"  {local_id} -> {remote_id}")
    for error in push.errors:
        where = f"{error.entry.action} #{error.entry.item_id}" if error.entry else "pull"
        print_error(f"{where}: {error.message}")


async def _cmd_push(ws: Workspace, args: argparse.Namespace) -> int:
    _require_manager(ws)
    assert ws.manager is not None
    push = await ws.manager.push_pending()
    pending = await ws.manager.refresh_pending_count()
    if args.json:
        _emit_json({
            "pushed": push.pushed,
            "failed": push.failed,
            "id_mappings": push.id_mappings,
            "errors": [_sync_error_dict(e) for e in push.errors],
            "pending": pending,
        })
    _report_push(push, args, [("pending", pending)])
    return 1 if push.errors else 0


async def _cmd_sync(ws: Workspace, args: argparse.Namespace) -> int:
    _require_manager(ws)
    assert ws.manager is not None
    result = await ws.manager.sync()
    status = ws.manager.get_status()
    if args.json:
        _emit_json({
            "state": status.state,
            "pushed": result.push.pushed,
            "failed": result.push.failed,
            "pulled": result.pull_count,
            "id_mappings": result.push.id_mappings,
            "errors": [_sync_error_dict(e) for e in status.errors],
            "pending": status.pending_count,
            "last_sync_time": status.last_sync_time,
        })
    _report_push(result.push, args, [("pulled", result.pull_count), ("pending", status.pending_count)])
    if result.pull_error and not args.json:
        print_error(f"pull: {result.pull_error}")
    return 1 if status.state == "error" else 0


async def _cmd_status(ws: Workspace, args: argparse.Namespace) -> int:
    entries = await ws.queue.read() if ws.queue is not None else []
    if args.json:
        _emit_json({
            "backend": ws.config.backend,
            "current_iteration": ws.store.current_iteration(),
            "pending_count": len(entries),
            "pending": [e.to_dict() for e in entries],
        })
        return 0
    print_summary_box(
        "Status",
        [
            ("backend", ws.config.backend),
            ("iteration", ws.store.current_iteration()),
            ("pending", len(entries)),
        ],
    )
    for entry in entries:
        print(f"  {entry.action:<8} #{entry.item_id}  {entry.timestamp}")
    return 0


_HANDLERS: dict[str, Handler] = {
    "list": _cmd_list,
    "show": _cmd_show,
    "create": _cmd_create,
    "update": _cmd_update,
    "delete": _cmd_delete,
    "comment": _cmd_comment,
    "children": _cmd_children,
    "iteration": _cmd_iteration,
    "push": _cmd_push,
    "sync": _cmd_sync,
    "status": _cmd_status,
}


def _cmd_init(args: argparse.Namespace) -> int:
    path, created = init_workspace(args.root, backend=args.backend, repo=args.repo)
    if args.json:
        _emit_json({"config": str(path), "created": created})
    elif created:
        print_success(f"Initialized {path.parent}")
    else:
        print(f"[init] already initialized ({path})")
    return 0


async def _run_in_workspace(handler: Handler, args: argparse.Namespace) -> int:
    with Workspace.open(args.root, log_level="ERROR" if args.quiet else None) as ws:
        return await handler(ws, args)


def _report_failure(exc: TicError, args: argparse.Namespace) -> None:
    if getattr(args, "json", False):
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
    else:
        print_error(str(exc))


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.quiet and os.environ.get("TICSYNC_QUIET") == "1":
        args.quiet = True

    if args.cmd == "init":
        handler: Callable[[], Any] = lambda: _cmd_init(args)  # noqa: E731
    else:
        command = _HANDLERS[args.cmd]
        handler = lambda: asyncio.run(_run_in_workspace(command, args))  # noqa: E731
    try:
        return execute_command(handler, args.cmd)
    except TicError as exc:
        _report_failure(exc, args)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
