"""Store-level operations on commands, item sidecars and handoffs."""

import os
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import ValidationError

from opsctl.errors import CommandAmbiguous, CommandNotFound, NotFound, OpsError, StoreError
from opsctl.models import CommandFrontmatter, CommandRecord, ItemTarget, RemoteItem, StoredRecord
from opsctl.paths import handoff_path, item_key, item_path, make_item_id
from opsctl.providers import item_ref
from opsctl.providers.local import LocalTaskProvider
from opsctl.store import Collection, StoreIssue, escape_expr
from opsctl.template import extract_placeholders

log = structlog.get_logger(__name__)

ITEM_TYPE = "item_state"
ANALYSIS_FIELDS = ("summary", "priority", "difficulty", "risk")


def _command_from_row(row: StoredRecord) -> CommandRecord:
    try:
        frontmatter = CommandFrontmatter.model_validate(row.frontmatter)
    except ValidationError as exc:
        raise StoreError(f"Invalid command frontmatter in {row.path}: {exc.errors()[0]['msg']}") from exc
    return CommandRecord(path=row.path, body=row.body, frontmatter=frontmatter)


def get_command_by_id(collection: Collection, command_id: str) -> CommandRecord:
    rows = collection.query(["command"], where=f'id == "{escape_expr(command_id)}"', limit=2, include_body=True)
    if not rows:
        raise CommandNotFound(command_id)
    if len(rows) > 1:
        raise CommandAmbiguous(command_id)
    return _command_from_row(rows[0])


def list_commands(collection: Collection) -> list[CommandRecord]:
    rows = collection.query(["command"], order_by=[("id", "asc")], include_body=True)
    return [_command_from_row(row) for row in rows]


def undeclared_placeholders(command: CommandRecord) -> list[str]:
    """Body placeholders missing from a non-empty `placeholders` declaration."""
    declared = set(command.frontmatter.placeholders)
    if not declared:
        return []
    return [
        path for path in extract_placeholders(command.body) if path not in declared and path.split(".")[0] not in declared
    ]


def validate_commands(collection: Collection) -> list[StoreIssue]:
    store_issues = collection.validate()
    issues = [issue for issue in store_issues if issue.path.startswith("commands/")]
    if any(issue.code == "unreadable" for issue in store_issues):
        # query() cannot load past an unreadable record; that record is already reported
        return issues
    broken = {issue.path for issue in issues}
    for row in collection.query(["command"], order_by=[("id", "asc")], include_body=True):
        if row.path in broken:
            continue
        for path in undeclared_placeholders(_command_from_row(row)):
            issues.append(
                StoreIssue(
                    path=row.path,
                    field="placeholders",
                    message=f"placeholder '{path}' is used in the body but not declared",
                    code="undeclared_placeholder",
                )
            )
    return issues


def upsert_item(collection: Collection, item: RemoteItem) -> str:
    """Create the sidecar for item, or refresh only its remote mirror fields."""
    key = item_key(item)
    path = item_path(item.kind, key)
    remote_fields: dict[str, Any] = {
        "id": make_item_id(item, key),
        "provider": item.provider,
        "kind": item.kind,
        "key": key,
        "external_ref": item_ref(item),
        "target_path": item.source_path,
        "repo": item.repo,
        "number": item.number,
        "remote_state": item.state,
        "remote_title": item.title,
        "remote_author": item.author,
        "remote_url": item.url,
        "remote_updated_at": item.updated_at,
        "last_seen_remote_updated_at": item.updated_at,
    }

    if not collection.exists(path):
        collection.create(ITEM_TYPE, path, {**remote_fields, "local_status": "new", "sync_state": "clean"})
        log.info("sidecar created", path=path, item_id=remote_fields["id"])
        return path

    # None would delete the key on update; keep whatever the sidecar already has
    collection.update(path, {k: v for k, v in remote_fields.items() if v is not None})
    log.info("sidecar refreshed", path=path, item_id=remote_fields["id"])
    return path


def target_key(collection: Collection, target: ItemTarget) -> str:
    """Sidecar key for a target; task refs are resolved to their store path first."""
    if target.kind == "task":
        return LocalTaskProvider(collection).resolve_task(target.key).path
    return target.key


def _ensure_hint(target: ItemTarget) -> str:
    flag = f"--task {target.key}" if target.kind == "task" else f"--{target.kind} {target.key}"
    return f"Run 'ops item ensure {flag}' first."


def read_item(collection: Collection, target: ItemTarget) -> StoredRecord:
    path = item_path(target.kind, target_key(collection, target))
    if not collection.exists(path):
        raise NotFound(f"Item {path} not found. {_ensure_hint(target)}")
    return collection.read(path)


def update_item_fields(collection: Collection, target: ItemTarget, fields: dict[str, Any]) -> str:
    path = item_path(target.kind, target_key(collection, target))
    if not collection.exists(path):
        raise NotFound(f"Item {path} not found. {_ensure_hint(target)}")
    collection.update(path, fields)
    return path


def list_items(collection: Collection, filters: dict[str, str | None]) -> list[StoredRecord]:
    """Sidecars matching every non-empty filter, ordered by kind then key."""
    clauses = [f'{field} == "{escape_expr(value)}"' for field, value in filters.items() if value]
    return collection.query(
        [ITEM_TYPE],
        where=" && ".join(clauses) or None,
        order_by=[("kind", "asc"), ("key", "asc")],
    )


def needs_analysis(sidecar: StoredRecord) -> bool:
    """True unless every triage analysis field holds a non-blank string."""
    values = [sidecar.frontmatter.get(field) for field in ANALYSIS_FIELDS]
    return not all(isinstance(v, str) and v.strip() for v in values)


def _utc_stamp() -> datetime:
    return datetime.now(timezone.utc)


def make_handoff_id(prefix: str) -> str:
    return f"{prefix}-{_utc_stamp().strftime('%Y%m%d%H%M%S')}"


def create_handoff(
    collection: Collection,
    sidecar: StoredRecord,
    *,
    for_agent: str,
    handoff_id: str | None = None,
    next_steps: list[str] | None = None,
    blockers: list[str] | None = None,
    created_by: str | None = None,
    body: str = "",
) -> StoredRecord:
    item_id = sidecar.frontmatter.get("id")
    if not item_id:
        raise OpsError(f"Item sidecar missing id: {sidecar.path}")
    kind = sidecar.frontmatter.get("kind", "item")
    handoff_id = handoff_id or make_handoff_id(f"{kind}-{sidecar.frontmatter.get('key', 'x')}".replace("/", "-"))
    return collection.create(
        "handoff",
        handoff_path(handoff_id),
        {
            "id": handoff_id,
            "item_id": item_id,
            "for_agent": for_agent,
            "status": "open",
            "next_steps": next_steps or None,
            "blockers": blockers or None,
            "created_by": created_by or os.environ.get("USER") or "unknown",
            "created_at": _utc_stamp().isoformat(),
        },
        body,
    )


def find_handoff(collection: Collection, handoff_id: str) -> StoredRecord:
    rows = collection.query(["handoff"], where=f'id == "{escape_expr(handoff_id)}"', limit=2, include_body=True)
    if not rows:
        raise NotFound(f"Handoff '{handoff_id}' not found.")
    if len(rows) > 1:
        raise OpsError(f"Handoff '{handoff_id}' is not unique.", code="handoff_ambiguous")
    return rows[0]


def list_handoffs(collection: Collection, status: str | None = None) -> list[StoredRecord]:
    where = f'status == "{escape_expr(status)}"' if status else None
    return collection.query(["handoff"], where=where, order_by=[("created_at", "desc")])


def close_handoff(collection: Collection, handoff_id: str) -> StoredRecord:
    row = find_handoff(collection, handoff_id)
    return collection.update(row.path, {"status": "closed"})
