"""Local task pseudo-provider: tasks are markdown records in the .ops store."""

from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any

import structlog

from opsctl.errors import AmbiguousReference, NotFound, ProviderRequestFailed
from opsctl.models import RemoteItem, StoredRecord
from opsctl.providers.base import FetchRequest, ProviderAdapter
from opsctl.store import Collection, escape_expr

log = structlog.get_logger(__name__)

TASKS_DIR = "tasks"


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _timestamp(value: Any) -> str | None:
    # YAML turns unquoted ISO dates into date/datetime objects
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return _text(value)


def _text_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def task_candidates(ref: str) -> list[str]:
    """Store paths to try, in order, for a task reference."""
    raw = ref.strip()
    candidates: list[str] = []
    if "/" in raw or raw.endswith(".md"):
        candidates.append(raw)
        if not raw.startswith(f"{TASKS_DIR}/"):
            candidates.append(f"{TASKS_DIR}/{raw}")
    if not raw.endswith(".md"):
        candidates.append(f"{raw}.md")
        if not raw.startswith(f"{TASKS_DIR}/"):
            candidates.append(f"{TASKS_DIR}/{raw}.md")
    return list(dict.fromkeys(candidates))


class LocalTaskProvider(ProviderAdapter):
    id = "local"

    def __init__(self, collection: Collection) -> None:
        self._collection = collection

    def resolve_task(self, ref: str) -> StoredRecord:
        raw = ref.strip()
        for candidate in task_candidates(raw):
            if self._collection.exists(candidate):
                return self._collection.read(candidate)

        rows = self._collection.query(["task"], where=f'title == "{escape_expr(raw)}"', limit=3, include_body=True)
        if len(rows) == 1:
            return rows[0]
        if len(rows) > 1:
            paths = [row.path for row in rows]
            raise AmbiguousReference(
                f"Task title '{raw}' is ambiguous. Matches: {', '.join(paths)}", matches=paths
            )
        raise NotFound(f"Task '{ref}' not found. Use a task path (for example tasks/my-task.md) or exact title.")

    def detect_repo(self, cwd: Path) -> str:
        return "local"

    def fetch_item(self, request: FetchRequest) -> RemoteItem:
        if request.kind != "task":
            raise ProviderRequestFailed("The local provider only serves tasks.", provider="local")
        record = self.resolve_task(request.key)
        log.debug("resolved task", ref=request.key, path=record.path)
        fm = record.frontmatter
        owner = _text(fm.get("owner")) or ""
        updated = _timestamp(fm.get("dateModified")) or _timestamp(fm.get("dateCreated"))
        return RemoteItem(
            provider="local",
            kind="task",
            key=record.path,
            source_path=record.path,
            title=_text(fm.get("title")) or PurePosixPath(record.path).stem,
            body=record.body,
            author=owner,
            state=_text(fm.get("status")) or "open",
            url=record.path,
            labels=_text_list(fm.get("tags")),
            assignees=[owner] if owner else [],
            updated_at=updated or datetime.now(timezone.utc).isoformat(),
        )

    @staticmethod
    def item_ref(item: RemoteItem) -> str:
        return item.source_path or item.key
