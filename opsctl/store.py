"""File-backed markdown store for the .ops directory.

Each record is a markdown file with YAML frontmatter; the frontmatter ``type``
field names the record type (command, item_state, task, handoff). Sessions are
opened with open_collection(), which holds the store lock for their whole
lifetime.
"""

import os
import re
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Literal

import frontmatter
import structlog
import yaml
from pydantic import BaseModel, ValidationError

from opsctl.errors import NotFound, StoreError
from opsctl.lock import StoreLock
from opsctl.models import CommandFrontmatter, StoredRecord

log = structlog.get_logger(__name__)

OrderBy = Sequence[tuple[str, Literal["asc", "desc"]]]

_CLAUSE_RE = re.compile(r'\s*([A-Za-z_][A-Za-z0-9_.]*)\s*==\s*"((?:[^"\\]|\\.)*)"\s*')
_AND_RE = re.compile(r"\s*&&")
_UNESCAPE_RE = re.compile(r"\\(.)")
_SKIP_DIRS = {"_types"}


def escape_expr(value: str) -> str:
    """Escape a literal for use inside a double-quoted where clause."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def parse_where(where: str) -> list[tuple[str, str]]:
    """Parse ``field == "literal" && ...`` into (field, literal) pairs."""
    clauses: list[tuple[str, str]] = []
    pos = 0
    while True:
        match = _CLAUSE_RE.match(where, pos)
        if not match:
            raise StoreError(f"Unsupported where clause: {where!r}")
        clauses.append((match.group(1), _UNESCAPE_RE.sub(r"\1", match.group(2))))
        pos = match.end()
        if pos == len(where):
            return clauses
        joiner = _AND_RE.match(where, pos)
        if not joiner:
            raise StoreError(f"Unsupported where clause: {where!r}")
        pos = joiner.end()


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)


def _sort_key(value: Any) -> tuple[int, Any]:
    if value is None:
        return (2, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    return (1, _as_text(value))


class StoreIssue(BaseModel):
    path: str
    field: str | None = None
    message: str
    code: str


class Collection:
    """Read/create/update/query access to markdown records under a root directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        full = (self.root / path).resolve()
        if not full.is_relative_to(self.root):
            raise StoreError(f"Path {path} escapes the store root {self.root}")
        return full

    def _load(self, full: Path) -> StoredRecord:
        try:
            post = frontmatter.load(full)
        except (OSError, yaml.YAMLError) as exc:
            raise StoreError(f"Failed to read {full}: {exc}") from exc
        return StoredRecord(
            path=full.relative_to(self.root).as_posix(),
            frontmatter=dict(post.metadata),
            body=post.content,
        )

    def _write(self, full: Path, metadata: dict[str, Any], body: str) -> None:
        post = frontmatter.Post(body)
        post.metadata.update(metadata)
        full.parent.mkdir(parents=True, exist_ok=True)
        tmp = full.with_name(f".{full.name}.tmp")
        tmp.write_text(frontmatter.dumps(post, sort_keys=False) + "\n", encoding="utf-8")
        os.replace(tmp, full)

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def read(self, path: str) -> StoredRecord:
        full = self._resolve(path)
        if not full.is_file():
            raise NotFound(f"Record {path} not found in {self.root}")
        return self._load(full)

    def create(
        self, type_: str, path: str, fields: dict[str, Any], body: str = "", *, overwrite: bool = False
    ) -> StoredRecord:
        full = self._resolve(path)
        if full.exists() and not overwrite:
            raise StoreError(f"Failed to create {path}: record already exists")
        metadata = {"type": type_, **{k: v for k, v in fields.items() if v is not None}}
        self._write(full, metadata, body)
        log.debug("store record created", path=path, type=type_)
        return StoredRecord(path=path, frontmatter=metadata, body=body)

    def update(self, path: str, fields: dict[str, Any]) -> StoredRecord:
        """Merge fields into a record's frontmatter; None removes a key."""
        record = self.read(path)
        metadata = dict(record.frontmatter)
        for key, value in fields.items():
            if value is None:
                metadata.pop(key, None)
            else:
                metadata[key] = value
        self._write(self._resolve(path), metadata, record.body)
        log.debug("store record updated", path=path, fields=sorted(fields))
        return StoredRecord(path=record.path, frontmatter=metadata, body=record.body)

    def _iter_files(self) -> Iterator[Path]:
        for full in sorted(self.root.rglob("*.md")):
            rel_parts = full.relative_to(self.root).parts
            if any(part in _SKIP_DIRS or part.startswith(".") for part in rel_parts[:-1]):
                continue
            yield full

    def query(
        self,
        types: Sequence[str],
        where: str | None = None,
        order_by: OrderBy | None = None,
        limit: int | None = None,
        include_body: bool = False,
    ) -> list[StoredRecord]:
        clauses = parse_where(where) if where else []
        rows: list[StoredRecord] = []
        for full in self._iter_files():
            record = self._load(full)
            if record.frontmatter.get("type") not in types:
                continue
            if any(_as_text(record.frontmatter.get(field)) != literal for field, literal in clauses):
                continue
            if not include_body:
                record.body = ""
            rows.append(record)

        for field, direction in reversed(list(order_by or [])):
            rows.sort(key=lambda r: _sort_key(r.frontmatter.get(field)), reverse=direction == "desc")

        return rows[:limit] if limit is not None else rows

    def validate(self) -> list[StoreIssue]:
        issues: list[StoreIssue] = []
        seen_ids: dict[tuple[str, str], str] = {}
        for full in self._iter_files():
            try:
                record = self._load(full)
            except StoreError as exc:
                issues.append(
                    StoreIssue(path=full.relative_to(self.root).as_posix(), message=str(exc), code="unreadable")
                )
                continue
            type_ = record.frontmatter.get("type")
            if type_ is None:
                continue
            record_id = record.frontmatter.get("id")
            if record_id is not None:
                previous = seen_ids.setdefault((str(type_), str(record_id)), record.path)
                if previous != record.path:
                    issues.append(
                        StoreIssue(
                            path=record.path,
                            field="id",
                            message=f"duplicate {type_} id '{record_id}' (also in {previous})",
                            code="duplicate_id",
                        )
                    )
            if type_ == "command":
                try:
                    CommandFrontmatter.model_validate(record.frontmatter)
                except ValidationError as exc:
                    for error in exc.errors():
                        issues.append(
                            StoreIssue(
                                path=record.path,
                                field=".".join(str(p) for p in error["loc"]) or None,
                                message=error["msg"],
                                code=error["type"],
                            )
                        )
        return issues


@contextmanager
def open_collection(root: Path) -> Iterator[Collection]:
    """Open the store at root while holding its lock for the whole session."""
    if not Path(root).is_dir():
        raise NotFound(f"Missing .ops directory at {root}. Run 'ops init' first.")
    with StoreLock(root):
        yield Collection(root)
