"""Repository/.ops root discovery and deterministic store paths and ids."""

import hashlib
import re
from pathlib import Path

import structlog

from opsctl.errors import NotFound
from opsctl.models import ItemKind, RemoteItem

log = structlog.get_logger(__name__)

OPS_DIR = ".ops"
LOCK_FILENAME = ".lock"
SLUG_MAX_LEN = 56

_NUMERIC_RE = re.compile(r"^\d+$")


def find_repo_root(start: Path | None = None) -> Path:
    """Walk up from start to the nearest directory holding .git; fall back to start."""
    origin = (start or Path.cwd()).resolve()
    for candidate in (origin, *origin.parents):
        if (candidate / ".git").exists():
            return candidate
    log.warning("no .git directory found, using start directory as repo root", start=str(origin))
    return origin


def ops_root(repo_root: Path) -> Path:
    return repo_root / OPS_DIR


def require_ops_root(repo_root: Path) -> Path:
    root = ops_root(repo_root)
    if not root.is_dir():
        raise NotFound(f"Missing .ops directory at {root}. Run 'ops init' first.")
    return root


def _slugify(text: str, max_len: int = SLUG_MAX_LEN) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_len]


def item_path(kind: ItemKind, key: str) -> str:
    """Return the sidecar path for an item, relative to the store root.

    Numeric keys map to items/{kind}-{n}.md. Anything else gets a slug plus the
    first 8 hex chars of sha1(key), so keys that slug identically (case-only
    differences, truncation) still land in different files.
    """
    trimmed = key.strip()
    if _NUMERIC_RE.match(trimmed):
        return f"items/{kind}-{trimmed}.md"
    slug = _slugify(trimmed) or "item"
    digest = hashlib.sha1(trimmed.encode("utf-8")).hexdigest()[:8]
    return f"items/{kind}-{slug}-{digest}.md"


def command_path(command_id: str) -> str:
    return f"commands/{command_id}.md"


def handoff_path(handoff_id: str) -> str:
    return f"handoffs/{handoff_id}.md"


def item_key(item: RemoteItem) -> str:
    if item.key.strip():
        return item.key.strip()
    if item.number is not None:
        return str(item.number)
    raise ValueError(f"Cannot derive key for {item.kind} item from {item.provider}")


def make_item_id(item: RemoteItem, key: str) -> str:
    """Canonical sidecar id, unique across providers and repos."""
    if item.provider == "local" or item.kind == "task":
        return f"local:task:{key}"
    if item.repo and item.number is not None:
        return f"{item.provider}:{item.repo}:{item.kind}:{item.number}"
    if item.repo:
        return f"{item.provider}:{item.repo}:{item.kind}:{key}"
    return f"{item.provider}:{item.kind}:{key}"
