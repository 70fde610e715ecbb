"""Merge provider data, sidecar state and explicit variables into one render context.

Precedence, later steps winning on key collisions:

1. repo_root / ops_root
2. fetch the target item (and upsert its sidecar when asked)
3. provider fields, top level plus ``context[<provider>]`` and ``context["item"]``
4. sidecar frontmatter, only for keys not already present
5. explicit variables, unconditionally
6. a synthesized ``item_ref`` if still unset
7. ``now_iso``
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from opsctl.models import BuildContextResult, ItemTarget, ProviderId, RemoteItem, StoredRecord
from opsctl.ops_data import upsert_item
from opsctl.paths import item_key, item_path, ops_root
from opsctl.providers import FetchRequest, ProviderAdapter, item_ref, resolve_adapter
from opsctl.settings import OpsSettings
from opsctl.store import Collection, escape_expr
from opsctl.template import is_blank

log = structlog.get_logger(__name__)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def fence_body(item: RemoteItem) -> str:
    """Wrap untrusted item text in a provider+kind tag; empty bodies stay empty."""
    if not item.body:
        return ""
    tag = f"{item.provider}-{item.kind}-body"
    return f"<{tag}>\n{item.body}\n</{tag}>"


def item_fields(item: RemoteItem) -> dict[str, Any]:
    return {
        "provider": item.provider,
        "kind": item.kind,
        "key": item.key,
        "number": item.number,
        "repo": item.repo,
        "source_path": item.source_path,
        "title": item.title,
        "body": fence_body(item),
        "body_raw": item.body,
        "author": item.author,
        "state": item.state,
        "url": item.url,
        "labels": list(item.labels),
        "labels_csv": ",".join(item.labels),
        "assignees": list(item.assignees),
        "assignees_csv": ",".join(item.assignees),
        "item_ref": item_ref(item),
        "head_ref": item.head_ref_name,
        "base_ref": item.base_ref_name,
        "updated_at": item.updated_at,
    }


def _read_sidecar(collection: Collection, item: RemoteItem) -> StoredRecord | None:
    path = item_path(item.kind, item_key(item))
    if collection.exists(path):
        return collection.read(path)
    # sidecars written under an older key scheme are still found by their external ref
    rows = collection.query(
        ["item_state"], where=f'external_ref == "{escape_expr(item_ref(item))}"', limit=1, include_body=True
    )
    return rows[0] if rows else None


def synthesize_item_ref(context: dict[str, Any]) -> str | None:
    repo, number = context.get("repo"), context.get("number")
    if isinstance(repo, str) and repo and isinstance(number, int) and not isinstance(number, bool):
        return f"{repo}#PR{number}" if context.get("kind") == "pr" else f"{repo}#{number}"
    for field in ("source_path", "key"):
        if not is_blank(context.get(field)):
            return str(context[field])
    return None


def build_context(
    collection: Collection,
    repo_root: Path,
    settings: OpsSettings,
    *,
    target: ItemTarget | None = None,
    repo: str | None = None,
    provider: ProviderId | None = None,
    explicit_vars: dict[str, Any] | None = None,
    ensure_sidecar: bool = False,
    adapter: ProviderAdapter | None = None,
) -> BuildContextResult:
    repo_root = Path(repo_root).resolve()
    context: dict[str, Any] = {
        "repo_root": str(repo_root),
        "ops_root": str(ops_root(repo_root)),
    }
    item: RemoteItem | None = None
    sidecar: StoredRecord | None = None

    if target is not None:
        adapter = adapter or resolve_adapter(target.kind, provider, settings, collection)
        item = adapter.fetch_item(
            FetchRequest(
                kind=target.kind,
                key=target.key,
                number=target.number,
                cwd=repo_root,
                repo=(repo or settings.default_repo) if target.kind != "task" else None,
            )
        )
        if ensure_sidecar:
            upsert_item(collection, item)
        sidecar = _read_sidecar(collection, item)
        if sidecar is None:
            log.debug("no sidecar for item", kind=item.kind, key=item.key)

        fields = item_fields(item)
        context.update(fields)
        context[item.provider] = dict(fields)
        context["item"] = dict(fields)

    if sidecar is not None:
        context["sidecar"] = dict(sidecar.frontmatter)
        context["sidecar_path"] = sidecar.path
        context["ops_item_path"] = sidecar.path
        context["ops_item_abs_path"] = str(ops_root(repo_root) / sidecar.path)
        context["sidecar_body"] = sidecar.body
        for key, value in sidecar.frontmatter.items():
            context.setdefault(key, value)

    context.update(explicit_vars or {})

    if is_blank(context.get("item_ref")):
        synthesized = synthesize_item_ref(context)
        if synthesized is not None:
            context["item_ref"] = synthesized

    context["now_iso"] = now_iso()
    return BuildContextResult(context=context, item=item, sidecar=sidecar)
