"""ops CLI: command templates, item sidecars, handoffs and agent runs."""

import functools
import json
import os
import re
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from opsctl.errors import MissingVariables, OpsError
from opsctl.executor import execute_prepared, prepare_run
from opsctl.logging import setup_logging
from opsctl.models import CommandFrontmatter, ExecutedRun, ExecutionProfile, ItemTarget, StoredRecord
from opsctl.ops_data import (
    close_handoff,
    create_handoff,
    find_handoff,
    get_command_by_id,
    list_commands,
    list_handoffs,
    list_items,
    read_item,
    update_item_fields,
    upsert_item,
    validate_commands,
)
from opsctl.parse import parse_key_value_pairs
from opsctl.paths import command_path, find_repo_root, ops_root, require_ops_root
from opsctl.process import run_captured
from opsctl.providers import FetchRequest, resolve_adapter
from opsctl.scaffold import scaffold_ops
from opsctl.settings import OpsSettings, config_path, get_settings
from opsctl.store import open_collection
from opsctl.targets import parse_target_options, require_target
from opsctl.workflows import address_issue

app = typer.Typer(help="ops: repo-local issue/PR/task state and agent command templates", no_args_is_help=True)
command_app = typer.Typer(help="Manage .ops command templates", no_args_is_help=True)
item_app = typer.Typer(help="Manage sidecar records for issues, PRs and tasks", no_args_is_help=True)
handoff_app = typer.Typer(help="Manage handoff records", no_args_is_help=True)
issue_app = typer.Typer(help="Issue-focused workflows", no_args_is_help=True)
config_app = typer.Typer(help="Inspect resolved configuration", no_args_is_help=True)
app.add_typer(command_app, name="command")
app.add_typer(item_app, name="item")
app.add_typer(handoff_app, name="handoff")
app.add_typer(issue_app, name="issue")
app.add_typer(config_app, name="config")

console = Console()
err_console = Console(stderr=True)

COMMAND_ID_RE = re.compile(r"^[a-z0-9-]+$")


class OutputFormat(str, Enum):
    text = "text"
    json = "json"


RepoRootOpt = Annotated[Path | None, typer.Option("--repo-root", help="Repository root (default: nearest .git)")]
FormatOpt = Annotated[OutputFormat, typer.Option("--format", help="text|json")]
IssueOpt = Annotated[str | None, typer.Option("--issue", help="Issue number")]
PrOpt = Annotated[str | None, typer.Option("--pr", help="PR number")]
TaskOpt = Annotated[str | None, typer.Option("--task", help="Task title or path (for example tasks/my-task.md)")]
RepoOpt = Annotated[str | None, typer.Option("--repo", help="Provider scope override (for example owner/repo)")]
ProviderOpt = Annotated[str | None, typer.Option("--provider", help="github|gitlab|jira|azure")]
VarOpt = Annotated[list[str] | None, typer.Option("--var", help="Template variable override key=value (repeatable)")]
ModeOpt = Annotated[str | None, typer.Option("--mode", help="interactive|non-interactive")]
InteractiveOpt = Annotated[bool, typer.Option("--interactive", help="Alias for --mode interactive")]
NonInteractiveOpt = Annotated[bool, typer.Option("--non-interactive", help="Alias for --mode non-interactive")]
CliOpt = Annotated[str | None, typer.Option("--cli", help="claude|codex")]
ModelOpt = Annotated[str | None, typer.Option("--model", help="Model override")]
PermissionOpt = Annotated[
    str | None,
    typer.Option("--permission-mode", help="claude: permission mode; codex: approval policy fallback"),
]
SandboxOpt = Annotated[str | None, typer.Option("--sandbox", help="codex sandbox (read-only|workspace-write|...)")]
ApprovalOpt = Annotated[str | None, typer.Option("--approval-policy", help="codex approval policy")]
AllowedToolOpt = Annotated[list[str] | None, typer.Option("--allowed-tool", help="Allowed tool (repeatable)")]

F = TypeVar("F", bound=Callable[..., Any])


def handle_errors(func: F) -> F:
    """Turn OpsError into a red ``error:`` line on stderr and exit status 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except OpsError as exc:
            err_console.print(f"[red]error: {escape(str(exc))}[/red]", highlight=False, soft_wrap=True)
            raise typer.Exit(1) from exc

    return wrapper  # type: ignore[return-value]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging on stderr")] = False,
) -> None:
    level = "DEBUG" if verbose else os.environ.get("OPS_LOG_LEVEL", "WARNING")
    setup_logging(log_level=level)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _repo_root(repo_root: Path | None) -> Path:
    return repo_root.resolve() if repo_root else find_repo_root()


def _print_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _record_json(record: StoredRecord) -> dict[str, Any]:
    return record.model_dump(mode="json")


def _echo_block(text: str, *, err: bool = False) -> None:
    if text.strip():
        typer.echo(text if text.endswith("\n") else f"{text}\n", nl=False, err=err)


def _print_record(record: StoredRecord) -> None:
    console.print(f"[bold]{escape(record.path)}[/bold]", highlight=False, soft_wrap=True)
    for key, value in record.frontmatter.items():
        shown = ", ".join(str(v) for v in value) if isinstance(value, list) else str(value)
        console.print(f"  [cyan]{escape(str(key))}[/cyan]: {escape(shown)}", highlight=False, soft_wrap=True)
    if record.body.strip():
        typer.echo("---")
        typer.echo(record.body.rstrip())


def _resolve_mode(mode: str | None, interactive: bool, non_interactive: bool) -> str | None:
    if interactive and non_interactive:
        raise OpsError("Use only one of --interactive or --non-interactive.")
    if interactive:
        return "interactive"
    if non_interactive:
        return "non-interactive"
    return mode


def _overrides(**values: Any) -> ExecutionProfile:
    try:
        return ExecutionProfile(**values)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first["loc"])
        raise OpsError(f"Invalid --{field.replace('_', '-')} value: {first['msg']}") from exc


def _provider(provider: str | None, settings: OpsSettings) -> str:
    return provider or settings.default_provider


def _report_run(run: ExecutedRun, fmt: OutputFormat) -> None:
    if fmt is OutputFormat.json:
        _print_json(run.model_dump(mode="json"))
    elif run.mode == "non-interactive":
        _echo_block(run.stdout)
        _echo_block(run.stderr, err=True)
    if run.exit_code != 0:
        raise typer.Exit(run.exit_code)


# ---------------------------------------------------------------------------
# init / doctor / config
# ---------------------------------------------------------------------------


@app.command("init")
@handle_errors
def init_cmd(
    repo_root: RepoRootOpt = None,
    force: Annotated[bool, typer.Option("--force", help="Overwrite managed starter files")] = False,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Initialize .ops at the repository root."""
    root_dir = _repo_root(repo_root)
    root = ops_root(root_dir)
    result = scaffold_ops(root, force=force)
    with open_collection(root) as collection:
        issues = collection.validate()

    if fmt is OutputFormat.json:
        _print_json({"status": "initialized", "repo_root": str(root_dir), "ops_root": str(root), **result.model_dump()})
        return
    rprint(f"[green]✓[/green] initialized {escape(str(root))}")
    for label, files in (("created", result.created), ("skipped", result.skipped)):
        if files:
            rprint(f"[bold]{label}:[/bold]")
            for name in files:
                rprint(f"  {escape(name)}")
    if issues:
        rprint(f"[yellow]Warning:[/yellow] {len(issues)} validation issue(s); run 'ops command validate'.")


def _check_binary(name: str, cwd: Path) -> dict[str, Any]:
    try:
        result = run_captured(name, ["--help"], cwd)
    except OpsError as exc:
        return {"check": f"{name} installed", "ok": False, "detail": str(exc)}
    ok = result.exit_code == 0
    detail = "ok" if ok else (result.stderr or result.stdout or f"exit {result.exit_code}").strip()
    return {"check": f"{name} installed", "ok": ok, "detail": detail}


def _check_gh_auth(cwd: Path) -> dict[str, Any]:
    try:
        result = run_captured("gh", ["auth", "status"], cwd)
    except OpsError as exc:
        return {"check": "gh auth", "ok": False, "detail": str(exc)}
    ok = result.exit_code == 0
    detail = "authenticated" if ok else (result.stderr or result.stdout or "not authenticated").strip()
    return {"check": "gh auth", "ok": ok, "detail": detail}


def _check_store(root: Path) -> dict[str, Any]:
    try:
        with open_collection(root) as collection:
            issues = collection.validate()
    except OpsError as exc:
        return {"check": ".ops store", "ok": False, "detail": str(exc)}
    if issues:
        return {"check": ".ops store", "ok": False, "detail": f"{len(issues)} validation issues"}
    return {"check": ".ops store", "ok": True, "detail": "valid"}


@app.command("doctor")
def doctor(repo_root: RepoRootOpt = None, fmt: FormatOpt = OutputFormat.text) -> None:
    """Check the .ops store and the external tools ops shells out to."""
    root_dir = _repo_root(repo_root)
    root = ops_root(root_dir)
    checks = [
        _check_store(root),
        _check_binary("gh", root_dir),
        _check_gh_auth(root_dir),
        _check_binary("claude", root_dir),
        _check_binary("codex", root_dir),
    ]
    ok = all(check["ok"] for check in checks)

    if fmt is OutputFormat.json:
        _print_json({"ok": ok, "repo_root": str(root_dir), "ops_root": str(root), "checks": checks})
    else:
        table = Table(title="ops doctor")
        table.add_column("Check", style="bold")
        table.add_column("Status")
        table.add_column("Detail", style="dim")
        for check in checks:
            table.add_row(check["check"], "[green]OK[/green]" if check["ok"] else "[red]FAIL[/red]", escape(check["detail"]))
        rprint(table)
    if not ok:
        raise typer.Exit(1)


@config_app.command("show")
@handle_errors
def config_show(repo_root: RepoRootOpt = None, fmt: FormatOpt = OutputFormat.text) -> None:
    """Show resolved configuration (masks credentials)."""
    root_dir = _repo_root(repo_root)
    settings = get_settings(root_dir)

    def mask(val: str | None) -> str | None:
        if val is None:
            return None
        return "***" if len(val) <= 5 else f"...{val[-5:]}"

    values: dict[str, Any] = settings.model_dump(mode="json")
    for name in ("gitlab_token", "jira_api_token", "azure_devops_pat"):
        secret = getattr(settings, name)
        values[name] = mask(secret.get_secret_value() if secret else None)

    if fmt is OutputFormat.json:
        _print_json({"config_path": str(config_path(root_dir)), "settings": values})
        return
    table = Table(title=f"ops configuration ({config_path(root_dir)})")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for name, value in values.items():
        table.add_row(name, "[dim](not set)[/dim]" if value is None else escape(str(value)))
    rprint(table)


# ---------------------------------------------------------------------------
# command
# ---------------------------------------------------------------------------


@command_app.command("list")
@handle_errors
def command_list(repo_root: RepoRootOpt = None, fmt: FormatOpt = OutputFormat.text) -> None:
    """List command templates."""
    with open_collection(require_ops_root(_repo_root(repo_root))) as collection:
        commands = list_commands(collection)

    if fmt is OutputFormat.json:
        _print_json([c.model_dump(mode="json") for c in commands])
        return
    table = Table(title="Commands")
    table.add_column("ID", style="cyan")
    table.add_column("Scope")
    table.add_column("Status")
    table.add_column("Description", style="dim")
    for cmd in commands:
        fm = cmd.frontmatter
        status = "[green]active[/green]" if fm.active else "[red]inactive[/red]"
        table.add_row(fm.id, fm.scope, status, escape(fm.description or ""))
    rprint(table)


@command_app.command("show")
@handle_errors
def command_show(
    command_id: Annotated[str, typer.Argument(help="Command id")],
    repo_root: RepoRootOpt = None,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Show command frontmatter and template body."""
    with open_collection(require_ops_root(_repo_root(repo_root))) as collection:
        cmd = get_command_by_id(collection, command_id)

    if fmt is OutputFormat.json:
        _print_json(cmd.model_dump(mode="json"))
        return
    _print_record(StoredRecord(path=cmd.path, frontmatter=cmd.frontmatter.model_dump(exclude_none=True), body=cmd.body))


def _default_name(command_id: str) -> str:
    return " ".join(part.capitalize() for part in command_id.split("-") if part)


@command_app.command("new")
@handle_errors
def command_new(
    command_id: Annotated[str, typer.Argument(help="Command id ([a-z0-9-]+)")],
    repo_root: RepoRootOpt = None,
    name: Annotated[str | None, typer.Option("--name", help="Display name")] = None,
    scope: Annotated[str, typer.Option("--scope", help="issue|pr|task|general")] = "general",
    description: Annotated[str | None, typer.Option("--description", help="Short description")] = None,
    cli: Annotated[str, typer.Option("--cli", help="claude|codex")] = "claude",
    mode: Annotated[str, typer.Option("--mode", help="interactive|non-interactive")] = "interactive",
    model: ModelOpt = None,
    permission_mode: PermissionOpt = None,
    sandbox_mode: Annotated[str | None, typer.Option("--sandbox-mode", help="codex sandbox default")] = None,
    approval_policy: ApprovalOpt = None,
    allowed_tool: AllowedToolOpt = None,
    template_file: Annotated[Path | None, typer.Option("--template-file", help="Read template body from file")] = None,
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing command")] = False,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Create a new command template."""
    if not COMMAND_ID_RE.match(command_id):
        raise OpsError("Command id must match ^[a-z0-9-]+$.")
    try:
        frontmatter = CommandFrontmatter(
            id=command_id,
            name=name or _default_name(command_id),
            scope=scope,
            description=description,
            cli_type=cli,
            default_mode=mode,
            model=model,
            permission_mode=permission_mode,
            sandbox_mode=sandbox_mode,
            approval_policy=approval_policy,
            allowed_tools=allowed_tool or None,
        )
    except ValidationError as exc:
        first = exc.errors()[0]
        raise OpsError(f"Invalid {'.'.join(str(p) for p in first['loc'])}: {first['msg']}") from exc

    body = "Write your prompt template here. Use {{placeholders}} for context values.\n"
    if template_file:
        body = template_file.read_text(encoding="utf-8")

    rel_path = command_path(command_id)
    with open_collection(require_ops_root(_repo_root(repo_root))) as collection:
        if collection.exists(rel_path) and not force:
            raise OpsError(f"Command already exists at {rel_path}. Use --force to overwrite.")
        collection.create(
            "command", rel_path, frontmatter.model_dump(exclude_none=True), body.rstrip() + "\n", overwrite=force
        )

    if fmt is OutputFormat.json:
        _print_json({"status": "created", "id": command_id, "path": rel_path})
        return
    rprint(f"[green]✓[/green] created {escape(rel_path)}")


@command_app.command("validate")
@handle_errors
def command_validate(repo_root: RepoRootOpt = None, fmt: FormatOpt = OutputFormat.text) -> None:
    """Validate command records."""
    with open_collection(require_ops_root(_repo_root(repo_root))) as collection:
        issues = validate_commands(collection)

    if fmt is OutputFormat.json:
        _print_json({"valid": not issues, "issues": [i.model_dump() for i in issues]})
    elif not issues:
        rprint("[green]✓[/green] commands valid")
    else:
        rprint(f"[red]{len(issues)} issue(s)[/red]")
        for issue in issues:
            field = f"{issue.field}: " if issue.field else ""
            console.print(
                f"  {escape(issue.path)}: {escape(field + issue.message)} [dim]{escape(f'[{issue.code}]')}[/dim]",
                highlight=False,
                soft_wrap=True,
            )
    if issues:
        raise typer.Exit(2)


@command_app.command("render")
@handle_errors
def command_render(
    command_id: Annotated[str, typer.Argument(help="Command id")],
    repo_root: RepoRootOpt = None,
    issue: IssueOpt = None,
    pr: PrOpt = None,
    task: TaskOpt = None,
    repo: RepoOpt = None,
    provider: ProviderOpt = None,
    var: VarOpt = None,
    show_context: Annotated[bool, typer.Option("--show-context", help="Print the merged context")] = False,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Render a command template without running it or touching sidecars."""
    target = parse_target_options(issue, pr, task)
    variables = parse_key_value_pairs(var or [], coerce=False)
    root_dir = _repo_root(repo_root)
    settings = get_settings(root_dir)
    with open_collection(require_ops_root(root_dir)) as collection:
        prepared = prepare_run(
            collection,
            root_dir,
            settings,
            command_id,
            target=target,
            repo=repo,
            provider=_provider(provider, settings),
            variables=variables,
            ensure_sidecar=False,
        )

    if fmt is OutputFormat.json:
        data: dict[str, Any] = {
            "command_id": command_id,
            "prompt": prepared.rendered_prompt,
            "missing_required": prepared.missing_required,
            "placeholders_used": prepared.placeholders_used,
        }
        if show_context:
            data["context"] = prepared.context
        _print_json(data)
        return
    if show_context:
        rprint("[bold]Context[/bold]")
        typer.echo(json.dumps(prepared.context, indent=2, default=str))
        rprint("[bold]Prompt[/bold]")
    typer.echo(prepared.rendered_prompt)
    if prepared.missing_required:
        missing = ", ".join(prepared.missing_required)
        err_console.print(f"[yellow]missing: {escape(missing)}[/yellow]", highlight=False, soft_wrap=True)


# ---------------------------------------------------------------------------
# item
# ---------------------------------------------------------------------------


@item_app.command("ensure")
@handle_errors
def item_ensure(
    repo_root: RepoRootOpt = None,
    issue: IssueOpt = None,
    pr: PrOpt = None,
    task: TaskOpt = None,
    repo: RepoOpt = None,
    provider: ProviderOpt = None,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Create or refresh a sidecar from its provider."""
    target = require_target(issue, pr, task)
    root_dir = _repo_root(repo_root)
    settings = get_settings(root_dir)
    with open_collection(require_ops_root(root_dir)) as collection:
        adapter = resolve_adapter(target.kind, _provider(provider, settings), settings, collection)
        remote = adapter.fetch_item(
            FetchRequest(
                kind=target.kind,
                key=target.key,
                number=target.number,
                cwd=root_dir,
                repo=(repo or settings.default_repo) if target.kind != "task" else None,
            )
        )
        path = upsert_item(collection, remote)

    if fmt is OutputFormat.json:
        _print_json(
            {"status": "updated", "path": path, "kind": target.kind, "key": remote.key, "number": remote.number,
             "repo": remote.repo}
        )
        return
    rprint(f"[green]✓[/green] updated {escape(path)}")


@item_app.command("list")
@handle_errors
def item_list(
    repo_root: RepoRootOpt = None,
    kind: Annotated[str | None, typer.Option("--kind", help="issue|pr|task")] = None,
    status: Annotated[str | None, typer.Option("--status", help="Filter by local_status")] = None,
    priority: Annotated[str | None, typer.Option("--priority", help="Filter by priority")] = None,
    difficulty: Annotated[str | None, typer.Option("--difficulty", help="Filter by difficulty")] = None,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """List item sidecars."""
    filters = {"kind": kind, "local_status": status, "priority": priority, "difficulty": difficulty}
    with open_collection(require_ops_root(_repo_root(repo_root))) as collection:
        rows = list_items(collection, filters)

    if fmt is OutputFormat.json:
        _print_json([_record_json(r) for r in rows])
        return
    if not rows:
        rprint("[dim]No item sidecars found.[/dim]")
        return
    table = Table(title="Items")
    table.add_column("Kind", style="bold")
    table.add_column("Key", style="cyan")
    table.add_column("Status")
    table.add_column("Pri")
    table.add_column("Diff")
    table.add_column("Title")
    for row in rows:
        fm = row.frontmatter
        table.add_row(
            *(
                escape(str(value))
                for value in (
                    fm.get("kind", "?"),
                    fm.get("key", fm.get("number", "?")),
                    fm.get("local_status", "new"),
                    fm.get("priority") or "—",
                    fm.get("difficulty") or "—",
                    fm.get("remote_title", ""),
                )
            )
        )
    rprint(table)


@item_app.command("show")
@handle_errors
def item_show(
    repo_root: RepoRootOpt = None,
    issue: IssueOpt = None,
    pr: PrOpt = None,
    task: TaskOpt = None,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Show one item sidecar."""
    target = require_target(issue, pr, task)
    with open_collection(require_ops_root(_repo_root(repo_root))) as collection:
        record = read_item(collection, target)

    if fmt is OutputFormat.json:
        _print_json(_record_json(record))
        return
    _print_record(record)


@item_app.command("set")
@handle_errors
def item_set(
    repo_root: RepoRootOpt = None,
    issue: IssueOpt = None,
    pr: PrOpt = None,
    task: TaskOpt = None,
    field: Annotated[list[str] | None, typer.Option("--field", help="Field assignment key=value (repeatable)")] = None,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Set one or more sidecar frontmatter fields (values are coerced: true, 3, [a,b] ...)."""
    target = require_target(issue, pr, task)
    if not field:
        raise OpsError("Provide at least one --field key=value.")
    fields = parse_key_value_pairs(field)
    with open_collection(require_ops_root(_repo_root(repo_root))) as collection:
        path = update_item_fields(collection, target, fields)

    if fmt is OutputFormat.json:
        _print_json({"status": "updated", "path": path, "kind": target.kind, "key": target.key, "fields": fields})
        return
    rprint(f"[green]✓[/green] updated {escape(path)}")


# ---------------------------------------------------------------------------
# run / triage / issue address
# ---------------------------------------------------------------------------


def _run_command(
    command_id: str,
    *,
    repo_root: Path | None,
    target: ItemTarget | None,
    repo: str | None,
    provider: str | None,
    variables: dict[str, Any],
    overrides: ExecutionProfile,
    print_prompt: bool,
    dry_run: bool,
    fmt: OutputFormat,
) -> None:
    root_dir = _repo_root(repo_root)
    settings = get_settings(root_dir)
    with open_collection(require_ops_root(root_dir)) as collection:
        prepared = prepare_run(
            collection,
            root_dir,
            settings,
            command_id,
            target=target,
            repo=repo,
            provider=_provider(provider, settings),
            variables=variables,
            ensure_sidecar=True,
        )
        if dry_run:
            if prepared.missing_required:
                raise MissingVariables(prepared.missing_required)
            if fmt is OutputFormat.json:
                _print_json({"command_id": command_id, "prompt": prepared.rendered_prompt})
            else:
                typer.echo(prepared.rendered_prompt)
            return
    # the agent runs without the store lock so it can call `ops item set` itself
    if print_prompt and fmt is OutputFormat.text:
        rprint("[bold]Rendered prompt[/bold]")
        typer.echo(prepared.rendered_prompt)
    run = execute_prepared(prepared, root_dir, overrides=overrides, defaults=settings.run_defaults())
    _report_run(run, fmt)


@app.command("run")
@handle_errors
def run_cmd(
    command_id: Annotated[str, typer.Argument(help="Command id")],
    repo_root: RepoRootOpt = None,
    issue: IssueOpt = None,
    pr: PrOpt = None,
    task: TaskOpt = None,
    repo: RepoOpt = None,
    provider: ProviderOpt = None,
    var: VarOpt = None,
    mode: ModeOpt = None,
    interactive: InteractiveOpt = False,
    non_interactive: NonInteractiveOpt = False,
    cli: CliOpt = None,
    model: ModelOpt = None,
    permission_mode: PermissionOpt = None,
    sandbox: SandboxOpt = None,
    approval_policy: ApprovalOpt = None,
    allowed_tool: AllowedToolOpt = None,
    print_prompt: Annotated[bool, typer.Option("--print-prompt", help="Print the rendered prompt first")] = False,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Render only; do not launch the agent")] = False,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Run a command template through an agent CLI."""
    _run_command(
        command_id,
        repo_root=repo_root,
        target=parse_target_options(issue, pr, task),
        repo=repo,
        provider=provider,
        variables=parse_key_value_pairs(var or [], coerce=False),
        overrides=_overrides(
            cli=cli,
            mode=_resolve_mode(mode, interactive, non_interactive),
            model=model,
            permission_mode=permission_mode,
            allowed_tools=allowed_tool or None,
            sandbox_mode=sandbox,
            approval_policy=approval_policy,
        ),
        print_prompt=print_prompt,
        dry_run=dry_run,
        fmt=fmt,
    )


@app.command("triage")
@handle_errors
def triage_cmd(
    repo_root: RepoRootOpt = None,
    issue: IssueOpt = None,
    pr: PrOpt = None,
    task: TaskOpt = None,
    repo: RepoOpt = None,
    provider: ProviderOpt = None,
    command: Annotated[str | None, typer.Option("--command", help="Override command id")] = None,
    var: VarOpt = None,
    mode: ModeOpt = None,
    interactive: InteractiveOpt = False,
    non_interactive: NonInteractiveOpt = False,
    cli: CliOpt = None,
    model: ModelOpt = None,
    permission_mode: PermissionOpt = None,
    sandbox: SandboxOpt = None,
    approval_policy: ApprovalOpt = None,
    allowed_tool: AllowedToolOpt = None,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Run the configured triage command for an issue, PR or task."""
    target = require_target(issue, pr, task)
    if command is None:
        ids = get_settings(_repo_root(repo_root)).commands
        command = {"issue": ids.triage_issue, "pr": ids.review_pr, "task": ids.triage_task}[target.kind]
    _run_command(
        command,
        repo_root=repo_root,
        target=target,
        repo=repo,
        provider=provider,
        variables=parse_key_value_pairs(var or [], coerce=False),
        overrides=_overrides(
            cli=cli,
            mode=_resolve_mode(mode, interactive, non_interactive),
            model=model,
            permission_mode=permission_mode,
            allowed_tools=allowed_tool or None,
            sandbox_mode=sandbox,
            approval_policy=approval_policy,
        ),
        print_prompt=False,
        dry_run=False,
        fmt=fmt,
    )


@issue_app.command("address")
@handle_errors
def issue_address(
    issue: Annotated[str, typer.Option("--issue", help="Issue number")],
    repo_root: RepoRootOpt = None,
    repo: RepoOpt = None,
    provider: ProviderOpt = None,
    address_command: Annotated[str | None, typer.Option("--address-command", help="Address command id")] = None,
    triage_command: Annotated[str | None, typer.Option("--triage-command", help="Triage command id")] = None,
    skip_triage: Annotated[bool, typer.Option("--skip-triage", help="Never auto-run triage")] = False,
    force_triage: Annotated[bool, typer.Option("--force-triage", help="Always run triage first")] = False,
    triage_mode: Annotated[str, typer.Option("--triage-mode", help="interactive|non-interactive")] = "non-interactive",
    var: VarOpt = None,
    mode: ModeOpt = None,
    interactive: InteractiveOpt = False,
    non_interactive: NonInteractiveOpt = False,
    cli: CliOpt = None,
    model: ModelOpt = None,
    permission_mode: PermissionOpt = None,
    sandbox: SandboxOpt = None,
    approval_policy: ApprovalOpt = None,
    allowed_tool: AllowedToolOpt = None,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Address an issue, running triage first when the sidecar has no analysis yet."""
    target = require_target(issue=issue)
    if triage_mode not in ("interactive", "non-interactive"):
        raise OpsError(f"Invalid --triage-mode: {triage_mode}")
    overrides = _overrides(
        cli=cli,
        mode=_resolve_mode(mode, interactive, non_interactive),
        model=model,
        permission_mode=permission_mode,
        allowed_tools=allowed_tool or None,
        sandbox_mode=sandbox,
        approval_policy=approval_policy,
    )
    root_dir = _repo_root(repo_root)
    settings = get_settings(root_dir)
    result = address_issue(
        require_ops_root(root_dir),
        root_dir,
        settings,
        int(target.key),
        repo=repo,
        provider=_provider(provider, settings),
        triage_command_id=triage_command,
        address_command_id=address_command,
        skip_triage=skip_triage,
        force_triage=force_triage,
        triage_mode=triage_mode,
        variables=parse_key_value_pairs(var or [], coerce=False),
        overrides=overrides,
    )

    if fmt is OutputFormat.json:
        _print_json(result.model_dump(mode="json"))
    else:
        for run in (result.triage, result.address):
            if run is not None and run.mode == "non-interactive":
                _echo_block(run.stdout)
                _echo_block(run.stderr, err=True)
        if result.address is None:
            err_console.print(f"[red]triage failed (exit {result.exit_code}); issue not addressed[/red]")
    if result.exit_code != 0:
        raise typer.Exit(result.exit_code)


# ---------------------------------------------------------------------------
# handoff
# ---------------------------------------------------------------------------


@handoff_app.command("create")
@handle_errors
def handoff_create(
    for_agent: Annotated[str, typer.Option("--for-agent", help="Target agent or person")],
    repo_root: RepoRootOpt = None,
    handoff_id: Annotated[str | None, typer.Option("--id", help="Handoff id")] = None,
    issue: IssueOpt = None,
    pr: PrOpt = None,
    task: TaskOpt = None,
    next_step: Annotated[list[str] | None, typer.Option("--next-step", help="Next step (repeatable)")] = None,
    blocker: Annotated[list[str] | None, typer.Option("--blocker", help="Blocker (repeatable)")] = None,
    created_by: Annotated[str | None, typer.Option("--created-by", help="Creator")] = None,
    body: Annotated[str, typer.Option("--body", help="Body markdown")] = "",
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Create a handoff linked to an item sidecar."""
    target = require_target(issue, pr, task)
    with open_collection(require_ops_root(_repo_root(repo_root))) as collection:
        sidecar = read_item(collection, target)
        record = create_handoff(
            collection,
            sidecar,
            for_agent=for_agent,
            handoff_id=handoff_id,
            next_steps=next_step,
            blockers=blocker,
            created_by=created_by,
            body=body,
        )

    fm = record.frontmatter
    if fmt is OutputFormat.json:
        _print_json(
            {"status": "created", "id": fm["id"], "path": record.path, "item_id": fm["item_id"], "for_agent": for_agent}
        )
        return
    rprint(f"[green]✓[/green] created {escape(record.path)}")


@handoff_app.command("list")
@handle_errors
def handoff_list(
    repo_root: RepoRootOpt = None,
    status: Annotated[str | None, typer.Option("--status", help="Filter by status")] = None,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """List handoffs, newest first."""
    with open_collection(require_ops_root(_repo_root(repo_root))) as collection:
        rows = list_handoffs(collection, status)

    if fmt is OutputFormat.json:
        _print_json([_record_json(r) for r in rows])
        return
    if not rows:
        rprint("[dim]No handoffs found.[/dim]")
        return
    table = Table(title="Handoffs")
    table.add_column("ID", style="cyan")
    table.add_column("Status")
    table.add_column("Item")
    table.add_column("For")
    for row in rows:
        fm = row.frontmatter
        table.add_row(*(escape(str(fm.get(field, ""))) for field in ("id", "status", "item_id", "for_agent")))
    rprint(table)


@handoff_app.command("show")
@handle_errors
def handoff_show(
    handoff_id: Annotated[str, typer.Argument(help="Handoff id")],
    repo_root: RepoRootOpt = None,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Show one handoff."""
    with open_collection(require_ops_root(_repo_root(repo_root))) as collection:
        record = find_handoff(collection, handoff_id)

    if fmt is OutputFormat.json:
        _print_json(_record_json(record))
        return
    _print_record(record)


@handoff_app.command("close")
@handle_errors
def handoff_close(
    handoff_id: Annotated[str, typer.Argument(help="Handoff id")],
    repo_root: RepoRootOpt = None,
    fmt: FormatOpt = OutputFormat.text,
) -> None:
    """Mark a handoff closed."""
    with open_collection(require_ops_root(_repo_root(repo_root))) as collection:
        record = close_handoff(collection, handoff_id)

    if fmt is OutputFormat.json:
        _print_json({"status": "closed", "id": handoff_id, "path": record.path})
        return
    rprint(f"[green]✓[/green] closed {escape(handoff_id)}")
