"""--issue / --pr / --task option handling."""

from opsctl.errors import OpsError
from opsctl.models import ItemTarget


def _positive_int(raw: str, label: str) -> int:
    try:
        number = int(str(raw).strip())
    except ValueError:
        raise OpsError(f"Invalid {label} number: {raw}") from None
    if number <= 0:
        raise OpsError(f"Invalid {label} number: {raw}")
    return number


def parse_target_options(
    issue: str | None = None,
    pr: str | None = None,
    task: str | None = None,
) -> ItemTarget | None:
    selected = [flag for flag, value in (("--issue", issue), ("--pr", pr), ("--task", task)) if value]
    if len(selected) > 1:
        raise OpsError("Use only one of --issue, --pr, or --task.")
    if not selected:
        return None

    if issue:
        number = _positive_int(issue, "issue")
        return ItemTarget(kind="issue", key=str(number), number=number)
    if pr:
        number = _positive_int(pr, "PR")
        return ItemTarget(kind="pr", key=str(number), number=number)

    ref = str(task).strip()
    if not ref:
        raise OpsError("Task reference cannot be empty.")
    return ItemTarget(kind="task", key=ref)


def require_target(issue: str | None = None, pr: str | None = None, task: str | None = None) -> ItemTarget:
    target = parse_target_options(issue, pr, task)
    if target is None:
        raise OpsError("Provide --issue, --pr, or --task.")
    return target
