"""Starter files written by ``ops init``."""

from pathlib import Path

from pydantic import BaseModel

GITIGNORE = ".lock\n*.tmp\n"

CONFIG_TOML = """\
# Repository defaults for ops. Environment variables (OPS_*) override these.

# default_repo = "owner/name"
default_provider = "github"
# default_cli = "claude"
# default_mode = "interactive"
# default_model = ""
# default_permission_mode = ""
# default_allowed_tools = []
# default_sandbox_mode = "workspace-write"
# default_approval_policy = "on-request"

[commands]
triage_issue = "triage-issue"
address_issue = "address-issue"
review_pr = "review-pr"
triage_task = "triage-task"
"""

TRIAGE_ISSUE_COMMAND = """\
---
type: command
id: triage-issue
name: Triage Issue
scope: issue
description: Analyze and triage an issue with local sidecar updates
placeholders: [item_ref, title, author, body, labels_csv, sidecar_path, ops_item_abs_path, number]
cli_type: claude
active: true
default_mode: interactive
---
Analyze issue {{item_ref}}.

Title: {{title}}
Author: {{author}}
Labels: {{labels_csv|none}}

Body:
{{body|No body provided.}}

Update the sidecar file for this item:
- relative path: {{sidecar_path|items/issue-<number>.md}}
- absolute path: {{ops_item_abs_path|<repo>/.ops/items/...}}

In that file, set/update:
- local_status
- priority (low|medium|high|critical)
- difficulty (trivial|easy|medium|hard|complex)
- risk (low|medium|high)
- summary
- notes
- command_id (set to "triage-issue")
- last_analyzed_at (ISO timestamp)
- sync_state (set to "clean" unless there is a conflict)

You can update these fields by editing the markdown sidecar directly or using:
- ops item set --issue {{number}} --field local_status=... --field priority=... --field difficulty=... --field risk=...
"""

REVIEW_PR_COMMAND = """\
---
type: command
id: review-pr
name: Review PR
scope: pr
description: Review a pull request and summarize risks
placeholders: [item_ref, title, author, body, head_ref, base_ref, sidecar_path, ops_item_abs_path, number]
cli_type: claude
active: true
default_mode: interactive
---
Review pull request {{item_ref}}.

Title: {{title}}
Author: {{author}}
Branch: {{head_ref|unknown}} -> {{base_ref|unknown}}

Description:
{{body|No description provided.}}

Update the sidecar file for this PR:
- relative path: {{sidecar_path|items/pr-<number>.md}}
- absolute path: {{ops_item_abs_path|<repo>/.ops/items/...}}

In that file, set/update local_status, risk, summary, notes,
command_id (set to "review-pr") and last_analyzed_at (ISO timestamp).

You can also use:
- ops item set --pr {{number}} --field local_status=... --field risk=...

Use notes to capture:
1. Main changes
2. Risks and regressions
3. Missing tests
4. Merge recommendation
"""

ADDRESS_ISSUE_COMMAND = """\
---
type: command
id: address-issue
name: Address Issue
scope: issue
description: Implement a solution for an issue using existing triage analysis
placeholders:
  [item_ref, title, author, body, priority, difficulty, risk, summary, notes, sidecar_body,
   sidecar_path, ops_item_abs_path, number]
cli_type: claude
active: true
default_mode: interactive
---
Address issue {{item_ref}}.

Title: {{title}}
Author: {{author}}
Priority: {{priority|not set}}
Difficulty: {{difficulty|not set}}
Risk: {{risk|not set}}

Triage summary:
{{summary|No summary yet.}}

Triage notes:
{{notes|No notes yet.}}

Sidecar markdown body context:
{{sidecar_body|No additional sidecar body context.}}

Issue body:
{{body|No issue body provided.}}

Before coding:
1. Read the sidecar file at {{sidecar_path|items/issue-<number>.md}} ({{ops_item_abs_path|<repo>/.ops/items/...}}).
2. Confirm or refine the approach based on current code state.
3. Implement the fix with appropriate tests.

After coding, update the sidecar (local_status, summary, notes, command_id "address-issue",
last_analyzed_at) by editing it directly or with:
- ops item set --issue {{number}} --field local_status=... --field summary=...
"""

TRIAGE_TASK_COMMAND = """\
---
type: command
id: triage-task
name: Triage Task
scope: task
description: Analyze a local task and record priority and difficulty
placeholders: [item_ref, title, state, labels_csv, body, sidecar_path, source_path]
cli_type: claude
active: true
default_mode: interactive
---
Analyze task {{item_ref}}.

Title: {{title}}
Status: {{state|open}}
Tags: {{labels_csv|none}}

Task:
{{body|No task body provided.}}

Update the sidecar file {{sidecar_path|items/task-...md}} with local_status, priority,
difficulty, risk, summary, notes, command_id (set to "triage-task") and last_analyzed_at, or use:
- ops item set --task {{source_path|<task path>}} --field priority=... --field difficulty=...
"""

HANDOFF_COMMAND = """\
---
type: command
id: handoff
name: Create Handoff
scope: general
description: Prepare a concise handoff for another agent or human
placeholders: [item_ref, title, summary, notes]
cli_type: claude
active: true
default_mode: non-interactive
---
Create a handoff for {{item_ref|this work item}}.

Title: {{title|No title}}
Summary: {{summary|No summary yet}}
Current notes:
{{notes|No notes yet}}

Output concise:
- Context
- Open questions
- Next 3 actions
"""

README = """\
# .ops

Repo-local operational state for AI-assisted workflows.

- `commands/*.md`: command templates (markdown with YAML frontmatter)
- `items/*.md`: issue, PR and task sidecar state
- `tasks/*.md`: local tasks (`type: task`)
- `handoffs/*.md`: handoff records
- `config.toml`: repository defaults

Typical flow, from the repository root:

```bash
ops doctor
ops item ensure --issue 123
ops run triage-issue --issue 123
ops issue address --issue 123
ops item set --issue 123 --field local_status=in_progress
ops command render review-pr --pr 456
```

Templates use `{{title}}` or `{{title|fallback}}`. Context comes from the
provider item, then sidecar fields for anything the provider did not set, then
`--var key=value` overrides.

Commit this folder; `.lock` is ignored. Run `ops init --force` to refresh the
starter files.
"""

STARTER_FILES: dict[str, str] = {
    ".gitignore": GITIGNORE,
    "README.md": README,
    "config.toml": CONFIG_TOML,
    "commands/triage-issue.md": TRIAGE_ISSUE_COMMAND,
    "commands/review-pr.md": REVIEW_PR_COMMAND,
    "commands/address-issue.md": ADDRESS_ISSUE_COMMAND,
    "commands/triage-task.md": TRIAGE_TASK_COMMAND,
    "commands/handoff.md": HANDOFF_COMMAND,
}

STARTER_DIRS = ("items", "handoffs", "tasks", "commands")


class ScaffoldResult(BaseModel):
    created: list[str] = []
    skipped: list[str] = []


def scaffold_ops(root: Path, force: bool = False) -> ScaffoldResult:
    """Create the .ops layout; existing files are kept unless force."""
    result = ScaffoldResult()
    for name in STARTER_DIRS:
        (root / name).mkdir(parents=True, exist_ok=True)
    for rel, content in STARTER_FILES.items():
        target = root / rel
        if target.exists() and not force:
            result.skipped.append(rel)
            continue
        target.write_text(content, encoding="utf-8")
        result.created.append(rel)
    return result

