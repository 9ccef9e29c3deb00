"""Output formatters for planned change sets.

Sensitive attribute values never appear in any output: the value keys are
dropped from serialized records and replaced by a marker in rendered text.
"""

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.text import Text
from rich.tree import Tree

from stackplan.models import AttributeChange, Change, ChangeType, PlanResult

CHANGE_COLORS = {
    ChangeType.CREATE: "green",
    ChangeType.UPDATE: "yellow",
    ChangeType.RECREATE: "magenta",
    ChangeType.DELETE: "red",
    ChangeType.NO_CHANGE: "dim",
}

SECTION_TITLES = {
    ChangeType.CREATE: "Resources to Create",
    ChangeType.UPDATE: "Resources to Update",
    ChangeType.RECREATE: "Resources to Recreate",
    ChangeType.DELETE: "Resources to Delete",
}

REDACTED = "[REDACTED]"
SENSITIVE = "(sensitive value)"


def _escape_md_cell(value: str) -> str:
    """Escape characters that break markdown table cells."""
    return value.replace("|", "\\|").replace("\n", " ")


def _display(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, default=str)


def attribute_change_to_record(ac: AttributeChange, *, redact: bool = False) -> dict[str, Any]:
    record: dict[str, Any] = {"path": ac.path}
    if not ac.sensitive:
        if ac.has_old:
            record["old_value"] = REDACTED if redact else ac.old_value
        if ac.has_new:
            record["new_value"] = REDACTED if redact else ac.new_value
    record["sensitive"] = ac.sensitive
    record["force_recreate"] = ac.force_recreate
    return record


def change_to_record(change: Change, *, redact: bool = False) -> dict[str, Any]:
    """Serialize one change in the record layout consumed by CI tooling."""
    return {
        "resource_id": change.resource_id,
        "resource_name": change.resource_name,
        "resource_kind": change.resource_kind,
        "type": change.change_type.value,
        "service": change.service,
        "attribute_changes": [
            attribute_change_to_record(ac, redact=redact) for ac in change.attribute_changes
        ],
        "reason": change.reason,
        "requires_recreate": change.requires_recreate,
        "depends_on": [identity.key for identity in change.depends_on],
    }


def change_set_to_dict(result: PlanResult, *, redact: bool = False) -> dict[str, Any]:
    cs = result.change_set
    return {
        "stack": cs.stack,
        "environment": cs.environment,
        "tenant": cs.tenant,
        "created_at": cs.created_at.isoformat(),
        "summary": {
            "create": cs.summary.create,
            "update": cs.summary.update,
            "recreate": cs.summary.recreate,
            "delete": cs.summary.delete,
            "no_change": cs.summary.no_change,
            "total": cs.summary.total,
        },
        "changes": [change_to_record(c, redact=redact) for c in cs.changes],
        "errors": [{"resource": e.identity.key, "message": e.message} for e in result.errors],
    }


def format_json(result: PlanResult, *, redact: bool = False) -> str:
    """Format a plan as JSON, changes in execution order."""
    return json.dumps(change_set_to_dict(result, redact=redact), indent=2, default=str)


def format_compact(result: PlanResult, *, redact: bool = False) -> str:
    s = result.change_set.summary
    line = f"Plan: {s.create} to add, {s.update + s.recreate} to change, {s.delete} to destroy."
    if result.errors:
        line += f" {len(result.errors)} resource(s) could not be planned."
    return line


def _value_pair(ac: AttributeChange, redact: bool) -> tuple[str, str]:
    if ac.sensitive:
        return SENSITIVE, SENSITIVE
    if redact:
        return REDACTED, REDACTED
    old = _display(ac.old_value) if ac.has_old else "—"
    new = _display(ac.new_value) if ac.has_new else "—"
    return old, new


def format_markdown(result: PlanResult, *, redact: bool = False) -> str:
    """Format a plan as Markdown, suitable for a pull request comment."""
    cs = result.change_set
    lines = [f"## Plan for {_escape_md_cell(cs.stack)}/{_escape_md_cell(cs.environment)}", ""]

    if not cs.summary.has_changes:
        lines.append("No changes. Infrastructure is up-to-date.")
    else:
        lines.append(format_compact(result))
        lines.append("")
        lines.append("| Action | Resource | Kind | Attribute | Old | New | Reason |")
        lines.append("|--------|----------|------|-----------|-----|-----|--------|")
        for change in cs.by_display_order():
            name = _escape_md_cell(change.resource_name)
            kind = _escape_md_cell(change.label)
            reason = _escape_md_cell(change.reason)
            action = change.change_type.value
            if not change.attribute_changes:
                lines.append(f"| {action} | {name} | {kind} | — | — | — | {reason} |")
                continue
            for ac in change.attribute_changes:
                old, new = _value_pair(ac, redact)
                path = _escape_md_cell(ac.path)
                if ac.force_recreate:
                    path += " (forces recreate)"
                lines.append(
                    f"| {action} | {name} | {kind} | `{path}` "
                    f"| `{_escape_md_cell(old)}` | `{_escape_md_cell(new)}` | {reason} |"
                )

    if result.errors:
        lines.extend(["", "### Errors", ""])
        for error in result.errors:
            lines.append(f"- `{_escape_md_cell(error.identity.key)}`: {_escape_md_cell(error.message)}")

    return "\n".join(lines)


def _section(tree: Tree, change_type: ChangeType, changes: list[Change], redact: bool) -> None:
    color = CHANGE_COLORS[change_type]
    branch = tree.add(Text(f"{SECTION_TITLES[change_type]} ({len(changes)})", style=f"bold {color}"))
    for change in changes:
        resource = branch.add(
            Text.from_markup(
                f"[{color}]{change.change_type.symbol}[/{color}] "
                f"\\[{escape(change.label)}] {escape(change.resource_name)}"
            )
        )
        if change.service:
            resource.add(Text(f"Service: {change.service}"))
        if change.resource_id:
            resource.add(Text(f"ID: {change.resource_id}"))
        for ac in change.attribute_changes:
            old, new = _value_pair(ac, redact)
            label = escape(ac.path)
            if ac.force_recreate:
                label += " [magenta](forces recreate)[/magenta]"
            resource.add(
                Text.from_markup(f"{label}: [red]{escape(old)}[/red] → [green]{escape(new)}[/green]")
            )
        resource.add(Text(f"Reason: {change.reason}", style="dim"))


def format_table(result: PlanResult, *, redact: bool = False) -> str:
    """Format a plan as a Rich tree grouped by change type, returned as a string."""
    cs = result.change_set
    console = Console(record=True, width=120)
    header = f"[bold]Infrastructure Changes[/bold] — {escape(cs.stack)}/{escape(cs.environment)}"
    if cs.tenant:
        header += f" (tenant {escape(cs.tenant)})"
    tree = Tree(Text.from_markup(header))

    for change_type in SECTION_TITLES:
        changes = [c for c in cs.by_display_order() if c.change_type == change_type]
        if changes:
            _section(tree, change_type, changes, redact)

    if result.errors:
        errors = tree.add(Text(f"Errors ({len(result.errors)})", style="bold red"))
        for error in result.errors:
            errors.add(Text(f"{error.identity.key}: {error.message}"))

    console.print(tree)
    s = cs.summary
    if s.has_changes:
        console.print(
            f"Summary: {s.create} create, {s.update} update, {s.recreate} recreate, "
            f"{s.delete} delete, {s.no_change} unchanged. Total: {s.total} change(s)."
        )
    else:
        console.print("[green]No changes detected. Infrastructure is up-to-date.[/green]")
    return console.export_text()


FORMATTERS = {
    "table": format_table,
    "json": format_json,
    "markdown": format_markdown,
    "compact": format_compact,
}
