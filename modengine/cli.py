"""modengine CLI — the command-line front end of the moderation engine."""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from modengine import __version__
from modengine.moderation.errors import ModerationError
from modengine.moderation.models import (
    ContentType,
    Priority,
    ReportCategory,
    ReportStatus,
    SanctionAction,
)

console = Console()

_SEVERITY_STYLE = {"low": "green", "medium": "yellow", "high": "red"}
_PRIORITY_STYLE = {"low": "dim", "medium": "cyan", "high": "yellow", "urgent": "bold red"}


def _values(enum_cls) -> list[str]:
    return [m.value for m in enum_cls]


def _engine(ctx: click.Context):
    """Build the engine lazily so ``--help`` never touches the store."""
    if "engine" not in ctx.obj:
        from modengine.engine import ModerationEngine

        engine = ModerationEngine.from_config(ctx.obj["config"])
        ctx.call_on_close(engine.close)
        ctx.obj["engine"] = engine
    return ctx.obj["engine"]


class _Group(click.Group):
    """Turns engine errors into a red message and exit status 1."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except ModerationError as e:
            console.print(f"[red]Error:[/] {e}")
            sys.exit(1)


@click.group(cls=_Group)
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, help="YAML config file (default: $MODENGINE_CONFIG)")
@click.option("--home", default=None, help="State directory (default: ~/.modengine)")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, home: str | None, verbose: bool):
    """modengine — content filtering and report moderation.

    Scan text against the filter policy, take user reports, and work the
    moderation queue from the terminal.
    """
    from modengine.config import load_config

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    try:
        config = load_config(config_path)
    except (OSError, ValueError) as e:
        raise click.UsageError(f"Invalid configuration: {e}") from e
    if home:
        config.home_dir = Path(home).expanduser()
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# ── Scan ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("text")
@click.option("--field", default="text", help="Field name used in length messages")
@click.option("--max-length", type=int, default=None, help="Reject text longer than this")
@click.option("--json", "as_json", is_flag=True, help="Print the decision as JSON")
@click.pass_context
def scan(ctx: click.Context, text: str, field: str, max_length: int | None, as_json: bool):
    """Classify TEXT against the active filter policy."""
    from modengine.filtering.classifier import ClassificationContext

    decision = _engine(ctx).scan_text(text, ClassificationContext(field=field, max_length=max_length))
    if as_json:
        console.print_json(data=decision.to_dict())
        return

    style = _SEVERITY_STYLE[decision.severity.label]
    console.print(
        Panel(
            f"Outcome:  [bold]{decision.outcome.value}[/]\n"
            f"Severity: [{style}]{decision.severity.label}[/]\n"
            f"Policy:   {decision.policy_version}\n\n"
            f"{escape(decision.filtered_text)}",
            title="Scan Result",
        )
    )
    if decision.violations:
        table = Table(title="Violations")
        table.add_column("Kind", style="cyan")
        table.add_column("Severity")
        table.add_column("Detail")
        for v in decision.violations:
            detail = v.term or v.pattern or v.match
            if v.pii:
                detail += " (pii)"
            table.add_row(v.kind, v.severity.label, detail)
        console.print(table)


# ── Reports ──────────────────────────────────────────────────────────


@main.command()
@click.option("--reporter", required=True, help="Reporting user id")
@click.option("--content-id", required=True, help="Reported content id")
@click.option("--content-type", required=True, type=click.Choice(_values(ContentType)))
@click.option("--category", required=True, type=click.Choice(_values(ReportCategory)))
@click.option("--reason", required=True, help="Short reason")
@click.option("--description", default="", help="Longer description")
@click.option("--reported-user", default=None, help="Author of the reported content")
@click.pass_context
def submit(
    ctx: click.Context,
    reporter: str,
    content_id: str,
    content_type: str,
    category: str,
    reason: str,
    description: str,
    reported_user: str | None,
):
    """Submit a report about a piece of content or a user."""
    from modengine.moderation.models import ReportRequest

    engine = _engine(ctx)
    report_id = engine.submit_report(
        ReportRequest(
            reporter_id=reporter,
            reported_content_id=content_id,
            reported_content_type=content_type,
            category=category,
            reason=reason,
            description=description,
            reported_user_id=reported_user,
        )
    )
    report = engine.get_report(report_id)
    style = _PRIORITY_STYLE[report.priority.value]
    console.print(f"[green]Report submitted:[/] {report_id} ([{style}]{report.priority.value}[/])")


def _report_table(title: str, reports) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Status")
    table.add_column("Priority")
    table.add_column("Category", style="cyan")
    table.add_column("Content")
    table.add_column("Moderator")
    table.add_column("Deadline")
    for r in reports:
        style = _PRIORITY_STYLE[r.priority.value]
        table.add_row(
            r.id,
            r.status.value,
            f"[{style}]{r.priority.value}[/]",
            r.category.value,
            f"{r.reported_content_type.value}:{r.reported_content_id}",
            r.assigned_moderator or "-",
            r.response_deadline[:16],
        )
    return table


@main.group()
def reports():
    """Browse the moderation queue."""


@reports.command(name="list")
@click.option("--status", type=click.Choice(_values(ReportStatus)), default=None)
@click.option("--priority", type=click.Choice(_values(Priority)), default=None)
@click.option("--category", type=click.Choice(_values(ReportCategory)), default=None)
@click.option("--reporter", default=None, help="Only reports filed by this user")
@click.option("--against", default=None, help="Only reports against this user")
@click.option("--limit", default=20, help="Page size")
@click.option("--offset", default=0, help="Page offset")
@click.option("--oldest-first", is_flag=True, help="Order by creation time ascending")
@click.pass_context
def list_reports(
    ctx: click.Context,
    status: str | None,
    priority: str | None,
    category: str | None,
    reporter: str | None,
    against: str | None,
    limit: int,
    offset: int,
    oldest_first: bool,
):
    """List reports, newest first."""
    engine = _engine(ctx)
    if reporter:
        found = engine.list_by_reporter(reporter)
    elif against:
        found = engine.list_against_user(against)
    else:
        found = engine.list_reports(
            status=status,
            priority=priority,
            category=category,
            limit=limit,
            offset=offset,
            newest_first=not oldest_first,
        )
    if not found:
        console.print("[yellow]No reports found.[/]")
        return
    console.print(_report_table(f"Reports ({len(found)})", found))


@reports.command()
@click.pass_context
def overdue(ctx: click.Context):
    """List open reports past their response deadline."""
    found = _engine(ctx).list_overdue()
    if not found:
        console.print("[green]No overdue reports.[/]")
        return
    console.print(_report_table(f"Overdue Reports ({len(found)})", found))


@reports.command()
@click.argument("report_id")
@click.pass_context
def show(ctx: click.Context, report_id: str):
    """Show a report and its audit trail."""
    engine = _engine(ctx)
    r = engine.get_report(report_id)
    lines = [
        f"Status:     {r.status.value}",
        f"Priority:   {r.priority.value}",
        f"Category:   {r.category.value}",
        f"Reporter:   {r.reporter_id}",
        f"Content:    {r.reported_content_type.value}:{r.reported_content_id}",
        f"User:       {r.reported_user_id or '-'}",
        f"Moderator:  {r.assigned_moderator or '-'}",
        f"Created:    {r.created_at}",
        f"Deadline:   {r.response_deadline}",
        "",
        f"Reason:      {escape(r.reason)}",
        f"Description: {escape(r.description or '-')}",
    ]
    if r.status.is_terminal:
        action = r.action_taken.value if r.action_taken else "-"
        lines += ["", f"Action:     {action}", f"Resolution: {escape(r.resolution or '-')}"]
    console.print(Panel("\n".join(lines), title=f"Report {r.id}"))

    actions = engine.list_actions(report_id)
    if actions:
        table = Table(title="Actions")
        table.add_column("When")
        table.add_column("Moderator", style="cyan")
        table.add_column("Action")
        table.add_column("Applied")
        table.add_column("Details")
        for a in actions:
            table.add_row(
                a.created_at[:19],
                a.moderator_id,
                a.action.value,
                "yes" if a.sanction_applied else "no",
                escape(a.details),
            )
        console.print(table)


@main.command()
@click.argument("report_id")
@click.argument("moderator_id")
@click.pass_context
def assign(ctx: click.Context, report_id: str, moderator_id: str):
    """Assign REPORT_ID to MODERATOR_ID and start review."""
    report = _engine(ctx).assign_report(report_id, moderator_id)
    console.print(f"[green]Assigned[/] {report.id} to {moderator_id} ({report.status.value})")


@main.command()
@click.argument("report_id")
@click.argument("action", type=click.Choice(_values(SanctionAction)))
@click.option("--moderator", "-m", required=True, help="Deciding moderator id")
@click.option("--details", "-d", default="", help="Resolution note")
@click.pass_context
def process(ctx: click.Context, report_id: str, action: str, moderator: str, details: str):
    """Resolve or dismiss REPORT_ID with ACTION."""
    record = _engine(ctx).process_report(report_id, action, moderator, details)
    applied = "sanction applied" if record.sanction_applied else "no state change"
    console.print(f"[green]Processed[/] {report_id}: {record.action.value} ({applied})")


@main.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show moderation statistics."""
    s = _engine(ctx).get_stats()
    table = Table(title="Moderation Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Total", str(s.total_reports))
    table.add_row("Pending", str(s.pending_reports))
    table.add_row("Reviewing", str(s.reviewing_reports))
    table.add_row("Resolved", str(s.resolved_reports))
    table.add_row("Dismissed", str(s.dismissed_reports))
    table.add_row("Within SLA", str(s.reports_within_24h))
    table.add_row("Overdue", str(s.overdue_count))
    table.add_row("Avg response (h)", f"{s.average_response_time_hours:.2f}")
    console.print(table)

    if s.by_category:
        console.print(
            "By category: " + ", ".join(f"{k}={v}" for k, v in sorted(s.by_category.items()))
        )
    if s.by_priority:
        console.print(
            "By priority: " + ", ".join(f"{k}={v}" for k, v in sorted(s.by_priority.items()))
        )


@main.command()
@click.option("--watch", is_flag=True, help="Keep sweeping until interrupted")
@click.option("--interval", type=float, default=None, help="Seconds between sweeps (default from config)")
@click.pass_context
def sweep(ctx: click.Context, watch: bool, interval: float | None):
    """Escalate overdue reports and lift expired temporary bans."""
    engine = _engine(ctx)
    interval = interval or engine.config.sweep_interval_seconds
    while True:
        ids = engine.sweep_overdue()
        if ids:
            console.print(f"[yellow]Escalated {len(ids)} overdue report(s):[/] {', '.join(ids)}")
        else:
            console.print("[green]No overdue reports.[/]")
        lifted = engine.lift_expired_bans()
        if lifted:
            console.print(f"[green]Lifted {len(lifted)} expired ban(s):[/] {', '.join(escape(u) for u in lifted)}")
        if not watch:
            return
        try:
            time.sleep(interval)
        except KeyboardInterrupt:
            return


# ── Content ──────────────────────────────────────────────────────────


@main.group()
def content():
    """Register content so it can be removed and attributed."""


@content.command(name="register")
@click.argument("content_type", type=click.Choice([t for t in _values(ContentType) if t != "user"]))
@click.argument("content_id")
@click.option("--author", default="", help="Author user id")
@click.pass_context
def register_content(ctx: click.Context, content_type: str, content_id: str, author: str):
    """Register CONTENT_ID of CONTENT_TYPE."""
    record = _engine(ctx).register_content(content_type, content_id, author)
    console.print(f"[green]Registered[/] {record.content_type.value}:{record.content_id}")


@main.command()
@click.argument("user_id")
@click.pass_context
def user(ctx: click.Context, user_id: str):
    """Show a user's warnings and bans."""
    state = _engine(ctx).get_user_state(user_id)
    if state.is_permanent_ban:
        ban = "[red]permanent[/]"
    elif state.is_banned:
        ban = f"[yellow]until {state.ban_until}[/]"
    else:
        ban = "none"
    console.print(
        Panel(
            f"Warnings: {state.warning_count}\n"
            f"Last warning: {state.last_warning_at or '-'}\n"
            f"Ban: {ban}\n"
            f"Ban reason: {state.ban_reason or '-'}",
            title=f"User {user_id}",
        )
    )


# ── Policy ───────────────────────────────────────────────────────────


@main.group()
def policy():
    """Inspect the filter policy."""


@policy.command(name="show")
@click.pass_context
def show_policy(ctx: click.Context):
    """Show the active filter policy."""
    p = _engine(ctx).policy
    console.print(f"\n[bold]{p.name}[/] v{p.version}  (tier: {ctx.obj['config'].policy_tier.value})\n")

    table = Table(title=f"Keywords ({len(p.keywords)})")
    table.add_column("Term", style="cyan")
    table.add_column("Severity")
    table.add_column("Category")
    for k in p.keywords:
        table.add_row(k.term, f"[{_SEVERITY_STYLE[k.severity.label]}]{k.severity.label}[/]", k.category)
    console.print(table)

    table = Table(title=f"Patterns ({len(p.patterns)})")
    table.add_column("Name", style="cyan")
    table.add_column("Severity")
    table.add_column("PII")
    table.add_column("Regex", style="dim")
    for pat in p.patterns:
        table.add_row(pat.name, pat.severity.label, "yes" if pat.pii else "", pat.regex)
    console.print(table)


# ── Webhooks ─────────────────────────────────────────────────────────


@main.group()
def webhook():
    """Manage notification webhooks."""


@webhook.command(name="add")
@click.argument("url")
@click.option("--event", "-e", "events", multiple=True, required=True, help="Event to subscribe to")
@click.option("--secret", default="", help="HMAC signing secret")
@click.pass_context
def add_webhook(ctx: click.Context, url: str, events: tuple, secret: str):
    """Subscribe URL to engine events."""
    from modengine.notifications.webhook import WebhookNotifier

    try:
        wh = WebhookNotifier(ctx.obj["config"].webhooks_dir).register(url, list(events), secret)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--event") from e
    console.print(f"[green]Webhook registered:[/] {wh.id}")


@webhook.command(name="list")
@click.pass_context
def list_webhooks(ctx: click.Context):
    """List registered webhooks."""
    from modengine.notifications.webhook import WebhookNotifier

    hooks = WebhookNotifier(ctx.obj["config"].webhooks_dir).list_webhooks()
    if not hooks:
        console.print("[yellow]No webhooks registered.[/]")
        return
    table = Table(title=f"Webhooks ({len(hooks)})")
    table.add_column("ID", style="dim")
    table.add_column("URL", style="cyan")
    table.add_column("Events")
    for wh in hooks:
        table.add_row(wh.id, wh.url, ", ".join(wh.events))
    console.print(table)


@webhook.command(name="remove")
@click.argument("webhook_id")
@click.pass_context
def remove_webhook(ctx: click.Context, webhook_id: str):
    """Remove a webhook."""
    from modengine.notifications.webhook import WebhookNotifier

    if WebhookNotifier(ctx.obj["config"].webhooks_dir).remove(webhook_id):
        console.print(f"[green]Removed[/] {webhook_id}")
    else:
        console.print(f"[red]Webhook {webhook_id} not found.[/]")
        sys.exit(1)


if __name__ == "__main__":
    main()
