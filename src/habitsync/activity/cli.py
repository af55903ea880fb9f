"""Command-line interface for activity tracking."""

import asyncio
import getpass
import sys

import click
from rich.console import Console
from rich.table import Table

from .authority import CallerIdentity
from .config import ActivityConfig, config_manager
from .exceptions import ActivityError, ForbiddenError, NotFoundError
from .tracker import ActivityTracker


def _load_config(ctx) -> ActivityConfig:
    options = ctx.obj
    config = config_manager.reload_config(options['config_path'])
    overrides = {key: options[key] for key in ('store_path', 'ledger_path', 'authority_url') if options[key]}
    if overrides:
        config = config.update(**overrides)
    config.apply_logging_config()
    return config


def _open_tracker(ctx) -> ActivityTracker:
    config = _load_config(ctx)
    caller = CallerIdentity(ctx.obj['user'], elevated=ctx.obj['elevated'])
    return ActivityTracker.from_config(config, caller=caller)


@click.group()
@click.option('--config', 'config_path', default=None, help='Configuration file (JSON)')
@click.option('--store-path', default=None, help='Local store path (default: ~/.habitsync/activity.db)')
@click.option('--ledger-path', default=None, help='Local ledger path (default: ~/.habitsync/ledger.db)')
@click.option('--authority-url', default=None, help='Remote Authority base URL')
@click.option('--user', default=None, help='Caller user id (default: current OS user)')
@click.option('--elevated', is_flag=True, help='Act with elevated privilege')
@click.pass_context
def cli(ctx, config_path, store_path, ledger_path, authority_url, user, elevated):
    """HabitSync activity - local-first goal and routine completion tracking."""
    ctx.ensure_object(dict)
    ctx.obj.update({
        'config_path': config_path,
        'store_path': store_path,
        'ledger_path': ledger_path,
        'authority_url': authority_url,
        'user': user or getpass.getuser(),
        'elevated': elevated,
    })


@cli.command()
@click.argument('kind')
@click.argument('label')
@click.option('--ref', 'ref_id', default=None, help='Id of the goal or routine that was completed')
@click.pass_context
def complete(ctx, kind, label, ref_id):
    """Mark a goal or routine as completed today."""

    async def run():
        with _open_tracker(ctx) as tracker:
            record = await tracker.record_completion(kind, ref_id, label)
            await tracker.drain()
            pending = tracker.store.get(record.id) is not None
            return record, pending

    try:
        record, pending = asyncio.run(run())
    except (ActivityError, ValueError) as e:
        click.echo(f"❌ Error recording completion: {e}", err=True)
        sys.exit(1)

    click.echo(f"✅ Recorded {record.kind} '{record.label}' for {record.day_key}")
    if pending:
        click.echo("⚠️  Not synced yet; it will be pushed on the next sync")


@cli.command()
@click.pass_context
def timeline(ctx):
    """Show merged activity history grouped by day."""
    with _open_tracker(ctx) as tracker:
        view = tracker.merged_view()

    if not view:
        click.echo("No activity yet")
        return

    table = Table(title="Activity timeline")
    table.add_column("Day")
    table.add_column("Kind")
    table.add_column("Title")
    table.add_column("Completed at")
    table.add_column("Source")
    for group in view.group_by_day():
        for index, record in enumerate(group.items):
            table.add_row(
                group.day_key if index == 0 else "",
                record.kind,
                record.label,
                record.completed_at.strftime('%H:%M'),
                record.source,
            )
    Console().print(table)

    if not view.remote_available:
        click.echo("⚠️  Authority unavailable, showing local activity only")


@cli.command()
@click.pass_context
def streak(ctx):
    """Show the current completion streak."""
    with _open_tracker(ctx) as tracker:
        days = tracker.streak()
    click.echo(f"🔥 Streak: {days} day{'s' if days != 1 else ''}")


@cli.command()
@click.pass_context
def dashboard(ctx):
    """Show today's completions, streak, and totals."""
    with _open_tracker(ctx) as tracker:
        data = tracker.dashboard()

    click.echo(f"📅 Today ({data['day_key']})")
    click.echo(f"   Goals completed: {data['goals_today']}")
    click.echo(f"   Routines completed: {data['routines_today']}")
    for record in data['today']:
        click.echo(f"   - [{record.kind}] {record.label} ({record.source})")
    click.echo(f"🔥 Streak: {data['streak']}")

    summary = data['summary']
    click.echo(f"📊 Total: {summary['total']} ({summary['goals']} goals, {summary['routines']} routines, "
               f"{summary['local']} not synced)")
    if not data['remote_available']:
        click.echo("⚠️  Authority unavailable, showing local activity only")


@cli.command()
@click.pass_context
def sync(ctx):
    """Push locally recorded completions to the Authority."""

    async def run():
        with _open_tracker(ctx) as tracker:
            return await tracker.sync_pending()

    result = asyncio.run(run())
    click.echo(f"🔄 Pushed: {result.pushed}, failed: {result.failed} ({result.rejected} rejected)")
    if result.errors:
        click.echo(f"\n⚠️  {len(result.errors)} errors occurred:")
        for error in result.errors[:5]:
            click.echo(f"  {error}")


@cli.command('delete-owner')
@click.argument('kind')
@click.argument('ref_id')
@click.pass_context
def delete_owner(ctx, kind, ref_id):
    """Delete all activity of a goal or routine that was removed."""

    async def run():
        with _open_tracker(ctx) as tracker:
            return await tracker.delete_owner(kind, ref_id)

    result = asyncio.run(run())
    click.echo(f"🗑️  Removed {result.removed_local} local and {result.removed_remote} remote activities")
    if result.remote_failures:
        click.echo(f"⚠️  {result.remote_failures} remote deletions failed ({result.forbidden} forbidden)")


@cli.command()
@click.argument('activity_id')
@click.pass_context
def delete(ctx, activity_id):
    """Delete a single activity by id."""
    with _open_tracker(ctx) as tracker:
        try:
            removed = tracker.delete_activity(activity_id)
        except NotFoundError:
            click.echo(f"❌ Activity {activity_id} not found", err=True)
            sys.exit(1)
        except ForbiddenError:
            click.echo(f"❌ Not allowed to delete activity {activity_id}", err=True)
            sys.exit(1)
        except ValueError as e:
            click.echo(f"❌ {e}", err=True)
            sys.exit(1)

    if removed:
        click.echo(f"✅ Activity {activity_id} deleted")
    else:
        click.echo(f"❌ Activity {activity_id} not found", err=True)
        sys.exit(1)


@cli.command('clear-history')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def clear_history(ctx, yes):
    """Delete ALL activity history, locally and on the Authority."""
    if not yes and not click.confirm("Are you sure you want to delete ALL activity history?"):
        click.echo("Aborted")
        return

    async def run():
        with _open_tracker(ctx) as tracker:
            return await tracker.clear_history()

    result = asyncio.run(run())
    click.echo(f"✅ Cleared {result.cleared_local} local activities")
    click.echo(f"🗑️  Deleted {result.deleted} remote activities, {result.failed} failed")


@cli.command()
@click.pass_context
def config(ctx):
    """Show the effective configuration."""
    click.echo(_load_config(ctx).get_summary())


if __name__ == '__main__':
    cli()
