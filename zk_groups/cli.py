"""
Command-Line Interface for zk-groups

Manages groups stored in a local CBOR file, redeems invites, answers
membership and proof queries, and publishes root changes to a local
ledger file.
"""

import json
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable

import click
import trio
from rich.console import Console
from rich.table import Table

from zk_groups import __version__
from zk_groups.config import GroupsConfig, load_config
from zk_groups.exceptions import GroupsError
from zk_groups.invites import InviteBook
from zk_groups.ledger import CborFileLedger
from zk_groups.registry import GroupRegistry
from zk_groups.store import CborFileGroupStore
from zk_groups.sync import BatchPublisher, SyncQueue

Action = Callable[[GroupRegistry, InviteBook], Awaitable[Any]]


def _run(config: GroupsConfig, action: Action) -> Any:
    """Open the stores, bootstrap a registry and run ``action`` against it."""

    async def _main() -> Any:
        store = await CborFileGroupStore(config.store_path).load()
        invites = await InviteBook(config.invites_path).load()
        ledger = await CborFileLedger(config.ledger_path).load()

        result = failure = None
        # The nursery outlives the action so a scheduled publication
        # completes before the process exits.
        async with trio.open_nursery() as nursery:
            publisher = BatchPublisher(
                SyncQueue(), ledger, nursery, delay=config.publish_delay
            )
            registry = GroupRegistry(store, invites, publisher)
            await registry.bootstrap()
            try:
                result = await action(registry, invites)
            except GroupsError as exc:
                failure = exc
        if failure is not None:
            raise failure
        return result

    try:
        return trio.run(_main)
    except GroupsError as exc:
        raise click.ClickException(f"{type(exc).__name__}: {exc}") from exc


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2))


@click.group()
@click.version_option(version=__version__)
@click.option(
    '--config',
    'config_path',
    type=click.Path(dir_okay=False),
    help='YAML config file (keys of GroupsConfig)'
)
@click.option('--store', type=click.Path(dir_okay=False), help='Group store CBOR file')
@click.option('--invites', type=click.Path(dir_okay=False), help='Invite book CBOR file')
@click.option('--ledger', type=click.Path(dir_okay=False), help='Ledger CBOR file')
@click.option(
    '--publish-delay',
    type=float,
    help='Seconds to wait before publishing queued root changes'
)
@click.option('--verbose', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx, config_path, store, invites, ledger, publish_delay, verbose):
    """
    zk-groups - Merkle membership groups with batched ledger sync.
    """
    try:
        config = load_config(config_path)
    except GroupsError as exc:
        raise click.ClickException(str(exc)) from exc

    overrides = {
        'store_path': store,
        'invites_path': invites,
        'ledger_path': ledger,
        'publish_delay': publish_delay,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})
    if verbose:
        config = replace(config, log_level='DEBUG')

    logging.basicConfig(
        level=config.log_level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    ctx.obj = config


@main.command('create-group')
@click.argument('name')
@click.option('--admin', required=True, help='Admin username')
@click.option('--description', default='', help='Group description')
@click.option('--depth', type=int, help='Tree depth (default from config)')
@click.option('--tag', default='', help='Classification tag')
@click.pass_obj
def create_group(config, name, admin, description, depth, tag):
    """Create a new group with an empty member list."""
    tree_depth = depth if depth is not None else config.default_tree_depth

    async def _action(registry, invites):
        return await registry.create_group(name, description, tree_depth, tag, admin)

    group = _run(config, _action)
    click.echo(click.style(f"✓ Group '{group.name}' created", fg='green'))


@main.command('update-group')
@click.argument('name')
@click.option('--admin', required=True, help='Admin username (must match)')
@click.option('--description', default='', help='Group description')
@click.option('--depth', type=int, required=True, help='Tree depth')
@click.option('--tag', default='', help='Classification tag')
@click.pass_obj
def update_group(config, name, admin, description, depth, tag):
    """Update description, depth and tag of a group."""

    async def _action(registry, invites):
        return await registry.update_group(name, description, depth, tag, admin)

    group = _run(config, _action)
    _echo_json(group.to_dict())


@main.command('add-invite')
@click.argument('code')
@click.argument('group')
@click.pass_obj
def add_invite(config, code, group):
    """Register a one-time invite CODE for GROUP."""

    async def _action(registry, invites):
        await registry.get_group(group)
        await invites.add(code, group)

    _run(config, _action)
    click.echo(click.style(f"✓ Invite '{code}' added for '{group}'", fg='green'))


@main.command('add-member')
@click.argument('group')
@click.argument('member')
@click.option('--invite', 'invite_code', required=True, help='Invite code')
@click.pass_obj
def add_member(config, group, member, invite_code):
    """
    Add MEMBER (identity commitment) to GROUP.

    The new root is published to the ledger after the publish delay.
    """

    async def _action(registry, invites):
        await registry.add_member(group, member, invite_code)
        return registry.root_of(group)

    root = _run(config, _action)
    click.echo(click.style(f"✓ Member added to '{group}'", fg='green'))
    click.echo(f"root: {root}")


@main.command('list-groups')
@click.option('--admin', help='Only groups administered by this user')
@click.pass_obj
def list_groups(config, admin):
    """List groups."""

    async def _action(registry, invites):
        if admin is not None:
            return await registry.list_groups_by_admin(admin)
        return await registry.list_groups()

    groups = _run(config, _action)

    table = Table(title='Groups')
    table.add_column('Name', style='cyan')
    table.add_column('Admin')
    table.add_column('Depth', justify='right')
    table.add_column('Members', justify='right')
    table.add_column('Tag')
    for group in groups:
        table.add_row(
            group.name,
            group.admin,
            str(group.tree_depth),
            str(len(group.members)),
            group.tag,
        )
    Console().print(table)


@main.command('get-group')
@click.argument('name')
@click.pass_obj
def get_group(config, name):
    """Show a group record as JSON."""

    async def _action(registry, invites):
        return await registry.get_group(name)

    _echo_json(_run(config, _action).to_dict())


@main.command('is-member')
@click.argument('group')
@click.argument('member')
@click.pass_obj
def is_member(config, group, member):
    """Print whether MEMBER belongs to GROUP."""

    async def _action(registry, invites):
        return registry.is_member(group, member)

    click.echo('true' if _run(config, _action) else 'false')


@main.command('proof')
@click.argument('group')
@click.argument('member')
@click.pass_obj
def proof(config, group, member):
    """Print the Merkle inclusion proof of MEMBER as JSON."""

    async def _action(registry, invites):
        return registry.generate_proof(group, member)

    _echo_json(_run(config, _action).to_dict())


@main.command('root')
@click.argument('group')
@click.pass_obj
def root(config, group):
    """Print the current Merkle root of GROUP."""

    async def _action(registry, invites):
        return registry.root_of(group)

    click.echo(str(_run(config, _action)))


if __name__ == '__main__':
    main()
