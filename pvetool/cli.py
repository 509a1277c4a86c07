import functools
import logging

import click

from pvetool import __version__
from pvetool.client import ProxmoxAPIError, ProxmoxAuthError, ProxmoxClient, parse_host_port
from pvetool.config import Settings, load_config, resolve_settings
from pvetool.formatters import (
    format_nodes,
    format_raw,
    format_snapshot_list,
    format_vm_info,
    format_vm_status,
    format_vm_table,
)
from pvetool.snapshot import SnapshotManager
from pvetool.tasks import TaskWaiter

CONTEXT_SETTINGS = dict(help_option_names=['-h', '--help'], max_content_width=120)

TOKEN_REQUIRED = "API token is required. Set PROXMOX_API_TOKEN, use -t, or add to config file"


def setup_logging(verbose=False, quiet=False):
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(level=level, format='%(asctime)s - %(levelname)s - %(message)s')


def get_client(settings: Settings) -> ProxmoxClient:
    """
    Build a client for the resolved settings.

    A single host is used as-is; several hosts go through the ordered
    fallback probe.
    """
    if len(settings.hosts) == 1:
        host, port = parse_host_port(settings.hosts[0], settings.port)
        return ProxmoxClient(host, settings.token, port, settings.verify_ssl, settings.timeout)
    return ProxmoxClient.from_hosts(settings.hosts, settings.token, settings.port,
                                    settings.verify_ssl, settings.timeout)


def connection_req(function):
    """
    Resolve settings and connect before running a command

    Adds 'client' and 'manager' to the context object and turns API
    failures into click errors.
    """
    @functools.wraps(function)
    def validate_connection(*args, **kwargs):
        obj = click.get_current_context().obj
        try:
            settings = resolve_settings(load_config(obj['config']), **obj['overrides'])
        except ValueError as e:
            raise click.ClickException(str(e))
        if not settings.token:
            raise click.ClickException(TOKEN_REQUIRED)

        def progress(_status):
            obj['dotted'] = True
            click.echo('.', nl=False, err=True)

        try:
            client = get_client(settings)
            obj['client'] = client
            obj['manager'] = SnapshotManager(
                client,
                waiter=TaskWaiter(client, settings.poll_interval, settings.task_timeout, on_progress=progress),
            )
            return function(*args, **kwargs)
        except (ProxmoxAPIError, ProxmoxAuthError, ValueError) as e:
            end_progress(obj)
            raise click.ClickException(str(e))

    return validate_connection


def end_progress(obj):
    if obj.pop('dotted', False):
        click.echo(err=True)


def finish(obj, data, formatter):
    if obj['raw']:
        click.echo(format_raw(data))
    else:
        click.echo(formatter(data))


def task_done(obj, result):
    end_progress(obj)
    if obj['raw']:
        click.echo(format_raw(result))
    else:
        click.echo("✓ Task completed successfully")


@click.group(context_settings=CONTEXT_SETTINGS, help="Proxmox VE snapshot management tool")
@click.version_option(__version__, prog_name='pve-tool')
@click.option('-c', '--config', 'config_file', envvar='PVE_TOOL_CONFIG', default=None,
              help="Path to configuration file")
@click.option('--cluster', envvar='PROXMOX_CLUSTER', default=None,
              help="Cluster profile from the configuration file")
@click.option('-H', '--host', envvar='PROXMOX_HOST', default=None,
              help="Proxmox host [default: 192.168.1.1]")
@click.option('-p', '--port', envvar='PROXMOX_PORT', type=int, default=None,
              help="API port [default: 8006]")
@click.option('-t', '--token', envvar='PROXMOX_API_TOKEN', default=None,
              help="API token ('user@realm!tokenid=secret')")
@click.option('-k', '--verify-ssl', envvar='PROXMOX_VERIFY_SSL', type=click.BOOL, default=None,
              help="Verify TLS certificates [default: false]")
@click.option('--timeout', envvar='PROXMOX_TIMEOUT', type=int, default=None,
              help="Request timeout in seconds [default: 30]")
@click.option('--poll-interval', envvar='PROXMOX_POLL_INTERVAL', type=float, default=None,
              help="Seconds between task status polls [default: 2]")
@click.option('--task-timeout', envvar='PROXMOX_TASK_TIMEOUT', type=float, default=None,
              help="Give up waiting for a task after this many seconds [default: wait forever]")
@click.option('-R', '--raw', is_flag=True, default=False, help="Print raw JSON output")
@click.option('-v', '--verbose', is_flag=True, default=False, help="Show debug logging")
@click.option('-q', '--quiet', is_flag=True, default=False, help="Only log warnings and errors")
@click.pass_context
def cli(ctx, config_file, cluster, host, port, token, verify_ssl, timeout, poll_interval, task_timeout,
        raw, verbose, quiet):
    setup_logging(verbose, quiet)
    ctx.obj = {
        'config': config_file,
        'raw': raw,
        'overrides': {
            'cluster': cluster,
            'host': host,
            'port': port,
            'token': token,
            'verify_ssl': verify_ssl,
            'timeout': timeout,
            'poll_interval': poll_interval,
            'task_timeout': task_timeout,
        },
    }


@cli.command(name='create', short_help="Create a snapshot")
@click.argument('vm')
@click.option('-s', '--snapname', default=None,
              help="Snapshot name [default: snapshot-YYYYMMDD-HHMMSS]")
@click.option('-d', '--description', default=None, help="Snapshot description")
@click.option('-m', '--vmstate', is_flag=True, default=False, help="Include RAM state")
@connection_req
@click.pass_obj
def cli_create(obj, vm, snapname, description, vmstate):
    """
    Create a snapshot of VM (id or name) and wait for it to finish.
    """
    result = obj['manager'].create_snapshot(vm, snapname, description, vmstate)
    task_done(obj, result)


@cli.command(name='delete', short_help="Delete a snapshot")
@click.argument('vm')
@click.argument('snapname')
@connection_req
@click.pass_obj
def cli_delete(obj, vm, snapname):
    """
    Delete snapshot SNAPNAME of VM (id or name).
    """
    result = obj['manager'].delete_snapshot(vm, snapname)
    task_done(obj, result)


@cli.command(name='list', short_help="List snapshots")
@click.argument('vm')
@connection_req
@click.pass_obj
def cli_list(obj, vm):
    """
    List the snapshots of VM (id or name).
    """
    finish(obj, obj['manager'].list_snapshots(vm), format_snapshot_list)


@cli.command(name='rollback', short_help="Roll back to a snapshot")
@click.argument('vm')
@click.argument('snapname')
@connection_req
@click.pass_obj
def cli_rollback(obj, vm, snapname):
    """
    Roll VM (id or name) back to snapshot SNAPNAME.
    """
    result = obj['manager'].rollback_snapshot(vm, snapname)
    task_done(obj, result)


@cli.command(name='info', short_help="Show VM information")
@click.argument('vm')
@connection_req
@click.pass_obj
def cli_info(obj, vm):
    finish(obj, obj['manager'].vm_status(vm), format_vm_info)


@cli.command(name='check', short_help="Check VM status")
@click.argument('vm')
@connection_req
@click.pass_obj
def cli_check(obj, vm):
    finish(obj, obj['manager'].vm_status(vm), format_vm_status)


@cli.command(name='test', short_help="Test the API connection")
@connection_req
@click.pass_obj
def cli_test(obj):
    click.echo("Testing connection to Proxmox server...")
    try:
        version = obj['client'].check_connection()
    except ProxmoxAuthError as e:
        click.echo(f"✗ Connection failed: {e}", err=True)
        raise click.exceptions.Exit(1)
    click.echo("✓ Connection successful!")
    if isinstance(version, dict) and version.get('version'):
        click.echo(f"  Proxmox VE version: {version['version']}")


@cli.command(name='list-vms', short_help="List VMs in the cluster")
@click.option('-N', '--node', default=None, help="Only show VMs on this node")
@connection_req
@click.pass_obj
def cli_list_vms(obj, node):
    finish(obj, obj['manager'].list_vms(node), format_vm_table)


@cli.command(name='list-nodes', short_help="List cluster nodes")
@connection_req
@click.pass_obj
def cli_list_nodes(obj):
    finish(obj, obj['manager'].list_nodes(), format_nodes)
