import threading

import click

from scopesync.devices.descriptor import DeviceDescriptor, DeviceType
from scopesync.logging import SCOPESYNC_LOGGER, set_log_level
from scopesync.protocol.errors import ScopeSyncError
from scopesync.settings import ScopeSyncSettings
from scopesync.sync.manager import SyncManager

_DEVICE_TYPES = [t.value for t in DeviceType]


def _parse_intent(value: str):
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def device_options(func):
    func = click.option("--device-number", default=0, type=int, help="Device number on the server (default: 0)")(func)
    func = click.option(
        "--device-type",
        default="camera",
        type=click.Choice(_DEVICE_TYPES, case_sensitive=False),
        help="Device type (default: camera)",
    )(func)
    return func


@click.group()
@click.option("--log-level", default=None, help="Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
@click.pass_context
def cli(ctx, log_level):
    settings = ScopeSyncSettings() if log_level is None else ScopeSyncSettings(log_level=log_level)
    try:
        set_log_level(settings.log_level)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--log-level") from None
    ctx.obj = settings


@cli.command()
@click.argument("address")
@device_options
@click.option("--seconds", default=0.0, type=float, help="How long to watch; 0 watches until interrupted")
@click.option("--burst", is_flag=True, default=False, help="Poll the fast group in burst mode")
@click.pass_obj
def watch(settings, address, device_type, device_number, seconds, burst):
    """Select a device and log every synchronization event."""
    device = DeviceDescriptor(address, device_type, device_number)
    with SyncManager(settings) as manager:
        manager.emitter.subscribe(lambda event: SCOPESYNC_LOGGER.info("%s", event))
        try:
            manager.select_device(device)
        except ScopeSyncError as exc:
            raise click.ClickException(f"Could not connect to {device}: {exc}") from None
        if burst:
            manager.request_burst_mode(device, True)
        done = threading.Event()
        try:
            done.wait(seconds if seconds > 0 else None)
        except KeyboardInterrupt:
            pass
        finally:
            manager.release_device(device)


@cli.command(name="set")
@click.argument("address")
@click.argument("name")
@click.argument("value")
@device_options
@click.pass_obj
def set_property(settings, address, name, value, device_type, device_number):
    """Select a device, write one property and release it."""
    device = DeviceDescriptor(address, device_type, device_number)
    with SyncManager(settings) as manager:
        try:
            manager.select_device(device)
            sent = manager.set_property(device, name, _parse_intent(value))
        except ScopeSyncError as exc:
            raise click.ClickException(f"{exc.kind}: {exc}") from None
        click.echo(f"{name} <- {sent!r}")


if __name__ == "__main__":
    cli()
