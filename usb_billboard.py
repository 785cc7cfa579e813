"""CLI entry point for the USB Billboard debug client."""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

import usb.core

from billboard import AppConfig, load_config
from billboard.cli import apply_device_overrides, parse_hex_u16
from billboard.console import LogConsole, StdinLineReader
from billboard.errors import DeviceOpenError
from billboard.hardware import SimulatedFirmware, list_devices, open_session
from billboard.protocol import AsyncProtocolClient
from billboard.service import ReconnectSupervisor
from billboard.shell import RegisterShell


def _hex_u16(text: str) -> int:
    try:
        return parse_hex_u16(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _target_options(default=None) -> argparse.ArgumentParser:
    """VID/PID options accepted both before and after the subcommand."""

    options = argparse.ArgumentParser(add_help=False)
    options.add_argument('--vid', type=_hex_u16, default=default, help='Target device VID in hex (default: 0x343C).')
    options.add_argument('--pid', type=_hex_u16, default=default, help='Target device PID in hex (default: 0x5361).')
    return options


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='usb-billboard',
        description='USB Billboard debug tool: live firmware log, console commands and register access.',
        parents=[_target_options()],
    )
    parser.add_argument('--config', type=str, help='Path to a JSON, TOML or YAML config file.')
    parser.add_argument(
        '--transport', choices=('usb', 'sim'), help='Device transport (sim runs against simulated firmware).'
    )
    parser.add_argument('--interface', type=int, help='Interface number to claim (default: 0).')
    parser.add_argument('--frame-size', type=int, choices=(8, 64), help='Log poll frame size in bytes.')
    parser.add_argument(
        '--no-reconnect', action='store_true', help='Exit with an error instead of waiting for the device.'
    )
    parser.add_argument('--quiet', action='store_true', help='Suppress connection status messages.')

    subparsers = parser.add_subparsers(dest='command', required=True)
    # subcommand copies only set vid/pid when given after the subcommand
    target = _target_options(default=argparse.SUPPRESS)
    subparsers.add_parser('log', parents=[target], help='Stream the live debug log and send console commands.')
    subparsers.add_parser('reg', parents=[target], help='Interactive register shell (r/w commands).')
    subparsers.add_parser('devices', parents=[target], help='List connected devices matching VID/PID.')
    return parser


def _resolve_config(args: argparse.Namespace) -> AppConfig:
    config = load_config(Path(args.config)) if args.config else AppConfig()
    device = apply_device_overrides(config.device, args)
    supervisor = config.supervisor
    if args.no_reconnect or args.quiet:
        supervisor = supervisor.with_overrides(
            reconnect=supervisor.reconnect and not args.no_reconnect,
            quiet=supervisor.quiet or args.quiet,
        )
    return config.with_overrides(device=device, supervisor=supervisor)


def _list_devices(config: AppConfig) -> int:
    print('Connected hardware:')
    devices = list_devices(config.device)
    if not devices:
        print('  (none)')
        print(f'  >> Please connect a device with ID {config.device.label} and retry.')
        return 1
    for device in devices:
        print(f'  {device.label} {device.description or ""}'.rstrip())
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config_path = Path(args.config) if args.config else None
    if config_path is not None and not config_path.exists():
        print(f'Config file not found: {config_path}', file=sys.stderr)
        return 1

    try:
        config = _resolve_config(args)
    except (TypeError, ValueError) as exc:
        print(f'Invalid configuration: {exc}', file=sys.stderr)
        return 1

    try:
        if args.command == 'devices':
            return _list_devices(config)
    except (DeviceOpenError, usb.core.NoBackendError) as exc:
        print(f'Error: {exc}', file=sys.stderr)
        return 1

    lines = StdinLineReader()
    firmware = SimulatedFirmware(frame_size=config.device.log_frame_size) if config.device.transport == 'sim' else None

    if args.command == 'log':
        async def mode(client: AsyncProtocolClient) -> None:
            await LogConsole(client, lines, config.console).run()
    else:
        async def mode(client: AsyncProtocolClient) -> None:
            await RegisterShell(client, lines, config.shell).run()

    supervisor = ReconnectSupervisor(
        config,
        mode,
        session_factory=lambda: open_session(config.device, firmware=firmware),
    )
    try:
        return asyncio.run(supervisor.run())
    except KeyboardInterrupt:
        print('\nExiting...')
        return 0
    except usb.core.NoBackendError as exc:
        print(f'Error: no USB backend available ({exc}). Install libusb and retry.', file=sys.stderr)
        return 1


if __name__ == '__main__':
    raise SystemExit(main(sys.argv[1:]))
