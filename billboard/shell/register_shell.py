"""Interactive register peek/poke shell."""
from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Optional, TextIO, Union

from ..cli.common import parse_hex_u16
from ..config import ShellConfig
from ..console.input import LineSource
from ..errors import TransferError
from ..protocol import AsyncProtocolClient

EXIT_WORDS = {"exit", "quit", "q"}

USAGE = (
    "  r <addr> <offset>",
    "  w <addr> <offset> <value>",
    "  exit / quit",
)


@dataclass(frozen=True, slots=True)
class ReadCommand:
    addr: int
    offset: int


@dataclass(frozen=True, slots=True)
class WriteCommand:
    addr: int
    offset: int
    value: int


@dataclass(frozen=True, slots=True)
class ExitCommand:
    pass


@dataclass(frozen=True, slots=True)
class InvalidCommand:
    reason: str


Command = Union[ReadCommand, WriteCommand, ExitCommand, InvalidCommand]


def parse_command(line: str) -> Optional[Command]:
    """Parse one shell line; blank lines yield ``None``."""

    parts = line.split()
    if not parts:
        return None
    verb, args = parts[0], parts[1:]
    if verb in EXIT_WORDS and not args:
        return ExitCommand()
    try:
        if verb == "r" and len(args) == 2:
            return ReadCommand(addr=parse_hex_u16(args[0]), offset=parse_hex_u16(args[1]))
        if verb == "w" and len(args) == 3:
            return WriteCommand(
                addr=parse_hex_u16(args[0]),
                offset=parse_hex_u16(args[1]),
                value=parse_hex_u16(args[2]) & 0xFF,
            )
    except ValueError as exc:
        return InvalidCommand(reason=str(exc))
    return InvalidCommand(reason="invalid command format")


def format_read(addr: int, offset: int, data: bytes) -> str:
    values = " ".join(f"{byte:02X}" for byte in data)
    return f"[READ {addr:02X}::{offset:04X}] {values}"


class RegisterShell:
    """Sequential read-eval loop over the register requests.

    Only disconnect errors end the session; any other transfer failure is
    reported and the prompt comes back.
    """

    def __init__(
        self,
        client: AsyncProtocolClient,
        lines: LineSource,
        config: Optional[ShellConfig] = None,
        output: Optional[TextIO] = None,
        errors: Optional[TextIO] = None,
    ) -> None:
        self._client = client
        self._lines = lines
        self._config = config or ShellConfig()
        self._output = output if output is not None else sys.stdout
        self._errors = errors if errors is not None else sys.stderr

    async def run(self) -> None:
        if self._config.show_banner:
            print("--- Register Shell ---", file=self._output)
            for entry in USAGE:
                print(entry, file=self._output)
            print("-" * 24, file=self._output)

        while True:
            self._output.write(self._config.prompt)
            self._output.flush()
            line = await self._lines.readline()
            if line is None:
                return
            command = parse_command(line)
            if command is None:
                continue
            if isinstance(command, ExitCommand):
                return
            if isinstance(command, InvalidCommand):
                print(f"Invalid command: {command.reason}", file=self._errors)
                continue
            await self.execute(command)

    async def execute(self, command: Union[ReadCommand, WriteCommand]) -> None:
        try:
            if isinstance(command, ReadCommand):
                data = await self._client.read_register(command.addr, command.offset)
                print(format_read(command.addr, command.offset, data), file=self._output)
            else:
                await self._client.write_register(command.addr, command.offset, command.value)
                print("[WRITE] Done", file=self._output)
        except TransferError as exc:
            label = "Read" if isinstance(command, ReadCommand) else "Write"
            print(f"{label} Error: {exc}", file=self._errors)
            if exc.is_fatal:
                raise
