"""Sub-command dispatch for command-line tools."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Sequence


class CommandError(Exception):
    """Raised when a sub-command is unknown or fails."""


def _prog() -> str:
    if sys.argv and sys.argv[0]:
        return os.path.basename(sys.argv[0])
    return "netdisco"


def _print_options(parser: argparse.ArgumentParser | None) -> None:
    if parser is not None:
        print(parser.format_help().rstrip("\n"))


@dataclass
class Command:
    """A sub-command: its usage line, help texts, options and handler.

    ``handler`` receives the parsed options when ``parser`` is set, or the
    raw argument list otherwise.
    """

    usage: str
    handler: Callable[[Any], Any]
    short: str = ""
    long: str = ""
    parser: argparse.ArgumentParser | None = None
    universal: argparse.ArgumentParser | None = None

    def name(self) -> str:
        """The first word of the usage line."""
        return self.usage.split(" ")[0]

    def listing(self) -> str:
        """Name and short help separated by a tab."""
        return f"{self.name()}\t{self.short}\n"

    def print_usage(self) -> None:
        """Print the full usage block to stdout."""
        print(f"USAGE: {_prog()} [OPTION]... {self.usage}")
        print()
        print(self.long.strip())
        print()
        print("Universal options:")
        _print_options(self.universal)
        if self.parser is not None:
            print()
            print("Command options:")
            _print_options(self.parser)

    def run(self, args: Sequence[str]) -> Any:
        """Parse ``args`` with the command's options and call the handler."""
        if self.parser is not None:
            return self.handler(self.parser.parse_args(list(args)))
        return self.handler(list(args))


class Commands:
    """An ordered collection of sub-commands."""

    def __init__(
        self,
        commands: Iterable[Command] = (),
        *,
        universal: argparse.ArgumentParser | None = None,
    ) -> None:
        self.commands: list[Command] = list(commands)
        self.universal = universal

    def __iter__(self) -> Iterator[Command]:
        return iter(self.commands)

    def __len__(self) -> int:
        return len(self.commands)

    def add(self, command: Command) -> None:
        """Append a sub-command."""
        self.commands.append(command)

    def print_usage(self) -> None:
        """Print the list of available commands to stdout."""
        print(f"USAGE: {_prog()} [OPTION]... <COMMAND> [<args>]")
        print()
        print("Available commands:")
        names = sorted(cmd.name() for cmd in self.commands)
        width = max([len(n) for n in names] + [0]) + 1
        width = max(width, 2)
        for name in names:
            cmd = self.find(name)
            cmd_name, _, short = cmd.listing().rstrip("\n").partition("\t")
            print(f"  {cmd_name.ljust(width)}{short}")
        print()
        print("Universal options:")
        _print_options(self.universal)

    def find(self, name: str) -> Command | None:
        """Return the first command with this name, or None."""
        return next((cmd for cmd in self.commands if cmd.name() == name), None)

    def run(self, args: Sequence[str]) -> None:
        """Run the sub-command named by ``args[0]``, or handle ``help``."""
        args = list(args)
        invalid = f"invalid command, see `{_prog()} help`"

        if not args or (args[0] == "help" and len(args) == 1):
            self.print_usage()
            return

        if args[0] == "help" and len(args) == 2:
            cmd = self.find(args[1])
            if cmd is None:
                raise CommandError(invalid)
            cmd.print_usage()
            return

        cmd = self.find(args[0])
        if cmd is None:
            raise CommandError(invalid)
        try:
            cmd.run(args[1:])
        except CommandError:
            raise
        except Exception as err:
            raise CommandError(f"{cmd.name()} failed: {err}") from err


DEFAULT_COMMANDS = Commands()


def append(command: Command) -> None:
    """Add a command to the default collection."""
    DEFAULT_COMMANDS.add(command)


def print_usage() -> None:
    DEFAULT_COMMANDS.print_usage()


def find(name: str) -> Command | None:
    return DEFAULT_COMMANDS.find(name)


def run(args: Sequence[str]) -> None:
    DEFAULT_COMMANDS.run(args)