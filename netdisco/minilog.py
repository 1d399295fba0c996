"""Multi-sink logging with per-sink levels, colours and substring filters.

Sinks are registered by name with :func:`add_logger`. The module-level
logging functions send each message to every sink whose level permits it.
"""

from __future__ import annotations

import enum
import os
import socket
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Iterable

RESET = "\x1b[0m"
BRIGHT = "\x1b[1m"
DIM = "\x1b[2m"
UNDERSCORE = "\x1b[4m"
BLINK = "\x1b[5m"
REVERSE = "\x1b[7m"
HIDDEN = "\x1b[8m"

FG_BLACK = "\x1b[30m"
FG_RED = "\x1b[31m"
FG_GREEN = "\x1b[32m"
FG_YELLOW = "\x1b[33m"
FG_BLUE = "\x1b[34m"
FG_MAGENTA = "\x1b[35m"
FG_CYAN = "\x1b[36m"
FG_WHITE = "\x1b[37m"

BG_BLACK = "\x1b[40m"
BG_RED = "\x1b[41m"
BG_GREEN = "\x1b[42m"
BG_YELLOW = "\x1b[43m"
BG_BLUE = "\x1b[44m"
BG_MAGENTA = "\x1b[45m"
BG_CYAN = "\x1b[46m"
BG_WHITE = "\x1b[47m"

_COLOR_LINE = FG_YELLOW


class Level(enum.IntEnum):
    """Log levels, in increasing order of severity."""

    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4
    FATAL = 5

    @classmethod
    def parse(cls, s: str) -> "Level":
        """Return the level named by ``s`` (lower case)."""
        for level in cls:
            if level.name.lower() == s:
                return level
        raise ValueError("invalid log level")

    def __str__(self) -> str:
        return self.name.lower()


DEFAULT_LEVEL = Level.ERROR

_LEVEL_COLORS = {
    Level.DEBUG: FG_BLUE,
    Level.INFO: FG_GREEN,
    Level.WARN: FG_YELLOW,
    Level.ERROR: FG_RED,
    Level.FATAL: FG_RED,
}


class LoggerError(Exception):
    """Raised when a named logger or filter does not exist."""


@dataclass
class _Sink:
    output: IO[Any]
    level: Level
    color: bool
    filters: list[str] = field(default_factory=list)

    def _prologue(self, level: Level, name: str) -> str:
        label = level.name if level in _LEVEL_COLORS else "FATAL"
        msg = f"{label} {name or _caller()}: "
        if self.color:
            msg = _COLOR_LINE + msg + _LEVEL_COLORS.get(level, FG_RED)
        return msg

    def emit(self, level: Level, name: str, text: str) -> None:
        msg = self._prologue(level, name) + text + (RESET if self.color else "")
        if any(f in msg for f in self.filters):
            return
        line = time.strftime("%Y/%m/%d %H:%M:%S ") + msg
        if not line.endswith("\n"):
            line += "\n"
        self.output.write(line)
        flush = getattr(self.output, "flush", None)
        if flush is not None:
            flush()


_loggers: dict[str, _Sink] = {}
_lock = threading.RLock()


def _caller() -> str:
    frame = sys._getframe(1)
    while frame is not None and frame.f_code.co_filename == __file__:
        frame = frame.f_back
    if frame is None:
        return "???:0"
    return f"{os.path.basename(frame.f_code.co_filename)}:{frame.f_lineno}"


def add_logger(name: str, output: IO[Any], level: Level, color: bool) -> None:
    """Register (or replace) a sink logging events at ``level`` or higher."""
    with _lock:
        _loggers[name] = _Sink(output, Level(level), color)


def del_logger(name: str) -> None:
    """Remove a named sink; unknown names are ignored."""
    with _lock:
        _loggers.pop(name, None)


def loggers() -> list[str]:
    """Return the names of all registered sinks."""
    with _lock:
        return list(_loggers)


def will_log(level: Level) -> bool:
    """Return True if a message at ``level`` would reach any sink."""
    with _lock:
        return any(sink.level <= level for sink in _loggers.values())


def set_level(name: str, level: Level) -> None:
    """Change the level of a named sink."""
    with _lock:
        if name not in _loggers:
            raise LoggerError("logger does not exist")
        _loggers[name].level = Level(level)


def set_level_all(level: Level) -> None:
    """Change the level of every sink."""
    with _lock:
        for sink in _loggers.values():
            sink.level = Level(level)


def get_level(name: str) -> Level:
    """Return the level of a named sink."""
    with _lock:
        if name not in _loggers:
            raise LoggerError("logger does not exist")
        return _loggers[name].level


def log_all(stream: IO[str], level: Level, name: str) -> threading.Thread:
    """Log every non-blank line of ``stream`` in a background thread.

    The thread is started and returned. At FATAL level the process exits
    after the first line.
    """

    def pump() -> None:
        for raw in stream:
            text = raw.strip()
            if text:
                _log(level, name, "%s", (text,))
            if level == Level.FATAL:
                os._exit(1)

    thread = threading.Thread(target=pump, daemon=True)
    thread.start()
    return thread


def setup(level: Level = DEFAULT_LEVEL, verbose: bool = True, logfile: str = "") -> None:
    """Add the standard sinks: stderr when ``verbose``, and ``logfile`` if given."""
    color = os.name != "nt"
    if verbose:
        add_logger("stderr", sys.stderr, level, color)
    if logfile:
        path = Path(logfile)
        path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(path, "a", encoding="utf-8")
        os.chmod(path, 0o660)
        add_logger("file", handle, level, False)


def filters(name: str) -> list[str]:
    """Return a copy of the filters on a named sink."""
    with _lock:
        if name not in _loggers:
            raise LoggerError(f"no such logger {name}")
        return list(_loggers[name].filters)


def add_filter(name: str, text: str) -> None:
    """Suppress messages on a sink that contain ``text``."""
    with _lock:
        if name not in _loggers:
            raise LoggerError(f"no such logger {name}")
        sink = _loggers[name]
        if text not in sink.filters:
            sink.filters.append(text)


def del_filter(name: str, text: str) -> None:
    """Remove a filter from a named sink."""
    with _lock:
        if name not in _loggers:
            raise LoggerError(f"no such logger {name}")
        sink = _loggers[name]
        if text not in sink.filters:
            raise LoggerError(f"filter {text} does not exist")
        sink.filters.remove(text)


class _SyslogWriter:
    """Writes lines to a syslog daemon over a socket."""

    _LOCAL_PATHS = ("/dev/log", "/var/run/syslog", "/var/run/log")

    def __init__(self, network: str, raddr: str, tag: str, priority: int) -> None:
        self._tag = tag or os.path.basename(sys.argv[0] if sys.argv else "")
        self._priority = priority
        self._hostname = socket.gethostname()
        self._local = network == "local"
        if self._local:
            self._sock, self._stream = self._connect_local()
        else:
            self._sock, self._stream = self._connect_remote(network, raddr)

    @classmethod
    def _connect_local(cls) -> tuple[socket.socket, bool]:
        family = getattr(socket, "AF_UNIX", None)
        if family is None:
            raise OSError("unix syslog delivery error")
        for path in cls._LOCAL_PATHS:
            for kind in (socket.SOCK_DGRAM, socket.SOCK_STREAM):
                sock = socket.socket(family, kind)
                try:
                    sock.connect(path)
                except OSError:
                    sock.close()
                    continue
                return sock, kind == socket.SOCK_STREAM
        raise OSError("unix syslog delivery error")

    @staticmethod
    def _connect_remote(network: str, raddr: str) -> tuple[socket.socket, bool]:
        host, _, port = raddr.rpartition(":")
        kind = socket.SOCK_STREAM if network.startswith("tcp") else socket.SOCK_DGRAM
        family, kind, proto, _, addr = socket.getaddrinfo(host.strip("[]"), int(port), type=kind)[0]
        sock = socket.socket(family, kind, proto)
        try:
            sock.connect(addr)
        except OSError:
            sock.close()
            raise
        return sock, kind == socket.SOCK_STREAM

    def write(self, text: str) -> int:
        msg = text.rstrip("\n")
        stamp = time.strftime("%Y-%m-%dT%H:%M:%S%z")
        if self._local:
            line = f"<{self._priority}>{time.strftime('%b %d %H:%M:%S')} {self._tag}[{os.getpid()}]: {msg}"
        else:
            line = f"<{self._priority}>{stamp} {self._hostname} {self._tag}[{os.getpid()}]: {msg}"
        if self._stream:
            line += "\n"
        self._sock.sendall(line.encode("utf-8"))
        return len(text)

    def close(self) -> None:
        self._sock.close()


_LOG_INFO = 6
_LOG_DAEMON = 3 << 3


def add_syslog(network: str, raddr: str, tag: str, level: Level) -> None:
    """Add a sink named "syslog"; ``network == "local"`` uses the local daemon."""
    writer = _SyslogWriter(network, raddr, tag, _LOG_INFO | _LOG_DAEMON)
    add_logger("syslog", writer, level, False)


def _format(fmt: str, args: Iterable[Any]) -> str:
    args = tuple(args)
    return fmt % args if args else fmt


def _log(level: Level, name: str, fmt: str, args: Iterable[Any]) -> None:
    text = _format(fmt, args)
    with _lock:
        for sink in _loggers.values():
            if sink.level <= level:
                sink.emit(level, name, text)


def _logln(level: Level, name: str, args: Iterable[Any]) -> None:
    text = " ".join(str(a) for a in args)
    with _lock:
        for sink in _loggers.values():
            if sink.level <= level:
                sink.emit(level, name, text)


def debug(fmt: str, *args: Any) -> None:
    _log(Level.DEBUG, "", fmt, args)


def info(fmt: str, *args: Any) -> None:
    _log(Level.INFO, "", fmt, args)


def warn(fmt: str, *args: Any) -> None:
    _log(Level.WARN, "", fmt, args)


def error(fmt: str, *args: Any) -> None:
    _log(Level.ERROR, "", fmt, args)


def fatal(fmt: str, *args: Any) -> None:
    """Log at FATAL level and exit with status 1."""
    _log(Level.FATAL, "", fmt, args)
    raise SystemExit(1)


def debugln(*args: Any) -> None:
    _logln(Level.DEBUG, "", args)


def infoln(*args: Any) -> None:
    _logln(Level.INFO, "", args)


def warnln(*args: Any) -> None:
    _logln(Level.WARN, "", args)


def errorln(*args: Any) -> None:
    _logln(Level.ERROR, "", args)


def fatalln(*args: Any) -> None:
    """Log at FATAL level and exit with status 1."""
    _logln(Level.FATAL, "", args)
    raise SystemExit(1)