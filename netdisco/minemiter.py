"""Render text templates over every node held by the discovery service.

Templates are files named ``*.template`` in one directory. They run in
groups: all templates whose names start with ``A`` are applied to every node,
then those starting with ``B``, and so on up to ``Z``. Templates see the
service configuration as ``Config`` and the current node as ``Node``.
"""

from __future__ import annotations

import argparse
import json
import os
import string
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

import jinja2

from . import minilog as log
from .discovery import PORT, Client, DiscoveryError
from .minigraph import NodeType

MAX_TOKEN = 1024 * 1024

_GROUPS = string.ascii_uppercase


def pretty(text: str) -> str:
    """Strip every line and drop the blank ones; each kept line ends in a newline."""
    kept = []
    for line in text.split("\n"):
        if len(line) > MAX_TOKEN:
            raise ValueError("line too long")
        stripped = line.strip()
        if stripped:
            kept.append(stripped + "\n")
    return "".join(kept)


def _sprintf(fmt: str, args: Sequence[Any]) -> str:
    """Format with ``%`` placeholders; ``%v`` is accepted as ``%s``."""
    fmt = fmt.replace("%v", "%s")
    return fmt % tuple(args) if args else fmt


def _is_endpoint(node: Any) -> bool:
    return getattr(node, "node_type", None) == NodeType.ENDPOINT


def _is_network(node: Any) -> bool:
    return getattr(node, "node_type", None) == NodeType.NETWORK


class TemplateRenderer:
    """Applies a directory of templates to a list of nodes.

    ``client`` is used by the ``setData`` template function to push changes
    to endpoints back to the discovery service.
    """

    def __init__(self, client: Any = None) -> None:
        self.client = client
        self.data: dict[str, Any] = {}
        self._once: set[str] = set()
        self._current = ""
        self._stop = False
        self._env: jinja2.Environment | None = None
        self._names: list[str] = []

    # template functions

    def _stop_node(self) -> str:
        self._stop = True
        return ""

    def _once_check(self) -> bool:
        return self._current not in self._once

    def _set(self, k: str, v: Any) -> str:
        self.data[k] = v
        return ""

    def _get(self, k: str) -> Any:
        return self.data.get(k, "")

    def _set_data(self, node: Any, key: str, value: str) -> str:
        if not _is_endpoint(node):
            return ""
        if self.client is None:
            raise RuntimeError("no discovery client to update endpoints")
        node.data[key] = value
        self.client.update_endpoints(node)
        return ""

    @staticmethod
    def _json_unmarshal(s: str) -> Any:
        log.debug("json: %s", s)
        value = json.loads(s)
        log.debug("decoded json: %s", value)
        return value

    @staticmethod
    def _csv_slice(s: str) -> list[str]:
        log.debug("csvSlice: %s", s)
        return s.split(",")

    @staticmethod
    def _contains(s: str, substr: str) -> bool:
        return substr in s

    @staticmethod
    def _leveled(level: log.Level, label: str, emit: Callable[..., None]) -> Callable[..., str]:
        def write(fmt: str, *args: Any) -> str:
            text = _sprintf(fmt, args)
            emit("%s", text)
            if log.will_log(level):
                return f"# {label} {text}"
            return ""

        return write

    @staticmethod
    def _fatal(fmt: str, *args: Any) -> str:
        log.fatal("%s", _sprintf(fmt, args))
        return ""

    def _functions(self) -> dict[str, Callable[..., Any]]:
        return {
            "debug": self._leveled(log.Level.DEBUG, "debug", log.debug),
            "info": self._leveled(log.Level.INFO, "info", log.info),
            "error": self._leveled(log.Level.ERROR, "error", log.error),
            "warn": self._leveled(log.Level.WARN, "warn", log.warn),
            "fatal": self._fatal,
            "once": self._once_check,
            "isEndpoint": _is_endpoint,
            "isNetwork": _is_network,
            "set": self._set,
            "get": self._get,
            "setData": self._set_data,
            "jsonUnmarshal": self._json_unmarshal,
            "csvSlice": self._csv_slice,
            "contains": self._contains,
            "stop": self._stop_node,
        }

    def load_templates(self, path: str | os.PathLike[str]) -> list[str]:
        """Parse every ``*.template`` file in ``path``; return their sorted names."""
        files = sorted(str(p) for p in Path(path).glob("*.template"))
        if not files:
            raise ValueError(f"no templates found in {path}")

        log.debugln("ordered template list:")
        for name in files:
            log.debugln(name)

        env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(path)),
            keep_trailing_newline=True,
        )
        env.globals.update(self._functions())

        names = sorted(os.path.basename(f) for f in files)
        for name in names:
            env.get_template(name)

        self._env = env
        self._names = names
        log.debug("parsed templates: %s", names)
        return list(names)

    def render(self, config: dict[str, str], nodes: Iterable[Any]) -> str:
        """Apply the loaded templates, group by group, to every node."""
        nodes = list(nodes)
        log.debug("parsing %s nodes", len(nodes))
        if self._env is None:
            return ""

        output: list[str] = []
        for group in _GROUPS:
            log.debug("group %s", group)
            for node in nodes:
                context = {"Config": config, "Node": node}
                for name in self._names:
                    if not name.startswith(group):
                        continue
                    template = self._env.get_template(name)
                    log.debug("executing template %s on node %s", name, node)
                    self._current = name
                    text = template.render(context)
                    self._once.add(name)
                    if text.strip():
                        output.append(f"\n### node {node.nid} ###\n")
                        output.append(pretty(text))
                    if self._stop:
                        self._stop = False
                        break
        return "".join(output)


def _write_output(path: str, text: str) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o664)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(text)


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(
        prog="minemiter", description="Render templates over the discovery graph."
    )
    parser.add_argument("--path", default="templates", help="template path")
    parser.add_argument("--server", default=f"localhost:{PORT}", help="web service")
    parser.add_argument("-w", dest="output", default="minemiter.mm", help="output file")
    parser.add_argument(
        "--level", default=str(log.DEFAULT_LEVEL),
        help="set log level: [debug, info, warn, error, fatal]",
    )
    parser.add_argument("--logfile", default="", help="specify file to log to")
    args = parser.parse_args(argv)

    try:
        level = log.Level.parse(args.level)
    except ValueError:
        parser.error("invalid log level")
    log.setup(level, True, args.logfile)

    log.debug("using path: %s", args.path)
    client = Client(args.server)
    renderer = TemplateRenderer(client)

    try:
        config = client.get_config()
        nodes: list[Any] = [*client.get_networks("", ""), *client.get_endpoints("", "")]
        renderer.load_templates(args.path)
        output = renderer.render(config, nodes)
        _write_output(args.output, output)
    except (DiscoveryError, OSError, ValueError, RuntimeError, jinja2.TemplateError) as err:
        log.fatalln(err)
    return 0