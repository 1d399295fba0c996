"""Network discovery graph, a client for its web service, and tools built on them."""

__version__ = "0.1.0"

__all__ = [
    "commands",
    "discovery",
    "minemiter",
    "minigraph",
    "minilog",
    "routerconfig",
    "routerparse",
    "tcpmatch",
    "tcpsig",
    "trim",
]