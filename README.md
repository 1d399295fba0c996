# netdisco

Tools and libraries for working with a graph of a discovered network. The
graph is made of *endpoints* (hosts, routers) and *networks*, joined by
*edges* that carry data such as interface names and addresses. The graph is
held by a discovery web service; this package talks to it over HTTP with
`netdisco.discovery.Client`.

## Installation

```
pip install .
```

For running the tests:

```
pip install .[test]
pytest
```

## Command-line tools

Three commands are installed. Each talks to the discovery service given by
`--server` (default `localhost:8000`; a host without a port gets port 8000),
accepts `--level` (`debug`, `info`, `warn`, `error`, `fatal`; default
`error`) and `--logfile`, logs to stderr, and prints its options with
`--help`.

### netdisco-routerconfig

Reads one router configuration file and loads its interfaces into the graph.

```
netdisco-routerconfig --type cisco router1.cfg
```

- `--type` is one of `cisco` (the default), `arista`, `brocade` or
  `juniper`. For `juniper` the file is expected to hold the JSON output that
  follows a `show configuration | display json` line, ending at the first
  line starting with `#`.
- `--dry-run` parses the file without sending anything to the server.

A router endpoint is inserted with the data `router=true`, `type=<type>`,
`name=<file name>` and `icon=router`. Each interface that has a description
and an address is connected to a network whose edges already carry an
address in the same subnet, or to a newly inserted network when none does.
The new edge gets the interface's `name`, `ip` and `ip6`.

### netdisco-trim

Trims endpoints, by marking them `trimmed=true` or, with `--delete`, by
deleting them from the service. With no options it trims endpoints that
have no connected edges:

```
netdisco-trim
```

Other modes (the first that applies is used):

- `--clear` removes the `trimmed=true` mark from every endpoint.
- `--size N --root ID` trims endpoints not reachable from the root first,
  then those with the fewest edges (lowest ID first), until `N` are left.
- `--unconnected --root ID` trims endpoints not reachable from the root.
- `--trimmed --delete` deletes endpoints already marked `trimmed=true`.
- `-q TERM` or `-q key=value` trims endpoints matching the search.

### netdisco-minemiter

Renders every network and endpoint of the graph through the Jinja2
templates named `*.template` in a directory, and writes the result to a
file.

```
netdisco-minemiter
```

- `--path` is the template directory (default `templates`).
- `-w` is the output file (default `minemiter.mm`).

Templates run in groups by the first letter of their file name, `A` to
`Z`; within a group every template is applied to every node in name order.
A template sees the service configuration as `Config` and the node as
`Node` (with `nid`, `data`, and `edges` or `endpoints`). Non-blank output is
stripped line by line and written under a `### node <id> ###` heading.
Templates can call `debug`, `info`, `warn`, `error`, `fatal`, `once`,
`isEndpoint`, `isNetwork`, `set`, `get`, `setData` (updates an endpoint on
the server), `jsonUnmarshal`, `csvSlice`, `contains` and `stop` (skips the
remaining templates of the group for the current node).

## Library

- `netdisco.minigraph` — the in-memory graph: `Graph`, `Endpoint`,
  `Network`, `Edge`, with `connect`, `disconnect`, `delete`, searches
  (`find_nodes`, `find_endpoints`, `find_networks`), `to_dict` /
  `from_dict` conversions, and `Graph.read` / `Graph.write` as JSON.
- `netdisco.discovery` — `Client` for the discovery web service; failures
  raise `DiscoveryError`.
- `netdisco.routerparse` — `parse_cisco`, `parse_arista`, `parse_brocade`
  and `parse_juniper` turn configuration lines into `Interface` records.
- `netdisco.routerconfig` — `RouterLoader`, which pushes those interfaces
  to a client.
- `netdisco.trim` — `Trimmer`, the logic behind `netdisco-trim`.
- `netdisco.minemiter` — `TemplateRenderer` and `pretty`.
- `netdisco.tcpsig` — `parse_tcp_signature` for passive TCP fingerprint
  signatures of the form `ver:ittl:olen:mss:wsize,scale:olayout:quirks:pclass`.
- `netdisco.tcpmatch` — `match(signature, packet)` compares a `Packet`
  (built from `IPv4Header` or `IPv6Header` and `TCPHeader`) with a
  signature and returns a `MatchResult` with `matched` and `fuzzy`.
- `netdisco.minilog` — a multi-sink logger with per-sink levels, colours,
  substring filters and an optional syslog sink.
- `netdisco.commands` — a small sub-command dispatcher (`Command`,
  `Commands`).

```python
from netdisco.minigraph import Graph

g = Graph()
host = g.new_endpoint()
net = g.new_network()
g.connect(host, net, host.new_edge())
print(host.neighbors())  # [net.nid]
```

```python
from netdisco.tcpsig import parse_tcp_signature

sig = parse_tcp_signature("s:unix:Linux:3.11 and newer",
                          "*:64:0:*:mss*20,10:mss,sok,ts,nop,ws:df,id+:0")
```

## What this package does not do

- It contains no discovery server. The commands and `Client` need a
  running service that answers the HTTP interface they use.
- It does not capture or decode packets. `tcpmatch` works on header
  values that the caller fills into its dataclasses.