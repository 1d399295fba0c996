import json

import pytest

from netdisco.routerparse import (
    Interface,
    JuniperParseError,
    juniper_interfaces,
    parse_arista,
    parse_brocade,
    parse_cisco,
    parse_juniper,
)

ARISTA = """\
hostname r1
!
interface Ethernet1
   description uplink to core
   ip address 10.1.1.1/30
!
interface Ethernet2
   description lab
   ipv6 address fe80::1/64 link-local
   ipv6 address 2001:db8::1/64
!
interface Ethernet3
   ip address 10.2.2.2/24
!
router bgp 65000
   router-id 192.0.2.1
"""

BROCADE = """\
interface ethernet 1/1
 port-name to-core
 ip address 10.0.0.1/31
 ipv6 address 2001:db8:1::1/64
!
ip router-id 198.51.100.7
interface ve 10
 port-name mgmt
 ip address 172.16.0.1/24
 ip route 0.0.0.0/0
"""

CISCO = """\
interface GigabitEthernet0/0
 description WAN link
 ip address 203.0.113.5 255.255.255.252
!
interface Loopback0
 ipv6 address 2001:db8::9/128
!
router bgp 65000
 bgp router-id 192.0.2.9
"""


def test_arista_interfaces():
    result = list(parse_arista(ARISTA.splitlines(keepends=True)))
    assert result == [
        Interface("uplink to core", "10.1.1.1/30", ""),
        Interface("lab", "", "2001:db8::1/64"),
        Interface("router-id", "192.0.2.1/32", ""),
    ]


def test_arista_skips_interface_without_description():
    result = list(parse_arista(["interface Ethernet9", "   ip address 10.9.9.9/24"]))
    assert result == []


def test_brocade_interfaces():
    result = list(parse_brocade(BROCADE.splitlines()))
    assert result == [
        Interface("to-core", "10.0.0.1/31", "2001:db8:1::1/64"),
        Interface("router-id", "198.51.100.7/32", ""),
        Interface("mgmt", "172.16.0.1/24", ""),
    ]


def test_cisco_interfaces():
    result = list(parse_cisco(CISCO.splitlines()))
    assert result == [
        Interface("WAN link", "203.0.113.5/30", ""),
        Interface("Loopback0", "", "2001:db8::9/128"),
        Interface("router-id", "192.0.2.9/32", ""),
    ]


def test_cisco_non_contiguous_mask():
    result = list(parse_cisco(["interface Gi1", " ip address 10.0.0.1 255.0.255.0"]))
    assert result == [Interface("Gi1", "10.0.0.1/ff00ff00", "")]


def test_cisco_ignores_link_local_ipv6():
    lines = ["interface Gi2", " ipv6 address fe80::2 link-local"]
    assert list(parse_cisco(lines)) == []


def test_interface_useful():
    assert Interface("a", "10.0.0.1/8").useful
    assert not Interface("", "10.0.0.1/8").useful
    assert not Interface("a").useful


def _unit(name, inet=(), inet6=()):
    family = {}
    if inet:
        family["inet"] = [{"address": list(inet)}]
    if inet6:
        family["inet6"] = [{"address": list(inet6)}]
    return {"name": {"data": name}, "family": [family]}


def _iface(name, units):
    return {"name": {"data": name}, "unit": units}


def _addr(cidr, preferred=False):
    entry = {"name": {"data": cidr}}
    if preferred:
        entry["preferred"] = [None]
    return entry


def _dump(document, key="configuration"):
    text = json.dumps({key: document["configuration"]}, indent=2)
    return ["banner", "admin> show configuration | display json", *text.splitlines(), "# end"]


CONFIG = {
    "configuration": [
        {
            "interfaces": [
                {
                    "interface": [
                        _iface(
                            "ge-0/0/0",
                            [
                                _unit(
                                    "0",
                                    inet=[_addr("10.0.0.1/24"), _addr("10.0.0.2/24", True)],
                                    inet6=[_addr("2001:db8::1/64")],
                                )
                            ],
                        ),
                        _iface("lo0", [_unit("0", inet=[_addr("127.0.0.1/8")])]),
                    ]
                }
            ],
            "groups": [
                {
                    "name": {"data": "g1"},
                    "interfaces": [
                        {"interface": [_iface("xe-1/0/0", [_unit("5", inet=[_addr("10.9.9.9/24")])])]}
                    ],
                },
                {
                    "name": {"data": "g2"},
                    "interfaces": [
                        {"interface": [_iface("xe-2/0/0", [_unit("1", inet=[_addr("10.8.8.8/24")])])]}
                    ],
                },
            ],
            "apply-groups": [{"data": "g1"}],
        }
    ]
}

EXPECTED = [
    Interface("ge-0/0/0:0", "10.0.0.2/24", "2001:db8::1/64"),
    Interface("xe-1/0/0:5", "10.9.9.9/24", ""),
]


def test_juniper_dump():
    assert parse_juniper(_dump(CONFIG)) == EXPECTED


def test_juniper_keys_are_case_insensitive():
    assert parse_juniper(_dump(CONFIG, key="Configuration")) == EXPECTED


def test_juniper_first_address_kept_without_preferred():
    interfaces = [
        {"interface": [_iface("ge-1", [_unit("0", inet=[_addr("10.1.0.1/16"), _addr("10.2.0.1/16")])])]}
    ]
    assert list(juniper_interfaces(interfaces)) == [Interface("ge-1:0", "10.1.0.1/16", "")]


def test_juniper_skips_invalid_addresses():
    interfaces = [{"interface": [_iface("ge-2", [_unit("3", inet=[_addr("nonsense"), _addr("10.3.0.1")])])]}]
    assert list(juniper_interfaces(interfaces)) == []


def test_juniper_syntax_error_reports_line():
    lines = [
        "x> show configuration | display json",
        '{"configuration": [',
        "  {bad}",
        "]}",
        "# done",
    ]
    with pytest.raises(JuniperParseError) as info:
        parse_juniper(lines)
    assert "Error in line 1" in str(info.value)
    assert "  {bad}" in str(info.value)


def test_juniper_without_marker_fails():
    with pytest.raises(JuniperParseError):
        parse_juniper(["interface foo", "no json here"])


def test_juniper_wrong_shape_fails():
    lines = ["x> show configuration | display json", '{"configuration": 5}', "#"]
    with pytest.raises(JuniperParseError):
        parse_juniper(lines)