"""Tests for the command output parsers."""

import pytest

from wrtprobe.models import ServiceStatus
from wrtprobe.parsers import (
    cidr_to_mask,
    classify_service_status,
    parse_dhcp_leases,
    parse_firewall_rules,
    parse_interfaces,
    parse_packages,
    parse_processes,
    parse_release,
    parse_service_names,
    parse_wireless_networks,
)

IP_ADDR_OUTPUT = """\
1: lo: <LOOPBACK,UP,LOWER_UP> mtu 65536 qdisc noqueue state UNKNOWN qlen 1000
    link/loopback 00:00:00:00:00:00 brd 00:00:00:00:00:00
    inet 127.0.0.1/8 scope host lo
       valid_lft forever preferred_lft forever
    inet6 ::1/128 scope host
2: eth0: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc mq state UP qlen 1000
    link/ether aa:bb:cc:00:11:22 brd ff:ff:ff:ff:ff:ff
3: lan1@eth0: <BROADCAST,MULTICAST> mtu 1500 qdisc noop state DOWN qlen 1000
    link/ether aa:bb:cc:00:11:23 brd ff:ff:ff:ff:ff:ff
4: br-lan: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc noqueue state UP qlen 1000
    link/ether aa:bb:cc:00:11:22 brd ff:ff:ff:ff:ff:ff
    inet 192.168.1.1/24 brd 192.168.1.255 scope global br-lan
       valid_lft forever preferred_lft forever
    inet 10.0.0.1/30 scope global br-lan
5: wan: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc noqueue state UP qlen 1000
    inet 100.64.3.7/16 brd 100.64.255.255 scope global wan
"""

IPTABLES_OUTPUT = """\
Chain INPUT (policy ACCEPT 120 packets, 9600 bytes)
num   pkts bytes target     prot opt in     out     source               destination
1     1024  100K ACCEPT     all  --  lo     *       0.0.0.0/0            0.0.0.0/0
2        0     0 DROP       tcp  --  *      *       10.0.0.0/8           0.0.0.0/0            tcp dpt:22
3       12   720            all  --  *      *       0.0.0.0/0            0.0.0.0/0

Chain FORWARD (policy DROP 0 packets, 0 bytes)
num   pkts bytes target     prot opt in     out     source               destination
1        5   300 zone_lan_forward  all  --  br-lan *       0.0.0.0/0            0.0.0.0/0

Chain zone_lan_forward (1 references)
num   pkts bytes target     prot opt in     out     source               destination
1        0     0 ACCEPT     udp  --  *      *       192.168.1.0/24       0.0.0.0/0
"""


def test_cidr_to_mask():
    """Test converting prefix lengths to dotted masks."""
    assert cidr_to_mask(24) == "255.255.255.0"
    assert cidr_to_mask(16) == "255.255.0.0"
    assert cidr_to_mask(30) == "255.255.255.252"
    assert cidr_to_mask(0) == "0.0.0.0"
    assert cidr_to_mask(32) == "255.255.255.255"
    assert cidr_to_mask(8) == "255.0.0.0"
    assert cidr_to_mask(20) == "255.255.240.0"


def test_cidr_to_mask_rejects_invalid_prefix():
    """Test that prefixes outside 0..32 are rejected."""
    with pytest.raises(ValueError):
        cidr_to_mask(33)
    with pytest.raises(ValueError):
        cidr_to_mask(-1)


def test_parse_interfaces():
    """Test parsing ip addr show blocks into interfaces."""
    interfaces = parse_interfaces(IP_ADDR_OUTPUT)

    assert [iface.name for iface in interfaces] == ["lo", "eth0", "lan1", "br-lan", "wan"]

    lo = interfaces[0]
    assert lo.ip == "127.0.0.1"
    assert lo.subnet_mask == "255.0.0.0"
    assert lo.status == "UP"

    eth0 = interfaces[1]
    assert eth0.ip == "N/A"
    assert eth0.subnet_mask == "N/A"

    assert interfaces[2].status == "DOWN"

    br_lan = interfaces[3]
    assert br_lan.ip == "192.168.1.1"
    assert br_lan.subnet_mask == "255.255.255.0"

    assert interfaces[4].subnet_mask == "255.255.0.0"


def test_parse_interfaces_is_idempotent():
    """Test that parsing the same text twice yields identical records."""
    first = parse_interfaces(IP_ADDR_OUTPUT)
    second = parse_interfaces(IP_ADDR_OUTPUT)
    assert first == second


def test_parse_interfaces_ignores_lines_before_first_block():
    """Test that an inet line outside any block is ignored."""
    assert parse_interfaces("    inet 10.1.1.1/24 scope global\n") == []
    assert parse_interfaces("") == []


def test_parse_dhcp_leases():
    """Test parsing the dnsmasq lease file."""
    output = (
        "1717000000 aa:bb:cc:dd:ee:ff 192.168.1.50 myphone 01:aa:bb:cc:dd:ee:ff\n"
        "1717000100 11:22:33:44:55:66 192.168.1.51\n"
        "1717000200 11:22:33:44:55:77 192.168.1.52 * *\n"
    )
    leases = parse_dhcp_leases(output)

    assert len(leases) == 2
    assert leases[0].lease_expiry == 1717000000
    assert leases[0].mac == "aa:bb:cc:dd:ee:ff"
    assert leases[0].ip == "192.168.1.50"
    assert leases[0].hostname == "myphone"
    assert leases[1].hostname == "*"


def test_parse_dhcp_leases_single_line():
    """Test the four-field lease line."""
    leases = parse_dhcp_leases("1717000000 aa:bb:cc:dd:ee:ff 192.168.1.50 myphone")
    assert [lease.model_dump() for lease in leases] == [
        {
            "lease_expiry": 1717000000,
            "mac": "aa:bb:cc:dd:ee:ff",
            "ip": "192.168.1.50",
            "hostname": "myphone",
        }
    ]


def test_parse_dhcp_leases_skips_short_and_malformed_lines():
    """Test that lines with fewer than four fields or a bad expiry are skipped."""
    assert parse_dhcp_leases("1717000000 aa:bb:cc:dd:ee:ff 192.168.1.50") == []
    assert parse_dhcp_leases("never aa:bb:cc:dd:ee:ff 192.168.1.50 host") == []
    assert parse_dhcp_leases("") == []


def test_parse_firewall_rules_tracks_chain():
    """Test that rows are attached to the chain header above them."""
    rules = parse_firewall_rules(IPTABLES_OUTPUT)

    input_rules = [rule for rule in rules if rule.chain_name == "INPUT"]
    assert [rule.rule_index for rule in input_rules] == [1, 2, 3]
    assert input_rules[0].target == "ACCEPT"
    assert input_rules[0].protocol == "all"
    assert input_rules[0].source == "0.0.0.0/0"
    assert input_rules[1].target == "DROP"
    assert input_rules[1].protocol == "tcp"
    assert input_rules[1].source == "10.0.0.0/8"
    assert input_rules[1].destination == "0.0.0.0/0"

    forward_rules = [rule for rule in rules if rule.chain_name == "FORWARD"]
    assert len(forward_rules) == 1
    assert forward_rules[0].target == "zone_lan_forward"

    custom = [rule for rule in rules if rule.chain_name == "zone_lan_forward"]
    assert custom[0].protocol == "udp"
    assert custom[0].source == "192.168.1.0/24"


def test_parse_firewall_rules_without_target():
    """Test a counting rule that has no target column."""
    rules = parse_firewall_rules(IPTABLES_OUTPUT)
    counting = [rule for rule in rules if rule.chain_name == "INPUT" and rule.rule_index == 3][0]
    assert counting.target == ""
    assert counting.protocol == "all"
    assert counting.destination == "0.0.0.0/0"


def test_parse_firewall_rules_non_verbose():
    """Test iptables output listed without -v."""
    output = """\
Chain OUTPUT (policy ACCEPT)
num  target     prot opt source               destination
1    REJECT     icmp --  0.0.0.0/0            8.8.8.8
"""
    rules = parse_firewall_rules(output)
    assert len(rules) == 1
    assert rules[0].chain_name == "OUTPUT"
    assert rules[0].target == "REJECT"
    assert rules[0].protocol == "icmp"
    assert rules[0].destination == "8.8.8.8"


def test_parse_firewall_rules_ignores_rows_before_header():
    """Test that rule rows without a chain are dropped."""
    output = "1  0  0 ACCEPT all -- * * 0.0.0.0/0 0.0.0.0/0\n"
    assert parse_firewall_rules(output) == []


def test_parse_packages_merges_upgradable():
    """Test that upgradable versions are attached to installed packages."""
    installed = "base-files - 1554-r23809\ndnsmasq - 2.89-4\nluci - git-23.051\n"
    upgradable = "dnsmasq - 2.89-4 - 2.90-1\n"

    packages = parse_packages(installed, upgradable)

    assert [pkg.name for pkg in packages] == ["base-files", "dnsmasq", "luci"]
    assert packages[1].installed_version == "2.89-4"
    assert packages[1].available_version == "2.90-1"
    assert packages[0].available_version is None


def test_parse_packages_ignores_noise():
    """Test that lines without a version separator are skipped."""
    packages = parse_packages("Collected errors:\nkmod-nft - 5.15.150-1\n")
    assert len(packages) == 1
    assert packages[0].name == "kmod-nft"


def test_classify_service_status():
    """Test keyword classification of init script status output."""
    assert classify_service_status("Running") == ServiceStatus.RUNNING
    assert classify_service_status("running\n") == ServiceStatus.RUNNING
    assert classify_service_status("service started") == ServiceStatus.RUNNING
    assert classify_service_status("not running") == ServiceStatus.STOPPED
    assert classify_service_status("Stopped") == ServiceStatus.STOPPED
    assert classify_service_status("") == ServiceStatus.UNKNOWN
    assert classify_service_status("inactive") == ServiceStatus.UNKNOWN


def test_parse_service_names():
    """Test parsing the init.d listing."""
    assert parse_service_names("boot\ndnsmasq\n\nfirewall\n") == ["boot", "dnsmasq", "firewall"]


def test_parse_release():
    """Test parsing /etc/openwrt_release."""
    output = "DISTRIB_ID='OpenWrt'\nDISTRIB_RELEASE='23.05.3'\nDISTRIB_DESCRIPTION='OpenWrt 23.05.3 r23809'\n"
    info = parse_release(output)
    assert info["ID"] == "OpenWrt"
    assert info["RELEASE"] == "23.05.3"
    assert info["DESCRIPTION"] == "OpenWrt 23.05.3 r23809"


def test_parse_wireless_networks():
    """Test parsing iwinfo ESSID lines."""
    output = """\
phy0-ap0  ESSID: "HomeNet"
          Access Point: AA:BB:CC:DD:EE:FF
          Mode: Master  Channel: 36 (5.180 GHz)

wlan1     ESSID: unknown
          Access Point: 00:00:00:00:00:00
"""
    networks = parse_wireless_networks(output)
    assert [(n.interface, n.ssid) for n in networks] == [("phy0-ap0", "HomeNet"), ("wlan1", "unknown")]


def test_parse_processes():
    """Test parsing busybox ps output."""
    output = """\
  PID USER       VSZ STAT COMMAND
    1 root      1512 S    /sbin/procd
 1843 root      1184 S    /usr/sbin/dropbear -F -P /var/run/dropbear.1.pid
"""
    processes = parse_processes(output)
    assert [p.pid for p in processes] == [1, 1843]
    assert processes[1].command == "/usr/sbin/dropbear -F -P /var/run/dropbear.1.pid"
    assert processes[0].stat == "S"
