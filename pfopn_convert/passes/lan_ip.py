# SPDX-License-Identifier: MIT

"""Move the LAN interface to a new IPv4 address (--lan-ip).

Addresses inside the old LAN subnet that belong to the LAN DHCP scope are
moved into the new subnet with their host bits kept; any other text that is
exactly the old LAN address (gateways, DNS servers, routes) is replaced.
"""

import ipaddress
import logging
import re

from ..errors import LanAddressError
from ..xmltree import child_at, set_text, text_of

log = logging.getLogger(__name__)

_IPV4 = re.compile(r'(?<![\d.])\d{1,3}(?:\.\d{1,3}){3}(?![\d.])')

DHCP_SCOPES = (('dhcpd', 'lan'), ('OPNsense', 'Kea', 'dhcp4'), ('kea',))


def parse_ipv4(value, what):
    try:
        return ipaddress.IPv4Address(value.strip())
    except ValueError:
        raise LanAddressError(f"{what}: {value}") from None


def lan_prefix(lan):
    try:
        prefix = int(text_of(lan, 'subnet'))
    except ValueError:
        return 24
    return prefix if 0 <= prefix <= 32 else 24


def ensure_no_conflict(root, new_ip):
    for iface in root.find('interfaces'):
        if iface.tag != 'lan' and text_of(iface, 'ipaddr') == str(new_ip):
            raise LanAddressError(
                f"--lan-ip conflicts with existing interface {iface.tag}.ipaddr={new_ip}")


def remap_address(value, old_net, new_net):
    """value moved from old_net into new_net, or None when it lies outside old_net."""
    try:
        addr = ipaddress.IPv4Address(value)
    except ValueError:
        return None
    if addr not in old_net:
        return None
    host = int(addr) & int(old_net.hostmask)
    return str(ipaddress.IPv4Address(int(new_net.network_address) | host))


def remap_text(text, old_net, new_net):
    def repl(m):
        return remap_address(m.group(0), old_net, new_net) or m.group(0)
    return _IPV4.sub(repl, text)


def remap_subtree(node, old_net, new_net):
    for el in node.iter():
        if el.text is not None:
            el.text = remap_text(el.text, old_net, new_net)


def replace_exact(root, old, new):
    for el in root.iter():
        if el.text is not None and el.text.strip() == old:
            el.text = new


def apply_lan_ip(root, value):
    """Set interfaces/lan/ipaddr to value and update what points at the old address.

    Returns False when the LAN already has that address.
    """
    new_ip = parse_ipv4(value, "invalid --lan-ip value")
    lan = child_at(root, 'interfaces', 'lan')
    if lan is None:
        raise LanAddressError("missing interfaces.lan section")
    current = text_of(lan, 'ipaddr')
    if not current:
        raise LanAddressError("missing interfaces.lan.ipaddr")
    old_ip = parse_ipv4(current, "interfaces.lan.ipaddr is not IPv4")
    if old_ip == new_ip:
        return False
    prefix = lan_prefix(lan)
    ensure_no_conflict(root, new_ip)

    set_text(lan, 'ipaddr', str(new_ip))
    old_net = ipaddress.IPv4Network((old_ip, prefix), strict=False)
    new_net = ipaddress.IPv4Network((new_ip, prefix), strict=False)
    for path in DHCP_SCOPES:
        scope = child_at(root, *path)
        if scope is not None:
            remap_subtree(scope, old_net, new_net)
    replace_exact(root, str(old_ip), str(new_ip))
    return True


def apply(out, source, baseline, run):
    value = run.options.lan_ip
    if not value:
        return
    if apply_lan_ip(out, value):
        log.debug("LAN address moved to %s", value)
