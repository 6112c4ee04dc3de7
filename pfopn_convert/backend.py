# SPDX-License-Identifier: MIT

"""DHCP backend detection for both flavors."""

from .detect import OPNSENSE, PFSENSE, detect_flavor
from .xmltree import child_at, is_truthy, text_of

ISC = 'isc'
KEA = 'kea'
MIXED = 'mixed'
UNKNOWN = 'unknown'

LEGACY_SECTIONS = ('dhcpd', 'dhcpdv6', 'dhcpd6')
KEA_SERVICES = ('dhcp4', 'dhcp6', 'ctrl_agent')


def has_legacy_dhcp(root):
    return any(root.find(tag) is not None for tag in LEGACY_SECTIONS)


def opnsense_kea_enabled(root, services=KEA_SERVICES):
    kea = child_at(root, 'OPNsense', 'Kea')
    if kea is None:
        return False
    return any(is_truthy(text_of(kea, svc, 'general', 'enabled')) for svc in services)


def detect_dhcp_backend(root):
    """Return (mode, reason) with mode in isc, kea, mixed, unknown."""
    flavor = detect_flavor(root)
    legacy = has_legacy_dhcp(root)
    if flavor == PFSENSE:
        explicit = text_of(root, 'dhcpbackend').lower()
        if explicit in (ISC, KEA):
            return explicit, "pfsense explicit <dhcpbackend> value"
        if legacy:
            return ISC, "pfsense legacy dhcpd sections present"
        return UNKNOWN, "pfsense has no dhcpbackend or legacy dhcp sections"
    if flavor == OPNSENSE:
        kea = opnsense_kea_enabled(root)
        if kea and legacy:
            return MIXED, "opnsense Kea enabled and legacy dhcpd sections present"
        if kea:
            return KEA, "opnsense Kea enabled"
        if legacy:
            return ISC, "opnsense legacy dhcpd sections present"
        return UNKNOWN, "opnsense has neither enabled Kea nor legacy dhcp sections"
    return UNKNOWN, "unknown platform"
