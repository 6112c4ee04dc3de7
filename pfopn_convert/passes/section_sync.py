# SPDX-License-Identifier: MIT

"""Whole-section replacement from the source (passes A and G)."""

import copy
import logging

log = logging.getLogger(__name__)

SYNCED_SECTIONS = ('version', 'system', 'interfaces', 'filter', 'nat', 'dhcpd', 'dhcpdv6',
                   'dhcpd6', 'dhcrelay', 'dhcrelay6', 'dhcp6relay', 'snmpd', 'syslog', 'rrd',
                   'gateways')


def sync_section(out, source, tag):
    """Make out's top-level tag a copy of the source's, or drop it."""
    wanted = source.find(tag)
    existing = out.findall(tag)
    if wanted is None:
        for node in existing:
            out.remove(node)
        return
    fresh = copy.deepcopy(wanted)
    if existing:
        out.replace(existing[0], fresh)
        for node in existing[1:]:
            out.remove(node)
    else:
        out.append(fresh)


def apply(out, source, baseline, run):
    for tag in SYNCED_SECTIONS:
        sync_section(out, source, tag)
    log.debug("synced %d top-level sections", len(SYNCED_SECTIONS))


def apply_ppps(out, source, baseline, run):
    sync_section(out, source, 'ppps')
