# SPDX-License-Identifier: MIT

"""DHCP relay between legacy dhcrelay sections and the OPNsense DHCRelay plugin (pass D)."""

import copy
import logging

from lxml import etree

from ..detect import OPNSENSE
from ..xmltree import add_text, child_at, ensure_child, remove_children, text_of

log = logging.getLogger(__name__)

RELAY_TAGS = ('dhcrelay', 'dhcrelay6', 'dhcp6relay')


def synthetic_uuid(seed):
    return f"00000000-0000-4000-8000-{seed:012x}"


def sync_relay_sections(out, source):
    for tag in RELAY_TAGS:
        remove_children(out, tag)
    for child in source:
        if child.tag in RELAY_TAGS:
            out.append(copy.deepcopy(child))


def _relay_enabled(relay):
    enable = relay.find('enable')
    if enable is None:
        return False
    value = (enable.text or '').strip().lower()
    return not value or value in ('1', 'on', 'true')


def to_plugin(out, source):
    entries = []
    if source.find('dhcrelay') is not None:
        entries.append((source.find('dhcrelay'), 'v4'))
    relay6 = source.find('dhcp6relay')
    if relay6 is None:
        relay6 = source.find('dhcrelay6')
    if relay6 is not None:
        entries.append((relay6, 'v6'))
    if not entries:
        return

    opn = ensure_child(out, 'OPNsense')
    remove_children(opn, 'DHCRelay')
    dhc = etree.SubElement(opn, 'DHCRelay', version="1.0.1", description="DHCRelay configuration")

    seed = 1
    for relay, family in entries:
        interfaces = [i.strip() for i in text_of(relay, 'interface').split(',') if i.strip()]
        server = text_of(relay, 'server')
        enabled = '1' if _relay_enabled(relay) else '0'
        if not server or not interfaces:
            continue
        destination_uuid = synthetic_uuid(seed)
        seed += 1
        destination = etree.SubElement(dhc, 'destinations', uuid=destination_uuid)
        add_text(destination, 'name', f"relay_destination_{family}")
        add_text(destination, 'server', server)
        for iface in interfaces:
            item = etree.SubElement(dhc, 'relays', uuid=synthetic_uuid(seed + 100))
            seed += 1
            add_text(item, 'enabled', enabled)
            add_text(item, 'interface', iface)
            add_text(item, 'destination', destination_uuid)
            add_text(item, 'agent_info', '0')
            add_text(item, 'carp_depend_on', '')
    log.debug("built DHCRelay plugin from %d legacy relay sections", len(entries))


def from_plugin(out, source):
    dhc = child_at(source, 'OPNsense', 'DHCRelay')
    if dhc is None:
        return
    servers_by_uuid = {d.get('uuid'): text_of(d, 'server') for d in dhc.findall('destinations')}
    families = {'v4': ([], [], False), 'v6': ([], [], False)}
    for relay in dhc.findall('relays'):
        iface = text_of(relay, 'interface')
        server = servers_by_uuid.get(text_of(relay, 'destination'), '')
        if not iface or not server:
            continue
        family = 'v6' if ':' in server else 'v4'
        ifaces, servers, enabled = families[family]
        if iface not in ifaces:
            ifaces.append(iface)
        if server not in servers:
            servers.append(server)
        families[family] = (ifaces, servers, enabled or text_of(relay, 'enabled') == '1')

    for tag in RELAY_TAGS:
        remove_children(out, tag)
    for family, tag in (('v4', 'dhcrelay'), ('v6', 'dhcp6relay')):
        ifaces, servers, enabled = families[family]
        if not ifaces and not servers:
            continue
        relay = etree.SubElement(out, tag)
        if enabled:
            etree.SubElement(relay, 'enable')
        add_text(relay, 'interface', ','.join(ifaces))
        add_text(relay, 'server', ','.join(servers))


def apply(out, source, baseline, run):
    sync_relay_sections(out, source)
    if run.target == OPNSENSE:
        to_plugin(out, source)
    else:
        from_plugin(out, source)
