# SPDX-License-Identifier: MIT

"""Give OPNsense VLANs their own vlanNN device names."""

import logging

from ..detect import OPNSENSE
from ..xmltree import add_text, set_text, text_of
from .ipsec import stable_uuid

log = logging.getLogger(__name__)

VLAN_DEFAULTS = (('pcp', '0'), ('proto', ''), ('descr', ''))


def is_vlanif_name(name):
    return name.startswith('vlan') and len(name) >= 5


def next_vlanif(used):
    for idx in range(1, 1000):
        name = f"vlan{idx:02d}"
        if name not in used:
            return name
    return 'vlan999'


def ensure_opnsense_shape(vlan, vlanif, parent, tag):
    if vlan.get('uuid') is None:
        vlan.set('uuid', stable_uuid('vlan', 0, f"{vlanif}|{parent}|{tag}"))
    for child, default in VLAN_DEFAULTS:
        if vlan.find(child) is None:
            add_text(vlan, child, default)


def normalize_vlan_ifnames(root):
    """Name every VLAN vlanNN and point dotted <if> assignments at those names.

    Returns the mapping of dotted parent.tag name to vlanif.
    """
    vlans = root.find('vlans')
    if vlans is None:
        return {}
    entries = vlans.findall('vlan')
    used = {text_of(v, 'vlanif') for v in entries}
    used = {name for name in used if name.startswith('vlan')}
    dotted = {}
    for vlan in entries:
        parent, tag = text_of(vlan, 'if'), text_of(vlan, 'tag')
        if not parent or not tag:
            continue
        vlanif = text_of(vlan, 'vlanif')
        if not is_vlanif_name(vlanif):
            vlanif = next_vlanif(used)
        set_text(vlan, 'vlanif', vlanif)
        ensure_opnsense_shape(vlan, vlanif, parent, tag)
        used.add(vlanif)
        dotted[f"{parent}.{tag}"] = vlanif

    interfaces = root.find('interfaces')
    if dotted and interfaces is not None:
        for iface in interfaces:
            mapped = dotted.get(text_of(iface, 'if'))
            if mapped is not None:
                set_text(iface, 'if', mapped)
    return dotted


def apply(out, source, baseline, run):
    if run.target != OPNSENSE:
        return
    for name, vlanif in normalize_vlan_ifnames(out).items():
        log.debug("vlan %s -> %s", name, vlanif)
