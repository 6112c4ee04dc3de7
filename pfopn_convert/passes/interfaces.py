# SPDX-License-Identifier: MIT

"""Bind converted interfaces to the baseline's devices.

Logical settings (addresses, descriptions, modes) come from the source, but
the physical NIC names differ between boxes. These passes keep the baseline's
``<if>`` bindings, drop assignments the baseline has no port for, and rewrite
raw device references elsewhere in the tree (VLAN parents, PPP ports).
"""

import copy
import logging
import re

from ..models import WARN
from ..xmltree import norm_text, set_text, text_of, upsert_child
from .preflight import is_virtual_if_name

log = logging.getLogger(__name__)

_DELIMS = re.compile(r'([, \t\r\n])')


def merge_settings(out, source, baseline):
    """Copy each source interface that the baseline has, keeping the baseline's <if>."""
    src_interfaces = source.find('interfaces')
    dst_interfaces = baseline.find('interfaces')
    out_interfaces = out.find('interfaces')
    if src_interfaces is None or dst_interfaces is None or out_interfaces is None:
        return []
    merged = []
    for src_iface in src_interfaces:
        dst_iface = dst_interfaces.find(src_iface.tag)
        if dst_iface is None:
            continue
        fresh = copy.deepcopy(src_iface)
        dst_if = norm_text(dst_iface.findtext('if'))
        if dst_if:
            set_text(fresh, 'if', dst_if)
        upsert_child(out_interfaces, fresh)
        merged.append(fresh.tag)
    return merged


def is_virtual_backed(iface):
    if iface.tag.lower() == 'wireguard':
        return True
    if_name = norm_text(iface.findtext('if'))
    return bool(if_name) and is_virtual_if_name(if_name)


def prune_missing(out, baseline):
    """Drop assignments with no baseline port; returns the removed tags, sorted."""
    out_interfaces = out.find('interfaces')
    dst_interfaces = baseline.find('interfaces')
    if out_interfaces is None or dst_interfaces is None:
        return []
    allowed = {iface.tag for iface in dst_interfaces}
    removed = set()
    for iface in list(out_interfaces):
        if iface.tag in allowed or is_virtual_backed(iface):
            continue
        removed.add(iface.tag)
        out_interfaces.remove(iface)
    return sorted(removed)


def devices_by_logical(root):
    interfaces = root.find('interfaces')
    if interfaces is None:
        return {}
    found = {}
    for iface in interfaces:
        name = norm_text(iface.findtext('if'))
        if name:
            found[iface.tag] = name
    return found


def is_pppoe_ifname(name):
    return name.strip().lower().startswith('pppoe')


def _pppoe_ports(source, src, dst, replacements):
    # <if> on a PPPoE link is the logical pppoeN; the NIC lives in <ports>
    ppps = source.find('ppps')
    if ppps is None:
        return
    logical_by_device = {device: logical for logical, device in src.items()}
    for ppp in ppps.findall('ppp'):
        if text_of(ppp, 'type').lower() != 'pppoe':
            continue
        ppp_if = text_of(ppp, 'if')
        port = text_of(ppp, 'ports')
        if not ppp_if or not port:
            continue
        logical = logical_by_device.get(ppp_if)
        dst_if = dst.get(logical)
        if dst_if and port != dst_if:
            replacements[port] = dst_if


def build_device_map(source, baseline):
    """Map each source NIC name to the baseline NIC bound to the same logical interface."""
    src = devices_by_logical(source)
    dst = devices_by_logical(baseline)
    replacements = {}
    for logical, src_if in src.items():
        dst_if = dst.get(logical)
        if dst_if is None or is_pppoe_ifname(src_if):
            continue
        if src_if != dst_if:
            replacements[src_if] = dst_if
    _pppoe_ports(source, src, dst, replacements)
    return replacements


def _rewrite_token(token, replacements):
    if token in replacements:
        return replacements[token]
    base, dot, suffix = token.partition('.')
    if dot and base and suffix and base in replacements:
        return f"{replacements[base]}.{suffix}"
    return token


def rewrite_devices(text, replacements):
    """Replace device tokens, including the parent of a dotted VLAN name."""
    return ''.join(_rewrite_token(part, replacements) for part in _DELIMS.split(text))


def _is_ppp_if(el):
    parent = el.getparent()
    return (el.tag == 'if' and parent is not None and parent.tag == 'ppp'
            and parent.getparent() is not None and parent.getparent().tag == 'ppps')


def _bound_ifs(out, baseline):
    # <if> values already taken from the baseline must not be mapped a second time
    bound = set(devices_by_logical(baseline))
    interfaces = out.find('interfaces')
    if interfaces is None:
        return set()
    return {iface.find('if') for iface in interfaces if iface.tag in bound} - {None}


def rewrite_device_refs(out, replacements, skip=()):
    if not replacements:
        return 0
    changed = 0
    for el in out.iter():
        if el.text is None or el in skip or _is_ppp_if(el):
            continue
        rewritten = rewrite_devices(el.text, replacements)
        if rewritten != el.text:
            el.text = rewritten
            changed += 1
    return changed


def apply_settings(out, source, baseline, run):
    merged = merge_settings(out, source, baseline)
    log.debug("kept baseline device bindings for %s", ', '.join(merged) or 'no interfaces')


def apply_presence(out, source, baseline, run):
    removed = prune_missing(out, baseline)
    for tag in removed:
        run.note(WARN, 'interface_pruned',
                 f"interface {tag} has no matching port on the target baseline; dropped")


def apply_device_refs(out, source, baseline, run):
    replacements = build_device_map(source, baseline)
    changed = rewrite_device_refs(out, replacements, _bound_ifs(out, baseline))
    if changed:
        log.debug("rewrote %d device references (%s)", changed,
                  ', '.join(f"{k}->{v}" for k, v in sorted(replacements.items())))
