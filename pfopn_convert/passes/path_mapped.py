# SPDX-License-Identifier: MIT

"""Sections that live under different paths on each platform (pass B)."""

import copy
import logging

from ..detect import OPNSENSE
from ..xmltree import child_at, ensure_child, ensure_path, remove_children, retag_copy, upsert_child
from . import openvpn
from .ipsec import looks_like_pfsense_ipsec

log = logging.getLogger(__name__)

ALIASES_PATH = ('OPNsense', 'Firewall', 'Alias', 'aliases')
TAILSCALE_TAGS = ('tailscale', 'tailscaleauth')


def _find_first(root, *paths):
    for path in paths:
        node = child_at(root, *path)
        if node is not None:
            return node
    return None


def tailscale_to_opnsense(out, source):
    opn = ensure_child(out, 'OPNsense')
    for tag in TAILSCALE_TAGS:
        remove_children(opn, tag)
    for tag in TAILSCALE_TAGS:
        node = _find_first(source, (tag,), ('installedpackages', tag), ('OPNsense', tag))
        if node is None:
            if tag == 'tailscale':
                return
            continue
        opn.append(copy.deepcopy(node))


def tailscale_to_pfsense(out, source):
    installed = ensure_child(out, 'installedpackages')
    for tag in TAILSCALE_TAGS:
        remove_children(installed, tag)
    for tag in TAILSCALE_TAGS:
        node = _find_first(source, ('OPNsense', tag), ('installedpackages', tag))
        if node is None:
            if tag == 'tailscale':
                return
            continue
        installed.append(copy.deepcopy(node))


def _alias_name(alias):
    name = (alias.findtext('name') or '').strip().lower()
    return name or None


def _replace_aliases(dst, src):
    remove_children(dst, 'alias')
    seen = set()
    for alias in src.findall('alias'):
        name = _alias_name(alias)
        if name is not None:
            if name in seen:
                continue
            seen.add(name)
        dst.append(copy.deepcopy(alias))


def aliases_to_opnsense(out, source):
    src = source.find('aliases')
    if src is None:
        return
    _replace_aliases(ensure_path(out, *ALIASES_PATH), src)


def aliases_to_pfsense(out, source):
    src = child_at(source, *ALIASES_PATH)
    if src is None:
        return
    _replace_aliases(ensure_child(out, 'aliases'), src)


def ipsec_to_opnsense(out, source):
    top = source.find('ipsec')
    if top is not None:
        upsert_child(out, copy.deepcopy(top))
        if not looks_like_pfsense_ipsec(top):
            upsert_child(ensure_child(out, 'OPNsense'), retag_copy(top, 'IPsec'))
        return
    for tag in ('IPsec', 'Swanctl'):
        nested = child_at(source, 'OPNsense', tag)
        if nested is not None:
            upsert_child(ensure_child(out, 'OPNsense'), copy.deepcopy(nested))


def ipsec_to_pfsense(out, source):
    top = source.find('ipsec')
    if top is None:
        top = child_at(source, 'OPNsense', 'IPsec')
    if top is not None:
        upsert_child(out, retag_copy(top, 'ipsec'))


def apply(out, source, baseline, run):
    if run.target == OPNSENSE:
        tailscale_to_opnsense(out, source)
        aliases_to_opnsense(out, source)
        ipsec_to_opnsense(out, source)
        openvpn.to_opnsense(out, source, baseline)
    else:
        tailscale_to_pfsense(out, source)
        aliases_to_pfsense(out, source)
        ipsec_to_pfsense(out, source)
        openvpn.to_pfsense(out, source, baseline)
