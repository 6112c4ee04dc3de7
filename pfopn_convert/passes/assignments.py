# SPDX-License-Identifier: MIT

"""Renumber virtual interface assignments to optN (pass J) and rewrite references (pass K)."""

import logging
import re

from ..detect import OPNSENSE

log = logging.getLogger(__name__)

WELL_KNOWN = frozenset(('wan', 'lan', 'lo0', 'openvpn', 'wireguard', 'tailscale'))
VIRTUAL_CANDIDATES = ('ovpns', 'ovpnc', 'wg', 'tun_wg', 'tailscale')

SINGLE_REF_TAGS = ('interface',)
LIST_REF_TAGS = ('members', 'interfaces')

_DELIMS = re.compile(r'([, \t\r\n])')
_OPT = re.compile(r'opt(\d+)$')


def opt_index(tag):
    m = _OPT.match(tag)
    return int(m.group(1)) if m else None


def is_allowed_logical(tag):
    return tag in WELL_KNOWN or opt_index(tag) is not None


def is_virtual_candidate(tag):
    return tag.lower().startswith(VIRTUAL_CANDIDATES)


def normalize_assignments(out):
    """Rename virtual assignments under <interfaces> to the next free optN.

    Returns the mapping of old tag to new tag.
    """
    renames = {}
    interfaces = out.find('interfaces')
    if interfaces is None:
        return renames
    used = {opt_index(child.tag) for child in interfaces} - {None}
    for child in interfaces:
        old = child.tag
        if is_allowed_logical(old) or not is_virtual_candidate(old):
            continue
        idx = 1
        while idx in used:
            idx += 1
        used.add(idx)
        child.tag = f"opt{idx}"
        renames[old] = child.tag
    return renames


def rewrite_tokens(text, mapping):
    """Replace mapped tokens in a delimited list, keeping delimiters as they were."""
    return ''.join(mapping.get(part, part) for part in _DELIMS.split(text))


def rewrite_references(root, mapping):
    if not mapping:
        return
    for el in root.iter():
        if el.text is None:
            continue
        if el.tag in SINGLE_REF_TAGS:
            mapped = mapping.get(el.text.strip())
            if mapped is not None:
                el.text = mapped
        elif el.tag in LIST_REF_TAGS:
            el.text = rewrite_tokens(el.text, mapping)


def apply(out, source, baseline, run):
    if run.target != OPNSENSE:
        return
    renames = normalize_assignments(out)
    for old, new in renames.items():
        log.debug("renamed interface assignment %s -> %s", old, new)
    run.renames.update(renames)


def apply_logical_refs(out, source, baseline, run):
    if run.target != OPNSENSE:
        return
    rewrite_references(out, run.renames)
