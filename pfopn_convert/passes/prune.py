# SPDX-License-Identifier: MIT

"""Drop sections the target cannot carry (pass H) and pfBlockerNG floating rules (pass I)."""

import logging

from ..detect import OPNSENSE, PFSENSE
from ..xmltree import norm_text

log = logging.getLogger(__name__)

SHARED_SECTIONS = frozenset((
    'version', 'system', 'interfaces', 'filter', 'nat',
    'dhcpd', 'dhcpdv6', 'dhcrelay', 'dhcrelay6', 'dhcp6relay',
    'vlans', 'openvpn', 'ipsec', 'cert', 'ca', 'ifgroups', 'bridges',
    'staticroutes', 'gateways', 'hasync', 'revision', 'ppps',
))

ALLOWED_SECTIONS = {
    OPNSENSE: SHARED_SECTIONS | {'OPNsense'},
    PFSENSE: SHARED_SECTIONS | {'aliases', 'installedpackages', 'dhcpbackend', 'kea'},
}

FOREIGN_MARKERS = ('pfb_top_v4', 'pfb_top_v6')


def prune_sections(out, baseline, target):
    """Remove top-level children outside baseline tags and the allow list."""
    keep = {child.tag for child in baseline} | ALLOWED_SECTIONS.get(target, set())
    removed = set()
    for child in list(out):
        if child.tag not in keep:
            removed.add(child.tag)
            out.remove(child)
    return sorted(removed)


def is_foreign_marker(text):
    token = text.strip().lower()
    return token in FOREIGN_MARKERS or token.startswith('pfb_')


def is_foreign_floating_rule(rule):
    if (rule.findtext('floating') or '').strip().lower() != 'yes':
        return False
    return any(is_foreign_marker(el.text) for el in rule.iter() if norm_text(el.text))


def prune_foreign_rules(out):
    filter_section = out.find('filter')
    if filter_section is None:
        return 0
    dropped = [r for r in filter_section.findall('rule') if is_foreign_floating_rule(r)]
    for rule in dropped:
        filter_section.remove(rule)
    return len(dropped)


def apply(out, source, baseline, run):
    removed = prune_sections(out, baseline, run.target)
    if removed:
        log.debug("pruned sections: %s", ', '.join(removed))
    run.removed_sections = sorted(set(run.removed_sections) | set(removed))


def apply_foreign_rules(out, source, baseline, run):
    if run.target != OPNSENSE:
        return
    count = prune_foreign_rules(out)
    if count:
        log.debug("removed %d pfBlockerNG floating rules", count)
