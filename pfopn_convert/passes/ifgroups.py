# SPDX-License-Identifier: MIT

"""Interface group clean-up for each target."""

import logging

from ..detect import OPNSENSE, PFSENSE
from ..xmltree import text_of
from .assignments import LIST_REF_TAGS, SINGLE_REF_TAGS, rewrite_tokens

log = logging.getLogger(__name__)

PLUGIN_GROUPS = ('wireguard', 'tailscale')
AUTOGEN_MARKER = 'do not edit/delete'

# WireGuard group token as each platform spells it
WIREGUARD_GROUP = {OPNSENSE: 'wireGuard', PFSENSE: 'WireGuard'}


def is_autogen_plugin_group(entry):
    return (text_of(entry, 'ifname').lower() in PLUGIN_GROUPS
            and AUTOGEN_MARKER in text_of(entry, 'descr').lower())


def prune_autogen_groups(root):
    """Drop plugin-managed groups; OPNsense recreates them when the plugin runs."""
    ifgroups = root.find('ifgroups')
    if ifgroups is None:
        return 0
    dropped = [e for e in ifgroups.findall('ifgroupentry') if is_autogen_plugin_group(e)]
    for entry in dropped:
        ifgroups.remove(entry)
    return len(dropped)


def rewrite_group_token(root, old, new):
    mapping = {old: new}
    for el in root.iter():
        if el.text is not None and el.tag in SINGLE_REF_TAGS + LIST_REF_TAGS:
            el.text = rewrite_tokens(el.text, mapping)


def apply(out, source, baseline, run):
    if run.target == OPNSENSE:
        dropped = prune_autogen_groups(out)
        if dropped:
            log.debug("dropped %d plugin-managed interface groups", dropped)
        rewrite_group_token(out, WIREGUARD_GROUP[PFSENSE], WIREGUARD_GROUP[OPNSENSE])
    else:
        rewrite_group_token(out, WIREGUARD_GROUP[OPNSENSE], WIREGUARD_GROUP[PFSENSE])
