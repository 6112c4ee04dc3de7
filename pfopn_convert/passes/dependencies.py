# SPDX-License-Identifier: MIT

"""Hold back source users, certificates and CAs when the caller opts out."""

import copy
import logging

from ..xmltree import text_of

log = logging.getLogger(__name__)


def keep_baseline_users(out, baseline):
    """Replace the output's <system><user> entries with the baseline's."""
    system = out.find('system')
    if system is None:
        return 0
    dropped = system.findall('user')
    for user in dropped:
        system.remove(user)
    base_system = baseline.find('system')
    if base_system is not None:
        for user in base_system.findall('user'):
            system.append(copy.deepcopy(user))
    return len(dropped)


def drop_foreign_entries(out, baseline, tag):
    """Remove top-level <tag> entries whose refid the baseline does not carry."""
    known = {text_of(node, 'refid') for node in baseline.findall(tag)}
    dropped = [node for node in out.findall(tag) if text_of(node, 'refid') not in known]
    for node in dropped:
        out.remove(node)
    return len(dropped)


def apply(out, source, baseline, run):
    options = run.options
    if not options.transfer_users:
        count = keep_baseline_users(out, baseline)
        log.debug("kept baseline users; %d source users not transferred", count)
    if not options.transfer_certs:
        log.debug("%d certificates not transferred", drop_foreign_entries(out, baseline, 'cert'))
    if not options.transfer_cas:
        log.debug("%d CAs not transferred", drop_foreign_entries(out, baseline, 'ca'))
