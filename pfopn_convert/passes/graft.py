# SPDX-License-Identifier: MIT

"""Carry source-only nodes into the output and retag the root."""

import copy
import logging
import re

from ..diff import DiffOptions, OnlyLeft, diff

log = logging.getLogger(__name__)

_SEGMENT = re.compile(r'^(?P<tag>[^\[]+)\[(?P<pos>\d+)\]$')


def _resolve(out, segments):
    current = out
    for segment in segments:
        m = _SEGMENT.match(segment)
        if not m:
            return None
        matches = current.findall(m.group('tag'))
        pos = int(m.group('pos'))
        if pos < 1 or pos > len(matches):
            return None
        current = matches[pos - 1]
    return current


def _parent_segments(path):
    # first segment is the root tag; the last is the node itself
    return path.split('.')[1:-1]


def apply(out, source, baseline, run):
    entries = diff(source, baseline, DiffOptions())
    grafted = 0
    for entry in entries:
        if not isinstance(entry, OnlyLeft):
            continue
        parent = _resolve(out, _parent_segments(entry.path))
        if parent is None:
            log.debug("no parent for %s in output; skipped", entry.path)
            continue
        parent.append(copy.deepcopy(entry.node))
        grafted += 1
    log.debug("grafted %d source-only nodes", grafted)
    out.tag = run.target
