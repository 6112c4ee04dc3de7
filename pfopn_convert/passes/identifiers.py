# SPDX-License-Identifier: MIT

"""Stamp or strip uuid attributes on certificates, CAs, bridges and static routes."""

import logging
import zlib

from ..detect import OPNSENSE
from ..xmltree import add_text, text_of
from .ipsec import stable_uuid

log = logging.getLogger(__name__)

CERT_TAGS = ('ca', 'cert')


def seeded_uuid(seed, ordinal):
    head = (zlib.crc32(seed.encode('utf-8')) ^ ordinal) & 0xffffffff
    return f"{head:08x}-0000-0000-0000-{ordinal + 1:012x}"


def stamp_cert_uuids(root, tag):
    """Give every top-level <tag> without a uuid one seeded by refid or descr."""
    for ordinal, node in enumerate(root.findall(tag)):
        if node.get('uuid') is not None:
            continue
        seed = text_of(node, 'refid') or text_of(node, 'descr') or f"{tag}:{ordinal}"
        node.set('uuid', seeded_uuid(seed, ordinal))


def stamp_bridge_uuids(root):
    bridges = root.find('bridges')
    if bridges is None:
        return
    for idx, bridged in enumerate(bridges.findall('bridged')):
        if bridged.get('uuid') is not None:
            continue
        seed = bridged.findtext('members') or bridged.findtext('bridgeif') or 'bridge'
        bridged.set('uuid', stable_uuid('', idx, seed))


def strip_uuids(root):
    nodes = [n for tag in CERT_TAGS for n in root.findall(tag)]
    bridges = root.find('bridges')
    if bridges is not None:
        nodes.extend(bridges.findall('bridged'))
    for node in nodes:
        node.attrib.pop('uuid', None)


def apply(out, source, baseline, run):
    if run.target == OPNSENSE:
        for tag in CERT_TAGS:
            stamp_cert_uuids(out, tag)
        stamp_bridge_uuids(out)
    else:
        strip_uuids(out)


def stamp_route_fields(root):
    """Give every static route a uuid and an explicit <disabled>0</disabled>."""
    routes = root.find('staticroutes')
    if routes is None:
        return
    for idx, route in enumerate(routes.findall('route')):
        if route.get('uuid') is None:
            seed = '|'.join((route.findtext('network') or '', route.findtext('gateway') or '',
                             route.findtext('descr') or '', str(idx)))
            route.set('uuid', seeded_uuid(seed, idx))
        if route.find('disabled') is None:
            add_text(route, 'disabled', '0')


def strip_route_fields(root):
    # pfSense marks a disabled route by the presence of <disabled>
    routes = root.find('staticroutes')
    if routes is None:
        return
    for route in routes.findall('route'):
        route.attrib.pop('uuid', None)
        disabled = route.find('disabled')
        if disabled is not None and text_of(route, 'disabled') == '0':
            route.remove(disabled)


def apply_routes(out, source, baseline, run):
    if run.target == OPNSENSE:
        stamp_route_fields(out)
    else:
        strip_route_fields(out)
