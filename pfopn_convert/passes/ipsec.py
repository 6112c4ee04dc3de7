# SPDX-License-Identifier: MIT

"""Map pfSense phase1/phase2 IPsec entries into the OPNsense Swanctl model."""

import logging

from lxml import etree

from ..detect import OPNSENSE
from ..xmltree import add_text, ensure_child, text_of, upsert_child

log = logging.getLogger(__name__)


def _rotl8(value, shift):
    value &= 0xff
    return ((value << shift) | (value >> (8 - shift))) & 0xff


def stable_uuid(prefix, idx, seed):
    """Content-seeded UUID with version 4 and RFC 4122 variant bits."""
    data = [0] * 16
    for i, b in enumerate((prefix + seed).encode('utf-8')):
        data[i % 16] = _rotl8(data[i % 16] + b, i % 7)
    for i in range(16):
        data[i] = (data[i] + _rotl8(idx + i, idx % 5)) & 0xff
    data[6] = (data[6] & 0x0f) | 0x40
    data[8] = (data[8] & 0x3f) | 0x80
    h = bytes(data).hex()
    return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:]}"


def looks_like_pfsense_ipsec(node):
    return node.find('phase1') is not None or node.find('phase2') is not None


def _on_off(value):
    return '1' if value.lower() == 'on' else '0'


def _enabled(p1):
    return '0' if text_of(p1, 'disabled') else '1'


def _is_psk(p1):
    return text_of(p1, 'authentication_method', default='pre_shared_key').lower() == 'pre_shared_key'


def _selector(node):
    """Traffic selector string from a phase2 localid/remoteid."""
    if node is None:
        return ''
    kind = text_of(node, 'type').lower()
    if kind == 'network':
        address, bits = text_of(node, 'address'), text_of(node, 'netbits')
        return f"{address}/{bits}" if address and bits else ''
    if kind == 'address':
        return text_of(node, 'address')
    if kind == 'range':
        start, end = text_of(node, 'from'), text_of(node, 'to')
        if start and end:
            return f"{start}-{end}"
    return ''


def base_ipsec():
    ipsec = etree.Element('IPsec')
    general = etree.SubElement(ipsec, 'general')
    for field, value in (('enabled', ''), ('preferred_oldsa', '0'), ('disablevpnrules', '0'),
                         ('passthrough_networks', ''), ('user_source', ''), ('local_group', '')):
        add_text(general, field, value)
    charon = etree.SubElement(ipsec, 'charon')
    add_text(charon, 'threads', '16')
    add_text(charon, 'install_routes', '0')
    etree.SubElement(ipsec, 'keyPairs')
    etree.SubElement(ipsec, 'preSharedKeys')
    return ipsec


def base_swanctl():
    swanctl = etree.Element('Swanctl')
    for bucket in ('Connections', 'locals', 'remotes', 'children', 'Pools', 'VTIs', 'SPDs'):
        etree.SubElement(swanctl, bucket)
    return swanctl


def _fill(parent, fields):
    for field, value in fields:
        add_text(parent, field, value)


def map_pfsense_ipsec(source_ipsec):
    """Return (IPsec, Swanctl) elements built from a pfSense <ipsec> section."""
    ipsec = base_ipsec()
    swanctl = base_swanctl()
    phase2s = source_ipsec.findall('phase2')

    for idx, p1 in enumerate(source_ipsec.findall('phase1')):
        ikeid = text_of(p1, 'ikeid') or str(idx + 1)
        conn_uuid = stable_uuid('conn', idx, ikeid)
        enabled = _enabled(p1)
        descr = text_of(p1, 'descr')

        conn = etree.SubElement(swanctl.find('Connections'), 'Connection', uuid=conn_uuid)
        _fill(conn, (
            ('enabled', enabled), ('proposals', 'default'), ('unique', 'no'),
            ('aggressive', '0'), ('version', '0'),
            ('mobike', _on_off(text_of(p1, 'mobike', default='off'))),
            ('local_addrs', ''), ('local_port', ''),
            ('remote_addrs', text_of(p1, 'remote-gateway')), ('remote_port', ''),
            ('encap', _on_off(text_of(p1, 'nat_traversal', default='off'))),
            ('reauth_time', ''), ('rekey_time', ''), ('over_time', ''),
            ('dpd_delay', text_of(p1, 'dpd_delay')), ('dpd_timeout', text_of(p1, 'dpd_maxfail')),
            ('pools', 'radius'), ('send_certreq', '1'), ('send_cert', ''), ('keyingtries', ''),
            ('description', descr),
        ))

        local = etree.SubElement(swanctl.find('locals'), 'local',
                                 uuid=stable_uuid('local', idx, ikeid))
        _fill(local, (
            ('enabled', enabled), ('connection', conn_uuid), ('round', '0'),
            ('auth', 'psk' if _is_psk(p1) else 'pubkey'),
            ('id', text_of(p1, 'myid_data')), ('eap_id', ''),
            ('certs', text_of(p1, 'certref')), ('pubkeys', ''), ('description', descr),
        ))

        remote = etree.SubElement(swanctl.find('remotes'), 'remote',
                                  uuid=stable_uuid('remote', idx, ikeid))
        _fill(remote, (
            ('enabled', enabled), ('connection', conn_uuid), ('round', '0'), ('auth', 'psk'),
            ('id', text_of(p1, 'peerid_data')), ('eap_id', ''), ('groups', ''), ('certs', ''),
            ('cacerts', text_of(p1, 'caref')), ('pubkeys', ''), ('description', descr),
        ))

        if _is_psk(p1):
            psk = etree.SubElement(ipsec.find('preSharedKeys'), 'preSharedKey',
                                   uuid=stable_uuid('psk', idx, ikeid))
            _fill(psk, (
                ('ident', text_of(p1, 'myid_data')), ('remote_ident', text_of(p1, 'peerid_data')),
                ('keyType', 'PSK'), ('Key', text_of(p1, 'pre-shared-key')), ('description', descr),
            ))

        start_action = 'start' if text_of(p1, 'startaction').lower() == 'start' else 'none'
        matching = [p2 for p2 in phase2s if text_of(p2, 'ikeid') == ikeid]
        for cidx, p2 in enumerate(matching):
            child = etree.SubElement(swanctl.find('children'), 'child',
                                     uuid=stable_uuid('child', cidx, ikeid))
            _fill(child, (
                ('enabled', '1'), ('connection', conn_uuid), ('reqid', text_of(p2, 'reqid')),
                ('esp_proposals', 'default'), ('sha256_96', '0'), ('start_action', start_action),
                ('close_action', 'none'), ('dpd_action', 'clear'),
                ('mode', text_of(p2, 'mode', default='tunnel')), ('policies', '1'),
                ('local_ts', _selector(p2.find('localid'))),
                ('remote_ts', _selector(p2.find('remoteid'))),
                ('rekey_time', text_of(p2, 'lifetime')), ('description', text_of(p2, 'descr')),
            ))

    return ipsec, swanctl


def apply(out, source, baseline, run):
    if run.target != OPNSENSE:
        return
    top = source.find('ipsec')
    if top is None or not looks_like_pfsense_ipsec(top):
        return
    ipsec, swanctl = map_pfsense_ipsec(top)
    opn = ensure_child(out, 'OPNsense')
    upsert_child(opn, ipsec)
    upsert_child(opn, swanctl)
    log.debug("mapped %d phase1 entries into Swanctl", len(top.findall('phase1')))
