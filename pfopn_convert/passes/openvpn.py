# SPDX-License-Identifier: MIT

"""OpenVPN servers and clients between pfSense <openvpn> and OPNsense Instances."""

import base64
import binascii
import copy
import logging
import uuid

from lxml import etree

from ..xmltree import add_text, child_at, ensure_child, is_truthy, set_text, text_of, upsert_child

log = logging.getLogger(__name__)

ROLE_TAGS = {'server': 'openvpn-server', 'client': 'openvpn-client'}

# pfSense field -> OPNsense Instance field
FIELD_MAP = {
    'server': {
        'authmode': 'authmode', 'caref': 'ca', 'ipaddr': 'local', 'certref': 'cert',
        'cert_depth': 'cert_depth', 'crlref': 'crl', 'data_ciphers': 'data-ciphers',
        'description': 'description', 'dns_domain': 'dns_domain', 'local_network': 'push_route',
        'local_port': 'port', 'tunnel_network': 'server', 'tunnel_networkv6': 'server_ipv6',
        'verbosity_level': 'verb', 'topology': 'topology', 'custom_options': 'custom_options',
    },
    'client': {
        'caref': 'ca', 'certref': 'cert', 'description': 'description', 'ipaddr': 'local',
        'local_port': 'port', 'tunnel_network': 'server', 'verbosity_level': 'verb',
        'custom_options': 'custom_options', 'auth_user': 'username', 'auth_pass': 'password',
    },
}

FIXED_FIELDS = {
    'server': {'mssfix': '0', 'username_as_common_name': '0', 'verify_client_cert': 'require'},
    'client': {'mssfix': '0'},
}

DNS_FIELDS = ('dns_server1', 'dns_server2', 'dns_server3', 'dns_server4')
NTP_FIELDS = ('ntp_server1', 'ntp_server2')


def instance_uuid(vpnid, index):
    digits = ''.join(c for c in vpnid if c.isdigit())
    number = int(digits) if digits else index + 1
    return f"00000000-0000-4000-8000-{number % 0x1000000000000:012x}"


def static_key_uuid(instance_id):
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"openvpn-statickey/{instance_id}"))


def prepare_structure(root):
    """Ensure OPNsense/OpenVPN exists and return it."""
    opnsense_section = ensure_child(root, 'OPNsense')
    openvpn_section = opnsense_section.find('OpenVPN')
    if openvpn_section is None:
        openvpn_section = etree.SubElement(opnsense_section, 'OpenVPN', version="1.0.0")
    return openvpn_section


def handle_tls_key(old, instance, static_keys):
    """Move a base64 pfSense TLS key into a StaticKey referenced by the instance."""
    tls = text_of(old, 'tls')
    if not tls:
        return
    try:
        decoded_key = base64.b64decode(tls).decode('utf-8').replace('\r', '')
    except (binascii.Error, UnicodeDecodeError):
        log.warning("OpenVPN %s: TLS key is not valid base64; kept encoded", text_of(old, 'vpnid'))
        decoded_key = tls
    key_uuid = static_key_uuid(instance.get('uuid'))
    static_key = etree.SubElement(static_keys, 'StaticKey', uuid=key_uuid)
    add_text(static_key, 'mode', text_of(old, 'tls_type', default='crypt'))
    add_text(static_key, 'key', decoded_key)
    add_text(static_key, 'description', text_of(old, 'description'))
    set_text(instance, 'tls_key', key_uuid)


def convert_fields(old, instance, role):
    """Fill an Instance from a pfSense server or client."""
    set_text(instance, 'vpnid', text_of(old, 'vpnid'))
    set_text(instance, 'role', role)
    set_text(instance, 'enabled', '0' if old.find('disable') is not None else '1')
    set_text(instance, 'dev_type', text_of(old, 'dev_mode', default='tun').lower())
    set_text(instance, 'proto', text_of(old, 'protocol', default='udp').lower())
    for old_field, new_field in FIELD_MAP[role].items():
        value = text_of(old, old_field)
        if value:
            set_text(instance, new_field, value)
    if role == 'client':
        remote = text_of(old, 'server_addr')
        port = text_of(old, 'server_port')
        if remote:
            set_text(instance, 'remote', f"{remote}:{port}" if port else remote)
    dns_servers = [text_of(old, f) for f in DNS_FIELDS if text_of(old, f)]
    if dns_servers:
        set_text(instance, 'dns_servers', ','.join(dns_servers))
    ntp_servers = [text_of(old, f) for f in NTP_FIELDS if text_of(old, f)]
    if ntp_servers:
        set_text(instance, 'ntp_servers', ','.join(ntp_servers))
    for new_field, value in FIXED_FIELDS[role].items():
        if instance.find(new_field) is None:
            set_text(instance, new_field, value)


def pfsense_openvpn(source):
    """Top-level <openvpn> when it carries servers or clients."""
    node = source.find('openvpn')
    if node is None:
        return None
    if node.find('openvpn-server') is None and node.find('openvpn-client') is None:
        return None
    return node


def _opnsense_origin(openvpn):
    entries = openvpn.findall('openvpn-server') + openvpn.findall('openvpn-client')
    return bool(entries) and all(text_of(e, 'opnsense_instance_uuid') for e in entries)


def map_to_instances(openvpn):
    instances = etree.Element('Instances')
    static_keys = etree.Element('StaticKeys')
    for role, tag in ROLE_TAGS.items():
        for old in openvpn.findall(tag):
            kept = text_of(old, 'opnsense_instance_uuid')
            instance = etree.SubElement(
                instances, 'Instance',
                uuid=kept or instance_uuid(text_of(old, 'vpnid'), len(instances)))
            convert_fields(old, instance, role)
            handle_tls_key(old, instance, static_keys)
    return instances, static_keys


def to_opnsense(out, source, baseline):
    nested = child_at(source, 'OPNsense', 'OpenVPN')
    pf_openvpn = pfsense_openvpn(source)
    if nested is not None and nested.find('Instances') is not None and len(nested.find('Instances')):
        openvpn_section = prepare_structure(out)
        for tag in ('Instances', 'StaticKeys'):
            node = nested.find(tag)
            if node is not None:
                upsert_child(openvpn_section, copy.deepcopy(node))
    elif pf_openvpn is not None:
        instances, static_keys = map_to_instances(pf_openvpn)
        openvpn_section = prepare_structure(out)
        upsert_child(openvpn_section, instances)
        if len(static_keys):
            upsert_child(openvpn_section, static_keys)
        log.debug("mapped %d OpenVPN instances", len(instances))
    else:
        return
    if pf_openvpn is not None and not _opnsense_origin(pf_openvpn):
        upsert_child(out, copy.deepcopy(pf_openvpn))
    elif pf_openvpn is not None:
        upsert_child(out, etree.Element('openvpn'))


def _instance_to_pfsense(instance, static_keys):
    role = text_of(instance, 'role', default='server').lower()
    if role not in ROLE_TAGS:
        return None
    old = etree.Element(ROLE_TAGS[role])
    set_text(old, 'vpnid', text_of(instance, 'vpnid'))
    if not is_truthy(text_of(instance, 'enabled', default='1')):
        set_text(old, 'disable', 'yes')
    set_text(old, 'dev_mode', text_of(instance, 'dev_type', default='tun'))
    set_text(old, 'protocol', text_of(instance, 'proto', default='udp').upper())
    for old_field, new_field in FIELD_MAP[role].items():
        value = text_of(instance, new_field)
        if value:
            set_text(old, old_field, value)
    if role == 'client':
        remote = text_of(instance, 'remote')
        if remote:
            host, sep, port = remote.rpartition(':')
            if sep and port.isdigit() and host.count(':') == 0:
                set_text(old, 'server_addr', host)
                set_text(old, 'server_port', port)
            else:
                set_text(old, 'server_addr', remote)
    for field, value in zip(DNS_FIELDS, text_of(instance, 'dns_servers').split(',')):
        if value.strip():
            set_text(old, field, value.strip())
    for field, value in zip(NTP_FIELDS, text_of(instance, 'ntp_servers').split(',')):
        if value.strip():
            set_text(old, field, value.strip())
    key_ref = text_of(instance, 'tls_key')
    for key in static_keys:
        if key_ref and key.get('uuid') == key_ref:
            raw = key.findtext('key') or ''
            set_text(old, 'tls', base64.b64encode(raw.encode('utf-8')).decode('ascii'))
            set_text(old, 'tls_type', text_of(key, 'mode', default='crypt'))
    set_text(old, 'opnsense_instance_uuid', instance.get('uuid', ''))
    return old


def to_pfsense(out, source, baseline):
    pf_openvpn = pfsense_openvpn(source)
    if pf_openvpn is not None:
        upsert_child(out, copy.deepcopy(pf_openvpn))
        return
    instances = child_at(source, 'OPNsense', 'OpenVPN', 'Instances')
    if instances is None or not len(instances):
        return
    static_keys = child_at(source, 'OPNsense', 'OpenVPN', 'StaticKeys')
    keys = list(static_keys) if static_keys is not None else []
    openvpn = etree.Element('openvpn')
    for instance in instances.findall('Instance'):
        old = _instance_to_pfsense(instance, keys)
        if old is not None:
            openvpn.append(old)
    upsert_child(out, openvpn)
