# SPDX-License-Identifier: MIT

"""Legacy ISC dhcpd to OPNsense Kea migration.

Subnets are derived from each interface's address and prefix, pools from the
legacy ranges, option data from the per-interface options and reservations
from static mappings. Anything that cannot be migrated is reported as a note
and the affected interface is skipped.
"""

import ipaddress
import logging
import re
import uuid
from dataclasses import dataclass, field

from lxml import etree

from ..models import ERROR, INFO, WARN
from ..xmltree import add_text, ensure_path, is_truthy, norm_text, set_text, text_of

log = logging.getLogger(__name__)

V4_OPTION_PLACEHOLDERS = ('domain_name_servers', 'domain_search', 'routers', 'static_routes',
                          'classless_static_route', 'domain_name', 'ntp_servers', 'time_servers',
                          'tftp_server_name', 'boot_file_name', 'v6_only_preferred', 'v4_dnr')
V6_OPTION_PLACEHOLDERS = ('dns_servers', 'domain_search', 'v6_dnr')

V6_LEGACY_SECTIONS = ('dhcpdv6', 'dhcpd6')

_SEARCH_SPLIT = re.compile(r'[;,\s]+')


@dataclass
class FamilyStats:
    subnets: int = 0
    reservations: int = 0
    options: int = 0
    skipped_conflicts: int = 0
    preserved_ifaces: list = field(default_factory=list)


@dataclass
class KeaStats:
    v4: FamilyStats = field(default_factory=FamilyStats)
    v6: FamilyStats = field(default_factory=FamilyStats)


def isc_iface_enabled(iface):
    """Ternary enablement: disabled wins, then enable, then enabled, default on."""
    if is_truthy(norm_text(iface.findtext('disabled'))):
        return False
    enable = iface.find('enable')
    if enable is not None:
        value = norm_text(enable.text)
        return value is None or is_truthy(value)
    enabled = norm_text(iface.findtext('enabled'))
    if enabled is not None:
        return is_truthy(enabled)
    return True


def normalize_domain_search(raw):
    return ' '.join(part for part in _SEARCH_SPLIT.split(raw) if part)


def expand_ipv6_in_prefix(value, network, prefix):
    """Combine the network bits of the subnet with the host bits of value."""
    try:
        addr = ipaddress.IPv6Address(value.strip())
    except ValueError:
        return None
    mask = 0 if prefix == 0 else ((1 << 128) - 1) ^ ((1 << (128 - prefix)) - 1)
    combined = (int(network) & mask) | (int(addr) & ~mask & ((1 << 128) - 1))
    return str(ipaddress.IPv6Address(combined))


def subnet_uuid(family, cidr, iface):
    return str(uuid.uuid5(uuid.NAMESPACE_OID, f"kea-{family}/{cidr}/{iface}"))


def _legacy_ifaces(root, sections):
    for tag in sections:
        container = root.find(tag)
        if container is None:
            continue
        for iface in container:
            if isc_iface_enabled(iface):
                yield iface


def _ranges(root, sections):
    out = {}
    for iface in _legacy_ifaces(root, sections):
        for rng in iface.findall('range'):
            start, end = text_of(rng, 'from'), text_of(rng, 'to')
            if start and end:
                out.setdefault(iface.tag, []).append((start, end))
    return out


def iface_networks_v4(root):
    out = {}
    interfaces = root.find('interfaces')
    if interfaces is None:
        return out
    for iface in interfaces:
        try:
            ip = ipaddress.IPv4Address(text_of(iface, 'ipaddr'))
        except ValueError:
            continue
        bits = text_of(iface, 'subnet')
        prefix = int(bits) if bits.isdigit() else 24
        if prefix > 32:
            continue
        out[iface.tag] = ipaddress.IPv4Network((ip, prefix), strict=False)
    return out


def iface_networks_v6(root):
    out = {}
    interfaces = root.find('interfaces')
    if interfaces is None:
        return out
    for iface in interfaces:
        raw = text_of(iface, 'ipaddrv6')
        if not raw or raw.lower() in ('track6', 'dhcp6'):
            continue
        try:
            ip = ipaddress.IPv6Address(raw)
        except ValueError:
            continue
        bits = text_of(iface, 'subnetv6')
        prefix = int(bits) if bits.isdigit() else 64
        if prefix > 128:
            continue
        out[iface.tag] = ipaddress.IPv6Network((ip, prefix), strict=False)
    return out


def staticmaps_v4(root):
    out = []
    for iface in _legacy_ifaces(root, ('dhcpd',)):
        for sm in iface.findall('staticmap'):
            mac, ip = text_of(sm, 'mac'), text_of(sm, 'ipaddr')
            if not mac or not ip:
                continue
            out.append({'iface': iface.tag, 'mac': mac, 'ipaddr': ip,
                        'hostname': text_of(sm, 'hostname'), 'cid': text_of(sm, 'cid'),
                        'descr': text_of(sm, 'descr')})
    return out


def staticmaps_v6(root):
    out = []
    for iface in _legacy_ifaces(root, V6_LEGACY_SECTIONS):
        for sm in iface.findall('staticmap'):
            duid, ip = text_of(sm, 'duid'), text_of(sm, 'ipaddrv6')
            if not duid or not ip:
                continue
            out.append({'iface': iface.tag, 'duid': duid, 'ipaddr': ip,
                        'hostname': text_of(sm, 'hostname'), 'descr': text_of(sm, 'descr'),
                        'domain_search': text_of(sm, 'domainsearchlist')})
    return out


def options_v4(root):
    out = {}
    for iface in _legacy_ifaces(root, ('dhcpd',)):
        opts = {'dns': [], 'routers': None, 'domain': None, 'search': None, 'ntp': []}
        for child in iface:
            value = norm_text(child.text)
            if value is None:
                continue
            if child.tag == 'dnsserver':
                opts['dns'].append(value)
            elif child.tag == 'gateway':
                opts['routers'] = value
            elif child.tag == 'domain':
                opts['domain'] = value
            elif child.tag == 'domainsearchlist':
                opts['search'] = normalize_domain_search(value)
            elif child.tag == 'ntpserver':
                opts['ntp'].append(value)
        if any(opts.values()):
            out[iface.tag] = opts
    return out


def options_v6(root):
    out = {}
    for iface in _legacy_ifaces(root, V6_LEGACY_SECTIONS):
        dns = [norm_text(c.text) for c in iface.findall('dnsserver') if norm_text(c.text)]
        search = norm_text(iface.findtext('domainsearchlist'))
        if not dns and not search:
            continue
        entry = out.setdefault(iface.tag, {'dns': [], 'search': None})
        for server in dns:
            if server not in entry['dns']:
                entry['dns'].append(server)
        if entry['search'] is None and search:
            entry['search'] = normalize_domain_search(search)
    return out


def prefixrange_intent(root):
    out = set()
    for tag in V6_LEGACY_SECTIONS:
        container = root.find(tag)
        if container is None:
            continue
        for iface in container:
            for pr in iface.findall('prefixrange'):
                if (text_of(pr, 'from') or text_of(pr, 'to')) and text_of(pr, 'prefixlength'):
                    out.add(iface.tag)
    return out


def _existing_uuid(subnets, tag, cidr):
    for subnet in subnets.findall(tag):
        if text_of(subnet, 'subnet') == cidr and subnet.get('uuid'):
            return subnet.get('uuid')
    return None


def _find_by_uuid(subnets, tag, wanted):
    for subnet in subnets.findall(tag):
        if subnet.get('uuid') == wanted:
            return subnet
    return None


def _enable_family(general, by_iface):
    set_text(general, 'enabled', '1')
    if by_iface:
        set_text(general, 'interfaces', ','.join(sorted(by_iface)))


def migrate_v4(kea, source, stats, run):
    dhcp4 = ensure_path(kea, 'dhcp4')
    subnets = ensure_path(dhcp4, 'subnets')
    reservations = ensure_path(dhcp4, 'reservations')
    general = ensure_path(dhcp4, 'general')

    maps = staticmaps_v4(source)
    ranges = _ranges(source, ('dhcpd',))
    opts = options_v4(source)
    networks = iface_networks_v4(source)
    demanded = sorted({m['iface'] for m in maps} | set(ranges) | set(opts))

    by_iface = {}
    for iface in demanded:
        network = networks.get(iface)
        if network is None:
            run.note(ERROR, 'kea_v4_missing_cidr',
                     f"cannot migrate DHCPv4 interface '{iface}': missing "
                     f"interfaces.{iface}.ipaddr/subnet; subnet skipped")
            continue
        cidr = str(network)
        existing = _existing_uuid(subnets, 'subnet4', cidr)
        if existing:
            by_iface[iface] = existing
            continue
        sid = subnet_uuid('subnet4', cidr, iface)
        subnet = etree.SubElement(subnets, 'subnet4', uuid=sid)
        add_text(subnet, 'subnet', cidr)
        add_text(subnet, 'option_data_autocollect', '1')
        option_data = etree.SubElement(subnet, 'option_data')
        for key in V4_OPTION_PLACEHOLDERS:
            add_text(option_data, key, '')
        add_text(subnet, 'match-client-id', '1')
        pools = ','.join(f"{a}-{b}" for a, b in ranges.get(iface, []))
        if pools:
            add_text(subnet, 'pools', pools)
        by_iface[iface] = sid
        stats.subnets += 1
        if iface not in opts:
            run.note(INFO, 'kea_v4_placeholders',
                     f"DHCPv4 {iface}: no legacy options; option data left as placeholders")

    for iface, o in sorted(opts.items()):
        subnet = _find_by_uuid(subnets, 'subnet4', by_iface.get(iface))
        if subnet is None:
            continue
        option_data = ensure_path(subnet, 'option_data')
        if o['dns']:
            set_text(option_data, 'domain_name_servers', ','.join(o['dns']))
        if o['routers']:
            set_text(option_data, 'routers', o['routers'])
        if o['domain']:
            set_text(option_data, 'domain_name', o['domain'])
        if o['search']:
            set_text(option_data, 'domain_search', o['search'])
        if o['ntp']:
            set_text(option_data, 'ntp_servers', ','.join(o['ntp']))
        stats.options += 1

    taken = {text_of(r, 'ip_address') for r in reservations.findall('reservation')}
    for m in maps:
        if m['ipaddr'] in taken:
            stats.skipped_conflicts += 1
            run.note(WARN, 'kea_v4_reservation_conflict',
                     f"DHCPv4 reservation {m['ipaddr']} on {m['iface']} already exists; skipped")
            continue
        sid = by_iface.get(m['iface'])
        if sid is None:
            continue
        res = etree.SubElement(reservations, 'reservation')
        add_text(res, 'hw_address', m['mac'])
        add_text(res, 'ip_address', m['ipaddr'])
        add_text(res, 'subnet', sid)
        for key, tag in (('hostname', 'hostname'), ('cid', 'client_id'), ('descr', 'description')):
            if m[key]:
                add_text(res, tag, m[key])
        taken.add(m['ipaddr'])
        stats.reservations += 1

    if by_iface or stats.reservations:
        _enable_family(general, by_iface)


def migrate_v6(kea, source, stats, run):
    dhcp6 = ensure_path(kea, 'dhcp6')
    subnets = ensure_path(dhcp6, 'subnets')
    reservations = ensure_path(dhcp6, 'reservations')
    general = ensure_path(dhcp6, 'general')

    maps = staticmaps_v6(source)
    ranges = _ranges(source, V6_LEGACY_SECTIONS)
    opts = options_v6(source)
    intent = prefixrange_intent(source)
    networks = iface_networks_v6(source)
    demanded = sorted({m['iface'] for m in maps} | set(ranges) | set(opts) | intent)

    by_iface = {}
    for iface in demanded:
        network = networks.get(iface)
        if network is None:
            missing = ['no static IPv6']
            if iface not in intent:
                missing.append('no PD indicators')
            run.note(WARN, 'kea_v6_prefix_unknown',
                     f"DHCPv6 range on {iface} but unable to determine IPv6 prefix "
                     f"({' or '.join(missing)}); preserving legacy block; no Kea dhcp6 for {iface}.")
            stats.preserved_ifaces.append(iface)
            continue
        cidr = str(network)
        existing = _existing_uuid(subnets, 'subnet6', cidr)
        if existing:
            by_iface[iface] = existing
            continue
        sid = subnet_uuid('subnet6', cidr, iface)
        subnet = etree.SubElement(subnets, 'subnet6', uuid=sid)
        add_text(subnet, 'subnet', cidr)
        option_data = etree.SubElement(subnet, 'option_data')
        for key in V6_OPTION_PLACEHOLDERS:
            add_text(option_data, key, '')
        pools = []
        for start, end in ranges.get(iface, []):
            start = expand_ipv6_in_prefix(start, network.network_address, network.prefixlen) or start
            end = expand_ipv6_in_prefix(end, network.network_address, network.prefixlen) or end
            pools.append(f"{start}-{end}")
        if pools:
            add_text(subnet, 'pools', ','.join(pools))
        add_text(subnet, 'interface', iface)
        add_text(subnet, 'description', '')
        by_iface[iface] = sid
        stats.subnets += 1

    for iface, o in sorted(opts.items()):
        subnet = _find_by_uuid(subnets, 'subnet6', by_iface.get(iface))
        if subnet is None:
            continue
        option_data = ensure_path(subnet, 'option_data')
        if o['dns']:
            set_text(option_data, 'dns_servers', ','.join(o['dns']))
        if o['search']:
            set_text(option_data, 'domain_search', o['search'])
        stats.options += 1

    taken_ips = {text_of(r, 'ip_address') for r in reservations.findall('reservation')}
    taken_duids = {text_of(r, 'duid') for r in reservations.findall('reservation')}
    for m in maps:
        network = networks.get(m['iface'])
        ip = m['ipaddr']
        if network is not None:
            ip = expand_ipv6_in_prefix(ip, network.network_address, network.prefixlen) or ip
        if m['ipaddr'] in taken_ips or ip in taken_ips or m['duid'] in taken_duids:
            stats.skipped_conflicts += 1
            run.note(WARN, 'kea_v6_reservation_conflict',
                     f"DHCPv6 reservation {ip} ({m['duid']}) on {m['iface']} already exists; skipped")
            continue
        sid = by_iface.get(m['iface'])
        if sid is None:
            continue
        res = etree.SubElement(reservations, 'reservation')
        add_text(res, 'duid', m['duid'])
        add_text(res, 'ip_address', ip)
        add_text(res, 'subnet', sid)
        if m['hostname']:
            add_text(res, 'hostname', m['hostname'])
        if m['descr']:
            add_text(res, 'description', m['descr'])
        if m['domain_search']:
            add_text(res, 'domain_search', normalize_domain_search(m['domain_search']))
        taken_ips.add(ip)
        taken_duids.add(m['duid'])
        stats.reservations += 1

    if by_iface or stats.reservations:
        _enable_family(general, by_iface)


def migrate_isc_to_kea(out, source, run):
    """Build OPNsense/Kea dhcp4 and dhcp6 from the source legacy sections."""
    stats = KeaStats()
    kea = ensure_path(out, 'OPNsense', 'Kea')
    migrate_v4(kea, source, stats.v4, run)
    migrate_v6(kea, source, stats.v6, run)
    log.debug("kea migration: v4 subnets=%d reservations=%d, v6 subnets=%d reservations=%d",
              stats.v4.subnets, stats.v4.reservations, stats.v6.subnets, stats.v6.reservations)
    return stats
