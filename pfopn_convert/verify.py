# SPDX-License-Identifier: MIT

"""Verification: independent finding producers over one configuration tree.

Every producer takes the root element and returns a list of Finding records.
build_verify_report runs them all and counts the errors and warnings.
"""

import dataclasses
import ipaddress
import json
import re
from collections import Counter, defaultdict
from dataclasses import dataclass

from .backend import ISC, KEA, LEGACY_SECTIONS, detect_dhcp_backend, opnsense_kea_enabled
from .detect import OPNSENSE, PFSENSE, UNKNOWN, detect_flavor, detect_version
from .models import ERROR, WARNING, Finding
from .plugins import opnsense_plugins
from .profiles import load_profile
from .scan import build_scan_report
from .xmltree import child_at, is_truthy, norm_text, text_at, text_of

REQUIRED_SECTIONS = ('system', 'interfaces')
BUILTIN_INTERFACE_TOKENS = frozenset(('any', 'floating', 'lo0', 'enc0', 'ipsec', 'openvpn',
                                      'wireguard', 'tailscale', 'wanip', 'lanip'))
BUILTIN_NAT_INTERFACES = frozenset(('any', 'wan', 'lan'))
OUTBOUND_MODES = frozenset(('automatic', 'hybrid', 'manual', 'disable', 'disabled', 'advanced'))
BUILTIN_ADDRESSES = frozenset(('any', '(self)', 'self', 'wanip', 'lanip', 'wan address',
                               'lan address', 'wan net', 'lan net', 'this firewall'))
DYNAMIC_GATEWAY_SUFFIXES = ('_dhcp', '_dhcp6', '_pppoe', '_track6')

_LIST_SPLIT = re.compile(r'[,\s]+')
_BRIDGE_TOKEN = re.compile(r'(bridge)?\d+')


def error(code, message):
    return Finding(ERROR, code, message)


def warning(code, message):
    return Finding(WARNING, code, message)


def split_tokens(raw):
    return [t.lower() for t in _LIST_SPLIT.split(raw or '') if t]


def is_bridge_token(token):
    return _BRIDGE_TOKEN.fullmatch(token) is not None


def rules_of(root):
    section = root.find('filter')
    return [] if section is None else section.findall('rule')


def defined_interfaces(root):
    """Lower-cased logical interface names plus the implicit VPN groups."""
    names = set()
    interfaces = root.find('interfaces')
    if interfaces is not None:
        names.update(iface.tag.lower() for iface in interfaces)
    if root.find('openvpn') is not None:
        names.add('openvpn')
    if root.find('wireguard') is not None or child_at(root, 'OPNsense', 'wireguard') is not None:
        names.add('wireguard')
    if any(node is not None for node in (
            root.find('tailscale'), root.find('tailscaleauth'),
            child_at(root, 'installedpackages', 'tailscale'),
            child_at(root, 'OPNsense', 'tailscale'))):
        names.add('tailscale')
    return names


def _known_interface(token, defined):
    return token in defined or token in BUILTIN_INTERFACE_TOKENS or is_bridge_token(token)


def platform_findings(root):
    if detect_flavor(root) == UNKNOWN:
        return [error('unknown_platform', "root tag is not recognized as pfsense/opnsense")]
    return []


def required_section_findings(root):
    if detect_flavor(root) == UNKNOWN:
        return []
    return [error('missing_required_section', f"required section '{section}' is missing")
            for section in REQUIRED_SECTIONS if root.find(section) is None]


def interface_findings(root):
    findings = []
    interfaces = root.find('interfaces')
    if interfaces is not None:
        counts = Counter(iface.tag.lower() for iface in interfaces)
        for name, count in sorted(counts.items()):
            if count > 1:
                findings.append(error('duplicate_interface_assignment',
                                      f"interface '{name}' assigned {count} times"))
    defined = defined_interfaces(root)
    for idx, rule in enumerate(rules_of(root)):
        for token in split_tokens(text_at(rule, 'interface')):
            if not _known_interface(token, defined):
                findings.append(error('missing_interface_reference',
                                      f"filter rule #{idx} references missing interface '{token}'"))
    for section, code, label in (('gateways', 'missing_gateway_interface', 'gateway'),
                                 ('staticroutes', 'missing_route_interface', 'static route')):
        node = root.find(section)
        if node is None:
            continue
        for item in node:
            for token in split_tokens(text_at(item, 'interface')):
                if not _known_interface(token, defined):
                    findings.append(error(code, f"{label} references missing interface '{token}'"))
    return findings


def bridge_findings(root):
    bridges = root.find('bridges')
    if bridges is None:
        return []
    defined = defined_interfaces(root)
    findings = []
    for idx, bridged in enumerate(bridges.findall('bridged')):
        members = split_tokens(text_at(bridged, 'members'))
        bridgeif = text_of(bridged, 'bridgeif').lower()
        if not members and not bridgeif:
            findings.append(error('empty_bridge_members', f"bridge #{idx} has no members"))
            continue
        for member in members:
            if member not in defined:
                findings.append(error('missing_bridge_member',
                                      f"bridge #{idx} references missing member '{member}'"))
        if bridgeif and bridgeif not in defined and not is_bridge_token(bridgeif):
            findings.append(warning(
                'missing_bridge_interface',
                f"bridge #{idx} bridgeif references missing interface '{bridgeif}'"))
    return findings


def _nat_rules(nat):
    rules = nat.findall('rule')
    outbound = nat.find('outbound')
    if outbound is not None:
        rules.extend(outbound.findall('rule'))
    return rules


def nat_findings(root):
    nat = root.find('nat')
    if nat is None:
        return []
    findings = []
    mode = text_of(nat, 'outbound', 'mode')
    if mode and mode.lower() not in OUTBOUND_MODES:
        findings.append(warning('nat_invalid_outbound_mode',
                                f"NAT outbound mode '{mode}' is not recognized"))
    defined = defined_interfaces(root)
    rules = _nat_rules(nat)
    for idx, rule in enumerate(rules):
        for token in split_tokens(text_at(rule, 'interface')):
            if token not in BUILTIN_NAT_INTERFACES and token not in defined:
                findings.append(error('nat_missing_interface',
                                      f"NAT rule #{idx} references missing interface '{token}'"))
    associated = {text_of(r, 'associated-rule-id') for r in rules_of(root)} - {''}
    for idx, rule in enumerate(rules):
        assoc = text_of(rule, 'associated-rule-id')
        if assoc and assoc not in associated:
            findings.append(warning(
                'nat_missing_associated_rule',
                f"NAT rule #{idx} associated-rule-id '{assoc}' not found in filter"))
    return findings


def is_builtin_or_literal(value):
    v = value.strip().lower()
    if not v or v in BUILTIN_ADDRESSES or v.endswith(DYNAMIC_GATEWAY_SUFFIXES):
        return True
    try:
        ipaddress.ip_address(v)
        return True
    except ValueError:
        pass
    address, sep, mask = v.partition('/')
    if sep and mask.isdigit() and int(mask) <= 255:
        try:
            ipaddress.ip_address(address)
            return True
        except ValueError:
            return False
    return False


def _names(container, tag=None):
    if container is None:
        return set()
    items = container.findall(tag) if tag else list(container)
    return {text_of(item, 'name').lower() for item in items} - {''}


def rule_reference_findings(root):
    aliases = (_names(root.find('aliases'), 'alias')
               | _names(child_at(root, 'OPNsense', 'Firewall', 'Alias', 'aliases'), 'alias'))
    gateways = _names(root.find('gateways')) | _names(child_at(root, 'OPNsense', 'Gateways'))
    schedules = _names(root.find('schedules'), 'schedule')
    findings = []
    rules = rules_of(root)
    for idx, rule in enumerate(rules):
        for side in ('source', 'destination'):
            address = text_at(rule, side, 'address')
            if address is None:
                continue
            for token in (t.strip() for t in re.split(r'[,;]', address)):
                if not token or is_builtin_or_literal(token):
                    continue
                if token.lower() not in aliases:
                    findings.append(error(
                        'missing_alias_reference',
                        f"filter rule #{idx} {side} references alias '{token}' that does not exist"))
    for idx, rule in enumerate(rules):
        gateway = text_of(rule, 'gateway')
        if gateway and not is_builtin_or_literal(gateway) and gateway.lower() not in gateways:
            findings.append(error(
                'missing_gateway_reference',
                f"filter rule #{idx} references gateway '{gateway}' that does not exist"))
    routes = root.find('staticroutes')
    for idx, route in enumerate(routes if routes is not None else []):
        gateway = text_of(route, 'gateway')
        if gateway and not is_builtin_or_literal(gateway) and gateway.lower() not in gateways:
            findings.append(error(
                'missing_route_gateway',
                f"static route #{idx} references gateway '{gateway}' that does not exist"))
    for idx, rule in enumerate(rules):
        sched = text_of(rule, 'sched') or text_of(rule, 'schedule')
        if sched and sched.lower() not in schedules:
            findings.append(warning(
                'missing_schedule_reference',
                f"filter rule #{idx} references schedule '{sched}' that does not exist"))
    return findings


def _side_address(rule, side):
    node = rule.find(side)
    if node is None:
        return ''
    address = text_of(node, 'address')
    if address:
        return address
    if node.find('any') is not None:
        return 'any'
    network = text_of(node, 'network')
    return f"network:{network}" if network else ''


def rule_fingerprint(rule):
    """Fields that make two rules match the same traffic the same way."""
    return (
        text_of(rule, 'interface').lower(),
        text_of(rule, 'type').lower(),
        text_of(rule, 'ipprotocol').lower(),
        text_of(rule, 'protocol').lower(),
        _side_address(rule, 'source').lower(),
        text_of(rule, 'source', 'port').lower(),
        _side_address(rule, 'destination').lower(),
        text_of(rule, 'destination', 'port').lower(),
        text_of(rule, 'direction').lower(),
        rule.find('floating') is not None,
        rule.find('quick') is not None,
        rule.find('disabled') is not None,
        text_of(rule, 'gateway').lower(),
        (text_of(rule, 'sched') or text_of(rule, 'schedule')).lower(),
    )


def rule_duplicate_findings(root):
    groups = defaultdict(list)
    for idx, rule in enumerate(rules_of(root)):
        groups[rule_fingerprint(rule)].append((idx, text_of(rule, 'tracker'), text_of(rule, 'descr')))
    findings = []
    for fingerprint in sorted(groups):
        rows = groups[fingerprint]
        if len(rows) < 2:
            continue
        trackers = ','.join(tracker or f"idx{idx}" for idx, tracker, _ in rows)
        defaults = [descr.lower().startswith('default ') for _, _, descr in rows]
        if any(defaults) and not all(defaults):
            findings.append(warning(
                'default_rule_overlap',
                f"default rule overlaps custom rule signatures (trackers: {trackers})"))
        else:
            findings.append(warning(
                'duplicate_firewall_rule',
                f"duplicate firewall rule signature detected (trackers: {trackers})"))
    return findings


def wireguard_findings(root):
    sections = [n for n in (root.find('wireguard'), child_at(root, 'OPNsense', 'wireguard'))
                if n is not None]
    enabled = any(el.tag.lower() == 'enabled' and is_truthy(el.text)
                  for node in sections for el in node.iter())
    if not enabled:
        return []
    interfaces = root.find('interfaces')
    if interfaces is not None:
        for iface in interfaces:
            if iface.tag.lower() == 'wireguard' or 'wg' in text_of(iface, 'if').lower():
                return []
    return [warning('wireguard_missing_interface_assignment',
                    "WireGuard appears enabled but no wireguard/tun_wg* interface assignment "
                    "was found")]


def _legacy_dhcp_enabled(root):
    dhcpd = root.find('dhcpd')
    if dhcpd is None:
        return False
    for iface in dhcpd:
        if is_truthy(norm_text(iface.findtext('disabled'))):
            continue
        enable = iface.find('enable')
        if enable is not None and (norm_text(enable.text) is None or is_truthy(enable.text)):
            return True
    return False


def dhcp_findings(root):
    platform = detect_flavor(root)
    has_legacy = any(root.find(tag) is not None for tag in LEGACY_SECTIONS)
    findings = []
    if platform == PFSENSE:
        backend = text_of(root, 'dhcpbackend').lower()
        has_kea = root.find('kea') is not None
        if backend == ISC and not has_legacy:
            findings.append(error(
                'dhcp_backend_inconsistent',
                "pfSense backend is ISC but legacy DHCP sections are missing (dhcpd/dhcpdv6/dhcpd6)"))
        if backend == ISC and has_kea:
            findings.append(error('dhcp_backend_inconsistent',
                                  "pfSense backend is ISC but Kea section is still present"))
        if backend == KEA and not has_kea:
            findings.append(warning(
                'dhcp_backend_advisory',
                "pfSense backend is Kea but top-level <kea> section is missing; "
                "verify DHCP backend state on target"))
    elif platform == OPNSENSE:
        mode, _ = detect_dhcp_backend(root)
        if mode == ISC:
            if 'os-isc-dhcp' not in (p.lower() for p in opnsense_plugins(root)):
                findings.append(error(
                    'dhcp_backend_inconsistent',
                    "OPNsense appears to use ISC DHCP but os-isc-dhcp is not declared in "
                    "system.firmware.plugins"))
            if not has_legacy:
                findings.append(error(
                    'dhcp_backend_inconsistent',
                    "OPNsense appears to use ISC DHCP but legacy DHCP sections are missing "
                    "(dhcpd/dhcpdv6/dhcpd6)"))
        if mode == KEA and child_at(root, 'OPNsense', 'Kea') is None:
            findings.append(error('dhcp_backend_inconsistent',
                                  "OPNsense appears to use Kea but OPNsense.Kea section is missing"))
        if opnsense_kea_enabled(root, ('dhcp4',)) and _legacy_dhcp_enabled(root):
            findings.append(error(
                'dhcp_backend_inconsistent',
                "OPNsense Kea DHCPv4 is enabled while legacy dhcpd still serves an interface"))
    return findings


def profile_findings(root, profile):
    """Advisory warnings from an expected-layout profile."""
    findings = []
    for section in profile.required_sections:
        if root.find(section) is None:
            findings.append(warning('profile_missing_required_section',
                                    f"expected section '{section}' is missing"))
    for section in profile.deprecated_sections:
        if root.find(section) is not None:
            findings.append(warning('profile_deprecated_section_present',
                                    f"deprecated section '{section}' is present"))
    rules = rules_of(root)
    for idx, rule in enumerate(rules):
        for name in profile.rule_required_fields:
            if not text_of(rule, name):
                findings.append(warning('profile_rule_missing_required_field',
                                        f"filter rule #{idx} is missing required field '{name}'"))
    key = profile.firewall_order_key
    if key and any(rule.find(key) is not None for rule in rules):
        seen = set()
        for idx, rule in enumerate(rules):
            if rule.find(key) is None:
                findings.append(warning('profile_rule_missing_order_key',
                                        f"filter rule #{idx} is missing order key '{key}'"))
                continue
            value = text_of(rule, key)
            if not value:
                findings.append(warning('profile_rule_missing_order_key',
                                        f"filter rule #{idx} has empty order key '{key}'"))
            elif value in seen:
                findings.append(warning('profile_rule_duplicate_order_key',
                                        f"duplicate firewall order key '{value}'"))
            seen.add(value)
    gateways = root.find('gateways')
    for idx, gw in enumerate(gateways if gateways is not None else []):
        if not any(gw.find(name) is not None for name in profile.gateway_required_fields):
            continue
        for name in profile.gateway_required_fields:
            if not text_of(gw, name):
                findings.append(warning('profile_gateway_missing_required_field',
                                        f"gateway #{idx} is missing required field '{name}'"))
    routes = root.find('staticroutes')
    for idx, route in enumerate(routes if routes is not None else []):
        for name in profile.route_required_fields:
            if not text_of(route, name):
                findings.append(warning('profile_route_missing_required_field',
                                        f"static route #{idx} is missing required field '{name}'"))
        any_fields = profile.route_required_any_fields
        if any_fields and not any(text_of(route, name) for name in any_fields):
            findings.append(warning(
                'profile_route_missing_any_required_field',
                f"static route #{idx} is missing one of [{', '.join(any_fields)}]"))
    bridges = root.find('bridges')
    if profile.bridge_require_members and bridges is not None:
        for idx, bridged in enumerate(bridges.findall('bridged')):
            if not text_of(bridged, 'members') and not text_of(bridged, 'bridgeif'):
                findings.append(warning('profile_bridge_missing_members',
                                        f"bridge #{idx} has no members according to profile"))
    return findings


PRODUCERS = [
    platform_findings,
    required_section_findings,
    interface_findings,
    bridge_findings,
    nat_findings,
    rule_reference_findings,
    rule_duplicate_findings,
    wireguard_findings,
    dhcp_findings,
]


def plugin_findings(scan):
    findings = [warning('unsupported_plugin', f"unsupported plugin detected: {plugin}")
                for plugin in scan.unsupported_plugins]
    findings.extend(warning('target_plugin_compat',
                            f"plugin not marked compatible with target: {plugin}")
                    for plugin in scan.missing_target_compat)
    return findings


@dataclass
class VerifyReport:
    platform: str
    version: str
    target_platform: str | None
    profiles_source: str | None
    errors: int
    warnings: int
    issues: list


def build_verify_report(root, target=None, target_version=None, profiles_dir=None,
                        mappings_dir=None):
    platform = detect_flavor(root)
    version = target_version or detect_version(root).value
    scan = build_scan_report(root, target, mappings_dir=mappings_dir)
    profile, profiles_source = load_profile(target or platform, version, profiles_dir)

    issues = []
    for producer in PRODUCERS:
        issues.extend(producer(root))
    issues.extend(plugin_findings(scan))
    if profile is not None:
        issues.extend(profile_findings(root, profile))

    return VerifyReport(
        platform=platform,
        version=version,
        target_platform=target,
        profiles_source=profiles_source,
        errors=sum(1 for i in issues if i.severity == ERROR),
        warnings=sum(1 for i in issues if i.severity == WARNING),
        issues=issues,
    )


def render_verify_text(report, verbose=False):
    lines = [f"verify platform={report.platform} version={report.version} "
             f"target={report.target_platform or 'none'}"]
    if verbose:
        lines.append(f"Using profiles: {report.profiles_source or 'none'}")
    lines.append(f"result errors={report.errors} warnings={report.warnings}")
    lines.append('issues')
    if not report.issues:
        lines.append('- none')
    lines.extend(f"- [{i.severity}] {i.code}: {i.message}" for i in report.issues)
    return '\n'.join(lines)


def render_verify_json(report):
    return json.dumps(dataclasses.asdict(report), indent=2)
