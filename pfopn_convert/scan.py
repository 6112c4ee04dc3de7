# SPDX-License-Identifier: MIT

"""Migration readiness scan of a single configuration."""

import dataclasses
import json
from dataclasses import dataclass

from .backend import detect_dhcp_backend
from .detect import OPNSENSE, PFSENSE, detect_flavor, detect_version
from .plugins import (detect_plugins, known_plugins_present, load_plugin_matrix,
                      missing_target_compat, unsupported_plugins)
from .xmltree import child_at, text_of

SUPPORTED_SECTIONS = {
    PFSENSE: frozenset((
        'system', 'interfaces', 'filter', 'nat', 'aliases', 'openvpn', 'ipsec', 'dhcpbackend',
        'dhcpd', 'dhcpdv6', 'dhcpd6', 'dhcrelay', 'dhcp6relay', 'cert', 'ca', 'installedpackages',
        'tailscale', 'tailscaleauth', 'ppps', 'ovpnserver', 'vlans', 'virtualip', 'wireguard',
        'ifgroups', 'gateways', 'staticroutes',
    )),
    OPNSENSE: frozenset((
        'system', 'interfaces', 'filter', 'nat', 'openvpn', 'ipsec', 'dhcpd', 'dhcpdv6', 'dhcpd6',
        'dhcrelay', 'dhcp6relay', 'cert', 'ca', 'OPNsense', 'dnsmasq', 'wireguard', 'tailscale',
        'ifgroups', 'staticroutes', 'ppps', 'ovpnserver', 'vlans', 'virtualip',
    )),
}


@dataclass
class ScanReport:
    platform: str
    version: object
    target_version: str | None
    dhcp_backend: str
    backend_reason: str
    mappings_source: str
    target_platform: str | None
    top_level_sections: list
    supported_sections: list
    review_sections: list
    known_plugins_present: list
    unsupported_plugins: list
    missing_target_compat: list
    recommendations: list


def has_parseable_bridges(root):
    bridges = root.find('bridges')
    if bridges is None:
        return False
    return any(text_of(b, 'members') or text_of(b, 'bridgeif') for b in bridges.findall('bridged'))


def _derived_sections(root, platform, existing):
    derived = []
    if (platform == OPNSENSE and 'gateways' not in existing
            and child_at(root, 'OPNsense', 'Gateways') is not None):
        derived.append('gateways')
    if 'bridges' not in existing and has_parseable_bridges(root):
        derived.append('bridges')
    return derived


def _needs_review(root, section, supported):
    if section in supported:
        return False
    if section.lower() == 'gateways':
        return False
    if section.lower() == 'bridges' and has_parseable_bridges(root):
        return False
    return True


def build_scan_report(root, target=None, target_version=None, mappings_dir=None):
    platform = detect_flavor(root)
    backend_mode, backend_reason = detect_dhcp_backend(root)
    top_level = sorted({child.tag for child in root})
    supported = SUPPORTED_SECTIONS.get(platform, frozenset())
    supported_sections = [s for s in top_level if s in supported]
    supported_sections = sorted(set(supported_sections + _derived_sections(root, platform,
                                                                          supported_sections)))
    review_sections = [s for s in top_level if _needs_review(root, s, supported)]

    matrix, mappings_source = load_plugin_matrix(mappings_dir)
    present = known_plugins_present(root, platform, detect_plugins(root), matrix)
    unsupported = unsupported_plugins(root, platform, matrix)
    incompatible = missing_target_compat(present, platform, target, matrix)

    recommendations = []
    if unsupported:
        recommendations.append(
            "unsupported plugins detected; expect manual migration for those plugin configs")
    if review_sections:
        recommendations.append(
            "some top-level sections are not in the current supported set; review them manually")
    if incompatible:
        recommendations.append(
            "plugins present in source are not marked compatible with selected target")
    if not recommendations:
        recommendations.append("no immediate blockers detected; run diff/convert for full validation")

    return ScanReport(
        platform=platform,
        version=detect_version(root),
        target_version=target_version,
        dhcp_backend=backend_mode,
        backend_reason=backend_reason,
        mappings_source=mappings_source,
        target_platform=target,
        top_level_sections=top_level,
        supported_sections=supported_sections,
        review_sections=review_sections,
        known_plugins_present=present,
        unsupported_plugins=unsupported,
        missing_target_compat=incompatible,
        recommendations=recommendations,
    )


def _append_list(lines, items):
    if not items:
        lines.append('- none')
    lines.extend(f"- {item}" for item in items)


def render_scan_text(report, verbose=False):
    version = report.version
    lines = [
        f"scan platform={report.platform} version={version.value} "
        f"version_source={version.source} version_confidence={version.confidence}",
        f"backend mode={report.dhcp_backend} reason={report.backend_reason}",
    ]
    if verbose:
        lines.append(f"Using mappings: {report.mappings_source}")
    if report.target_platform:
        lines.append(f"target_platform={report.target_platform}")
    if report.target_version:
        lines.append(f"target_version={report.target_version}")
    sections = [
        ('supported_sections', report.supported_sections),
        ('review_sections', report.review_sections),
        ('known_plugins_present', report.known_plugins_present),
        ('unsupported_plugins', report.unsupported_plugins),
    ]
    if report.target_platform:
        sections.append(('missing_target_compat', report.missing_target_compat))
    sections.append(('recommendations', report.recommendations))
    for title, items in sections:
        lines.append(title)
        _append_list(lines, items)
    return '\n'.join(lines)


def render_scan_json(report):
    return json.dumps(dataclasses.asdict(report), indent=2)
