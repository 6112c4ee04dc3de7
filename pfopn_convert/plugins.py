# SPDX-License-Identifier: MIT

"""Plugin compatibility matrix and plugin inventory detection."""

import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from .detect import OPNSENSE, PFSENSE, UNKNOWN, detect_flavor
from .xmltree import is_truthy, text_of

log = logging.getLogger(__name__)

MATRIX_FILE = Path(__file__).resolve().parent / 'mappings' / 'plugins.toml'

SUPPORTED = 'supported'
PARTIAL = 'partial'
UNSUPPORTED = 'unsupported'


@dataclass
class PluginEntry:
    id: str
    status: str
    pfsense_markers: list = field(default_factory=list)
    opnsense_markers: list = field(default_factory=list)
    compatible_targets: list = field(default_factory=list)
    note: str = ''


class PluginMatrix:
    """Lookup table of known plugins by id or by per-platform marker."""

    def __init__(self, entries):
        self.entries = list(entries)

    def find_by_id(self, plugin_id):
        for entry in self.entries:
            if entry.id == plugin_id:
                return entry
        return None

    def find_by_marker(self, platform, marker):
        marker = marker.strip().lower()
        for entry in self.entries:
            if platform == PFSENSE:
                markers = entry.pfsense_markers
            elif platform == OPNSENSE:
                markers = entry.opnsense_markers
            else:
                return None
            if any(m.lower() == marker for m in markers):
                return entry
        return None

    def is_target_compatible(self, plugin_id, target):
        entry = self.find_by_id(plugin_id)
        if entry is None:
            return False
        return any(t.lower() == target.lower() for t in entry.compatible_targets)


def parse_plugin_matrix(raw, name):
    data = tomllib.loads(raw)
    entries = []
    for item in data.get('plugin', []):
        status = str(item.get('status', '')).lower()
        if status not in (SUPPORTED, PARTIAL, UNSUPPORTED):
            raise ValueError(f"{name}: plugin {item.get('id')!r} has invalid status {status!r}")
        entries.append(PluginEntry(
            id=item['id'],
            status=status,
            pfsense_markers=list(item.get('pfsense_markers', [])),
            opnsense_markers=list(item.get('opnsense_markers', [])),
            compatible_targets=list(item.get('compatible_targets', [])),
            note=item.get('note', ''),
        ))
    return PluginMatrix(entries)


def default_plugin_matrix():
    raw = MATRIX_FILE.read_text(encoding='utf-8')
    return parse_plugin_matrix(raw, 'embedded plugin matrix')


def load_plugin_matrix(mappings_dir=None):
    """Return (matrix, source) using <mappings_dir>/plugins.toml when it loads."""
    if mappings_dir is None:
        return default_plugin_matrix(), 'embedded'
    path = os.path.join(mappings_dir, 'plugins.toml')
    try:
        with open(path, 'rb') as file:
            raw = file.read().decode('utf-8')
        return parse_plugin_matrix(raw, path), f"file:{path}"
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError, KeyError, ValueError) as e:
        log.warning("failed to load plugin matrix from %s (%s); using embedded defaults", path, e)
        return default_plugin_matrix(), 'embedded'


# name, pfSense package names, pfSense top sections, OPNsense plugin names, OPNsense sections
PLUGIN_DEFINITIONS = (
    ('wireguard', ('wireguard',), ('wireguard',), ('os-wireguard',), ('Wireguard',)),
    ('tailscale', ('tailscale',), ('tailscale', 'tailscaleauth'), ('os-tailscale',), ('tailscale',)),
    ('openvpn', (), ('openvpn', 'ovpnserver'), ('os-openvpn-client-export',),
     ('OpenVPN', 'OpenVPNExport')),
    ('ipsec', (), ('ipsec',), (), ('IPsec', 'Swanctl')),
    ('kea-dhcp', (), ('kea', 'dhcpbackend'), ('os-kea',), ('Kea',)),
    ('isc-dhcp', (), ('dhcpd', 'dhcpdv6', 'dhcpd6'), ('os-isc-dhcp',),
     ('dhcpd', 'dhcpdv6', 'dhcpd6', 'DHCRelay')),
)


@dataclass
class PluginState:
    plugin: str
    declared: bool
    configured: bool
    enabled: bool
    evidence: list


def pfsense_packages(root):
    installed = root.find('installedpackages')
    if installed is None:
        return []
    return [text_of(p, 'name') for p in installed.findall('package') if text_of(p, 'name')]


def opnsense_plugins(root):
    raw = text_of(root, 'system', 'firmware', 'plugins')
    return [p for p in re.split(r'[,; ]+', raw) if p]


def declared_markers(root, platform):
    if platform == PFSENSE:
        names = pfsense_packages(root)
    elif platform == OPNSENSE:
        names = opnsense_plugins(root)
    else:
        names = []
    return [n.lower() for n in names]


def _nodes_by_tag(root, tag):
    tag = tag.lower()
    return [el for el in root.iter() if el.tag.lower() == tag]


def _paths_by_tag(root, tag):
    tag = tag.lower()
    paths = []

    def walk(node, path):
        if node.tag.lower() == tag:
            paths.append(path)
        for child in node:
            walk(child, f"{path}.{child.tag}")

    walk(root, root.tag)
    return sorted(paths)


def _enabled(root, sections):
    for section in sections:
        for node in _nodes_by_tag(root, section):
            if any(el.tag.lower() == 'enabled' and is_truthy(el.text) for el in node.iter()):
                return True
            if any(el.tag.lower() == 'disable' for el in node.iter()):
                return False
    return False


def detect_plugins(root):
    """Declared, configured and enabled state of each known plugin."""
    platform = detect_flavor(root)
    states = []
    for name, pf_pkgs, pf_sections, opn_pkgs, opn_sections in PLUGIN_DEFINITIONS:
        if platform == UNKNOWN:
            states.append(PluginState(name, False, False, False, ['unknown platform']))
            continue
        evidence = []
        if platform == PFSENSE:
            installed = [p.lower() for p in pfsense_packages(root)]
            packages, sections = pf_pkgs, pf_sections
            label = 'installedpackages'
        else:
            installed = [p.lower() for p in opnsense_plugins(root)]
            packages, sections = opn_pkgs, opn_sections
            label = 'firmware.plugins'
        declared = False
        for package in packages:
            if package.lower() in installed:
                declared = True
                evidence.append(f"{label}={package}")
        configured = False
        for section in sections:
            if platform == PFSENSE:
                if root.find(section) is not None:
                    configured = True
                    evidence.append(f"top_section={section}")
            else:
                paths = _paths_by_tag(root, section)
                if paths:
                    configured = True
                    evidence.extend(f"path={p}" for p in paths[:4])
        states.append(PluginState(name, declared, configured, _enabled(root, sections), evidence))
    return states


def known_plugins_present(root, platform, states, matrix):
    present = {s.plugin for s in states if s.declared or s.configured}
    for marker in declared_markers(root, platform):
        entry = matrix.find_by_marker(platform, marker)
        if entry is not None:
            present.add(entry.id)
    return sorted(present)


def unsupported_plugins(root, platform, matrix):
    found = set()
    for marker in declared_markers(root, platform):
        entry = matrix.find_by_marker(platform, marker)
        if entry is None:
            found.add(marker)
        elif entry.status == UNSUPPORTED:
            found.add(entry.id)
    return sorted(found)


def missing_target_compat(present, source_platform, target, matrix):
    if target is None or source_platform == target:
        return []
    return sorted({p for p in present if not matrix.is_target_compatible(p, target)})
