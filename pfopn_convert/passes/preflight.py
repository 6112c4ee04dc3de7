# SPDX-License-Identifier: MIT

"""Interface preflight gate run before the output tree is touched."""

from ..errors import PreflightFailed
from ..xmltree import norm_text

VIRTUAL_PREFIXES = ('vlan', 'bridge', 'ovpns', 'ovpnc', 'openvpn', 'wg', 'tun_wg', 'gif',
                    'gre', 'lagg', 'tap', 'tun', 'enc', 'ipsec', 'lo')


def collect_interfaces(root):
    """Map logical interface name to (descr, if) for the interfaces section."""
    interfaces = root.find('interfaces')
    if interfaces is None:
        return {}
    return {iface.tag: (norm_text(iface.findtext('descr')), norm_text(iface.findtext('if')))
            for iface in interfaces}


def is_virtual_if_name(if_name):
    lower = if_name.strip().lower()
    if '.' in lower or 'wg' in lower:
        return True
    return lower.startswith(VIRTUAL_PREFIXES)


def _describe(name, descr, if_name):
    parts = []
    if descr:
        parts.append(f"descr={descr}")
    if if_name:
        parts.append(f"if={if_name}")
    return f"{name} ({' '.join(parts)})" if parts else name


def check_interfaces(source, baseline):
    source_map = collect_interfaces(source)
    target_map = collect_interfaces(baseline)
    if not source_map or not target_map:
        raise PreflightFailed(
            f"interface preflight failed: source_interfaces={len(source_map)} "
            f"target_interfaces={len(target_map)}; provide --target-file with interfaces")
    missing = []
    for name in sorted(source_map):
        if name in target_map:
            continue
        descr, if_name = source_map[name]
        if if_name and is_virtual_if_name(if_name):
            continue
        missing.append(_describe(name, descr, if_name))
    if missing:
        raise PreflightFailed(
            f"interface preflight failed: missing target interfaces: {', '.join(missing)}")


