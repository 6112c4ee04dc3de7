# SPDX-License-Identifier: MIT

"""DHCP backend policy, Kea migration driver and output enforcement (pass C)."""

import logging

from ..backend import ISC, KEA, KEA_SERVICES, LEGACY_SECTIONS, MIXED, detect_dhcp_backend
from ..backend import has_legacy_dhcp, opnsense_kea_enabled
from ..detect import OPNSENSE
from ..errors import BackendError
from ..models import ALLOW_LEGACY, ENFORCE_MODERN, PREFER_MODERN, WARN
from ..xmltree import child_at, ensure_path, remove_children, retag_copy, set_text, upsert_child
from .kea import migrate_isc_to_kea

log = logging.getLogger(__name__)

MODERN = 'modern'
LEGACY = 'legacy'


def resolve_backend(policy, source, baseline, target):
    """Effective backend: 'modern'/'legacy' for OPNsense, 'kea'/'isc' for pfSense."""
    if target == OPNSENSE:
        if policy == ENFORCE_MODERN:
            return MODERN
        if policy == ALLOW_LEGACY:
            return LEGACY
        return MODERN if opnsense_kea_enabled(baseline, ('dhcp4', 'dhcp6')) else LEGACY
    if policy == ENFORCE_MODERN:
        return KEA
    if policy == ALLOW_LEGACY:
        return ISC
    source_mode, _ = detect_dhcp_backend(source)
    if source_mode in (KEA, MIXED):
        return KEA
    if source_mode == ISC:
        return ISC
    baseline_mode, _ = detect_dhcp_backend(baseline)
    return KEA if baseline_mode in (KEA, MIXED) else ISC


def disable_opnsense_kea(root):
    kea = child_at(root, 'OPNsense', 'Kea')
    if kea is None:
        return
    for family in ('dhcp4', 'dhcp6'):
        node = kea.find(family)
        if node is not None:
            set_text(ensure_path(node, 'general'), 'enabled', '0')


def seed_pfsense_kea(out, source):
    seed = source.find('kea')
    if seed is None:
        seed = child_at(source, 'OPNsense', 'Kea')
    if seed is not None:
        upsert_child(out, retag_copy(seed, 'kea'))
    elif out.find('kea') is None:
        ensure_path(out, 'kea')


def enforce_output_backend(out, source, backend, target, preserve_v6=False):
    if target == OPNSENSE:
        if backend == MODERN:
            remove_children(out, 'dhcpd')
            if not preserve_v6:
                remove_children(out, 'dhcpdv6')
                remove_children(out, 'dhcpd6')
            ensure_path(out, 'OPNsense', 'Kea')
        else:
            disable_opnsense_kea(out)
        return
    if backend == KEA:
        set_text(out, 'dhcpbackend', 'kea')
        seed_pfsense_kea(out, source)
        for tag in LEGACY_SECTIONS:
            remove_children(out, tag)
    else:
        set_text(out, 'dhcpbackend', 'isc')
        remove_children(out, 'kea')


def apply(out, source, baseline, run):
    policy = run.options.backend_policy
    backend = resolve_backend(policy, source, baseline, run.target)
    preserve_v6 = False
    if run.target == OPNSENSE and backend == MODERN:
        errors_before = run.has_errors()
        stats = migrate_isc_to_kea(out, source, run)
        if run.has_errors() and not errors_before and policy == PREFER_MODERN:
            log.warning("Kea migration reported errors; falling back to the legacy backend")
            run.note(WARN, 'kea_fallback_legacy',
                     "Kea migration skipped due to errors; falling back to legacy DHCP backend")
            backend = LEGACY
        else:
            preserve_v6 = bool(stats.v6.preserved_ifaces)
            run.preserved_v6_ifaces = list(stats.v6.preserved_ifaces)
        run.kea_stats = stats
    enforce_output_backend(out, source, backend, run.target, preserve_v6)
    run.backend = backend

    source_mode, _ = detect_dhcp_backend(source)
    if backend in (LEGACY, ISC) and source_mode == KEA and not has_legacy_dhcp(source):
        platform = 'OPNsense' if run.target == OPNSENSE else 'pfSense'
        raise BackendError(
            f"cannot convert Kea-only source to {platform} ISC without source legacy DHCP data; "
            "use --backend kea or provide ISC-backed source")


def _disable_tree(node):
    for el in node.iter():
        if el.tag in ('enabled', 'enable'):
            el.text = '0'
        elif el.tag == 'disabled':
            el.text = '1'


def disable_all(out, source, baseline, run):
    """Turn off every DHCP server in the output when asked to."""
    if not run.options.disable_dhcp:
        return
    for tag in LEGACY_SECTIONS:
        container = out.find(tag)
        if container is None:
            continue
        for iface in container:
            set_text(iface, 'enable', '0')
            set_text(iface, 'enabled', '0')
            set_text(iface, 'disabled', '1')
    kea = child_at(out, 'OPNsense', 'Kea')
    if kea is not None:
        for svc in KEA_SERVICES:
            node = kea.find(svc)
            if node is not None:
                set_text(ensure_path(node, 'general'), 'enabled', '0')
        _disable_tree(kea)
    for tag in ('kea', 'Kea'):
        node = out.find(tag)
        if node is not None:
            _disable_tree(node)
    log.debug("disabled DHCP services in output")
