# SPDX-License-Identifier: MIT

"""Conversion pipeline: an ordered list of passes over a clone of the baseline."""

import logging

from .detect import OPNSENSE, PLATFORMS, UNKNOWN, detect_flavor
from .errors import BaselineError, PlatformError
from .models import ConversionResult, PipelineRun
from .passes import (assignments, dependencies, dhcp_backend, graft, identifiers, ifgroups,
                     interfaces, ipsec, lan_ip, path_mapped, preflight, prune, relay,
                     section_sync, vlans)
from .path_guard import ensure_output_not_same
from .scan import build_scan_report
from .xmltree import child_at, clone, new_root, parse_file, write_file

log = logging.getLogger(__name__)

PASSES = [
    graft.apply,
    section_sync.apply,
    dependencies.apply,
    interfaces.apply_settings,
    interfaces.apply_presence,
    path_mapped.apply,
    dhcp_backend.apply,
    relay.apply,
    ipsec.apply,
    identifiers.apply,
    identifiers.apply_routes,
    section_sync.apply_ppps,
    prune.apply,
    prune.apply_foreign_rules,
    assignments.apply,
    assignments.apply_logical_refs,
    interfaces.apply_device_refs,
    vlans.apply,
    ifgroups.apply,
    lan_ip.apply,
    dhcp_backend.disable_all,
]


def run_pipeline(source, baseline, options):
    """Convert source into the target flavor, starting from baseline.

    The interface preflight runs before the output exists; source and baseline
    are never mutated.
    """
    run = PipelineRun(options)
    preflight.check_interfaces(source, baseline)
    out = clone(baseline)
    for step in PASSES:
        log.debug("pass %s.%s", step.__module__.rsplit('.', 1)[-1], step.__name__)
        step(out, source, baseline, run)
    return ConversionResult(
        output=out,
        source_flavor=detect_flavor(source),
        target=run.target,
        backend=run.backend,
        notes=list(run.notes),
        removed_sections=list(run.removed_sections),
        renames=dict(run.renames),
        kea_stats=run.kea_stats,
    )


def resolve_source_platform(requested, root):
    if requested in PLATFORMS:
        return requested
    flavor = detect_flavor(root)
    if flavor == UNKNOWN:
        raise PlatformError("unable to auto-detect platform from root tag")
    return flavor


def resolve_target_platform(requested):
    if requested not in PLATFORMS:
        raise PlatformError("--to cannot be auto; specify pfsense or opnsense")
    return requested


def load_baseline(target, target_file=None, minimal_template=False):
    if target_file is not None:
        baseline = parse_file(target_file)
        flavor = detect_flavor(baseline)
        if flavor == UNKNOWN:
            raise PlatformError("unable to auto-detect platform from root tag")
        if flavor != target:
            raise PlatformError(
                f"target-file platform ({flavor}) does not match --to ({target}); "
                "provide a matching baseline file")
        return baseline
    if minimal_template:
        return new_root(target)
    raise BaselineError(
        "missing --target-file; provide a destination baseline config or use "
        "--minimal-template for dev/testing")


def convert_file(input_path, output_path, options, source_platform='auto',
                 target_file=None, minimal_template=False, mappings_dir=None):
    """Run a full conversion from file to file and return the result.

    Plugins in the source that the matrix does not mark compatible with the
    target are listed in result.plugin_gaps.
    """
    inputs = [input_path] if target_file is None else [input_path, target_file]
    ensure_output_not_same(output_path, inputs)
    source = parse_file(input_path)
    source_flavor = resolve_source_platform(source_platform, source)
    target = resolve_target_platform(options.target)
    if source_flavor == target:
        raise PlatformError(
            f"from and to are the same platform ({source_flavor}); "
            "conversion requires different platforms")
    baseline = load_baseline(target, target_file, minimal_template)
    result = run_pipeline(source, baseline, options)
    result.source_flavor = source_flavor
    scan = build_scan_report(source, target, target_version=options.target_version,
                             mappings_dir=mappings_dir)
    result.plugin_gaps = scan.missing_target_compat
    write_file(result.output, output_path)
    log.info("wrote %s configuration to %s", target, output_path)
    return result


def summarize(root):
    """Counts of the sections users check first after a conversion."""
    def count(node, *tags):
        return 0 if node is None else sum(1 for c in node if not tags or c.tag in tags)

    nested_aliases = child_at(root, 'OPNsense', 'Firewall', 'Alias', 'aliases')
    opn = root.find('OPNsense')
    installed = root.find('installedpackages')
    vpns = count(root.find('openvpn'), 'openvpn-server', 'openvpn-client')
    vpns += sum(1 for present in (
        root.find('ipsec') is not None,
        opn is not None and opn.find('IPsec') is not None,
        root.find('wireguard') is not None,
        opn is not None and opn.find('wireguard') is not None,
        root.find('tailscale') is not None,
        root.find('tailscaleauth') is not None,
        installed is not None and installed.find('tailscale') is not None,
        opn is not None and opn.find('tailscale') is not None,
    ) if present)
    return {
        'interfaces': count(root.find('interfaces')),
        'bridges': count(root.find('bridges'), 'bridged'),
        'aliases': max(count(root.find('aliases'), 'alias'), count(nested_aliases, 'alias')),
        'rules': count(root.find('filter'), 'rule'),
        'routes': count(root.find('staticroutes')),
        'vpns': vpns,
    }


def render_summary(counts):
    return 'convert_summary ' + ' '.join(f"{k}={v}" for k, v in counts.items())


def _family_status(stats, fallback, preserved=()):
    if preserved:
        return f"isc-legacy ({', '.join(preserved)})"
    if fallback:
        return 'isc-fallback'
    if stats.subnets or stats.reservations or stats.options:
        def plural(n, word):
            return f"{n} {word}{'' if n == 1 else 's'}"
        return (f"kea ({plural(stats.subnets, 'subnet')}, "
                f"{plural(stats.reservations, 'reservation')}, "
                f"{plural(stats.options, 'option set')})")
    return 'kea (no changes)'


def render_dhcp_summary(result):
    """Lines describing a Kea migration, or an empty list when none happened."""
    stats = result.kea_stats
    if stats is None or result.target != OPNSENSE:
        return []
    v4, v6 = stats.v4, stats.v6
    active = any((v4.subnets, v4.reservations, v4.options, v6.subnets, v6.reservations,
                  v6.options, v6.preserved_ifaces))
    if not active:
        return []
    fallback = result.backend != dhcp_backend.MODERN
    preserved = v6.preserved_ifaces if not fallback else ()
    lines = [f"dhcp migration: v4={_family_status(v4, fallback)} "
             f"v6={_family_status(v6, fallback, preserved)}"]
    if v4.skipped_conflicts or v6.skipped_conflicts:
        lines.append(f"dhcp migration: skipped_conflicts v4={v4.skipped_conflicts} "
                     f"v6={v6.skipped_conflicts}")
    return lines
