# SPDX-License-Identifier: MIT

"""Gated pre-migration checklist built from the verify and scan reports."""

import dataclasses
import json
from dataclasses import dataclass

from .pipeline import summarize
from .scan import build_scan_report
from .verify import build_verify_report


@dataclass
class CheckItem:
    id: str
    passed: bool
    detail: str


@dataclass
class MigrateCheckReport:
    platform: str
    target_platform: str
    passed: bool
    errors: int
    warnings: int
    summary: dict
    items: list
    verify: object
    scan: object


def _has_any(report, *codes):
    return any(issue.code in codes for issue in report.issues)


def build_migrate_check_report(root, target, target_version=None, profiles_dir=None,
                               mappings_dir=None):
    verify = build_verify_report(root, target, target_version, profiles_dir, mappings_dir)
    scan = build_scan_report(root, target, target_version, mappings_dir)
    profile_warnings = sum(1 for i in verify.issues if i.code.startswith('profile_'))
    items = [
        CheckItem('platform_target_match', scan.platform == target,
                  f"detected={scan.platform} target={target}"),
        CheckItem('required_sections', not _has_any(verify, 'missing_required_section'),
                  "system/interfaces baseline present"),
        CheckItem('interface_integrity',
                  not _has_any(verify, 'duplicate_interface_assignment',
                               'missing_interface_reference', 'missing_gateway_interface',
                               'missing_route_interface'),
                  "interface refs and assignments are valid"),
        CheckItem('bridge_integrity',
                  not _has_any(verify, 'empty_bridge_members', 'missing_bridge_member'),
                  "bridge members are valid"),
        CheckItem('rule_reference_integrity',
                  not _has_any(verify, 'missing_alias_reference', 'missing_gateway_reference',
                               'missing_route_gateway', 'missing_schedule_reference'),
                  "rule/route references resolve"),
        CheckItem('nat_integrity',
                  not _has_any(verify, 'nat_missing_interface', 'nat_missing_associated_rule',
                               'nat_invalid_outbound_mode'),
                  "nat mode/bindings/associations are valid"),
        CheckItem('dhcp_integrity', not _has_any(verify, 'dhcp_backend_inconsistent'),
                  "dhcp backend policy and section layout are consistent"),
        CheckItem('plugin_compatibility',
                  not scan.unsupported_plugins and not scan.missing_target_compat,
                  "no unsupported or target-incompatible plugins"),
        CheckItem('profile_baseline', True, f"advisory profile warnings={profile_warnings}"),
    ]
    return MigrateCheckReport(
        platform=scan.platform,
        target_platform=target,
        passed=verify.errors == 0 and all(item.passed for item in items),
        errors=verify.errors,
        warnings=verify.warnings,
        summary=summarize(root),
        items=items,
        verify=verify,
        scan=scan,
    )


def render_migrate_check_text(report, verbose=False):
    lines = [f"migrate_check pass={str(report.passed).lower()} platform={report.platform} "
             f"target={report.target_platform} errors={report.errors} warnings={report.warnings}"]
    if verbose:
        lines.append(f"Using profiles: {report.verify.profiles_source or 'none'}")
        lines.append(f"Using mappings: {report.scan.mappings_source}")
    lines.append('counts ' + ' '.join(f"{k}={v}" for k, v in report.summary.items()))
    lines.append('items')
    for item in report.items:
        lines.append(f"- [{'PASS' if item.passed else 'FAIL'}] {item.id}: {item.detail}")
    return '\n'.join(lines)


def render_migrate_check_json(report):
    return json.dumps(dataclasses.asdict(report), indent=2)
