# SPDX-License-Identifier: MIT

"""Command-line entry point: convert, diff, verify, migrate-check, inspect and scan."""

import argparse
import logging
import sys

from .detect import OPNSENSE, PFSENSE
from .diff import DiffOptions, diff, format_json, format_summary, format_text
from .errors import ConvertError
from .inspector import render_detection, render_plugins, render_tree
from .migrate_check import (build_migrate_check_report, render_migrate_check_json,
                            render_migrate_check_text)
from .models import ALLOW_LEGACY, ENFORCE_MODERN, PREFER_MODERN, ConvertOptions
from .pipeline import convert_file, render_dhcp_summary, render_summary, summarize
from .scan import build_scan_report, render_scan_json, render_scan_text
from .verify import build_verify_report, render_verify_json, render_verify_text
from .xmltree import parse_file

log = logging.getLogger(__name__)

BACKEND_FLAGS = {'auto': PREFER_MODERN, 'kea': ENFORCE_MODERN, 'isc': ALLOW_LEGACY}
TARGETS = (PFSENSE, OPNSENSE)


class CommandFailed(Exception):
    """A command ran but its result is a failure."""


def _key_field(value):
    tag, sep, field = value.partition('=')
    if not sep or not tag or not field:
        raise argparse.ArgumentTypeError(f"expected tag=field, got {value!r}")
    return tag, field


def build_parser():
    parser = argparse.ArgumentParser(
        prog='pfopn-convert',
        description="Convert, diff and verify pfSense and OPNsense configuration files.")
    parser.add_argument('-v', '--verbose', action='store_true', help="debug logging")
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('convert', help="convert a configuration to the other platform")
    p.add_argument('input')
    p.add_argument('-o', '--output', required=True)
    p.add_argument('--from', dest='source_platform', choices=TARGETS + ('auto',), default='auto')
    p.add_argument('--to', required=True, choices=TARGETS + ('auto',))
    p.add_argument('--target-file')
    p.add_argument('--minimal-template', action='store_true')
    p.add_argument('--target-version')
    p.add_argument('--mappings-dir')
    p.add_argument('--backend', choices=tuple(BACKEND_FLAGS), default='auto')
    p.add_argument('--disable-dhcp', action='store_true')
    p.add_argument('--lan-ip', help="move the LAN interface to this IPv4 address")
    p.add_argument('--no-transfer-users', action='store_true')
    p.add_argument('--no-transfer-certs', action='store_true')
    p.add_argument('--no-transfer-cas', action='store_true')
    p.add_argument('--verbose', action='store_true', dest='cmd_verbose')
    p.set_defaults(func=cmd_convert)

    p = sub.add_parser('diff', help="compare two configurations")
    p.add_argument('left')
    p.add_argument('right')
    p.add_argument('--summary', action='store_true')
    p.add_argument('--format', choices=('text', 'json'), default='text')
    p.add_argument('--ignore-path', action='append', default=[])
    p.add_argument('--key', action='append', type=_key_field, default=[])
    p.add_argument('--include-identical', action='store_true')
    p.set_defaults(func=cmd_diff)

    p = sub.add_parser('verify', help="check a configuration for broken references")
    p.add_argument('file')
    p.add_argument('--to', choices=TARGETS)
    p.add_argument('--target-version')
    p.add_argument('--profiles-dir')
    p.add_argument('--mappings-dir')
    p.add_argument('--format', choices=('text', 'json'), default='text')
    p.add_argument('--strict', action='store_true')
    p.add_argument('--verbose', action='store_true', dest='cmd_verbose')
    p.set_defaults(func=cmd_verify)

    p = sub.add_parser('migrate-check', help="gated readiness checklist for a target")
    p.add_argument('file')
    p.add_argument('--to', required=True, choices=TARGETS)
    p.add_argument('--target-version')
    p.add_argument('--profiles-dir')
    p.add_argument('--mappings-dir')
    p.add_argument('--format', choices=('text', 'json'), default='text')
    p.add_argument('--strict', action='store_true')
    p.add_argument('--verbose', action='store_true', dest='cmd_verbose')
    p.set_defaults(func=cmd_migrate_check)

    p = sub.add_parser('inspect', help="show the tree and detection details")
    p.add_argument('file')
    p.add_argument('--depth', type=int, default=3)
    p.add_argument('--detect', action='store_true')
    p.add_argument('--plugins', action='store_true')
    p.set_defaults(func=cmd_inspect)

    p = sub.add_parser('scan', help="migration readiness report")
    p.add_argument('file')
    p.add_argument('--to', choices=TARGETS)
    p.add_argument('--target-version')
    p.add_argument('--format', choices=('text', 'json'), default='text')
    p.add_argument('--mappings-dir')
    p.add_argument('--verbose', action='store_true', dest='cmd_verbose')
    p.set_defaults(func=cmd_scan)
    return parser


def cmd_convert(args):
    options = ConvertOptions(
        target=args.to,
        backend_policy=BACKEND_FLAGS[args.backend],
        disable_dhcp=args.disable_dhcp,
        target_version=args.target_version,
        lan_ip=args.lan_ip,
        transfer_users=not args.no_transfer_users,
        transfer_certs=not args.no_transfer_certs,
        transfer_cas=not args.no_transfer_cas,
    )
    result = convert_file(args.input, args.output, options,
                          source_platform=args.source_platform,
                          target_file=args.target_file,
                          minimal_template=args.minimal_template,
                          mappings_dir=args.mappings_dir)
    print(f"converted {result.source_flavor} -> {result.target}: {args.output}")
    print(render_summary(summarize(result.output)))
    for line in render_dhcp_summary(result):
        print(line)
    if result.removed_sections:
        print(f"pruned sections: {', '.join(result.removed_sections)}")
    for old, new in result.renames.items():
        print(f"renamed interface {old} -> {new}")
    for note in result.notes:
        print(f"note [{note.severity}] {note.code}: {note.message}")
    for plugin in result.plugin_gaps:
        print(f"warning: plugin not marked compatible with target: {plugin}", file=sys.stderr)


def cmd_diff(args):
    options = DiffOptions(
        ignore_paths=list(args.ignore_path),
        key_fields=dict(args.key),
        include_identical=args.include_identical,
    )
    entries = diff(parse_file(args.left), parse_file(args.right), options)
    if args.summary:
        print(format_summary(entries))
    elif args.format == 'json':
        print(format_json(entries))
    elif entries:
        print(format_text(entries))


def cmd_verify(args):
    report = build_verify_report(parse_file(args.file), args.to, args.target_version,
                                 args.profiles_dir, args.mappings_dir)
    if args.format == 'json':
        print(render_verify_json(report))
    else:
        print(render_verify_text(report, args.cmd_verbose))
    if report.errors:
        raise CommandFailed(f"verify failed: {report.errors} errors")
    if args.strict and report.warnings:
        raise CommandFailed(f"verify failed in strict mode: {report.warnings} warnings")


def cmd_migrate_check(args):
    report = build_migrate_check_report(parse_file(args.file), args.to, args.target_version,
                                        args.profiles_dir, args.mappings_dir)
    if args.format == 'json':
        print(render_migrate_check_json(report))
    else:
        print(render_migrate_check_text(report, args.cmd_verbose))
    if not report.passed:
        raise CommandFailed("migrate-check failed: one or more required checks did not pass")
    if args.strict and report.warnings:
        raise CommandFailed(f"migrate-check failed in strict mode: {report.warnings} warnings")


def cmd_inspect(args):
    root = parse_file(args.file)
    print(render_tree(root, args.depth))
    if args.detect:
        print(render_detection(root))
    if args.plugins:
        print(render_plugins(root))


def cmd_scan(args):
    report = build_scan_report(parse_file(args.file), args.to, args.target_version,
                               args.mappings_dir)
    if args.format == 'json':
        print(render_scan_json(report))
    else:
        print(render_scan_text(report, args.cmd_verbose))


def main(argv=None):
    args = build_parser().parse_args(argv)
    verbose = args.verbose or getattr(args, 'cmd_verbose', False)
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s', stream=sys.stderr)
    try:
        args.func(args)
    except (ConvertError, CommandFailed, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0
