# SPDX-License-Identifier: MIT

"""Records shared by the conversion pipeline and the reports."""

from dataclasses import dataclass, field

PREFER_MODERN = 'prefer_modern'
ALLOW_LEGACY = 'allow_legacy'
ENFORCE_MODERN = 'enforce_modern'

BACKEND_POLICIES = (PREFER_MODERN, ALLOW_LEGACY, ENFORCE_MODERN)

INFO = 'info'
WARN = 'warn'
WARNING = 'warning'
ERROR = 'error'


@dataclass(frozen=True)
class MigrationNote:
    severity: str
    code: str
    message: str


@dataclass(frozen=True)
class Finding:
    severity: str
    code: str
    message: str


@dataclass
class ConvertOptions:
    target: str
    backend_policy: str = PREFER_MODERN
    disable_dhcp: bool = False
    target_version: str | None = None
    lan_ip: str | None = None
    transfer_users: bool = True
    transfer_certs: bool = True
    transfer_cas: bool = True


@dataclass
class PipelineRun:
    """Mutable state threaded through every pass of one conversion."""

    options: ConvertOptions
    notes: list[MigrationNote] = field(default_factory=list)
    removed_sections: list[str] = field(default_factory=list)
    renames: dict[str, str] = field(default_factory=dict)
    backend: str | None = None
    preserved_v6_ifaces: list[str] = field(default_factory=list)
    kea_stats: object = None

    @property
    def target(self):
        return self.options.target

    def note(self, severity, code, message):
        self.notes.append(MigrationNote(severity, code, message))

    def has_errors(self):
        return any(n.severity == ERROR for n in self.notes)


@dataclass
class ConversionResult:
    output: object
    source_flavor: str
    target: str
    backend: str | None
    notes: list[MigrationNote]
    removed_sections: list[str]
    renames: dict[str, str]
    kea_stats: object = None
    plugin_gaps: list[str] = field(default_factory=list)
