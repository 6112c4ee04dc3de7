# SPDX-License-Identifier: MIT

"""Platform flavor and version detection."""

from dataclasses import dataclass

from .xmltree import norm_text

PFSENSE = 'pfsense'
OPNSENSE = 'opnsense'
UNKNOWN = 'unknown'

PLATFORMS = (PFSENSE, OPNSENSE)


@dataclass(frozen=True)
class VersionDetection:
    value: str
    source: str
    confidence: str


@dataclass(frozen=True)
class Detection:
    flavor: str
    version: VersionDetection


def detect_flavor(root):
    tag = root.tag.lower()
    return tag if tag in PLATFORMS else UNKNOWN


def detect_version(root):
    """Search root version, system/version, then system/firmware@version."""
    tag = root.tag
    value = norm_text(root.findtext('version'))
    if value:
        return VersionDetection(value, f"{tag}.version", 'high')
    system = root.find('system')
    if system is not None:
        value = norm_text(system.findtext('version'))
        if value:
            return VersionDetection(value, f"{tag}.system.version", 'medium')
        firmware = system.find('firmware')
        if firmware is not None:
            value = norm_text(firmware.get('version'))
            if value:
                return VersionDetection(value, f"{tag}.system.firmware@version", 'low')
    return VersionDetection('unknown', 'not found', 'low')


def detect_config(root):
    return Detection(detect_flavor(root), detect_version(root))
