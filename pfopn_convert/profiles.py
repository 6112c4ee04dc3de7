# SPDX-License-Identifier: MIT

"""Expected-layout profiles per platform and version, read from TOML."""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger(__name__)

PROFILES_DIR = Path(__file__).resolve().parent / 'profiles'


@dataclass
class Profile:
    required_sections: list = field(default_factory=list)
    rule_required_fields: list = field(default_factory=list)
    firewall_order_key: str | None = None
    gateway_required_fields: list = field(default_factory=list)
    route_required_fields: list = field(default_factory=list)
    route_required_any_fields: list = field(default_factory=list)
    bridge_require_members: bool = False
    deprecated_sections: list = field(default_factory=list)


def parse_profile(raw):
    data = tomllib.loads(raw)
    known = Profile.__dataclass_fields__
    return Profile(**{k: v for k, v in data.items() if k in known})


def candidate_names(version):
    """Profile file names to try, most specific first."""
    names = []
    version = (version or '').strip()
    if version:
        names.append(f"{version}.toml")
        major, sep, _ = version.partition('.')
        if sep:
            names.append(f"{major}.toml")
    names.append('default.toml')
    return names


def _embedded(platform, name):
    path = PROFILES_DIR / platform / name
    if not path.is_file():
        return None
    return parse_profile(path.read_text(encoding='utf-8'))


def _from_file(path):
    with open(path, 'rb') as file:
        return parse_profile(file.read().decode('utf-8'))


def load_profile(platform, version, profiles_dir=None):
    """Return (profile, source) for the first candidate found, or (None, None)."""
    for name in candidate_names(version):
        if profiles_dir is not None:
            path = os.path.join(profiles_dir, platform, name)
            if os.path.isfile(path):
                try:
                    return _from_file(path), f"file:{path}"
                except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError, TypeError) as e:
                    log.warning("cannot read profile %s (%s); trying embedded profiles", path, e)
        profile = _embedded(platform, name)
        if profile is not None:
            return profile, 'embedded'
    return None, None
