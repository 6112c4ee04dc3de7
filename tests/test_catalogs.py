# SPDX-License-Identifier: MIT

"""Embedded and on-disk plugin matrices and layout profiles."""

import logging

import pytest

from pfopn_convert import plugins, profiles
from pfopn_convert.detect import OPNSENSE, PFSENSE
from pfopn_convert.xmltree import parse_bytes


class TestPluginMatrix:

    @pytest.fixture
    def matrix(self):
        return plugins.default_plugin_matrix()

    def test_lookups(self, matrix):
        assert matrix.find_by_id('pfblockerng').status == plugins.UNSUPPORTED
        assert matrix.find_by_id('nope') is None
        assert matrix.find_by_marker(PFSENSE, ' pfBlockerNG-devel ').id == 'pfblockerng'
        assert matrix.find_by_marker(OPNSENSE, 'os-kea').id == 'kea-dhcp'
        assert matrix.find_by_marker('unknown', 'kea') is None

    def test_target_compatibility(self, matrix):
        assert matrix.is_target_compatible('wireguard', 'OPNsense')
        assert not matrix.is_target_compatible('system_patches', 'opnsense')
        assert not matrix.is_target_compatible('nope', 'pfsense')

    def test_invalid_status(self):
        raw = '[[plugin]]\nid = "x"\nstatus = "maybe"\n'
        with pytest.raises(ValueError, match="invalid status 'maybe'"):
            plugins.parse_plugin_matrix(raw, 'test')

    def test_override_file(self, tmp_path):
        (tmp_path / 'plugins.toml').write_text(
            '[[plugin]]\nid = "acme"\nstatus = "partial"\npfsense_markers = ["acme"]\n')
        matrix, source = plugins.load_plugin_matrix(str(tmp_path))
        assert source == f"file:{tmp_path / 'plugins.toml'}"
        assert [e.id for e in matrix.entries] == ['acme']

    def test_broken_override_falls_back(self, tmp_path, caplog):
        (tmp_path / 'plugins.toml').write_text('[[plugin]\n')
        with caplog.at_level(logging.WARNING, logger='pfopn_convert.plugins'):
            matrix, source = plugins.load_plugin_matrix(str(tmp_path))
        assert source == 'embedded'
        assert matrix.find_by_id('wireguard') is not None
        assert 'using embedded defaults' in caplog.text

    def test_missing_override_falls_back(self, tmp_path):
        _, source = plugins.load_plugin_matrix(str(tmp_path / 'absent'))
        assert source == 'embedded'


class TestPluginDetection:

    def states(self, data):
        return {s.plugin: s for s in plugins.detect_plugins(parse_bytes(data))}

    def test_pfsense_declared_and_configured(self):
        states = self.states(b"<pfsense><installedpackages><package><name>WireGuard</name>"
                             b"</package></installedpackages>"
                             b"<wireguard><config><enabled>yes</enabled></config></wireguard>"
                             b"</pfsense>")
        wg = states['wireguard']
        assert (wg.declared, wg.configured, wg.enabled) == (True, True, True)
        assert wg.evidence == ['installedpackages=wireguard', 'top_section=wireguard']

    def test_opnsense_nested_paths(self):
        states = self.states(b"<opnsense><system><firmware><plugins>os-wireguard,os-theme"
                             b"</plugins></firmware></system><OPNsense><wireguard><general>"
                             b"<enabled>0</enabled></general></wireguard></OPNsense></opnsense>")
        wg = states['wireguard']
        assert (wg.declared, wg.configured, wg.enabled) == (True, True, False)
        assert wg.evidence == ['firmware.plugins=os-wireguard', 'path=opnsense.OPNsense.wireguard']

    def test_unknown_platform(self):
        states = self.states(b"<config/>")
        assert all(s.evidence == ['unknown platform'] for s in states.values())

    def test_opnsense_plugin_list(self):
        root = parse_bytes(b"<opnsense><system><firmware><plugins>os-a, os-b;os-c"
                           b"</plugins></firmware></system></opnsense>")
        assert plugins.opnsense_plugins(root) == ['os-a', 'os-b', 'os-c']

    def test_same_platform_has_no_gaps(self):
        matrix = plugins.default_plugin_matrix()
        assert plugins.missing_target_compat(['pfblockerng'], PFSENSE, PFSENSE, matrix) == []
        assert plugins.missing_target_compat(['pfblockerng'], PFSENSE, OPNSENSE, matrix) == [
            'pfblockerng']


class TestProfiles:

    @pytest.mark.parametrize('version, expected', [
        ('24.7', ['24.7.toml', '24.toml', 'default.toml']),
        ('99', ['99.toml', 'default.toml']),
        ('', ['default.toml']),
        (None, ['default.toml']),
    ])
    def test_candidate_names(self, version, expected):
        assert profiles.candidate_names(version) == expected

    def test_embedded_versioned(self):
        profile, source = profiles.load_profile('pfsense', '99.1')
        assert source == 'embedded'
        assert profile.deprecated_sections == ['future_section_99']
        assert profile.firewall_order_key == 'tracker'

    def test_embedded_default(self):
        profile, _ = profiles.load_profile('opnsense', '24.7')
        assert profile.deprecated_sections == []
        assert profile.firewall_order_key is None

    def test_file_override(self, tmp_path):
        (tmp_path / 'pfsense').mkdir()
        path = tmp_path / 'pfsense' / '24.toml'
        path.write_text('required_sections = ["system"]\nunrelated = 1\n')
        profile, source = profiles.load_profile('pfsense', '24.03', str(tmp_path))
        assert source == f"file:{path}"
        assert profile.required_sections == ['system']
        assert profile.rule_required_fields == []

    def test_broken_override_falls_back(self, tmp_path):
        (tmp_path / 'pfsense').mkdir()
        (tmp_path / 'pfsense' / 'default.toml').write_text('required_sections = [\n')
        profile, source = profiles.load_profile('pfsense', '', str(tmp_path))
        assert source == 'embedded'
        assert 'nat' in profile.required_sections

    def test_unknown_platform(self):
        assert profiles.load_profile('unknown', '1.0') == (None, None)
