# SPDX-License-Identifier: MIT

import pytest

from pfopn_convert.errors import BackendError
from pfopn_convert.models import (ALLOW_LEGACY, ENFORCE_MODERN, ERROR, PREFER_MODERN, WARN,
                                  ConvertOptions, PipelineRun)
from pfopn_convert.passes import dhcp_backend
from pfopn_convert.xmltree import child_at, parse_bytes, text_of

KEA_ON = (b"<OPNsense><Kea><dhcp4><general><enabled>1</enabled></general></dhcp4>"
          b"</Kea></OPNsense>")


def _x(data):
    return parse_bytes(data)


def _run(target, policy=PREFER_MODERN, disable_dhcp=False):
    return PipelineRun(ConvertOptions(target=target, backend_policy=policy,
                                      disable_dhcp=disable_dhcp))


class TestResolveBackend:

    @pytest.mark.parametrize('policy, baseline, expected', [
        (ENFORCE_MODERN, b"<opnsense/>", dhcp_backend.MODERN),
        (ALLOW_LEGACY, b"<opnsense>" + KEA_ON + b"</opnsense>", dhcp_backend.LEGACY),
        (PREFER_MODERN, b"<opnsense>" + KEA_ON + b"</opnsense>", dhcp_backend.MODERN),
        (PREFER_MODERN, b"<opnsense/>", dhcp_backend.LEGACY),
    ])
    def test_opnsense_target(self, policy, baseline, expected):
        source = _x(b"<pfsense><dhcpd><lan/></dhcpd></pfsense>")
        assert dhcp_backend.resolve_backend(policy, source, _x(baseline), 'opnsense') == expected

    @pytest.mark.parametrize('source, baseline, expected', [
        (b"<opnsense>" + KEA_ON + b"</opnsense>", b"<pfsense/>", 'kea'),
        (b"<opnsense><dhcpd><lan/></dhcpd></opnsense>",
         b"<pfsense><dhcpbackend>kea</dhcpbackend></pfsense>", 'isc'),
        (b"<opnsense/>", b"<pfsense><dhcpbackend>kea</dhcpbackend></pfsense>", 'kea'),
        (b"<opnsense/>", b"<pfsense/>", 'isc'),
    ])
    def test_pfsense_target_prefers_source_then_baseline(self, source, baseline, expected):
        got = dhcp_backend.resolve_backend(PREFER_MODERN, _x(source), _x(baseline), 'pfsense')
        assert got == expected

    def test_pfsense_target_flags(self):
        source, baseline = _x(b"<opnsense/>"), _x(b"<pfsense/>")
        assert dhcp_backend.resolve_backend(ENFORCE_MODERN, source, baseline, 'pfsense') == 'kea'
        assert dhcp_backend.resolve_backend(ALLOW_LEGACY, source, baseline, 'pfsense') == 'isc'


BROKEN_SOURCE = (b"<pfsense><interfaces><opt2><if>igb3</if></opt2></interfaces>"
                 b"<dhcpd><opt2><enable/><range><from>10.0.0.10</from><to>10.0.0.20</to></range>"
                 b"</opt2></dhcpd></pfsense>")


class TestApplyOpnsense:

    def out_with_legacy(self):
        return _x(b"<opnsense><dhcpd><opt2><enable/></opt2></dhcpd><dhcpdv6><opt1/></dhcpdv6>"
                  + KEA_ON + b"</opnsense>")

    def test_errors_fall_back_to_legacy_under_prefer(self):
        out = self.out_with_legacy()
        run = _run('opnsense')
        baseline = _x(b"<opnsense>" + KEA_ON + b"</opnsense>")
        dhcp_backend.apply(out, _x(BROKEN_SOURCE), baseline, run)
        assert run.backend == dhcp_backend.LEGACY
        assert out.find('dhcpd') is not None
        assert text_of(out, 'OPNsense', 'Kea', 'dhcp4', 'general', 'enabled') == '0'
        fallback = [n for n in run.notes if n.code == 'kea_fallback_legacy']
        assert fallback and fallback[0].severity == WARN

    def test_errors_stay_modern_under_enforce(self):
        out = self.out_with_legacy()
        run = _run('opnsense', ENFORCE_MODERN)
        dhcp_backend.apply(out, _x(BROKEN_SOURCE), _x(b"<opnsense/>"), run)
        assert run.backend == dhcp_backend.MODERN
        assert out.find('dhcpd') is None
        assert out.find('dhcpdv6') is None
        assert any(n.severity == ERROR for n in run.notes)
        assert not any(n.code == 'kea_fallback_legacy' for n in run.notes)

    def test_unresolved_v6_keeps_legacy_block(self):
        source = _x(b"<pfsense><interfaces><opt1><ipaddrv6>track6</ipaddrv6></opt1></interfaces>"
                    b"<dhcpdv6><opt1><range><from>::1</from><to>::9</to></range></opt1></dhcpdv6>"
                    b"</pfsense>")
        out = self.out_with_legacy()
        run = _run('opnsense', ENFORCE_MODERN)
        dhcp_backend.apply(out, source, _x(b"<opnsense/>"), run)
        assert out.find('dhcpd') is None
        assert out.find('dhcpdv6') is not None
        assert run.preserved_v6_ifaces == ['opt1']
        assert run.kea_stats.v6.preserved_ifaces == ['opt1']


class TestApplyPfsense:

    def test_kea_seeded_from_opnsense(self):
        source = _x(b"<opnsense>" + KEA_ON + b"</opnsense>")
        out = _x(b"<pfsense><dhcpd><lan/></dhcpd></pfsense>")
        run = _run('pfsense')
        dhcp_backend.apply(out, source, _x(b"<pfsense/>"), run)
        assert text_of(out, 'dhcpbackend') == 'kea'
        assert text_of(out, 'kea', 'dhcp4', 'general', 'enabled') == '1'
        assert out.find('dhcpd') is None

    def test_isc_drops_kea(self):
        source = _x(b"<opnsense><dhcpd><lan/></dhcpd></opnsense>")
        out = _x(b"<pfsense><kea/><dhcpd><lan/></dhcpd></pfsense>")
        dhcp_backend.apply(out, source, _x(b"<pfsense/>"), _run('pfsense'))
        assert text_of(out, 'dhcpbackend') == 'isc'
        assert out.find('kea') is None
        assert out.find('dhcpd') is not None

    def test_kea_only_source_refused_for_isc(self):
        source = _x(b"<opnsense>" + KEA_ON + b"</opnsense>")
        out = _x(b"<pfsense/>")
        with pytest.raises(BackendError, match='cannot convert Kea-only source to pfSense ISC'):
            dhcp_backend.apply(out, source, _x(b"<pfsense/>"), _run('pfsense', ALLOW_LEGACY))


class TestDisableAll:

    def tree(self):
        return _x(b"<opnsense><dhcpd><lan><enable/></lan></dhcpd>" + KEA_ON + b"</opnsense>")

    def test_everything_turned_off(self):
        out = self.tree()
        dhcp_backend.disable_all(out, None, None, _run('opnsense', disable_dhcp=True))
        lan = out.find('dhcpd').find('lan')
        assert (text_of(lan, 'enable'), text_of(lan, 'enabled'), text_of(lan, 'disabled')) == (
            '0', '0', '1')
        assert text_of(child_at(out, 'OPNsense', 'Kea'), 'dhcp4', 'general', 'enabled') == '0'
        assert text_of(child_at(out, 'OPNsense', 'Kea'), 'dhcp6', 'general', 'enabled') == ''

    def test_noop_without_flag(self):
        out = self.tree()
        dhcp_backend.disable_all(out, None, None, _run('opnsense'))
        assert out.find('dhcpd').find('lan').find('disabled') is None
