# SPDX-License-Identifier: MIT

import ipaddress

import pytest

from pfopn_convert.models import ERROR, WARN, ConvertOptions, PipelineRun
from pfopn_convert.passes import kea
from pfopn_convert.xmltree import child_at, parse_bytes, text_of

SOURCE = b"""<pfsense>
  <interfaces>
    <lan>
      <if>igb1</if>
      <ipaddr>192.168.1.1</ipaddr><subnet>24</subnet>
      <ipaddrv6>2001:db8:1::1</ipaddrv6><subnetv6>64</subnetv6>
    </lan>
    <opt1><if>igb2</if><ipaddrv6>track6</ipaddrv6></opt1>
  </interfaces>
  <dhcpd>
    <lan>
      <enable/>
      <range><from>192.168.1.100</from><to>192.168.1.199</to></range>
      <dnsserver>1.1.1.1</dnsserver>
      <dnsserver>9.9.9.9</dnsserver>
      <gateway>192.168.1.1</gateway>
      <domain>example.lan</domain>
      <domainsearchlist>a.lan;b.lan</domainsearchlist>
      <staticmap><mac>00:11:22:33:44:55</mac><ipaddr>192.168.1.10</ipaddr><hostname>nas</hostname></staticmap>
      <staticmap><mac>00:11:22:33:44:66</mac><ipaddr>192.168.1.10</ipaddr></staticmap>
    </lan>
  </dhcpd>
  <dhcpdv6>
    <lan>
      <enable/>
      <range><from>::1000</from><to>::2000</to></range>
      <dnsserver>2001:db8::53</dnsserver>
      <staticmap><duid>00:01:00:01:aa:bb</duid><ipaddrv6>::10</ipaddrv6><hostname>nas6</hostname></staticmap>
    </lan>
    <opt1><enable/><range><from>::100</from><to>::200</to></range></opt1>
  </dhcpdv6>
</pfsense>"""


def _run():
    return PipelineRun(ConvertOptions(target='opnsense'))


@pytest.fixture
def migrated():
    out = parse_bytes(b"<opnsense/>")
    run = _run()
    stats = kea.migrate_isc_to_kea(out, parse_bytes(SOURCE), run)
    return out, run, stats


class TestHelpers:

    @pytest.mark.parametrize('body, expected', [
        ('<enable/>', True),
        ('<enable>1</enable>', True),
        ('<enable>0</enable>', False),
        ('<enable/><disabled>1</disabled>', False),
        ('<enabled>no</enabled>', False),
        ('', True),
    ])
    def test_isc_iface_enabled(self, body, expected):
        assert kea.isc_iface_enabled(parse_bytes(f"<lan>{body}</lan>".encode())) is expected

    def test_normalize_domain_search(self):
        assert kea.normalize_domain_search('a.lan; b.lan,c.lan') == 'a.lan b.lan c.lan'

    def test_expand_ipv6_in_prefix(self):
        network = ipaddress.IPv6Network('2001:db8:1::/64')
        assert kea.expand_ipv6_in_prefix('::10', network.network_address, 64) == '2001:db8:1::10'
        assert kea.expand_ipv6_in_prefix('bogus', network.network_address, 64) is None

    @pytest.mark.parametrize('prefix, expected', [
        (0, '2001:db8::10'),
        (128, '2001:db8:1::'),
    ])
    def test_expand_ipv6_at_prefix_bounds(self, prefix, expected):
        network = ipaddress.IPv6Address('2001:db8:1::')
        assert kea.expand_ipv6_in_prefix('2001:db8::10', network, prefix) == expected

    def test_subnet_uuid_is_stable(self):
        first = kea.subnet_uuid('subnet4', '10.0.0.0/24', 'lan')
        assert first == kea.subnet_uuid('subnet4', '10.0.0.0/24', 'lan')
        assert first != kea.subnet_uuid('subnet4', '10.0.0.0/24', 'opt1')


class TestV4:

    def test_subnet_and_options(self, migrated):
        out, _, stats = migrated
        subnet = child_at(out, 'OPNsense', 'Kea', 'dhcp4', 'subnets').find('subnet4')
        assert subnet.get('uuid') == kea.subnet_uuid('subnet4', '192.168.1.0/24', 'lan')
        assert text_of(subnet, 'subnet') == '192.168.1.0/24'
        assert text_of(subnet, 'pools') == '192.168.1.100-192.168.1.199'
        options = subnet.find('option_data')
        assert text_of(options, 'domain_name_servers') == '1.1.1.1,9.9.9.9'
        assert text_of(options, 'routers') == '192.168.1.1'
        assert text_of(options, 'domain_name') == 'example.lan'
        assert text_of(options, 'domain_search') == 'a.lan b.lan'
        assert options.find('tftp_server_name') is not None
        assert (stats.v4.subnets, stats.v4.options) == (1, 1)

    def test_reservations_and_conflicts(self, migrated):
        out, run, stats = migrated
        reservations = child_at(out, 'OPNsense', 'Kea', 'dhcp4', 'reservations').findall('reservation')
        assert len(reservations) == 1
        assert text_of(reservations[0], 'hw_address') == '00:11:22:33:44:55'
        assert text_of(reservations[0], 'hostname') == 'nas'
        assert text_of(reservations[0], 'subnet') == kea.subnet_uuid('subnet4', '192.168.1.0/24', 'lan')
        assert stats.v4.reservations == 1
        assert stats.v4.skipped_conflicts == 1
        assert any(n.code == 'kea_v4_reservation_conflict' and n.severity == WARN for n in run.notes)

    def test_family_enabled(self, migrated):
        out = migrated[0]
        general = child_at(out, 'OPNsense', 'Kea', 'dhcp4', 'general')
        assert text_of(general, 'enabled') == '1'
        assert text_of(general, 'interfaces') == 'lan'

    def test_missing_interface_address_is_an_error_note(self):
        source = parse_bytes(b"<pfsense><interfaces><opt2><if>igb3</if></opt2></interfaces>"
                             b"<dhcpd><opt2><range><from>10.0.0.10</from><to>10.0.0.20</to></range>"
                             b"</opt2></dhcpd></pfsense>")
        out = parse_bytes(b"<opnsense/>")
        run = _run()
        stats = kea.migrate_isc_to_kea(out, source, run)
        assert stats.v4.subnets == 0
        assert [n.code for n in run.notes if n.severity == ERROR] == ['kea_v4_missing_cidr']

    def test_rerun_reuses_subnet(self, migrated):
        out, _, _ = migrated
        kea.migrate_isc_to_kea(out, parse_bytes(SOURCE), _run())
        assert len(child_at(out, 'OPNsense', 'Kea', 'dhcp4', 'subnets').findall('subnet4')) == 1


class TestV6:

    def test_subnet_pools_expanded(self, migrated):
        out, _, stats = migrated
        subnet = child_at(out, 'OPNsense', 'Kea', 'dhcp6', 'subnets').find('subnet6')
        assert text_of(subnet, 'subnet') == '2001:db8:1::/64'
        assert text_of(subnet, 'pools') == '2001:db8:1::1000-2001:db8:1::2000'
        assert text_of(subnet, 'interface') == 'lan'
        assert text_of(subnet, 'option_data', 'dns_servers') == '2001:db8::53'
        assert stats.v6.subnets == 1

    def test_reservation_address_expanded(self, migrated):
        out, _, stats = migrated
        res = child_at(out, 'OPNsense', 'Kea', 'dhcp6', 'reservations').find('reservation')
        assert text_of(res, 'ip_address') == '2001:db8:1::10'
        assert text_of(res, 'duid') == '00:01:00:01:aa:bb'
        assert stats.v6.reservations == 1

    def test_unknown_prefix_is_preserved(self, migrated):
        _, run, stats = migrated
        assert stats.v6.preserved_ifaces == ['opt1']
        note = next(n for n in run.notes if n.code == 'kea_v6_prefix_unknown')
        assert note.severity == WARN
        assert 'no static IPv6 or no PD indicators' in note.message
