# SPDX-License-Identifier: MIT

"""Shared XML fixtures for the pfopn_convert test suite."""

import pytest

from pfopn_convert.xmltree import parse_bytes

PFSENSE_SOURCE = b"""<?xml version="1.0"?>
<pfsense>
  <version>23.3</version>
  <system>
    <hostname>fw</hostname>
    <domain>example.lan</domain>
  </system>
  <interfaces>
    <wan><if>igb0</if><descr>WAN</descr><ipaddr>dhcp</ipaddr></wan>
    <lan><if>igb1</if><descr>LAN</descr><ipaddr>192.168.1.1</ipaddr><subnet>24</subnet></lan>
    <opt1><if>igb1.10</if><descr>IOT</descr><ipaddr>10.10.0.1</ipaddr><subnet>24</subnet></opt1>
  </interfaces>
  <filter>
    <rule>
      <tracker>1001</tracker>
      <type>pass</type>
      <interface>lan</interface>
      <source><network>lan</network></source>
      <destination><any/></destination>
      <descr>LAN out</descr>
    </rule>
  </filter>
  <nat><outbound><mode>automatic</mode></outbound></nat>
  <dhcpd>
    <lan>
      <enable/>
      <range><from>192.168.1.100</from><to>192.168.1.199</to></range>
      <dnsserver>192.168.1.1</dnsserver>
      <staticmap><mac>00:11:22:33:44:55</mac><ipaddr>192.168.1.10</ipaddr><hostname>nas</hostname></staticmap>
    </lan>
  </dhcpd>
  <aliases>
    <alias><name>servers</name><type>host</type><address>192.168.1.10</address></alias>
  </aliases>
  <cert><refid>abc123</refid><descr>webgui</descr></cert>
</pfsense>
"""

OPNSENSE_BASELINE = b"""<?xml version="1.0"?>
<opnsense>
  <version>24.7</version>
  <system>
    <hostname>OPNsense</hostname>
    <firmware version="24.7"><plugins>os-isc-dhcp</plugins></firmware>
  </system>
  <interfaces>
    <wan><if>vtnet0</if></wan>
    <lan><if>vtnet1</if></lan>
    <opt1><if>vtnet1_vlan10</if></opt1>
  </interfaces>
  <OPNsense>
    <Kea><dhcp4><general><enabled>1</enabled></general></dhcp4></Kea>
  </OPNsense>
  <theme>opnsense</theme>
</opnsense>
"""

OPNSENSE_ORIGINAL = b"""<?xml version="1.0"?>
<opnsense>
  <version>24.7</version>
  <system><hostname>fw</hostname></system>
  <interfaces>
    <wan><if>vtnet0</if></wan>
    <lan><if>vtnet1</if></lan>
  </interfaces>
  <filter>
    <rule><type>pass</type><interface>lan</interface></rule>
  </filter>
  <OPNsense>
    <Firewall><Alias><aliases>
      <alias><name>web</name><content>10.0.0.5</content></alias>
    </aliases></Alias></Firewall>
  </OPNsense>
</opnsense>
"""

PFSENSE_BASELINE = b"""<?xml version="1.0"?>
<pfsense>
  <version>23.3</version>
  <system><hostname>pfSense</hostname></system>
  <interfaces>
    <wan><if>em0</if></wan>
    <lan><if>em1</if></lan>
  </interfaces>
</pfsense>
"""


@pytest.fixture
def pfsense_source():
    return parse_bytes(PFSENSE_SOURCE)


@pytest.fixture
def opnsense_baseline():
    return parse_bytes(OPNSENSE_BASELINE)


@pytest.fixture
def opnsense_original():
    return parse_bytes(OPNSENSE_ORIGINAL)


@pytest.fixture
def pfsense_baseline():
    return parse_bytes(PFSENSE_BASELINE)


@pytest.fixture
def write_xml(tmp_path):
    """Write bytes or text to a file under tmp_path and return its path as str."""
    def write(name, data):
        path = tmp_path / name
        if isinstance(data, str):
            data = data.encode('utf-8')
        path.write_bytes(data)
        return str(path)
    return write


@pytest.fixture
def conversion_files(write_xml):
    return {
        'pfsense_source': write_xml('pf-source.xml', PFSENSE_SOURCE),
        'opnsense_baseline': write_xml('opn-baseline.xml', OPNSENSE_BASELINE),
        'opnsense_original': write_xml('opn-original.xml', OPNSENSE_ORIGINAL),
        'pfsense_baseline': write_xml('pf-baseline.xml', PFSENSE_BASELINE),
    }


@pytest.fixture
def pfsense_source_xml():
    return PFSENSE_SOURCE


@pytest.fixture
def opnsense_original_xml():
    return OPNSENSE_ORIGINAL
