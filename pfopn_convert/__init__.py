# SPDX-License-Identifier: MIT

"""Convert, diff and verify pfSense and OPNsense configuration files."""

__version__ = '0.1.0'
