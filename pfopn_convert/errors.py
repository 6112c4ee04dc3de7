# SPDX-License-Identifier: MIT

"""Fatal errors raised while converting or reading configurations."""


class ConvertError(Exception):
    """Base class for errors that abort a command."""


class ParseError(ConvertError):
    """Input could not be parsed as a single-rooted XML document."""


class OverwriteRefused(ConvertError):
    """Output path resolves to one of the inputs."""


class PlatformError(ConvertError):
    """Source or target platform cannot be determined or is inconsistent."""


class BaselineError(ConvertError):
    """No usable destination baseline was supplied."""


class PreflightFailed(ConvertError):
    """Source interfaces cannot be backed by the destination baseline."""


class BackendError(ConvertError):
    """Requested DHCP backend cannot be produced from the inputs."""


class LanAddressError(ConvertError):
    """--lan-ip cannot be applied to the converted LAN interface."""
