"""XNU Builder - staged build and boot-volume install tooling for XNU.

This package orchestrates the external Apple open source toolchains that
build an XNU kernel and installs the result onto the live boot volume.
"""

__version__ = "1.0.3"
__all__ = ["__version__"]
