"""Building blocks for hosts booting ostree-based container images."""

__version__ = "0.1.0"