"""hostgate - Time and usage limits for groups of domains via the hosts file."""

__version__ = "0.1.0"
