"""htb-cli: command-line client for the Hack The Box labs API."""

__version__ = "1.6.0"
