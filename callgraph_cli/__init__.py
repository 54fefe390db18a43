"""Call graph explorer for Go projects."""

__version__ = "0.3.0"
