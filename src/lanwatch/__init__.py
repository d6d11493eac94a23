"""LAN Watch - network discovery and device state reconciliation engine."""

__version__ = "0.1.0"
