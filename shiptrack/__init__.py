"""Shipment tracking GraphQL service."""

__version__ = "1.0.0"
