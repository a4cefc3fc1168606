"""Infraspeak Connector Package.

Implements the FieldGateway interface for the Infraspeak v3 REST API.
"""

from connectors.infraspeak.infraspeak_client import InfraspeakApiConfig, InfraspeakClient
from connectors.infraspeak.infraspeak_connector import (
    InfraspeakConnector,
    catalogue_payload,
    order_endpoint,
    stock_movement_payload,
)

__all__ = [
    "InfraspeakApiConfig",
    "InfraspeakClient",
    "InfraspeakConnector",
    "catalogue_payload",
    "order_endpoint",
    "stock_movement_payload",
]
