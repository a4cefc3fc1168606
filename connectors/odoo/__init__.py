"""Odoo Connector Package.

Implements the LedgerGateway interface for Odoo (JSON-RPC external API).
"""

from connectors.odoo.odoo_auth import (
    OdooAuthConfig,
    OdooSession,
    OdooSessionProvider,
    extract_session_id,
    build_rpc_envelope,
)
from connectors.odoo.odoo_client import OdooRpcClient
from connectors.odoo.odoo_connector import OdooConnector, journal_line_ids, stock_record_from_quant

__all__ = [
    "OdooAuthConfig",
    "OdooSession",
    "OdooSessionProvider",
    "extract_session_id",
    "build_rpc_envelope",
    "OdooRpcClient",
    "OdooConnector",
    "journal_line_ids",
    "stock_record_from_quant",
]
