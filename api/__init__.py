"""API Package.

FastAPI server for the Odoo / Infraspeak sync.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
