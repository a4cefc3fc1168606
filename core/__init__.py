"""Core module - system-neutral sync models, configuration and errors.

Nothing in here talks to Odoo or Infraspeak directly. Remote-system
specifics belong in /connectors/.
"""

__version__ = "1.0.0"
