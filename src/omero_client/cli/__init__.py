"""CLI module for omero-client.

Provides the command-line interface for checking connections, browsing
servers, reading tiles and listing ROIs.
"""

from __future__ import annotations

from omero_client.cli.main import app

__all__ = ["app"]
