"""Tile access to image pixels."""

from omero_client.pixels.tiles import TileReader, TileRequest, server_level

__all__ = ["TileReader", "TileRequest", "server_level"]
