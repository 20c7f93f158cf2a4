"""Asynchronous client for OMERO web servers."""

__version__ = "0.1.0"
