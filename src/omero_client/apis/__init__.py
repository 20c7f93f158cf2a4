"""Clients of the OMERO web endpoints and the handler combining them."""

from omero_client.apis.counters import ObservableCounter, ObservableFlag
from omero_client.apis.handler import ApisHandler

__all__ = ["ApisHandler", "ObservableCounter", "ObservableFlag"]
