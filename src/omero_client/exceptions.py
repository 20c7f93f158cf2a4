"""Custom exceptions for OMERO client operations.

These exceptions are raised inside the client layers and converted into
empty results (``None`` / ``[]``) plus a log record at each public
boundary. They never reach callers of the request engine, the codecs or
the API handler.
"""


class OmeroError(Exception):
    """Base exception for all OMERO client errors."""

    def __init__(self, message: str, uri: str | None = None) -> None:
        """Initialize error with optional URI context.

        Args:
            message: Human-readable error description.
            uri: URI of the request or server that caused the error.
        """
        self.uri = uri
        self.message = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with URI context if available."""
        if self.uri:
            return f"{self.message} (uri: {self.uri})"
        return self.message


class DiscoveryError(OmeroError):
    """Raised when the server's API description cannot be resolved.

    This error is raised when:
    - The API root lists no version
    - A named link (url:projects, url:token, ...) is missing
    - The servers list or the CSRF token response is malformed
    """

    def __init__(
        self,
        message: str,
        uri: str | None = None,
        *,
        link_name: str | None = None,
    ) -> None:
        """Initialize discovery error.

        Args:
            message: Human-readable error description.
            uri: URI being discovered.
            link_name: Name of the missing or invalid link, if any.
        """
        self.link_name = link_name
        super().__init__(message, uri)

    def _format_message(self) -> str:
        parts = [self.message]
        if self.uri:
            parts.append(f"uri={self.uri}")
        if self.link_name is not None:
            parts.append(f"link={self.link_name}")

        if len(parts) == 1:
            return parts[0]
        return f"{parts[0]} ({', '.join(parts[1:])})"


class DecodeError(OmeroError):
    """Raised when a JSON response cannot be turned into a typed object.

    This error is raised when an ``imgData`` response lacks a required
    field or has one of the wrong type.
    """
