"""
Exceptions raised by ingestion and catalog services.

Parsing and metadata extraction never raise; only whole-playlist
failures and rejected credentials surface as errors.
"""
from fastapi import HTTPException


class AggregatorError(Exception):
    """Base class for errors with a human-readable message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class XtreamAuthError(AggregatorError):
    """Xtream server rejected the credentials."""


class PlaylistFetchError(AggregatorError):
    """The playlist itself could not be downloaded or read."""


class PlaylistNotFoundError(AggregatorError):
    """No stored playlist with the requested id."""


class InvalidPlaylistError(AggregatorError):
    """Submitted text is not an M3U playlist."""


HTTP_STATUS_CODES = {
    XtreamAuthError: 401,
    PlaylistNotFoundError: 404,
    InvalidPlaylistError: 400,
    PlaylistFetchError: 502,
}


def to_http_exception(error: AggregatorError) -> HTTPException:
    """Map a service error onto the HTTP status the API reports."""
    return HTTPException(status_code=HTTP_STATUS_CODES.get(type(error), 500), detail=error.message)
