from __future__ import annotations


class ArtFixError(Exception):
    """Base class for every error raised by the artfix package."""


class InvalidInputError(ArtFixError, ValueError):
    """Malformed or undecodable image buffer."""


class BackgroundRemovalError(ArtFixError):
    """Decode, scan or encode failed while removing the background."""


class RestorationError(ArtFixError):
    """Remote restoration failed for a reason other than authorization."""


class RestorationAuthError(RestorationError):
    """
    Missing, invalid or unbilled credential.

    Callers must ask the user to select a new API key before retrying.
    """


class SessionBusyError(ArtFixError):
    """An operation was started while another one is still in flight."""
