class RoomlinkError(Exception):
    """Base class for client-side errors."""


class MediaAcquisitionError(RoomlinkError):
    """Local capture (camera/microphone/file) could not be opened."""


class NegotiationError(RoomlinkError):
    """A PeerLink was asked to make a transition its state does not allow."""


class SessionError(RoomlinkError):
    """The signaling session was used out of order (e.g. join before connect)."""
