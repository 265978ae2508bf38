class NegotiationError(RuntimeError):
    """Base error raised by negotiation sessions."""


class DuplicateEntity(NegotiationError):
    """Raised when adding a producer, consumer or track that is already present."""


class EntityNotFound(NegotiationError):
    """Raised when removing or replacing something the session does not know."""


class TrackNotFound(EntityNotFound):
    """
    Raised when a completed round did not yield the expected remote track.

    This points at an engine/SDP mismatch and is not worth retrying.
    """


class ExpectedNegotiationNoOp(NegotiationError):
    """
    Raised by engines that fail to apply an offer with no sending tracks left.

    Sessions swallow it while removing the last producer.
    """


class UnexpectedNegotiationFailure(NegotiationError):
    """Raised after a failed round has been rolled back."""


class InvalidSessionState(NegotiationError):
    """Raised when an operation is not allowed in the current session state."""


class UnsupportedEngineOperation(NegotiationError):
    """Raised when an engine is asked for something its family cannot do."""
