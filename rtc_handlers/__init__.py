from rtc_handlers.config import HandlerSettings
from rtc_handlers.engine import (
    STRATEGIES,
    AiortcEngine,
    EngineStrategy,
    NegotiationEngine,
    detect_strategy,
    get_native_rtp_capabilities,
    get_strategy,
)
from rtc_handlers.errors import (
    DuplicateEntity,
    EntityNotFound,
    ExpectedNegotiationNoOp,
    InvalidSessionState,
    NegotiationError,
    TrackNotFound,
    UnexpectedNegotiationFailure,
    UnsupportedEngineOperation,
)
from rtc_handlers.log import configure_logging
from rtc_handlers.models import (
    Consumer,
    ConsumerInfo,
    Producer,
    TransportLocalParameters,
    TransportParameters,
)
from rtc_handlers.session import (
    NegotiationSession,
    RecvSession,
    SendSession,
    SessionState,
    create_session,
)
from rtc_handlers.transport import TransportCollaborator

__all__ = [
    "STRATEGIES",
    "AiortcEngine",
    "Consumer",
    "ConsumerInfo",
    "DuplicateEntity",
    "EngineStrategy",
    "EntityNotFound",
    "ExpectedNegotiationNoOp",
    "HandlerSettings",
    "InvalidSessionState",
    "NegotiationEngine",
    "NegotiationError",
    "NegotiationSession",
    "Producer",
    "RecvSession",
    "SendSession",
    "SessionState",
    "TrackNotFound",
    "TransportCollaborator",
    "TransportLocalParameters",
    "TransportParameters",
    "UnexpectedNegotiationFailure",
    "UnsupportedEngineOperation",
    "configure_logging",
    "create_session",
    "detect_strategy",
    "get_native_rtp_capabilities",
    "get_strategy",
]
