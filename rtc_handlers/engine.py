import contextlib
import logging
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from aiortc import (
    RTCPeerConnection,
    RTCRtpCapabilities,
    RTCRtpReceiver,
    RTCRtpSender,
    RTCRtpTransceiver,
    RTCSessionDescription,
)
from pyee.asyncio import AsyncIOEventEmitter

from rtc_handlers.codec import SdpCodec
from rtc_handlers.config import HandlerSettings
from rtc_handlers.errors import UnsupportedEngineOperation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineStrategy:
    """
    How a family of negotiation engines differs from the others.
    """

    name: str
    # Many tracks per m-line, or one m-line per track.
    plan_b: bool
    # "stream": correlate remote tracks by msid track id, "mid": by transceiver mid.
    track_lookup: str
    # Senders can swap tracks without a new offer/answer round.
    replace_track: bool
    # Keep a fake data channel m-line so the transport survives zero consumers.
    fake_application_line: bool = False


STRATEGIES: Dict[str, EngineStrategy] = {
    strategy.name: strategy
    for strategy in (
        EngineStrategy("chrome55", plan_b=True, track_lookup="stream", replace_track=False),
        EngineStrategy("chrome67", plan_b=True, track_lookup="stream", replace_track=True),
        EngineStrategy(
            "firefox50",
            plan_b=False,
            track_lookup="stream",
            replace_track=True,
            fake_application_line=True,
        ),
        EngineStrategy("firefox59", plan_b=False, track_lookup="mid", replace_track=True),
        EngineStrategy("aiortc", plan_b=False, track_lookup="mid", replace_track=True),
    )
}


def get_strategy(name: str) -> EngineStrategy:
    try:
        return STRATEGIES[name.lower()]
    except KeyError:
        raise ValueError(f"unknown engine strategy {name!r}") from None


def detect_strategy(engine: "NegotiationEngine") -> EngineStrategy:
    """
    Pick the strategy of an engine by probing what it supports.
    """
    name = getattr(engine, "strategy_name", None)
    if name:
        return get_strategy(name)
    if engine.supports_transceivers:
        return STRATEGIES["firefox59"]
    if engine.supports_replace_track:
        return STRATEGIES["chrome67"]
    return STRATEGIES["chrome55"]


class NegotiationEngine(AsyncIOEventEmitter, metaclass=ABCMeta):
    """
    The native engine a negotiation session drives.

    Implementations emit "iceconnectionstatechange" with the new state.
    """

    strategy_name: Optional[str] = None
    supports_transceivers = False
    supports_replace_track = False

    @abstractmethod
    async def create_offer(self, options: Optional[dict] = None) -> RTCSessionDescription:
        pass

    @abstractmethod
    async def create_answer(self) -> RTCSessionDescription:
        pass

    @abstractmethod
    async def set_local_description(self, description: RTCSessionDescription) -> None:
        pass

    @abstractmethod
    async def set_remote_description(self, description: RTCSessionDescription) -> None:
        pass

    @property
    @abstractmethod
    def local_description(self) -> Optional[RTCSessionDescription]:
        pass

    @property
    @abstractmethod
    def signaling_state(self) -> str:
        pass

    @abstractmethod
    def current_senders(self) -> List:
        pass

    @abstractmethod
    def current_receivers(self) -> List:
        pass

    def current_transceivers(self) -> List:
        return []

    @abstractmethod
    def set_local_stream(self, stream) -> None:
        """
        Make the outbound senders carry exactly the tracks of ``stream``.
        """

    async def replace_sender_track(self, sender, track) -> None:
        raise UnsupportedEngineOperation(f"{type(self).__name__} cannot replace sender tracks")

    @abstractmethod
    async def close(self) -> None:
        pass


class AiortcEngine(NegotiationEngine):
    """
    Negotiation engine backed by an aiortc RTCPeerConnection.
    """

    strategy_name = "aiortc"
    supports_transceivers = True
    supports_replace_track = True

    def __init__(
        self,
        settings: Optional[HandlerSettings] = None,
        peer_connection: Optional[RTCPeerConnection] = None,
    ):
        super().__init__()
        settings = settings or HandlerSettings()
        self.peer_connection = peer_connection or RTCPeerConnection(
            configuration=settings.to_rtc_configuration()
        )

        @self.peer_connection.on("iceconnectionstatechange")
        def on_ice_connection_state_change():
            state = self.peer_connection.iceConnectionState
            logger.info(f"ICE connection state is {state}")
            self.emit("iceconnectionstatechange", state)

        @self.peer_connection.on("track")
        def on_track(track):
            logger.info(f"Track received: {track.kind} [id:{track.id}]")

    async def create_offer(self, options: Optional[dict] = None) -> RTCSessionDescription:
        options = options or {}
        if options.get("iceRestart"):
            logger.debug("aiortc does not restart ICE, offering current credentials")
        for kind in ("audio", "video"):
            wanted = options.get(f"offerToReceive{kind.capitalize()}")
            if wanted and not any(t.kind == kind for t in self.current_transceivers()):
                self.peer_connection.addTransceiver(kind, direction="recvonly")
        return await self.peer_connection.createOffer()

    async def create_answer(self) -> RTCSessionDescription:
        return await self.peer_connection.createAnswer()

    async def set_local_description(self, description: RTCSessionDescription) -> None:
        await self.peer_connection.setLocalDescription(description)

    async def set_remote_description(self, description: RTCSessionDescription) -> None:
        await self.peer_connection.setRemoteDescription(description)

    @property
    def local_description(self) -> Optional[RTCSessionDescription]:
        return self.peer_connection.localDescription

    @property
    def signaling_state(self) -> str:
        return self.peer_connection.signalingState

    def current_senders(self) -> List[RTCRtpSender]:
        return self.peer_connection.getSenders()

    def current_receivers(self) -> List[RTCRtpReceiver]:
        return self.peer_connection.getReceivers()

    def current_transceivers(self) -> List[RTCRtpTransceiver]:
        return self.peer_connection.getTransceivers()

    def set_local_stream(self, stream) -> None:
        tracks = stream.get_tracks()
        transceivers = self.current_transceivers()

        for transceiver in transceivers:
            sender = transceiver.sender
            if sender.track is not None and sender.track not in tracks:
                sender.replaceTrack(None)
                transceiver.direction = "inactive"

        attached = [t.sender.track for t in transceivers if t.sender.track is not None]
        for track in tracks:
            if track in attached:
                continue
            free = next(
                (
                    t
                    for t in transceivers
                    if t.kind == track.kind and t.sender.track is None and not t.stopped
                ),
                None,
            )
            if free is not None:
                free.sender.replaceTrack(track)
                free.direction = "sendonly"
            else:
                self.peer_connection.addTransceiver(track, direction="sendonly")

    async def replace_sender_track(self, sender: RTCRtpSender, track) -> None:
        sender.replaceTrack(track)

    async def close(self) -> None:
        await self.peer_connection.close()


async def get_native_rtp_capabilities(engine: NegotiationEngine) -> RTCRtpCapabilities:
    """
    Ask a throwaway engine which codecs and header extensions it supports.
    """
    logger.debug("get_native_rtp_capabilities()")
    try:
        offer = await engine.create_offer(
            {"offerToReceiveAudio": True, "offerToReceiveVideo": True}
        )
    finally:
        with contextlib.suppress(Exception):
            await engine.close()

    return SdpCodec.extract_rtp_capabilities(SdpCodec.parse(offer.sdp))
