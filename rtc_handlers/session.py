"""
Negotiation sessions: one per direction per connection.

A session serializes offer/answer rounds against its engine, performs the
transport-parameter handshake on the first round and rolls its producer or
consumer set back when a round fails.
"""

import asyncio
import enum
import logging
from abc import ABCMeta, abstractmethod
from typing import Dict, List, Optional, Union

from aiortc import RTCIceParameters, RTCRtpParameters, RTCSessionDescription, sdp
from aiortc.rtcrtpparameters import RTCRtpSendParameters
from pyee.asyncio import AsyncIOEventEmitter

from rtc_handlers.codec import SdpCodec
from rtc_handlers.config import HandlerSettings
from rtc_handlers.consumers import ConsumerTrackManager
from rtc_handlers.engine import EngineStrategy, NegotiationEngine, detect_strategy, get_strategy
from rtc_handlers.errors import (
    EntityNotFound,
    ExpectedNegotiationNoOp,
    InvalidSessionState,
    NegotiationError,
    TrackNotFound,
    UnexpectedNegotiationFailure,
)
from rtc_handlers.models import MEDIA_KINDS, Consumer, Producer, TransportLocalParameters
from rtc_handlers.planb import add_simulcast_for_track, fill_rtp_parameters_for_track
from rtc_handlers.producers import LocalMediaStream, ProducerTrackManager
from rtc_handlers.remote_sdp import RemoteSdp
from rtc_handlers.transport import TransportCollaborator

logger = logging.getLogger(__name__)

CONNECTION_STATES = {
    "checking": "connecting",
    "connected": "connected",
    "completed": "connected",
    "failed": "failed",
    "disconnected": "disconnected",
    "closed": "closed",
}


class SessionState(enum.Enum):
    NEW = "new"
    # A round started, the transport handshake has not completed yet.
    TRANSPORT_PENDING = "transport-pending"
    # Receive sessions only: remote parameters known, local ones not sent yet.
    TRANSPORT_CREATED = "transport-created"
    READY = "ready"
    CLOSED = "closed"


class NegotiationSession(AsyncIOEventEmitter, metaclass=ABCMeta):
    """
    Shared state machine of send and receive sessions.

    Events:
      - "connectionstatechange" (state)
      - "transportready" (TransportLocalParameters), once
    """

    direction: Optional[str] = None

    def __init__(
        self,
        engine: NegotiationEngine,
        transport: TransportCollaborator,
        rtp_parameters_by_kind: Dict[str, RTCRtpParameters],
        settings: Optional[HandlerSettings] = None,
        strategy: Optional[Union[EngineStrategy, str]] = None,
    ):
        super().__init__()
        if isinstance(strategy, str):
            strategy = get_strategy(strategy)

        self.engine = engine
        self.settings = settings or HandlerSettings()
        self.strategy = strategy or detect_strategy(engine)
        self.state = SessionState.NEW
        self.close_errors: List[Exception] = []
        self._transport = transport
        self._rtp_parameters_by_kind = rtp_parameters_by_kind
        self._remote_sdp = RemoteSdp(
            self.direction,
            rtp_parameters_by_kind,
            plan_b=self.strategy.plan_b,
            username=self.settings.sdp_username,
        )
        self._round_lock = asyncio.Lock()

        self.engine.on("iceconnectionstatechange", self._on_ice_connection_state_change)
        logger.debug(f"Created {self.direction} session [strategy:{self.strategy.name}]")

    def _on_ice_connection_state_change(self, state: str):
        connection_state = CONNECTION_STATES.get(state)
        if connection_state is not None:
            self.emit("connectionstatechange", connection_state)

    def _set_state(self, state: SessionState):
        if self.state is SessionState.CLOSED:
            return
        logger.debug(f"{self.direction} session state {self.state.value} -> {state.value}")
        self.state = state

    def _assert_open(self):
        if self.state is SessionState.CLOSED:
            raise InvalidSessionState(f"{self.direction} session is closed")

    def _assert_ready(self):
        self._assert_open()
        if self.state is not SessionState.READY:
            raise InvalidSessionState(
                f"{self.direction} session transport is not ready [state:{self.state.value}]"
            )

    def _local_description(self) -> sdp.SessionDescription:
        return SdpCodec.parse(self.engine.local_description.sdp)

    def _transport_ready(self, local_parameters: TransportLocalParameters):
        self._set_state(SessionState.READY)
        logger.info(f"{self.direction} transport ready")
        self.emit("transportready", local_parameters)

    async def _call_transport(self, awaitable):
        try:
            result = await asyncio.wait_for(awaitable, timeout=self.settings.transport_timeout)
        except asyncio.TimeoutError as exc:
            raise UnexpectedNegotiationFailure(
                f"transport collaborator did not answer within {self.settings.transport_timeout}s"
            ) from exc
        # close() may have run while the collaborator was answering.
        self._assert_open()
        return result

    async def restart_ice(self, remote_ice_parameters: RTCIceParameters):
        """
        Renegotiate with new remote ICE credentials, keeping every source.
        """
        logger.debug("restart_ice()")
        self._assert_open()
        async with self._round_lock:
            self._assert_ready()
            self._remote_sdp.update_transport_remote_ice_parameters(remote_ice_parameters)
            try:
                await self._restart_ice_round()
            except NegotiationError:
                raise
            except Exception as exc:
                raise UnexpectedNegotiationFailure(f"restart_ice failed: {exc}") from exc

    @abstractmethod
    async def _restart_ice_round(self):
        pass

    def _check_kind(self, kind: str):
        if kind not in MEDIA_KINDS or kind not in self._rtp_parameters_by_kind:
            raise ValueError(f"unsupported media kind {kind!r}")

    async def close(self):
        """
        Release the engine. Safe to call repeatedly and during a round.
        """
        if self.state is SessionState.CLOSED:
            return

        logger.debug(f"close() [direction:{self.direction}]")
        self.state = SessionState.CLOSED
        self.engine.remove_listener("iceconnectionstatechange", self._on_ice_connection_state_change)
        try:
            await self.engine.close()
        except Exception as exc:
            logger.warning(f"Ignoring error while closing the engine: {exc!r}")
            self.close_errors.append(exc)


class RecvSession(NegotiationSession):
    """
    Receives the consumers of a connection; the remote side offers.
    """

    direction = "recv"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._consumers = ConsumerTrackManager(self.strategy)

    @property
    def consumer_ids(self) -> List[str]:
        return self._consumers.consumer_ids

    @property
    def kinds(self) -> List[str]:
        return self._consumers.kinds

    async def add_consumer(self, consumer: Consumer):
        """
        Add a consumer and return the remote track the engine created for it.
        """
        logger.debug(f"add_consumer() [id:{consumer.id}, kind:{consumer.kind}]")
        self._assert_open()
        self._check_kind(consumer.kind)
        info = self._consumers.add(consumer)

        try:
            async with self._round_lock:
                self._assert_open()
                await self._negotiate("add_consumer")
                return self._consumers.resolve_track(self.engine, info)
        except TrackNotFound:
            raise
        except NegotiationError:
            self._consumers.revert_add(info)
            raise
        except Exception as exc:
            self._consumers.revert_add(info)
            raise UnexpectedNegotiationFailure(f"add_consumer failed: {exc}") from exc

    async def remove_consumer(self, consumer_id: str):
        logger.debug(f"remove_consumer() [id:{consumer_id}]")
        self._assert_open()
        index = self._consumers.index(consumer_id)
        info = self._consumers.remove(consumer_id)

        try:
            async with self._round_lock:
                self._assert_open()
                await self._negotiate("remove_consumer")
        except NegotiationError:
            self._consumers.restore(info, index)
            raise
        except Exception as exc:
            self._consumers.restore(info, index)
            raise UnexpectedNegotiationFailure(f"remove_consumer failed: {exc}") from exc

    async def _negotiate(self, caller: str):
        if self.state is SessionState.NEW:
            self._set_state(SessionState.TRANSPORT_PENDING)
        if self.state is SessionState.TRANSPORT_PENDING:
            await self._create_transport()

        await self._apply_remote_offer(caller)

        if self.state is SessionState.TRANSPORT_CREATED:
            await self._update_transport()

    async def _apply_remote_offer(self, caller: str):
        offer = RTCSessionDescription(
            sdp=self._remote_sdp.create_offer_sdp(self._consumers.kinds, self._consumers.infos),
            type="offer",
        )
        logger.debug(f"{caller}() | calling set_remote_description() [offer:{offer.sdp!r}]")
        await self.engine.set_remote_description(offer)

        answer = await self.engine.create_answer()
        logger.debug(f"{caller}() | calling set_local_description() [answer:{answer.sdp!r}]")
        await self.engine.set_local_description(answer)

    async def _restart_ice_round(self):
        await self._apply_remote_offer("restart_ice")

    async def _create_transport(self):
        logger.info("Requesting remote transport parameters")
        remote_parameters = await self._call_transport(self._transport.create_transport(None))
        self._remote_sdp.set_transport_remote_parameters(remote_parameters)
        self._set_state(SessionState.TRANSPORT_CREATED)

    async def _update_transport(self):
        dtls_parameters = SdpCodec.extract_dtls_parameters(self._local_description())
        local_parameters = TransportLocalParameters(dtls_parameters=dtls_parameters)
        logger.info(f"Sending local transport parameters [role:{dtls_parameters.role}]")
        await self._call_transport(self._transport.update_transport(local_parameters))
        self._transport_ready(local_parameters)


class SendSession(NegotiationSession):
    """
    Sends the producers of a connection; the local side offers.

    Events, besides the shared ones:
      - "needupdateproducer" (Producer, RTCRtpSendParameters)
    """

    direction = "send"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._producers = ProducerTrackManager()

    @property
    def producers(self) -> List[Producer]:
        return self._producers.producers

    @property
    def stream(self) -> LocalMediaStream:
        return self._producers.stream

    def snapshot(self) -> Dict[str, object]:
        return self._producers.snapshot()

    async def add_producer(self, producer: Producer) -> RTCRtpSendParameters:
        """
        Start sending a producer and return the RTP parameters it is sent with.
        """
        logger.debug(
            f"add_producer() [id:{producer.id}, kind:{producer.kind}, trackId:{producer.track.id}]"
        )
        self._assert_open()
        self._check_kind(producer.kind)
        track = producer.track
        self._producers.add(producer)

        try:
            async with self._round_lock:
                self._assert_open()
                local_description = await self._negotiate(
                    "add_producer", simulcast_track=producer.track if producer.simulcast else None
                )
                rtp_parameters = fill_rtp_parameters_for_track(
                    self._rtp_parameters_by_kind[producer.kind], local_description, producer.track
                )
        except Exception as exc:
            # Undo things before reporting.
            self._producers.revert_add(producer, track)
            self._resync_local_stream()
            if isinstance(exc, NegotiationError):
                raise
            raise UnexpectedNegotiationFailure(f"add_producer failed: {exc}") from exc

        producer.rtp_parameters = rtp_parameters
        return rtp_parameters

    async def remove_producer(self, producer_id: str):
        logger.debug(f"remove_producer() [id:{producer_id}]")
        self._assert_open()
        producer = self._producers.remove(producer_id)

        async with self._round_lock:
            try:
                self._assert_open()
                self.engine.set_local_stream(self._producers.stream)
                offer = await self.engine.create_offer()
                logger.debug(f"remove_producer() | calling set_local_description() [offer:{offer.sdp!r}]")
                await self.engine.set_local_description(offer)
            except Exception as exc:
                if isinstance(exc, ExpectedNegotiationNoOp) or len(self._producers.stream) == 0:
                    logger.warning(
                        f"remove_producer() | ignoring expected error due no sending tracks: {exc!r}"
                    )
                    return
                self._restore_producer(producer)
                if isinstance(exc, NegotiationError):
                    raise
                raise UnexpectedNegotiationFailure(f"remove_producer failed: {exc}") from exc

            if self.engine.signaling_state == "stable":
                return

            try:
                if self.state is SessionState.TRANSPORT_PENDING:
                    await self._setup_transport()
                await self._apply_remote_answer("remove_producer")
            except Exception as exc:
                self._restore_producer(producer)
                if isinstance(exc, NegotiationError):
                    raise
                raise UnexpectedNegotiationFailure(f"remove_producer failed: {exc}") from exc

    async def replace_producer_track(self, producer_id: str, track):
        """
        Make a producer send another track.

        Swaps the track on its sender when the engine allows it, renegotiates
        otherwise.
        """
        self._assert_open()
        producer = self._producers.get(producer_id)
        logger.debug(
            f"replace_producer_track() [id:{producer.id}, kind:{producer.kind}, trackId:{track.id}]"
        )
        if track is producer.track:
            return
        old_track = self._producers.replace(producer_id, track)

        rtp_parameters = None
        try:
            async with self._round_lock:
                self._assert_open()
                if self._producers.get(producer_id) is not producer:
                    raise EntityNotFound(f"producer {producer_id} was removed")
                if self.strategy.replace_track:
                    await self._replace_sender_track(old_track, track)
                else:
                    local_description = await self._negotiate(
                        "replace_producer_track",
                        simulcast_track=track if producer.simulcast else None,
                    )
                    rtp_parameters = fill_rtp_parameters_for_track(
                        self._rtp_parameters_by_kind[producer.kind], local_description, track
                    )
        except Exception as exc:
            self._producers.revert_replace(producer, old_track)
            self._resync_local_stream()
            if isinstance(exc, NegotiationError):
                raise
            raise UnexpectedNegotiationFailure(f"replace_producer_track failed: {exc}") from exc

        if rtp_parameters is not None:
            producer.rtp_parameters = rtp_parameters
            self.emit("needupdateproducer", producer, rtp_parameters)

    async def _replace_sender_track(self, old_track, track):
        sender = next((s for s in self.engine.current_senders() if s.track is old_track), None)
        if sender is None:
            raise EntityNotFound("local track not found")
        await self.engine.replace_sender_track(sender, track)

    async def _negotiate(self, caller: str, simulcast_track=None) -> sdp.SessionDescription:
        if self.state is SessionState.NEW:
            self._set_state(SessionState.TRANSPORT_PENDING)

        self.engine.set_local_stream(self._producers.stream)
        offer = await self.engine.create_offer()
        if simulcast_track is not None:
            logger.debug(f"{caller}() | enabling simulcast")
            description = SdpCodec.parse(offer.sdp)
            add_simulcast_for_track(description, simulcast_track)
            offer = RTCSessionDescription(sdp=SdpCodec.write(description), type="offer")

        logger.debug(f"{caller}() | calling set_local_description() [offer:{offer.sdp!r}]")
        await self.engine.set_local_description(offer)

        if self.state is SessionState.TRANSPORT_PENDING:
            await self._setup_transport()

        return await self._apply_remote_answer(caller)

    async def _apply_remote_answer(self, caller: str) -> sdp.SessionDescription:
        local_description = self._local_description()
        answer = RTCSessionDescription(
            sdp=self._remote_sdp.create_answer_sdp(local_description), type="answer"
        )
        logger.debug(f"{caller}() | calling set_remote_description() [answer:{answer.sdp!r}]")
        await self.engine.set_remote_description(answer)
        return local_description

    async def _restart_ice_round(self):
        offer = await self.engine.create_offer({"iceRestart": True})
        logger.debug(f"restart_ice() | calling set_local_description() [offer:{offer.sdp!r}]")
        await self.engine.set_local_description(offer)
        await self._apply_remote_answer("restart_ice")

    async def _setup_transport(self):
        dtls_parameters = SdpCodec.extract_dtls_parameters(self._local_description())
        # We act as DTLS server, always.
        dtls_parameters.role = "server"
        local_parameters = TransportLocalParameters(dtls_parameters=dtls_parameters)
        self._remote_sdp.set_transport_local_parameters(local_parameters)

        logger.info("Requesting remote transport parameters")
        remote_parameters = await self._call_transport(
            self._transport.create_transport(local_parameters)
        )
        self._remote_sdp.set_transport_remote_parameters(remote_parameters)
        self._transport_ready(local_parameters)

    def _restore_producer(self, producer: Producer):
        self._producers.restore(producer)
        self._resync_local_stream()

    def _resync_local_stream(self):
        try:
            self.engine.set_local_stream(self._producers.stream)
        except Exception:
            logger.exception("Failed to restore the local stream of the engine")


def create_session(
    direction: str,
    engine: NegotiationEngine,
    transport: TransportCollaborator,
    rtp_parameters_by_kind: Dict[str, RTCRtpParameters],
    settings: Optional[HandlerSettings] = None,
    strategy: Optional[Union[EngineStrategy, str]] = None,
) -> NegotiationSession:
    if direction == "send":
        session_class = SendSession
    elif direction == "recv":
        session_class = RecvSession
    else:
        raise ValueError(f"invalid direction {direction!r}")
    return session_class(engine, transport, rtp_parameters_by_kind, settings=settings, strategy=strategy)
