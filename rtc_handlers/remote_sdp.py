"""
Builds the SDP of the remote side of a negotiation session.

The remote side never runs an engine of its own: its offers (receive
sessions) and answers (send sessions) are synthesized from the transport
parameters obtained during the handshake, the RTP parameters agreed for each
kind and the consumers currently known to the session.
"""

import copy
import dataclasses
import logging
import random
from typing import Dict, Iterable, List, Optional

from aiortc import (
    RTCDtlsParameters,
    RTCIceParameters,
    RTCRtpParameters,
    RTCSctpCapabilities,
    sdp,
)

from rtc_handlers.models import ConsumerInfo, TransportLocalParameters, TransportParameters

logger = logging.getLogger(__name__)

REMOTE_HOST = "127.0.0.1"
DISCARD_HOST = "0.0.0.0"
DISCARD_PORT = 9
MEDIA_PORT = 7
RTP_PROFILE = "UDP/TLS/RTP/SAVPF"
SCTP_PORT = 5000
SCTP_MAX_MESSAGE_SIZE = 262144


def _reverse_direction(direction: Optional[str]) -> str:
    if direction in ("sendrecv", "sendonly"):
        return "recvonly"
    return "inactive"


class RemoteSdp:
    """
    Remote SDP builder for one negotiation session.

    ``plan_b`` selects how consumers are laid out in offers: grouped on one
    m-line per kind, or one m-line per consumer keyed by its mid.
    """

    def __init__(
        self,
        direction: str,
        rtp_parameters_by_kind: Dict[str, RTCRtpParameters],
        plan_b: bool = True,
        username: str = "rtc-handlers",
    ):
        self.direction = direction
        self.plan_b = plan_b
        self._rtp_parameters_by_kind = rtp_parameters_by_kind
        self._username = username
        self._session_id = random.randint(1000000000, 9999999999)
        self._session_version = 0
        self._transport_local_parameters: Optional[TransportLocalParameters] = None
        self._transport_remote_parameters: Optional[TransportParameters] = None

    def set_transport_local_parameters(self, parameters: TransportLocalParameters):
        logger.debug(f"set_transport_local_parameters() [role:{parameters.dtls_parameters.role}]")
        self._transport_local_parameters = parameters

    def set_transport_remote_parameters(self, parameters: TransportParameters):
        logger.debug("set_transport_remote_parameters()")
        self._transport_remote_parameters = parameters

    def update_transport_remote_ice_parameters(self, ice_parameters: RTCIceParameters):
        if self._transport_remote_parameters is None:
            raise ValueError("no transport remote parameters")
        logger.debug("update_transport_remote_ice_parameters()")
        self._transport_remote_parameters = dataclasses.replace(
            self._transport_remote_parameters, ice_parameters=ice_parameters
        )

    def create_offer_sdp(self, kinds: Iterable[str], consumer_infos: Iterable[ConsumerInfo]) -> str:
        """
        Describe the given consumers as an offer sent by the remote side.
        """
        self._require_remote_parameters()
        kinds = list(kinds)
        consumer_infos = list(consumer_infos)
        for info in consumer_infos:
            if info.closed or info.kind == "application":
                continue
            if info.ssrc is None or not info.cname:
                raise ValueError(f"consumer {info.id} lacks ssrc or cname")

        if self.plan_b:
            media = [self._plan_b_media(kind, consumer_infos) for kind in kinds]
        else:
            media = [self._track_media(info) for info in consumer_infos]

        description = self._new_description([m.rtp.muxId for m in media])
        description.media = media
        return str(description)

    def create_answer_sdp(self, local_description: sdp.SessionDescription) -> str:
        """
        Answer a local offer, keeping its m-lines in the same order.
        """
        if self._transport_local_parameters is None:
            raise ValueError("no transport local parameters")
        self._require_remote_parameters()

        local_role = self._transport_local_parameters.dtls_parameters.role
        remote_role = "server" if local_role == "client" else "client"

        media = []
        for local_media in local_description.media:
            mid = local_media.rtp.muxId
            if local_media.kind == "application":
                remote_media = self._application_media(mid, remote_role)
            else:
                remote_media = self._new_media(
                    local_media.kind,
                    mid,
                    remote_role,
                    _reverse_direction(local_media.direction),
                )
            if local_media.port == 0:
                remote_media.port = 0
            media.append(remote_media)

        description = self._new_description([m.rtp.muxId for m in media if m.rtp.muxId])
        description.media = media
        return str(description)

    def _require_remote_parameters(self):
        if self._transport_remote_parameters is None:
            raise ValueError("no transport remote parameters")

    def _new_description(self, mids: List[str]) -> sdp.SessionDescription:
        self._session_version += 1
        description = sdp.SessionDescription()
        description.origin = (
            f"{self._username} {self._session_id} {self._session_version} IN IP4 {DISCARD_HOST}"
        )
        description.msid_semantic.append(sdp.GroupDescription(semantic="WMS", items=["*"]))
        if mids:
            description.group.append(sdp.GroupDescription(semantic="BUNDLE", items=list(mids)))
        return description

    def _add_transport(self, media: sdp.MediaDescription, role: str):
        remote = self._transport_remote_parameters
        media.ice = RTCIceParameters(
            usernameFragment=remote.ice_parameters.usernameFragment,
            password=remote.ice_parameters.password,
            iceLite=remote.ice_parameters.iceLite,
        )
        media.ice_candidates = copy.deepcopy(remote.ice_candidates)
        media.ice_candidates_complete = True
        media.ice_options = "renomination"
        # Only the latest fingerprint is announced.
        fingerprints = remote.dtls_parameters.fingerprints[-1:]
        media.dtls = RTCDtlsParameters(fingerprints=copy.deepcopy(fingerprints), role=role)

    def _new_media(self, kind: str, mid: str, role: str, direction: str) -> sdp.MediaDescription:
        parameters = self._rtp_parameters_by_kind.get(kind)
        if parameters is None or not parameters.codecs:
            raise ValueError(f"no RTP parameters for kind {kind}")

        media = sdp.MediaDescription(
            kind=kind,
            port=MEDIA_PORT,
            profile=RTP_PROFILE,
            fmt=[codec.payloadType for codec in parameters.codecs],
        )
        media.host = REMOTE_HOST
        media.direction = direction
        media.rtp = RTCRtpParameters(
            codecs=copy.deepcopy(parameters.codecs),
            headerExtensions=copy.deepcopy(parameters.headerExtensions),
            muxId=mid,
        )
        media.rtcp_host = DISCARD_HOST
        media.rtcp_port = DISCARD_PORT
        media.rtcp_mux = True
        self._add_transport(media, role)
        return media

    def _application_media(self, mid: str, role: str) -> sdp.MediaDescription:
        media = sdp.MediaDescription(
            kind="application",
            port=MEDIA_PORT,
            profile="UDP/DTLS/SCTP",
            fmt=["webrtc-datachannel"],
        )
        media.host = REMOTE_HOST
        media.rtp.muxId = mid
        media.sctp_port = SCTP_PORT
        media.sctpCapabilities = RTCSctpCapabilities(maxMessageSize=SCTP_MAX_MESSAGE_SIZE)
        self._add_transport(media, role)
        return media

    def _plan_b_media(self, kind: str, consumer_infos: List[ConsumerInfo]) -> sdp.MediaDescription:
        active = [info for info in consumer_infos if info.kind == kind and not info.closed]
        media = self._new_media(kind, kind, "auto", "sendonly" if active else "inactive")
        for info in active:
            self._add_ssrcs(media, info, plan_b=True)
        return media

    def _track_media(self, info: ConsumerInfo) -> sdp.MediaDescription:
        if info.mid is None:
            raise ValueError(f"consumer {info.id} has no mid")
        if info.kind == "application":
            return self._application_media(info.mid, "auto")

        media = self._new_media(info.kind, info.mid, "auto", "inactive" if info.closed else "sendonly")
        if not info.closed:
            media.msid = f"{info.stream_id} {info.track_id}"
            self._add_ssrcs(media, info, plan_b=False)
        return media

    def _add_ssrcs(self, media: sdp.MediaDescription, info: ConsumerInfo, plan_b: bool):
        msid = f"{info.stream_id} {info.track_id}"
        for ssrc in (s for s in (info.ssrc, info.rtx_ssrc) if s is not None):
            if plan_b:
                ssrc_info = sdp.SsrcDescription(
                    ssrc=ssrc,
                    cname=info.cname,
                    msid=msid,
                    mslabel=info.stream_id,
                    label=info.track_id,
                )
            else:
                ssrc_info = sdp.SsrcDescription(ssrc=ssrc, cname=info.cname, msid=msid)
            media.ssrc.append(ssrc_info)
        if info.rtx_ssrc is not None:
            media.ssrc_group.append(
                sdp.GroupDescription(semantic="FID", items=[info.ssrc, info.rtx_ssrc])
            )
