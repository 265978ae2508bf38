from dataclasses import dataclass, field
from typing import Any, List, Optional

from aiortc import RTCDtlsParameters, RTCIceCandidate, RTCIceParameters
from aiortc.rtcrtpparameters import RTCRtpReceiveParameters, RTCRtpSendParameters

MEDIA_KINDS = ("audio", "video")


@dataclass
class Producer:
    """
    An outbound media source owned by the application.
    """

    id: str
    kind: str
    track: Any
    simulcast: bool = False
    rtp_parameters: Optional[RTCRtpSendParameters] = None


@dataclass
class Consumer:
    """
    An inbound media source the application wants to receive.
    """

    id: str
    kind: str
    ssrc: int
    cname: str
    rtx_ssrc: Optional[int] = None

    @classmethod
    def from_rtp_parameters(
        cls, id: str, kind: str, rtp_parameters: RTCRtpReceiveParameters
    ) -> "Consumer":
        encoding = rtp_parameters.encodings[0]
        rtx_ssrc = encoding.rtx.ssrc if encoding.rtx else None
        return cls(
            id=id,
            kind=kind,
            ssrc=encoding.ssrc,
            cname=rtp_parameters.rtcp.cname,
            rtx_ssrc=rtx_ssrc,
        )


@dataclass
class ConsumerInfo:
    """
    What a receive session remembers about a consumer to describe it in SDP.
    """

    id: str
    kind: str
    ssrc: Optional[int]
    cname: Optional[str]
    stream_id: str
    track_id: str
    rtx_ssrc: Optional[int] = None
    mid: Optional[str] = None
    closed: bool = False

    @classmethod
    def for_consumer(cls, consumer: Consumer, mid: Optional[str] = None) -> "ConsumerInfo":
        return cls(
            id=consumer.id,
            kind=consumer.kind,
            ssrc=consumer.ssrc,
            cname=consumer.cname,
            rtx_ssrc=consumer.rtx_ssrc,
            stream_id=f"recv-stream-{consumer.id}",
            track_id=f"consumer-{consumer.kind}-{consumer.id}",
            mid=mid,
        )


@dataclass
class TransportLocalParameters:
    dtls_parameters: RTCDtlsParameters


@dataclass
class TransportParameters:
    """
    Remote transport parameters handed back by the transport collaborator.
    """

    dtls_parameters: RTCDtlsParameters
    ice_parameters: RTCIceParameters
    ice_candidates: List[RTCIceCandidate] = field(default_factory=list)
