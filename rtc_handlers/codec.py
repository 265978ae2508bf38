"""
SDP parsing and transport/capability extraction, backed by aiortc's SDP model.
"""

import copy
from typing import List

from aiortc import (
    RTCDtlsParameters,
    RTCRtpCapabilities,
    RTCRtpCodecCapability,
    RTCRtpHeaderExtensionCapability,
)
from aiortc import sdp


class SdpCodec:
    """
    Converts between SDP text and aiortc's structured SessionDescription.
    """

    @staticmethod
    def parse(text: str) -> sdp.SessionDescription:
        try:
            return sdp.SessionDescription.parse(text)
        except (AssertionError, KeyError, ValueError) as exc:
            raise ValueError(f"invalid SDP: {exc!r}") from exc

    @staticmethod
    def write(description: sdp.SessionDescription) -> str:
        return str(description)

    @staticmethod
    def extract_dtls_parameters(description: sdp.SessionDescription) -> RTCDtlsParameters:
        """
        Return the DTLS parameters of the first active media section.

        The returned object is a copy, callers may change its role freely.
        """
        for media in description.media:
            if media.port == 0 or media.ice is None or not media.ice.usernameFragment:
                continue
            if media.dtls is None or not media.dtls.fingerprints:
                continue
            return RTCDtlsParameters(
                fingerprints=copy.deepcopy(media.dtls.fingerprints),
                role=media.dtls.role,
            )
        raise ValueError("no active media section with DTLS parameters")

    @staticmethod
    def extract_rtp_capabilities(description: sdp.SessionDescription) -> RTCRtpCapabilities:
        codecs: List[RTCRtpCodecCapability] = []
        header_extensions: List[RTCRtpHeaderExtensionCapability] = []
        seen_codecs = set()
        seen_uris = set()

        for media in description.media:
            if media.kind not in ("audio", "video"):
                continue
            for codec in media.rtp.codecs:
                key = (
                    codec.mimeType.lower(),
                    codec.clockRate,
                    codec.channels,
                    tuple(sorted((k, str(v)) for k, v in codec.parameters.items())),
                )
                if key in seen_codecs:
                    continue
                seen_codecs.add(key)
                codecs.append(
                    RTCRtpCodecCapability(
                        mimeType=codec.mimeType,
                        clockRate=codec.clockRate,
                        channels=codec.channels,
                        parameters=dict(codec.parameters),
                    )
                )
            for extension in media.rtp.headerExtensions:
                if extension.uri in seen_uris:
                    continue
                seen_uris.add(extension.uri)
                header_extensions.append(RTCRtpHeaderExtensionCapability(uri=extension.uri))

        return RTCRtpCapabilities(codecs=codecs, headerExtensions=header_extensions)
