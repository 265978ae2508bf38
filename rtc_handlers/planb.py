"""
Helpers mangling a local description around a single sending track.

Both work on the ssrc attributes of the m-line carrying the track, so they
apply to Plan-B descriptions (many tracks per m-line) as well as to
descriptions with one m-line per track.
"""

import copy
from typing import List, Optional, Set, Tuple

from aiortc import RTCRtcpParameters, RTCRtpParameters, sdp
from aiortc.rtcrtpparameters import (
    RTCRtpEncodingParameters,
    RTCRtpRtxParameters,
    RTCRtpSendParameters,
)

SIMULCAST_LAYERS = 3


def _msid_track_id(msid: Optional[str]) -> Optional[str]:
    if not msid:
        return None
    bits = msid.split()
    return bits[-1] if len(bits) > 1 else None


def _rtx_ssrcs(media: sdp.MediaDescription) -> Set[int]:
    return {
        group.items[1]
        for group in media.ssrc_group
        if group.semantic == "FID" and len(group.items) == 2
    }


def find_track_ssrc(
    description: sdp.SessionDescription, track
) -> Tuple[sdp.MediaDescription, sdp.SsrcDescription]:
    """
    Locate the m-line and the primary ssrc describing ``track``.
    """
    for media in description.media:
        if media.kind != track.kind:
            continue
        for ssrc_info in media.ssrc:
            if _msid_track_id(ssrc_info.msid) == track.id:
                return media, ssrc_info
        if _msid_track_id(media.msid) == track.id:
            rtx = _rtx_ssrcs(media)
            for ssrc_info in media.ssrc:
                if ssrc_info.ssrc not in rtx:
                    return media, ssrc_info
    raise ValueError(f"no ssrc found for track {track.id} in local description")


def _rtx_for(media: sdp.MediaDescription, ssrc: int) -> Optional[int]:
    for group in media.ssrc_group:
        if group.semantic == "FID" and len(group.items) == 2 and group.items[0] == ssrc:
            return group.items[1]
    return None


def _stream_id(media: sdp.MediaDescription, ssrc_info: sdp.SsrcDescription) -> Optional[str]:
    msid = ssrc_info.msid or media.msid
    if not msid:
        return None
    return msid.split()[0]


def _allocate(base: int, used: Set[int]) -> int:
    ssrc = base
    while ssrc in used:
        ssrc = (ssrc + 1) % 0xFFFFFFFF
    used.add(ssrc)
    return ssrc


def add_simulcast_for_track(description: sdp.SessionDescription, track) -> List[int]:
    """
    Inject simulcast layers for ``track`` into ``description`` in place.

    Returns the ssrcs of the SIM group, lowest layer first.
    """
    media, ssrc_info = find_track_ssrc(description, track)
    first_ssrc = ssrc_info.ssrc

    for group in media.ssrc_group:
        if group.semantic == "SIM" and first_ssrc in group.items:
            return list(group.items)

    first_rtx = _rtx_for(media, first_ssrc)
    stream_id = _stream_id(media, ssrc_info)
    msid = f"{stream_id} {track.id}" if stream_id else None
    used = {info.ssrc for info in media.ssrc}

    ssrcs = [first_ssrc]
    rtx_pairs = []
    for layer in range(1, SIMULCAST_LAYERS):
        ssrc = _allocate(first_ssrc + layer, used)
        ssrcs.append(ssrc)
        media.ssrc.append(
            sdp.SsrcDescription(ssrc=ssrc, cname=ssrc_info.cname, msid=msid)
        )
        if first_rtx is not None:
            rtx = _allocate(first_rtx + layer, used)
            rtx_pairs.append((ssrc, rtx))
            media.ssrc.append(
                sdp.SsrcDescription(ssrc=rtx, cname=ssrc_info.cname, msid=msid)
            )

    media.ssrc_group.insert(0, sdp.GroupDescription(semantic="SIM", items=list(ssrcs)))
    for ssrc, rtx in rtx_pairs:
        media.ssrc_group.append(sdp.GroupDescription(semantic="FID", items=[ssrc, rtx]))

    return ssrcs


def fill_rtp_parameters_for_track(
    rtp_parameters: RTCRtpParameters, description: sdp.SessionDescription, track
) -> RTCRtpSendParameters:
    """
    Build the send parameters of ``track`` from the applied local description.
    """
    media, ssrc_info = find_track_ssrc(description, track)

    ssrcs = [ssrc_info.ssrc]
    for group in media.ssrc_group:
        if group.semantic == "SIM" and ssrc_info.ssrc in group.items:
            ssrcs = list(group.items)
            break

    codecs = rtp_parameters.codecs or media.rtp.codecs
    payload_type = next(
        (c.payloadType for c in codecs if not c.mimeType.lower().endswith("/rtx")),
        None,
    )
    if payload_type is None:
        raise ValueError(f"no media codec available for {track.kind} track {track.id}")

    encodings = []
    for ssrc in ssrcs:
        rtx_ssrc = _rtx_for(media, ssrc)
        encodings.append(
            RTCRtpEncodingParameters(
                ssrc=ssrc,
                payloadType=payload_type,
                rtx=RTCRtpRtxParameters(ssrc=rtx_ssrc) if rtx_ssrc is not None else None,
            )
        )

    return RTCRtpSendParameters(
        codecs=copy.deepcopy(codecs),
        headerExtensions=copy.deepcopy(rtp_parameters.headerExtensions),
        muxId=media.rtp.muxId,
        rtcp=RTCRtcpParameters(cname=ssrc_info.cname, mux=True, ssrc=ssrc_info.ssrc),
        encodings=encodings,
    )
