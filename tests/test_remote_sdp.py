import pytest
from aiortc import RTCDtlsParameters, RTCIceParameters

from fakes import LOCAL_FINGERPRINT, FakeTransport, make_rtp_parameters
from rtc_handlers.codec import SdpCodec
from rtc_handlers.models import Consumer, ConsumerInfo, TransportLocalParameters
from rtc_handlers.remote_sdp import RemoteSdp


def recv_sdp(plan_b=True):
    remote_sdp = RemoteSdp("recv", make_rtp_parameters(), plan_b=plan_b)
    remote_sdp.set_transport_remote_parameters(FakeTransport.remote_parameters())
    return remote_sdp


def consumer_info(id, kind, ssrc, mid=None, rtx_ssrc=None):
    consumer = Consumer(id=id, kind=kind, ssrc=ssrc, cname="remote-cname", rtx_ssrc=rtx_ssrc)
    return ConsumerInfo.for_consumer(consumer, mid=mid)


def test_plan_b_offer_has_one_line_per_kind():
    remote_sdp = recv_sdp()
    infos = [
        consumer_info("a1", "audio", 1111),
        consumer_info("v1", "video", 2222, rtx_ssrc=2223),
        consumer_info("a2", "audio", 3333),
    ]

    description = SdpCodec.parse(remote_sdp.create_offer_sdp(["audio", "video"], infos))

    assert [m.kind for m in description.media] == ["audio", "video"]
    assert [m.rtp.muxId for m in description.media] == ["audio", "video"]
    assert description.group[0].semantic == "BUNDLE"
    assert description.group[0].items == ["audio", "video"]

    audio, video = description.media
    assert audio.direction == "sendonly"
    assert [s.ssrc for s in audio.ssrc] == [1111, 3333]
    assert audio.ssrc[0].msid == "recv-stream-a1 consumer-audio-a1"
    assert audio.ssrc[0].mslabel == "recv-stream-a1"
    assert audio.ssrc[0].label == "consumer-audio-a1"
    assert [s.ssrc for s in video.ssrc] == [2222, 2223]
    assert video.ssrc_group[0].semantic == "FID"
    assert video.ssrc_group[0].items == [2222, 2223]


def test_plan_b_offer_keeps_kind_line_without_consumers():
    remote_sdp = recv_sdp()
    infos = [consumer_info("a1", "audio", 1111)]

    description = SdpCodec.parse(remote_sdp.create_offer_sdp(["audio", "video"], infos))

    assert len(description.media) == 2
    assert description.media[1].direction == "inactive"
    assert description.media[1].ssrc == []


def test_offer_carries_remote_transport():
    remote_sdp = recv_sdp()
    description = SdpCodec.parse(
        remote_sdp.create_offer_sdp(["audio"], [consumer_info("a1", "audio", 1111)])
    )

    media = description.media[0]
    assert media.ice.usernameFragment == "remoteufrag"
    assert media.dtls.role == "auto"
    assert [f.value for f in media.dtls.fingerprints] == [
        FakeTransport.remote_parameters().dtls_parameters.fingerprints[0].value
    ]
    assert media.ice_candidates[0].ip == "10.0.0.1"
    assert media.rtcp_mux


def test_offer_session_version_increases():
    remote_sdp = recv_sdp()
    infos = [consumer_info("a1", "audio", 1111)]

    first = SdpCodec.parse(remote_sdp.create_offer_sdp(["audio"], infos))
    second = SdpCodec.parse(remote_sdp.create_offer_sdp(["audio"], infos))

    assert int(first.origin.split()[2]) + 1 == int(second.origin.split()[2])
    assert first.origin.split()[1] == second.origin.split()[1]


def test_offer_rejects_consumer_without_ssrc():
    remote_sdp = recv_sdp()
    infos = [consumer_info("a1", "audio", None)]

    with pytest.raises(ValueError):
        remote_sdp.create_offer_sdp(["audio"], infos)


def test_offer_accepts_ssrc_zero():
    remote_sdp = recv_sdp()
    infos = [consumer_info("v1", "video", 0, rtx_ssrc=1)]

    description = SdpCodec.parse(remote_sdp.create_offer_sdp(["audio", "video"], infos))

    video = description.media[1]
    assert [s.ssrc for s in video.ssrc] == [0, 1]
    assert video.ssrc_group[0].items == [0, 1]


def test_offer_requires_remote_parameters():
    remote_sdp = RemoteSdp("recv", make_rtp_parameters())

    with pytest.raises(ValueError):
        remote_sdp.create_offer_sdp(["audio"], [])


def test_unified_offer_keeps_closed_lines():
    remote_sdp = recv_sdp(plan_b=False)
    first = consumer_info("a1", "audio", 1111, mid="0")
    second = consumer_info("v1", "video", 2222, mid="1")
    first.closed = True

    description = SdpCodec.parse(remote_sdp.create_offer_sdp(["audio", "video"], [first, second]))

    assert [m.rtp.muxId for m in description.media] == ["0", "1"]
    assert description.media[0].direction == "inactive"
    assert description.media[0].ssrc == []
    assert description.media[1].direction == "sendonly"
    assert description.media[1].msid == "recv-stream-v1 consumer-video-v1"
    assert description.webrtc_track_id(description.media[1]) == "consumer-video-v1"


def test_unified_offer_with_application_line():
    remote_sdp = recv_sdp(plan_b=False)
    application = ConsumerInfo(
        id="fake-dc",
        kind="application",
        ssrc=None,
        cname=None,
        stream_id="",
        track_id="",
        mid="fake-dc",
    )

    description = SdpCodec.parse(remote_sdp.create_offer_sdp([], [application]))

    assert description.media[0].kind == "application"
    assert description.media[0].rtp.muxId == "fake-dc"
    assert description.media[0].sctp_port == 5000


def send_sdp(role="server"):
    remote_sdp = RemoteSdp("send", make_rtp_parameters())
    remote_sdp.set_transport_local_parameters(
        TransportLocalParameters(
            dtls_parameters=RTCDtlsParameters(fingerprints=[LOCAL_FINGERPRINT], role=role)
        )
    )
    remote_sdp.set_transport_remote_parameters(FakeTransport.remote_parameters())
    return remote_sdp


def local_offer(kinds_and_mids):
    remote_sdp = recv_sdp(plan_b=False)
    infos = [
        consumer_info(f"c{i}", kind, 1000 + i, mid=mid)
        for i, (kind, mid) in enumerate(kinds_and_mids)
    ]
    return SdpCodec.parse(remote_sdp.create_offer_sdp([], infos))


def test_answer_mirrors_offer_lines():
    offer = local_offer([("video", "0"), ("audio", "1")])
    offer.media[1].port = 0

    answer = SdpCodec.parse(send_sdp().create_answer_sdp(offer))

    assert [(m.kind, m.rtp.muxId) for m in answer.media] == [("video", "0"), ("audio", "1")]
    assert answer.media[0].direction == "recvonly"
    assert answer.media[1].port == 0
    assert answer.group[0].items == ["0", "1"]


def test_answer_role_is_opposite_of_local_role():
    offer = local_offer([("audio", "0")])

    answer = SdpCodec.parse(send_sdp(role="server").create_answer_sdp(offer))
    assert answer.media[0].dtls.role == "client"
    assert "a=setup:active" in str(answer)

    answer = SdpCodec.parse(send_sdp(role="client").create_answer_sdp(offer))
    assert answer.media[0].dtls.role == "server"


def test_answer_requires_local_parameters():
    remote_sdp = RemoteSdp("send", make_rtp_parameters())
    remote_sdp.set_transport_remote_parameters(FakeTransport.remote_parameters())

    with pytest.raises(ValueError):
        remote_sdp.create_answer_sdp(local_offer([("audio", "0")]))


def test_update_remote_ice_parameters():
    remote_sdp = recv_sdp()
    remote_sdp.update_transport_remote_ice_parameters(
        RTCIceParameters(usernameFragment="restarted", password="restartedpassword0123")
    )

    description = SdpCodec.parse(
        remote_sdp.create_offer_sdp(["audio"], [consumer_info("a1", "audio", 1111)])
    )

    assert description.media[0].ice.usernameFragment == "restarted"
    assert description.media[0].ice_candidates


def test_update_remote_ice_parameters_before_transport():
    remote_sdp = RemoteSdp("recv", make_rtp_parameters())

    with pytest.raises(ValueError):
        remote_sdp.update_transport_remote_ice_parameters(
            RTCIceParameters(usernameFragment="u", password="p")
        )
