import pytest
from aiortc import AudioStreamTrack, VideoStreamTrack

from fakes import FakeTransport, make_rtp_parameters


@pytest.fixture
def rtp_parameters():
    return make_rtp_parameters()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def audio_track():
    return AudioStreamTrack()


@pytest.fixture
def video_track():
    return VideoStreamTrack()
