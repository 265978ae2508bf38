import pytest
from aiortc import AudioStreamTrack

from rtc_handlers.errors import DuplicateEntity, EntityNotFound
from rtc_handlers.models import Producer
from rtc_handlers.producers import ProducerTrackManager


def test_add_and_snapshot(audio_track, video_track):
    manager = ProducerTrackManager()
    manager.add(Producer(id="p1", kind="audio", track=audio_track))
    manager.add(Producer(id="p2", kind="video", track=video_track))

    assert manager.snapshot() == {"p1": audio_track, "p2": video_track}
    assert manager.stream.get_tracks() == [audio_track, video_track]
    assert manager.stream.get_track_by_id(video_track.id) is video_track


def test_add_duplicates(audio_track):
    manager = ProducerTrackManager()
    manager.add(Producer(id="p1", kind="audio", track=audio_track))

    with pytest.raises(DuplicateEntity):
        manager.add(Producer(id="p1", kind="audio", track=AudioStreamTrack()))
    with pytest.raises(DuplicateEntity):
        manager.add(Producer(id="p2", kind="audio", track=audio_track))
    assert len(manager.stream) == 1


def test_remove_and_restore(audio_track):
    manager = ProducerTrackManager()
    manager.add(Producer(id="p1", kind="audio", track=audio_track))

    producer = manager.remove("p1")
    assert manager.snapshot() == {}
    assert len(manager.stream) == 0

    manager.restore(producer)
    assert manager.snapshot() == {"p1": audio_track}

    with pytest.raises(EntityNotFound):
        manager.remove("p2")


def test_replace_and_revert(audio_track):
    manager = ProducerTrackManager()
    producer = Producer(id="p1", kind="audio", track=audio_track)
    manager.add(producer)
    new_track = AudioStreamTrack()

    old_track = manager.replace("p1", new_track)

    assert old_track is audio_track
    assert producer.track is new_track
    assert manager.stream.get_tracks() == [new_track]

    manager.revert_replace(producer, old_track)
    assert producer.track is audio_track
    assert manager.stream.get_tracks() == [audio_track]


def test_replace_with_track_of_other_producer(audio_track):
    manager = ProducerTrackManager()
    manager.add(Producer(id="p1", kind="audio", track=audio_track))
    other = AudioStreamTrack()
    manager.add(Producer(id="p2", kind="audio", track=other))

    with pytest.raises(DuplicateEntity):
        manager.replace("p1", other)


def test_revert_add_after_replace(audio_track):
    manager = ProducerTrackManager()
    producer = Producer(id="p1", kind="audio", track=audio_track)
    manager.add(producer)
    new_track = AudioStreamTrack()
    old_track = manager.replace("p1", new_track)

    manager.revert_add(producer, audio_track)
    assert manager.snapshot() == {}
    assert manager.stream.get_tracks() == []

    # A replacement failing afterwards leaves the stream alone.
    manager.revert_replace(producer, old_track)
    assert producer.track is audio_track
    assert manager.stream.get_tracks() == []
