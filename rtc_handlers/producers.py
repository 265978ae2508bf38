import logging
from typing import Dict, List, Optional

from rtc_handlers.errors import DuplicateEntity, EntityNotFound
from rtc_handlers.models import Producer

logger = logging.getLogger(__name__)


class LocalMediaStream:
    """
    Ordered set of the tracks a send session offers.
    """

    def __init__(self):
        self._tracks: List = []

    def add_track(self, track):
        if track not in self._tracks:
            self._tracks.append(track)

    def remove_track(self, track):
        if track in self._tracks:
            self._tracks.remove(track)

    def get_track_by_id(self, track_id: str):
        return next((t for t in self._tracks if t.id == track_id), None)

    def get_tracks(self) -> List:
        return list(self._tracks)

    def __len__(self):
        return len(self._tracks)


class ProducerTrackManager:
    """
    Tracks the producers of a send session and their tracks in the local stream.
    """

    def __init__(self):
        self.stream = LocalMediaStream()
        self._producers: Dict[str, Producer] = {}

    @property
    def producers(self) -> List[Producer]:
        return list(self._producers.values())

    def get(self, producer_id: str) -> Producer:
        producer = self._producers.get(producer_id)
        if producer is None:
            raise EntityNotFound(f"producer {producer_id} not found")
        return producer

    def snapshot(self) -> Dict[str, object]:
        """
        Producer ids mapped to the track each one currently sends.
        """
        return {producer_id: p.track for producer_id, p in self._producers.items()}

    def add(self, producer: Producer):
        if producer.id in self._producers:
            raise DuplicateEntity(f"producer {producer.id} already added")
        if self.stream.get_track_by_id(producer.track.id) is not None:
            raise DuplicateEntity(f"track {producer.track.id} already added")

        self._producers[producer.id] = producer
        self.stream.add_track(producer.track)

    def revert_add(self, producer: Producer, track):
        """
        Drop a producer whose first round failed.

        ``track`` is the track it was added with. A replacement queued behind
        the failed round may already have swapped it, so both go.
        """
        if self._producers.get(producer.id) is producer:
            del self._producers[producer.id]
        self.stream.remove_track(track)
        self.stream.remove_track(producer.track)

    def remove(self, producer_id: str) -> Producer:
        producer = self.get(producer_id)
        del self._producers[producer_id]
        self.stream.remove_track(producer.track)
        return producer

    def replace(self, producer_id: str, track) -> Optional[object]:
        """
        Swap the track of a producer and return the previous one.
        """
        producer = self.get(producer_id)
        if track is not producer.track and self.stream.get_track_by_id(track.id) is not None:
            raise DuplicateEntity(f"track {track.id} already added")

        old_track = producer.track
        self.stream.remove_track(old_track)
        self.stream.add_track(track)
        producer.track = track
        return old_track

    def revert_replace(self, producer: Producer, old_track):
        if self._producers.get(producer.id) is producer:
            self.stream.remove_track(producer.track)
            self.stream.add_track(old_track)
        producer.track = old_track

    def restore(self, producer: Producer):
        """
        Put back a producer removed by a failed round.
        """
        self._producers[producer.id] = producer
        self.stream.add_track(producer.track)
