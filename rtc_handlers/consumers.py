import logging
from typing import Dict, List

from rtc_handlers.engine import EngineStrategy, NegotiationEngine
from rtc_handlers.errors import DuplicateEntity, EntityNotFound, TrackNotFound
from rtc_handlers.models import Consumer, ConsumerInfo

logger = logging.getLogger(__name__)

FAKE_APPLICATION_MID = "fake-dc"


class ConsumerTrackManager:
    """
    Keeps the consumers of a receive session in m-line order.

    With Plan-B a removed consumer simply disappears from its kind's m-line.
    Otherwise every consumer owns an m-line, which is kept but closed on
    removal so that later offers never drop a line.
    """

    def __init__(self, strategy: EngineStrategy):
        self._strategy = strategy
        self._infos: List[ConsumerInfo] = []
        self._active: Dict[str, ConsumerInfo] = {}
        # Insertion ordered, never shrinks.
        self._kinds: Dict[str, None] = {}
        self._next_mid = 0

        if strategy.fake_application_line:
            self._infos.append(
                ConsumerInfo(
                    id=FAKE_APPLICATION_MID,
                    kind="application",
                    ssrc=None,
                    cname=None,
                    stream_id="",
                    track_id="",
                    mid=FAKE_APPLICATION_MID,
                )
            )

    @property
    def kinds(self) -> List[str]:
        return list(self._kinds)

    @property
    def infos(self) -> List[ConsumerInfo]:
        return list(self._infos)

    @property
    def consumer_ids(self) -> List[str]:
        return list(self._active)

    def __len__(self):
        return len(self._active)

    def get(self, consumer_id: str) -> ConsumerInfo:
        info = self._active.get(consumer_id)
        if info is None:
            raise EntityNotFound(f"consumer {consumer_id} not found")
        return info

    def add(self, consumer: Consumer) -> ConsumerInfo:
        if consumer.id in self._active:
            raise DuplicateEntity(f"consumer {consumer.id} already added")

        mid = None
        if not self._strategy.plan_b:
            mid = str(self._next_mid)
            self._next_mid += 1

        info = ConsumerInfo.for_consumer(consumer, mid=mid)
        self._infos.append(info)
        self._active[consumer.id] = info
        self._kinds.setdefault(consumer.kind, None)
        return info

    def remove(self, consumer_id: str) -> ConsumerInfo:
        info = self.get(consumer_id)
        del self._active[consumer_id]
        if self._strategy.plan_b:
            self._infos.remove(info)
        else:
            info.closed = True
        return info

    def index(self, consumer_id: str) -> int:
        return self._infos.index(self.get(consumer_id))

    def revert_add(self, info: ConsumerInfo):
        if self._active.get(info.id) is info:
            self.remove(info.id)

    def restore(self, info: ConsumerInfo, index: int):
        """
        Put back a consumer removed by a failed round at its former position.
        """
        if info.id in self._active:
            return
        info.closed = False
        if info not in self._infos:
            self._infos.insert(min(index, len(self._infos)), info)
        self._active[info.id] = info

    def resolve_track(self, engine: NegotiationEngine, info: ConsumerInfo):
        """
        Find the remote track the engine created for ``info``.
        """
        if self._strategy.track_lookup == "mid":
            for transceiver in engine.current_transceivers():
                receiver = transceiver.receiver
                if receiver is None or receiver.track is None:
                    continue
                if transceiver.mid == info.mid:
                    return receiver.track
        else:
            for receiver in engine.current_receivers():
                track = receiver.track
                if track is not None and track.id == info.track_id:
                    return track

        raise TrackNotFound(f"remote track not found for consumer {info.id}")
