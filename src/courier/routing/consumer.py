"""Channel consumer: pulls deliveries off a channel and routes them.

Deliveries are spread over N worker lanes by a stable hash of their
partition key. One key always lands on the same lane, so messages for a
parcel are handled in arrival order while different parcels are handled
in parallel. Each lane runs in its own thread inside the domain context.
A nacked delivery holds back the rest of its key until it comes round again.
"""

import queue
import threading
import time
import zlib

import structlog
from protean.domain import Domain

from courier.routing.router import InboundEventRouter
from courier.transport import get_transport
from courier.transport.port import Delivery, TransportError, TransportPort

logger = structlog.get_logger(__name__)

_STOP = object()


def partition_key_for(delivery: Delivery) -> str:
    """Header key if present, else the parcel id or EDI reference in the body."""
    if delivery.partition_key:
        return delivery.partition_key
    payload = delivery.payload if isinstance(delivery.payload, dict) else {}
    return str(payload.get("parcelId") or payload.get("edi_reference") or delivery.delivery_id)


class ChannelConsumer:
    def __init__(
        self,
        domain: Domain,
        channel: str,
        router: InboundEventRouter | None = None,
        transport: TransportPort | None = None,
        workers: int = 4,
        consumer_group: str = "courier",
        poll_interval: float = 0.2,
        nack_backoff: float = 1.0,
    ):
        if workers < 1:
            raise ValueError("A consumer needs at least one worker")
        self.domain = domain
        self.channel = channel
        self.router = router or InboundEventRouter()
        self._transport = transport
        self.consumer_group = consumer_group
        self.poll_interval = poll_interval
        self.nack_backoff = nack_backoff
        self._lanes: list[queue.Queue] = [queue.Queue() for _ in range(workers)]
        self._threads: list[threading.Thread] = []
        self._running = threading.Event()

    @property
    def transport(self) -> TransportPort:
        return self._transport if self._transport is not None else get_transport()

    def lane_for(self, key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) % len(self._lanes)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def start_workers(self) -> None:
        self._running.set()
        for index, lane in enumerate(self._lanes):
            thread = threading.Thread(
                target=self._work,
                args=(lane,),
                name=f"{self.channel}-lane-{index}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def start(self) -> None:
        """Start the lanes and a dispatcher thread that polls the channel."""
        self.start_workers()
        dispatcher = threading.Thread(target=self._dispatch_loop, name=f"{self.channel}-dispatcher", daemon=True)
        dispatcher.start()
        self._threads.append(dispatcher)
        logger.info("Consumer started", channel=self.channel, lanes=len(self._lanes))

    def stop(self, timeout: float = 5.0) -> None:
        self._running.clear()
        for lane in self._lanes:
            lane.put(_STOP)
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()
        logger.info("Consumer stopped", channel=self.channel)

    def drain(self) -> None:
        """Block until every dispatched delivery has been handled."""
        for lane in self._lanes:
            lane.join()

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------
    def poll_once(self) -> int:
        """Move every currently available delivery onto its lane."""
        dispatched = 0
        with self.domain.domain_context():
            while True:
                delivery = self.transport.receive(self.channel, self.consumer_group)
                if delivery is None:
                    return dispatched
                self._lanes[self.lane_for(partition_key_for(delivery))].put(delivery)
                dispatched += 1

    def _dispatch_loop(self) -> None:
        while self._running.is_set():
            try:
                dispatched = self.poll_once()
            except TransportError:
                logger.exception("Channel read failed", channel=self.channel)
                dispatched = 0
            if not dispatched:
                time.sleep(self.poll_interval)

    def _work(self, lane: queue.Queue) -> None:
        # partition key -> id of the nacked delivery later ones must wait behind
        held: dict[str, str] = {}
        with self.domain.domain_context():
            while True:
                delivery = lane.get()
                try:
                    if delivery is _STOP:
                        return
                    self._process(delivery, held)
                except TransportError:
                    # Unsettled deliveries are redelivered by the broker
                    logger.exception("Could not settle delivery", channel=self.channel, delivery_id=delivery.delivery_id)
                except Exception:
                    logger.exception("Delivery handling failed", channel=self.channel, delivery_id=delivery.delivery_id)
                finally:
                    lane.task_done()

    def _process(self, delivery: Delivery, held: dict[str, str]) -> None:
        """Handle a delivery unless an earlier one for its key is awaiting redelivery.

        Deliveries queued behind a nacked one are released back to the
        transport unrouted, so they are redelivered after it and the key's
        order survives the retry.
        """
        key = partition_key_for(delivery)
        blocker = held.get(key)
        if blocker is not None and blocker != delivery.delivery_id:
            logger.info("Releasing delivery behind a nacked one", channel=self.channel, partition_key=key)
            self.transport.nack(delivery, self.consumer_group)
            return

        held.pop(key, None)
        if not self.handle(delivery):
            held[key] = delivery.delivery_id

    def handle(self, delivery: Delivery) -> bool:
        """Route one delivery and settle it with the transport. True when acked."""
        outcome = self.router.route(self.channel, delivery.payload)
        if outcome.acked:
            self.transport.ack(delivery, self.consumer_group)
            return True

        self.transport.nack(delivery, self.consumer_group)
        if self._running.is_set():
            time.sleep(self.nack_backoff)
        return False
