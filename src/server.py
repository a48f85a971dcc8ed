"""Courier worker process.

Consumes the inbound channels and keeps the outbox drained:
- incoming-parcel-orders: raw orders, ingested and registered
- abc-transport-responses: carrier status messages, applied to parcels
- outbox sweeper: re-publishes events left pending by a broker outage

Usage:
    python src/server.py                  # All consumers plus the sweeper
    python src/server.py --workers 8      # Lanes per channel
    python src/server.py --channel orders # Only the order consumer
"""

import argparse
import signal
import threading

import structlog

logger = structlog.get_logger(__name__)


def _sweep_outbox(domain, interval: float, stopping: threading.Event) -> None:
    from courier.messaging.publisher import EventPublisher

    publisher = EventPublisher()
    with domain.domain_context():
        while not stopping.wait(interval):
            try:
                publisher.relay_all()
            except Exception:
                logger.exception("Outbox sweep failed")


def run(channel_names, workers: int, sweep_interval: float) -> None:
    from courier.domain import courier
    from courier.messaging import channels
    from courier.routing.consumer import ChannelConsumer

    courier.init()

    selected = {
        "orders": channels.incoming_orders(),
        "carrier": channels.carrier_responses(),
    }
    consumers = [ChannelConsumer(courier, selected[name], workers=workers) for name in channel_names]

    stopping = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stopping.set())
    signal.signal(signal.SIGTERM, lambda *_: stopping.set())

    for consumer in consumers:
        consumer.start()
    sweeper = threading.Thread(target=_sweep_outbox, args=(courier, sweep_interval, stopping), daemon=True)
    sweeper.start()

    stopping.wait()
    for consumer in consumers:
        consumer.stop()
    sweeper.join(sweep_interval + 1)


def main():
    parser = argparse.ArgumentParser(description="Courier worker")
    parser.add_argument(
        "--channel",
        choices=["orders", "carrier"],
        help="Consume a single channel (default: all)",
    )
    parser.add_argument("--workers", type=int, default=4, help="Worker lanes per channel")
    parser.add_argument("--sweep-interval", type=float, default=5.0, help="Seconds between outbox sweeps")
    args = parser.parse_args()

    channel_names = [args.channel] if args.channel else ["orders", "carrier"]
    run(channel_names, args.workers, args.sweep_interval)


if __name__ == "__main__":
    main()
