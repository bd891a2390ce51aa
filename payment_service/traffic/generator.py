import argparse
import random
import signal
import threading
from concurrent.futures import Executor, ThreadPoolExecutor

import requests

from ..config import settings
from ..logger import configure_logging, get_logger
from .client import PaymentClient

logger = get_logger(__name__)

CURRENCIES = ("USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY", "SEK", "NZD")

PROGRESS_EVERY = 50


def random_amount(rng: random.Random) -> float:
    """amount between 1.00 and 1000.98 with cent precision"""
    return (rng.randrange(99999) + 100) / 100.0


def random_currency(rng: random.Random) -> str:
    return rng.choice(CURRENCIES)


class TrafficGenerator:
    """
    fires one request per tick without waiting for earlier ones

    requests run on a thread pool; failures are logged and never stop the
    loop. stop() ends the loop at the next tick.
    """

    def __init__(
        self,
        client: PaymentClient,
        interval: float = 0.5,
        post_ratio: float = 0.8,
        workers: int = 16,
        rng: random.Random | None = None,
        executor: Executor | None = None,
    ):
        self.client = client
        self.interval = interval
        self.post_ratio = post_ratio
        self.rng = rng or random.Random()
        self.request_count = 0
        self._executor = executor or ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="traffic"
        )
        self._stop = threading.Event()

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def tick(self) -> None:
        """dispatch a single request"""
        if self.rng.random() < self.post_ratio:
            self._executor.submit(
                self.create_payment, random_amount(self.rng), random_currency(self.rng)
            )
        else:
            self._executor.submit(self.list_payments)

        self.request_count += 1
        if self.request_count % PROGRESS_EVERY == 0:
            logger.info("requests sent", count=self.request_count)

    def create_payment(self, amount: float, currency: str) -> None:
        try:
            response = self.client.create_payment(amount, currency)
        except requests.RequestException as e:
            logger.error("error creating payment", error=str(e))
            return

        if response.status_code >= 400:
            logger.warning("payment creation failed", status_code=response.status_code)

    def list_payments(self) -> None:
        try:
            response = self.client.list_payments()
        except requests.RequestException as e:
            logger.error("error getting payments", error=str(e))
            return

        if response.status_code >= 400:
            logger.warning("get payments failed", status_code=response.status_code)

    def run(self) -> int:
        """tick until stopped, returns the number of requests sent"""
        logger.info("starting traffic generator", base_url=self.client.base_url)

        try:
            while not self._stop.wait(self.interval):
                self.tick()
        finally:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self.client.close()

        logger.info("generated requests total", count=self.request_count)
        return self.request_count


def install_signal_handlers(generator: TrafficGenerator) -> None:
    """stop the generator on ctrl+c or sigterm"""

    def _handle(signum, _frame):
        logger.info("shutting down traffic generator", signal=signal.Signals(signum).name)
        generator.stop()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="payment-traffic", description="fire randomized load at the payment service"
    )
    parser.add_argument(
        "base_url",
        nargs="?",
        default=settings.traffic_base_url,
        help="payment service base url (default: %(default)s)",
    )
    parser.add_argument(
        "--interval", type=float, default=settings.traffic_interval, help="seconds between requests"
    )
    parser.add_argument(
        "--post-ratio",
        type=float,
        default=settings.traffic_post_ratio,
        help="share of requests that create payments",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging(log_format="console")

    client = PaymentClient(args.base_url, timeout=settings.traffic_timeout)
    generator = TrafficGenerator(
        client,
        interval=args.interval,
        post_ratio=args.post_ratio,
        workers=settings.traffic_workers,
    )
    install_signal_handlers(generator)
    logger.info("press ctrl+c to stop")
    generator.run()


if __name__ == "__main__":
    main()
