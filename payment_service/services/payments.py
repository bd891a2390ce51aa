import threading
import uuid
from collections.abc import Callable
from datetime import datetime

from ..models import Payment

PENDING = "pending"


def generate_payment_id() -> str:
    """random payment id, unique across concurrent requests"""
    return f"pay_{uuid.uuid4().hex}"


def rfc3339_now() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


class PaymentStore:
    """
    append-only in-memory payment storage

    records are never updated or removed and live only as long as the
    process. appends are serialized with a lock so concurrent requests
    cannot lose writes.
    """

    def __init__(
        self,
        default_currency: str = "USD",
        id_factory: Callable[[], str] = generate_payment_id,
        clock: Callable[[], str] = rfc3339_now,
    ):
        self.default_currency = default_currency
        self._id_factory = id_factory
        self._clock = clock
        self._payments: list[Payment] = []
        self._lock = threading.Lock()

    def create(self, amount: float, currency: str | None = None) -> Payment:
        """stamp server side fields and append a new payment"""
        payment = Payment(
            id=self._id_factory(),
            amount=amount,
            currency=currency or self.default_currency,
            status=PENDING,
            date=self._clock(),
        )
        with self._lock:
            self._payments.append(payment)
        return payment

    def list_payments(self) -> list[Payment]:
        """snapshot of all payments in insertion order"""
        with self._lock:
            return list(self._payments)

    def __len__(self) -> int:
        with self._lock:
            return len(self._payments)
