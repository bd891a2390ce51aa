from typing import Any

import requests


class PaymentClient:
    """http client for the payment api"""

    def __init__(self, base_url: str, timeout: float = 10.0, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def payment_url(self) -> str:
        return f"{self.base_url}/api/payment"

    def create_payment(self, amount: float, currency: str) -> requests.Response:
        """
        create a payment

        args:
            amount: payment amount
            currency: iso currency code

        returns:
            raw response, errors surface as requests exceptions
        """
        payload: dict[str, Any] = {"amount": amount, "currency": currency}
        return self.session.post(self.payment_url, json=payload, timeout=self.timeout)

    def list_payments(self) -> requests.Response:
        """list stored payments"""
        return self.session.get(self.payment_url, timeout=self.timeout)

    def close(self) -> None:
        self.session.close()
