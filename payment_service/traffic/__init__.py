"""load generator that fires randomized requests at the payment api"""

from .client import PaymentClient
from .generator import CURRENCIES, TrafficGenerator, random_amount, random_currency

__all__ = ["CURRENCIES", "PaymentClient", "TrafficGenerator", "random_amount", "random_currency"]
