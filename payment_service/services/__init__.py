from .payments import PaymentStore, generate_payment_id

__all__ = ["PaymentStore", "generate_payment_id"]
