# Payments domain module
from hivcare.domain.payments.models import (
    PaymentTransaction,
    PaymentMethod,
    TransactionStatus,
    FinalizedVia,
)

__all__ = [
    "PaymentTransaction",
    "PaymentMethod",
    "TransactionStatus",
    "FinalizedVia",
]
