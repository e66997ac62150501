from .accounts import Account, OneTimeCode, SessionToken
from .settings import BusinessSettings
from .documents import (
    Quote, QuoteLineItem, DigitalSignature,
    Invoice, InvoiceLineItem, PaymentSchedule, PaymentInstallment,
    Receipt, DocumentSequence,
)
from .security import SecurityEvent

__all__ = [
    'Account', 'OneTimeCode', 'SessionToken',
    'BusinessSettings',
    'Quote', 'QuoteLineItem', 'DigitalSignature',
    'Invoice', 'InvoiceLineItem', 'PaymentSchedule', 'PaymentInstallment',
    'Receipt', 'DocumentSequence',
    'SecurityEvent',
]
