"""Database models."""

from rentcore.models.admin import AuditLog
from rentcore.models.booking import Booking
from rentcore.models.commission import CommissionRate, CommissionRateHistory
from rentcore.models.dispute import Dispute, DisputeEvidence, DisputeNote
from rentcore.models.escrow import Escrow, EscrowEvent
from rentcore.models.listing import CalendarBlock, Listing
from rentcore.models.payment import CardPayment, CashVoucher, HostPayout, ProcessedPaymentEvent
from rentcore.models.user import BankAccount, User

__all__ = [
    "AuditLog",
    "BankAccount",
    "Booking",
    "CalendarBlock",
    "CardPayment",
    "CashVoucher",
    "CommissionRate",
    "CommissionRateHistory",
    "Dispute",
    "DisputeEvidence",
    "DisputeNote",
    "Escrow",
    "EscrowEvent",
    "HostPayout",
    "Listing",
    "ProcessedPaymentEvent",
    "User",
]
