"""Payment adapter registry.

Routes payment operations to the adapter for a booking's payment method.
No business logic here - only adapter coordination.
"""

from rentcore.gateways.base import CardProcessor, PaymentCaptureAdapter, PaymentMethod
from rentcore.gateways.card import CardPaymentAdapter
from rentcore.gateways.cash_voucher import CashVoucherAdapter


class GatewayService:
    """Service for resolving payment capture adapters."""

    def __init__(self):
        self._adapters: dict[PaymentMethod, PaymentCaptureAdapter] = {}

    def get(self, method: str | PaymentMethod) -> PaymentCaptureAdapter:
        """Get or create the adapter for a payment method.

        Raises:
            ValueError: For an unknown payment method
        """
        method = PaymentMethod(method)
        if method not in self._adapters:
            if method == PaymentMethod.CARD:
                self._adapters[method] = CardPaymentAdapter()
            else:
                self._adapters[method] = CashVoucherAdapter()
        return self._adapters[method]

    def register(self, adapter: PaymentCaptureAdapter) -> None:
        """Install an adapter, replacing any existing one for its method."""
        self._adapters[adapter.method] = adapter

    def reset(self) -> None:
        self._adapters.clear()

    @property
    def card(self) -> CardPaymentAdapter:
        adapter = self.get(PaymentMethod.CARD)
        assert isinstance(adapter, CardPaymentAdapter)
        return adapter

    @property
    def cash_voucher(self) -> CashVoucherAdapter:
        adapter = self.get(PaymentMethod.CASH_VOUCHER)
        assert isinstance(adapter, CashVoucherAdapter)
        return adapter

    @property
    def card_processor(self) -> CardProcessor:
        return self.card.processor

    def verify_card_webhook(self, payload: bytes, signature: str) -> dict | None:
        """Verify webhook from the card processor."""
        return self.card_processor.verify_webhook(payload, signature)


# Singleton instance
gateway_service = GatewayService()
