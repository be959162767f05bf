from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from app.core.money import ZERO, percent_of, round2, to_decimal
from app.services.merchant_settings import FeeConfig


@dataclass(frozen=True)
class FeeBreakdown:
    tax_amount: Decimal = ZERO
    service_charge_amount: Decimal = ZERO
    packaging_fee_amount: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return round2(self.tax_amount + self.service_charge_amount + self.packaging_fee_amount)


def calculate_fees(subtotal, fee_config: FeeConfig, order_type: str) -> FeeBreakdown:
    amount = round2(subtotal)

    tax = ZERO
    if fee_config.enable_tax and fee_config.tax_percentage:
        tax = percent_of(amount, fee_config.tax_percentage)

    service = ZERO
    if fee_config.enable_service_charge and fee_config.service_charge_percent:
        service = percent_of(amount, fee_config.service_charge_percent)

    # Embalagem só para retirada
    packaging = ZERO
    if (order_type or "").upper() == "TAKEAWAY" and fee_config.enable_packaging_fee:
        packaging = round2(fee_config.packaging_fee_amount)

    return FeeBreakdown(tax_amount=tax, service_charge_amount=service, packaging_fee_amount=packaging)


def calculate_total(subtotal, fees: FeeBreakdown, discount) -> Decimal:
    total = round2(
        to_decimal(subtotal)
        + fees.tax_amount
        + fees.service_charge_amount
        + fees.packaging_fee_amount
        - to_decimal(discount)
    )
    return total if total > 0 else ZERO
