"""
Fee Schedule - Fixed-Point ETB Fees for Registration and Transfer

Amounts are decimal.Decimal end to end. Floats are refused, nothing is
rounded, and payment verification compares the paid amount with the quote
exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Final, Union

from core.errors import InvalidAmountError, ValidationError
from core.registration.schema import PaymentType, PropertyType


AmountLike = Union[Decimal, int, str]

CURRENCY: Final[str] = "ETB"


def to_decimal(value: AmountLike, field_name: str = "amount") -> Decimal:
    """
    Convert an amount to Decimal.

    Raises:
        ValidationError: For floats, booleans, or unparseable input
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(
            f"{field_name} must be a decimal string or integer, not a binary float",
            field=field_name,
        )
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field_name} is not a valid decimal amount", field=field_name)
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be finite", field=field_name)
    return amount


def require_positive(value: AmountLike, field_name: str = "amount") -> Decimal:
    """Convert and require amount > 0."""
    amount = to_decimal(value, field_name)
    if amount <= 0:
        raise InvalidAmountError(f"{field_name} must be greater than zero", field=field_name)
    return amount


# =============================================================================
# Quote
# =============================================================================


@dataclass(frozen=True)
class FeeQuote:
    """Computed fee with its breakdown."""

    payment_type: PaymentType
    breakdown: dict[str, Decimal]
    total: Decimal
    currency: str = CURRENCY

    def to_dict(self) -> dict:
        return {
            "payment_type": self.payment_type.value,
            "breakdown": {k: str(v) for k, v in self.breakdown.items()},
            "total": str(self.total),
            "currency": self.currency,
        }


# =============================================================================
# Schedule
# =============================================================================


def _default_base_fees() -> dict[PropertyType, Decimal]:
    return {
        PropertyType.RESIDENTIAL: Decimal("2500"),
        PropertyType.COMMERCIAL: Decimal("5000"),
        PropertyType.INDUSTRIAL: Decimal("7500"),
        PropertyType.AGRICULTURAL: Decimal("1000"),
    }


def _default_area_rates() -> dict[PropertyType, Decimal]:
    return {
        PropertyType.RESIDENTIAL: Decimal("20"),
        PropertyType.COMMERCIAL: Decimal("40"),
        PropertyType.INDUSTRIAL: Decimal("30"),
        PropertyType.AGRICULTURAL: Decimal("2"),
    }


@dataclass(frozen=True)
class FeeSchedule:
    """
    Fee rules.

    Registration: base fee by property type plus a per-square-metre rate.
    Transfer: transfer tax and stamp duty on the declared value plus a
    fixed processing fee. Certificate and modification fees are flat.
    """

    base_fees: dict[PropertyType, Decimal] = field(default_factory=_default_base_fees)
    area_rates: dict[PropertyType, Decimal] = field(default_factory=_default_area_rates)
    transfer_tax_rate: Decimal = Decimal("0.03")
    stamp_duty_rate: Decimal = Decimal("0.005")
    transfer_processing_fee: Decimal = Decimal("300")
    certificate_fee: Decimal = Decimal("200")
    modification_fee: Decimal = Decimal("150")
    currency: str = CURRENCY

    def registration_fee(self, property_type: PropertyType, area: AmountLike) -> FeeQuote:
        area_value = require_positive(area, "area")
        base = self.base_fees[property_type]
        area_fee = self.area_rates[property_type] * area_value
        return FeeQuote(
            payment_type=PaymentType.REGISTRATION_FEE,
            breakdown={"base_fee": base, "area_fee": area_fee},
            total=base + area_fee,
            currency=self.currency,
        )

    def transfer_fee(self, transfer_value: AmountLike) -> FeeQuote:
        value = to_decimal(transfer_value, "transfer_value")
        if value < 0:
            raise InvalidAmountError("transfer_value cannot be negative", field="transfer_value")
        transfer_tax = value * self.transfer_tax_rate
        stamp_duty = value * self.stamp_duty_rate
        return FeeQuote(
            payment_type=PaymentType.TRANSFER_FEE,
            breakdown={
                "transfer_tax": transfer_tax,
                "stamp_duty": stamp_duty,
                "processing_fee": self.transfer_processing_fee,
            },
            total=transfer_tax + stamp_duty + self.transfer_processing_fee,
            currency=self.currency,
        )

    def flat_fee(self, payment_type: PaymentType) -> FeeQuote:
        flat = {
            PaymentType.CERTIFICATE_FEE: self.certificate_fee,
            PaymentType.MODIFICATION_FEE: self.modification_fee,
        }
        if payment_type not in flat:
            raise ValidationError(f"{payment_type.value} is not a flat fee", field="payment_type")
        amount = flat[payment_type]
        return FeeQuote(
            payment_type=payment_type,
            breakdown={payment_type.value: amount},
            total=amount,
            currency=self.currency,
        )
