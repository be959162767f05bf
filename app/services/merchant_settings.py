from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from app.core.config import POS_CUSTOM_ITEM_MAX_NAME_LENGTH, POS_CUSTOM_ITEM_MAX_PRICE
from app.core.errors import MerchantInactiveError, MerchantNotFoundError
from app.core.money import ZERO, round2, to_decimal
from app.models.merchant import Merchant


@dataclass(frozen=True)
class FeeConfig:
    enable_tax: bool = False
    tax_percentage: Decimal = ZERO
    enable_service_charge: bool = False
    service_charge_percent: Decimal = ZERO
    enable_packaging_fee: bool = False
    packaging_fee_amount: Decimal = ZERO


@dataclass(frozen=True)
class CustomItemSettings:
    enabled: bool = False
    max_name_length: int = POS_CUSTOM_ITEM_MAX_NAME_LENGTH
    max_price: Decimal = POS_CUSTOM_ITEM_MAX_PRICE


def _features(merchant: Merchant) -> dict:
    features = merchant.features
    return features if isinstance(features, dict) else {}


def _feature_block(merchant: Merchant, key: str) -> dict:
    block = _features(merchant).get(key)
    return block if isinstance(block, dict) else {}


def get_merchant(db: Session, merchant_id: int) -> Merchant:
    merchant = db.query(Merchant).filter(Merchant.id == merchant_id).first()
    if not merchant:
        raise MerchantNotFoundError()
    return merchant


def get_active_merchant_by_code(db: Session, merchant_code: str) -> Merchant:
    code = (merchant_code or "").strip()
    merchant = db.query(Merchant).filter(Merchant.code == code).first() if code else None
    if not merchant or not merchant.is_active:
        raise MerchantInactiveError()
    return merchant


def get_fee_config(merchant: Merchant) -> FeeConfig:
    return FeeConfig(
        enable_tax=bool(merchant.enable_tax),
        tax_percentage=to_decimal(merchant.tax_percentage),
        enable_service_charge=bool(merchant.enable_service_charge),
        service_charge_percent=to_decimal(merchant.service_charge_percent),
        enable_packaging_fee=bool(merchant.enable_packaging_fee),
        packaging_fee_amount=round2(merchant.packaging_fee_amount),
    )


def get_custom_item_settings(merchant: Merchant) -> CustomItemSettings:
    block = _feature_block(merchant, "pos_custom_items")

    try:
        max_name_length = int(block.get("max_name_length") or POS_CUSTOM_ITEM_MAX_NAME_LENGTH)
    except (TypeError, ValueError):
        max_name_length = POS_CUSTOM_ITEM_MAX_NAME_LENGTH
    try:
        max_price = to_decimal(block.get("max_price") or POS_CUSTOM_ITEM_MAX_PRICE)
    except ValueError:
        max_price = POS_CUSTOM_ITEM_MAX_PRICE

    return CustomItemSettings(
        enabled=block.get("enabled") is True,
        max_name_length=max(1, max_name_length),
        max_price=max_price if max_price > 0 else POS_CUSTOM_ITEM_MAX_PRICE,
    )


def is_pos_edit_order_enabled(merchant: Merchant) -> bool:
    return _feature_block(merchant, "pos_edit_order").get("enabled") is True


def get_low_stock_threshold(merchant: Merchant, entity_threshold: int | None) -> int | None:
    if entity_threshold is not None:
        return entity_threshold
    return merchant.default_low_stock_threshold
