"""Pricing categories — which range set, how it is persisted, what it prices."""

from typing import Literal

from pydantic import BaseModel, Field


class CategoryConfig(BaseModel):
    """Settings for one range set (e.g. delivery-partner distance commission)."""

    key: str = Field(
        default="delivery-boy-commission",
        min_length=1,
        description="URL segment of the backend resource, e.g. 'fee-settings'",
    )
    title: str = Field(default="Delivery Boy Commission", description="Heading shown in the editor")
    input_label: str = Field(
        default="Distance (km)",
        description="What the range bounds measure: distance, order value, …",
    )
    persistence: Literal["rows", "document"] = Field(
        default="rows",
        description="'rows' = one REST resource per range; "
                    "'document' = the whole range array lives inside one settings document.",
    )
    requires_rule: bool = Field(
        default=False,
        description="Refuse to delete the last remaining active rule of this category.",
    )
    document_field: str = Field(
        default="deliveryFeeRanges",
        description="Array field holding the ranges (document persistence only).",
    )
    currency_decimals: int = Field(
        default=2, ge=0, le=6,
        description="Minor-unit precision used when rounding resolved amounts.",
    )


DELIVERY_COMMISSION = CategoryConfig(
    key="delivery-boy-commission",
    title="Delivery Boy Commission",
    input_label="Distance (km)",
    persistence="rows",
    requires_rule=True,
)

ORDER_VALUE_FEE = CategoryConfig(
    key="fee-settings",
    title="Delivery Fee by Order Value",
    input_label="Order value",
    persistence="document",
    requires_rule=False,
)

DEFAULT_CATEGORIES: list[CategoryConfig] = [DELIVERY_COMMISSION, ORDER_VALUE_FEE]
