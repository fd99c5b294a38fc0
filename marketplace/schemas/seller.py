from decimal import Decimal

from pydantic import BaseModel, field_serializer


class SellerStatsResponse(BaseModel):
    seller_id: int
    art_listed: int
    art_sold: int
    others_listed: int
    others_sold_out: int
    units_sold: int
    orders_count: int
    pending_orders_count: int
    revenue: Decimal

    @field_serializer("revenue")
    def serialize_revenue(self, value: Decimal) -> str:
        return format(value.quantize(Decimal("0.01")), "f")
