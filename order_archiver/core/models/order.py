"""
Order and Product models: the archive's unit of transfer.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field, StrictInt, StrictStr, field_validator


class Product(BaseModel):
    """
    A single line item of an order.

    Source documents carry each product as an independently JSON-encoded
    string such as ``{"id": "p1", "amount": 3}``. The ``id`` key maps to
    ``code``, which is the tag name used by the archive.

    Attributes:
        code: Item identifier, passed through unchanged
        amount: Quantity; zero and negative values are kept as encoded
    """

    code: StrictStr = Field(..., alias="id")
    amount: StrictInt

    class Config:
        frozen = True
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "id": "p1",
                "amount": 3,
            }
        }


class Order(BaseModel):
    """
    An order as stored in the archive.

    Orders are immutable once built by the transformer. An order without
    products is valid and archived as-is.

    Attributes:
        uid: External identifier (owner/session token), not format-validated
        date: Creation timestamp assigned by the store
        products: Ordered line items
    """

    uid: StrictStr
    date: datetime
    products: tuple[Product, ...] = ()

    @field_validator("date")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are taken to be UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "uid": "u1",
                "date": "2024-01-01T00:00:00Z",
                "products": [{"id": "p1", "amount": 3}],
            }
        }
