"""
Record transformer: raw store documents to Order models.

Required fields are checked per document and a missing or malformed one
aborts the whole run. Line items are decoded one by one; a bad item never
stops the others, and what happens to it depends on the item error policy.

Document contract (field names configurable):
    uid       required, string
    date      required, datetime or RFC 3339 string
    products  optional, list of JSON strings ``{"id": str, "amount": int}``;
              absent or null means no products
"""

from datetime import datetime
from typing import Any, Sequence

from pydantic import ValidationError

from order_archiver.core.config import ArchiverConfig, ItemErrorPolicy
from order_archiver.core.errors import DocumentShapeError, ProductDecodeError
from order_archiver.core.models import (
    ItemDecodeIssue,
    Order,
    Product,
    StoreDocument,
    TransformResult,
)
from order_archiver.observability.logger import get_logger
from order_archiver.utils.timestamps import parse_timestamp

logger = get_logger(__name__)

# Placeholder kept under the "zero" policy
ZERO_PRODUCT = Product(code="", amount=0)


def decode_product(payload: Any) -> Product:
    """
    Decode one encoded line item.

    Raises:
        ValueError: If the payload is not a string or not a valid product
            (pydantic's ValidationError is a ValueError)
    """
    if not isinstance(payload, str):
        raise ValueError(f"payload must be a JSON string, got {type(payload).__name__}")
    return Product.model_validate_json(payload)


def describe_decode_error(error: ValueError) -> str:
    """One-line summary of a decode failure."""
    if isinstance(error, ValidationError):
        parts = []
        for detail in error.errors():
            location = ".".join(str(part) for part in detail["loc"])
            parts.append(f"{location}: {detail['msg']}" if location else detail["msg"])
        return "; ".join(parts)
    return str(error)


class RecordTransformer:
    """
    Converts fetched documents into orders, keeping input length and order.
    """

    def __init__(
        self,
        identifier_field: str = "uid",
        timestamp_field: str = "date",
        line_items_field: str = "products",
        item_error_policy: ItemErrorPolicy = ItemErrorPolicy.SKIP,
    ):
        self.identifier_field = identifier_field
        self.timestamp_field = timestamp_field
        self.line_items_field = line_items_field
        self.item_error_policy = ItemErrorPolicy(item_error_policy)

    @classmethod
    def from_config(cls, config: ArchiverConfig) -> "RecordTransformer":
        return cls(
            identifier_field=config.identifier_field,
            timestamp_field=config.timestamp_field,
            line_items_field=config.line_items_field,
            item_error_policy=config.item_error_policy,
        )

    def transform(self, documents: Sequence[StoreDocument]) -> TransformResult:
        """
        Build one Order per document.

        Args:
            documents: Documents in fetch order

        Returns:
            TransformResult with orders in the same order as ``documents``

        Raises:
            DocumentShapeError: A required field is missing or malformed
            ProductDecodeError: A line item failed under the "fail" policy
        """
        result = TransformResult()

        for index, document in enumerate(documents):
            data = document.data
            uid = self._read_identifier(index, data)
            date = self._read_timestamp(index, data)
            products = self._decode_line_items(index, uid, data, result.issues)
            result.orders.append(Order(uid=uid, date=date, products=tuple(products)))

        if result.issues:
            logger.warning(
                f"{len(result.issues)} line items failed to decode",
                extra={"issue_count": len(result.issues), "policy": self.item_error_policy.value},
            )
        return result

    def _read_identifier(self, index: int, data: dict[str, Any]) -> str:
        if self.identifier_field not in data:
            raise DocumentShapeError(index, self.identifier_field, "is missing")

        value = data[self.identifier_field]
        if not isinstance(value, str):
            raise DocumentShapeError(
                index, self.identifier_field, f"must be a string, got {type(value).__name__}"
            )
        return value

    def _read_timestamp(self, index: int, data: dict[str, Any]) -> datetime:
        if self.timestamp_field not in data:
            raise DocumentShapeError(index, self.timestamp_field, "is missing")

        value = data[self.timestamp_field]
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return parse_timestamp(value)
            except ValueError as e:
                raise DocumentShapeError(index, self.timestamp_field, str(e)) from e

        raise DocumentShapeError(
            index, self.timestamp_field, f"must be a timestamp, got {type(value).__name__}"
        )

    def _decode_line_items(
        self,
        index: int,
        uid: str,
        data: dict[str, Any],
        issues: list[ItemDecodeIssue],
    ) -> list[Product]:
        payloads = data.get(self.line_items_field)
        if payloads is None:
            return []
        if not isinstance(payloads, (list, tuple)):
            raise DocumentShapeError(
                index, self.line_items_field, f"must be a list, got {type(payloads).__name__}"
            )

        products = []
        for item_index, payload in enumerate(payloads):
            try:
                products.append(decode_product(payload))
                continue
            except ValueError as e:
                message = describe_decode_error(e)
                if self.item_error_policy == ItemErrorPolicy.FAIL:
                    raise ProductDecodeError(index, item_index, self.line_items_field, message) from e

            if self.item_error_policy == ItemErrorPolicy.ZERO:
                products.append(ZERO_PRODUCT)
                action = "zeroed"
            else:
                action = "skipped"

            issues.append(ItemDecodeIssue(
                document_index=index,
                item_index=item_index,
                uid=uid,
                error=message,
                action=action,
            ))
            logger.warning(
                f"Line item {item_index} of order {uid} {action}: {message}",
                extra={"document_index": index, "item_index": item_index, "uid": uid, "action": action},
            )

        return products
