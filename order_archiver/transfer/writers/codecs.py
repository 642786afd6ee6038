"""
Archive serialization formats.

The XML layout is the legacy one and its tag names are a compatibility
surface for existing consumers:

    <orders>
      <order>
        <uid>u1</uid>
        <date>2024-01-01T00:00:00Z</date>
        <products>
          <product><code>p1</code><amount>3</amount></product>
        </products>
      </order>
    </orders>

The JSON layout mirrors it: ``{"orders": [{"uid", "date", "products": [{"code", "amount"}]}]}``.
"""

import json
import re
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Sequence

from order_archiver.core.models import Order, Product
from order_archiver.utils.timestamps import format_timestamp, parse_timestamp

# Characters outside the XML 1.0 Char production cannot appear in a document,
# not even as character references
_ILLEGAL_XML_CHARS = re.compile("[^\x09\x0A\x0D\x20-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")


class ArchiveCodec(ABC):
    """Turns a full sequence of orders into archive bytes and back."""

    name: str = ""
    suffix: str = ""

    @abstractmethod
    def encode(self, orders: Sequence[Order]) -> bytes:
        pass

    @abstractmethod
    def decode(self, data: bytes) -> list[Order]:
        """
        Raises:
            ValueError: If the data is not a well-formed archive
        """
        pass


class XmlArchiveCodec(ArchiveCodec):
    """Legacy XML archive format (no XML declaration, no indentation)."""

    name = "xml"
    suffix = ".xml"

    def encode(self, orders: Sequence[Order]) -> bytes:
        """
        Raises:
            ValueError: If a uid or product code holds a character XML cannot carry
        """
        root = ET.Element("orders")
        for order in orders:
            order_el = ET.SubElement(root, "order")
            ET.SubElement(order_el, "uid").text = _xml_text(order.uid, "uid")
            ET.SubElement(order_el, "date").text = format_timestamp(order.date)
            products_el = ET.SubElement(order_el, "products")
            for product in order.products:
                product_el = ET.SubElement(products_el, "product")
                ET.SubElement(product_el, "code").text = _xml_text(product.code, "code")
                ET.SubElement(product_el, "amount").text = str(product.amount)

        data = ET.tostring(root, encoding="utf-8", xml_declaration=False)
        # A literal CR would be read back as LF; only element text can hold one
        return data.replace(b"\r", b"&#13;")

    def decode(self, data: bytes) -> list[Order]:
        try:
            root = ET.fromstring(data)
        except ET.ParseError as e:
            raise ValueError(f"malformed XML archive: {e}") from e

        if root.tag != "orders":
            raise ValueError(f"expected root element 'orders', got '{root.tag}'")

        orders = []
        for order_el in root.findall("order"):
            date_text = order_el.findtext("date")
            if not date_text:
                raise ValueError("order without a date")

            products = []
            # Archives written by the legacy tool omit <products> when empty
            products_el = order_el.find("products")
            if products_el is not None:
                for product_el in products_el.findall("product"):
                    products.append(Product(
                        code=product_el.findtext("code") or "",
                        amount=_parse_amount(product_el.findtext("amount")),
                    ))

            orders.append(Order(
                uid=order_el.findtext("uid") or "",
                date=parse_timestamp(date_text),
                products=tuple(products),
            ))
        return orders


class JsonArchiveCodec(ArchiveCodec):
    """JSON archive with the same nesting as the XML one."""

    name = "json"
    suffix = ".json"

    def encode(self, orders: Sequence[Order]) -> bytes:
        document = {
            "orders": [
                {
                    "uid": order.uid,
                    "date": format_timestamp(order.date),
                    "products": [
                        {"code": product.code, "amount": product.amount}
                        for product in order.products
                    ],
                }
                for order in orders
            ]
        }
        return json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")

    def decode(self, data: bytes) -> list[Order]:
        try:
            document = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValueError(f"malformed JSON archive: {e}") from e

        if not isinstance(document, dict) or not isinstance(document.get("orders"), list):
            raise ValueError("expected an object with an 'orders' list")

        try:
            return [self._decode_order(entry) for entry in document["orders"]]
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed order entry: {e!r}") from e

    @staticmethod
    def _decode_order(entry: Any) -> Order:
        if not isinstance(entry, dict) or "date" not in entry:
            raise ValueError(f"malformed order entry: {entry!r}")
        return Order(
            uid=entry.get("uid", ""),
            date=parse_timestamp(entry["date"]),
            products=tuple(
                Product(code=product["code"], amount=product["amount"])
                for product in entry.get("products") or []
            ),
        )


def _xml_text(value: str, field_name: str) -> str:
    match = _ILLEGAL_XML_CHARS.search(value)
    if match:
        raise ValueError(
            f"{field_name} {value!r} contains U+{ord(match.group()):04X}, which XML 1.0 cannot represent"
        )
    return value


def _parse_amount(text: str | None) -> int:
    if text is None:
        raise ValueError("product without an amount")
    return int(text.strip())


CODECS: dict[str, type[ArchiveCodec]] = {
    XmlArchiveCodec.name: XmlArchiveCodec,
    JsonArchiveCodec.name: JsonArchiveCodec,
}


def get_codec(name: str) -> ArchiveCodec:
    """
    Look up a codec by format name.

    Raises:
        ValueError: If the format is unsupported
    """
    try:
        return CODECS[name.lower()]()
    except KeyError:
        raise ValueError(f"Unsupported archive format: {name}") from None


def codec_for_path(path: str | Path) -> ArchiveCodec:
    """Guess the codec from a file suffix; anything but .json is XML."""
    if Path(path).suffix.lower() == JsonArchiveCodec.suffix:
        return JsonArchiveCodec()
    return XmlArchiveCodec()
