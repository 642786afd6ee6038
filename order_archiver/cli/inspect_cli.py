"""
Inspect a committed archive.

Usage:
    order-archiver-inspect path/to/orders.xml [--format xml|json] [--orders]
"""

import argparse
import json
import sys

from order_archiver.core.errors import EXIT_OK, EXIT_UNEXPECTED
from order_archiver.observability.logger import get_logger
from order_archiver.transfer.writers import ArchiveReader, get_codec
from order_archiver.utils.timestamps import format_timestamp

logger = get_logger(__name__)


def inspect_command(args) -> int:
    """
    Print a JSON summary of an archive to stdout.

    Args:
        args: Command line arguments

    Returns:
        Process exit status
    """
    codec = get_codec(args.format) if args.format else None
    try:
        orders = ArchiveReader(args.archive, codec=codec).read()
    except FileNotFoundError:
        logger.error(f"Archive not found: {args.archive}")
        return EXIT_UNEXPECTED
    except ValueError as e:
        logger.error(f"Archive {args.archive} is malformed: {e}")
        return EXIT_UNEXPECTED

    dates = [order.date for order in orders]
    summary = {
        "archive": args.archive,
        "orders": len(orders),
        "products": sum(len(order.products) for order in orders),
        "newest": format_timestamp(max(dates)) if dates else None,
        "oldest": format_timestamp(min(dates)) if dates else None,
    }
    if args.orders:
        summary["entries"] = [
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

    print(json.dumps(summary, indent=2))
    return EXIT_OK


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="order-archiver-inspect",
        description="Summarize an order archive",
    )
    parser.add_argument("archive", help="Archive file to read")
    parser.add_argument(
        "--format",
        choices=["xml", "json"],
        help="Archive format (default: guessed from the file suffix)"
    )
    parser.add_argument(
        "--orders",
        action="store_true",
        help="Include every order in the output"
    )

    args = parser.parse_args(argv)
    sys.exit(inspect_command(args))


if __name__ == "__main__":
    main()
