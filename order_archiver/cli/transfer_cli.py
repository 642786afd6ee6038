"""
Command-line interface for the order transfer.

Usage:
    order-archiver path/to/orders.xml path/to/key.json [options]
    python -m order_archiver.cli.transfer_cli path/to/orders.xml path/to/key.json [options]

Exit status identifies the failure class:
    0 success, 1 unexpected, 2 usage/configuration, 3 precondition,
    4 lock, 5 store fetch, 6 malformed document, 7 archive write,
    8 store purge, 130 interrupted
"""

import argparse
import sys
from pathlib import Path

from order_archiver.core.config import ArchiverConfig, ItemErrorPolicy, load_config
from order_archiver.core.errors import (
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_UNEXPECTED,
    EXIT_USAGE,
    ArchiverError,
    PurgeError,
)
from order_archiver.core.lock import default_lock_path
from order_archiver.core.safety import SafetyChecker
from order_archiver.observability.logger import get_logger, setup_logger
from order_archiver.observability.metrics import write_metrics_file
from order_archiver.transfer.coordinator import TransferCoordinator
from order_archiver.transfer.readers import OrderStore
from order_archiver.transfer.readers.firestore_store import FirestoreOrderStore


logger = get_logger(__name__)


def create_store(credentials_path: str | Path, config: ArchiverConfig) -> OrderStore:
    """
    Connect to the Firestore collection holding the orders.

    Args:
        credentials_path: Service account key file
        config: Effective configuration

    Returns:
        OrderStore
    """
    return FirestoreOrderStore.from_credentials_file(
        credentials_path,
        collection=config.collection,
        order_by=config.order_by,
        timeout=config.request_timeout,
        chunk_size=config.delete_chunk_size,
    )


def transfer_command(args) -> int:
    """
    Execute the transfer and map its outcome to an exit status.

    Args:
        args: Command-line arguments

    Returns:
        Process exit status
    """
    try:
        config = load_config(
            args.config,
            archive_format=args.format,
            item_error_policy=args.item_error_policy,
            lock_path=args.lock_path,
            log_level=args.log_level,
            log_format=args.log_format,
        )
    except (OSError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_USAGE

    setup_logger(level=config.log_level, format_type=config.log_format)

    logger.info(f"Archive: {args.archive}")
    logger.info(f"Collection: {config.collection}")

    try:
        # A blocked run reports the precondition, whatever the state of the credentials
        SafetyChecker(args.archive, config.lock_path or default_lock_path()).enforce()

        store = create_store(args.credentials, config)
        coordinator = TransferCoordinator.from_config(
            store, args.archive, config, dry_run=args.dry_run
        )
        report = coordinator.run()

    except PurgeError as e:
        logger.error(
            f"Transfer aborted at {e.stage}: {e}",
            extra={"stage": e.stage, "exit_code": e.exit_code, "undeleted": len(e.undeleted)},
        )
        logger.error(
            f"{args.archive} is committed but {len(e.undeleted)} documents were not deleted; "
            "the next run will archive them again"
        )
        return e.exit_code
    except ArchiverError as e:
        logger.error(
            f"Transfer aborted at {e.stage}: {e}",
            extra={"stage": e.stage, "exit_code": e.exit_code},
        )
        return e.exit_code
    except KeyboardInterrupt:
        logger.warning("Transfer interrupted")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.error(f"Unexpected error during transfer: {e}", exc_info=True)
        return EXIT_UNEXPECTED
    finally:
        if args.metrics_file:
            _write_metrics(args.metrics_file)

    # Display results
    logger.info("=" * 60)
    logger.info("TRANSFER COMPLETE" if not report.dry_run else "DRY RUN COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Documents fetched: {report.documents_fetched}")
    logger.info(f"Orders archived: {report.orders_archived}")
    logger.info(f"Products decoded: {report.products_decoded}")
    logger.info(f"Line items with decode errors: {len(report.item_issues)}")
    logger.info(f"Documents purged: {report.documents_purged}")
    logger.info(f"Duration: {report.duration_seconds:.3f}s")
    logger.info("=" * 60)

    return EXIT_OK


def _write_metrics(path: str) -> None:
    try:
        write_metrics_file(path)
    except OSError as e:
        logger.warning(f"Could not write metrics file {path}: {e}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="order-archiver",
        description="Move every order from the store into a new archive file, then delete them from the store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Archive and purge all orders
  order-archiver archive/orders-2024-06.xml secrets/key.json

  # See what would be archived without writing or deleting anything
  order-archiver archive/orders-2024-06.xml secrets/key.json --dry-run

  # JSON archive, abort on any malformed product
  order-archiver archive/orders.json secrets/key.json --format json \\
      --item-error-policy fail
        """
    )

    parser.add_argument("archive", help="Archive file to create (must not exist)")
    parser.add_argument("credentials", help="Service account key file for the store")
    parser.add_argument(
        "--config",
        help="Path to YAML configuration file"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and transform only; do not write the archive or delete documents"
    )
    parser.add_argument(
        "--format",
        choices=["xml", "json"],
        help="Archive format (default: xml)"
    )
    parser.add_argument(
        "--item-error-policy",
        choices=[policy.value for policy in ItemErrorPolicy],
        help="Handling of products that fail to decode (default: skip)"
    )
    parser.add_argument(
        "--lock-path",
        help="Lock marker path (default: .pid next to the program)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: INFO)"
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        help="Log format (default: json)"
    )
    parser.add_argument(
        "--metrics-file",
        help="Write Prometheus metrics to this file when the run ends"
    )

    return parser


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    sys.exit(transfer_command(args))


if __name__ == "__main__":
    main()
