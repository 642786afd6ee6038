"""
Prometheus metrics collection for order-archiver

A transfer is a short-lived batch job, so metrics are not served over HTTP;
the CLI writes the registry to a textfile-collector file at the end of a run.
"""
from pathlib import Path

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    write_to_textfile,
)


# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# TRANSFER METRICS
# =======================

documents_fetched_total = Counter(
    name="order_archiver_documents_fetched_total",
    documentation="Documents fetched from the order store",
    labelnames=["collection"],
    registry=REGISTRY,
)

orders_archived_total = Counter(
    name="order_archiver_orders_archived_total",
    documentation="Orders committed to an archive file",
    labelnames=["format"],
    registry=REGISTRY,
)

products_decoded_total = Counter(
    name="order_archiver_products_decoded_total",
    documentation="Line items decoded into products",
    registry=REGISTRY,
)

item_decode_failures_total = Counter(
    name="order_archiver_item_decode_failures_total",
    documentation="Line items that failed to decode",
    labelnames=["action"],  # action: skipped, zeroed, failed
    registry=REGISTRY,
)

documents_purged_total = Counter(
    name="order_archiver_documents_purged_total",
    documentation="Documents deleted from the order store after archiving",
    labelnames=["collection"],
    registry=REGISTRY,
)

transfer_runs_total = Counter(
    name="order_archiver_transfer_runs_total",
    documentation="Transfer runs by outcome",
    labelnames=["outcome"],  # outcome: done, dry_run, or the aborting stage
    registry=REGISTRY,
)

stage_duration_seconds = Histogram(
    name="order_archiver_stage_duration_seconds",
    documentation="Time spent in each transfer stage",
    labelnames=["stage"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def write_metrics_file(path: str | Path) -> None:
    """Write the registry for the node exporter textfile collector."""
    write_to_textfile(str(path), REGISTRY)


class MetricsCollector:
    """
    Metrics collector for a transfer run.

    Gives the coordinator one place to report each stage's outcome.
    """

    def __init__(self, collection: str = "orders", archive_format: str = "xml"):
        self.collection = collection
        self.archive_format = archive_format

    def record_stage(self, stage: str, duration_seconds: float) -> None:
        stage_duration_seconds.labels(stage=stage).observe(duration_seconds)

    def record_fetch(self, document_count: int) -> None:
        if document_count > 0:
            documents_fetched_total.labels(collection=self.collection).inc(document_count)

    def record_transform(self, product_count: int, issue_actions: list[str]) -> None:
        """
        Record decoded products and line item decode failures.

        Args:
            product_count: Products successfully decoded
            issue_actions: One action ("skipped", "zeroed") per failed item
        """
        if product_count > 0:
            products_decoded_total.inc(product_count)
        for action in issue_actions:
            item_decode_failures_total.labels(action=action).inc()

    def record_decode_failure(self, action: str) -> None:
        item_decode_failures_total.labels(action=action).inc()

    def record_archive(self, order_count: int) -> None:
        if order_count > 0:
            orders_archived_total.labels(format=self.archive_format).inc(order_count)

    def record_purge(self, document_count: int) -> None:
        if document_count > 0:
            documents_purged_total.labels(collection=self.collection).inc(document_count)

    def record_outcome(self, outcome: str) -> None:
        transfer_runs_total.labels(outcome=outcome).inc()
