"""Prometheus metrics exporter — consumes feature records and exposes metrics.

Subscribes to the feature topic written by the feature job, updating
Prometheus counters, histograms, and gauges as records arrive.  Grafana reads
from Prometheus to render the insider-access dashboard.

Usage:
    python -m exporter.main
    python -m exporter.main --bootstrap-servers kafka-1:29092 --port 9090
"""

import argparse
import json
import signal
import sys
import time

from confluent_kafka import Consumer, KafkaError
from prometheus_client import Counter, Histogram, Gauge, start_http_server

# Boolean feature columns counted per role when true.
FLAG_FEATURES = (
    "is_spike",
    "is_first_time",
    "is_role_violation",
    "impossible_travel",
    "rapid_device_switch",
    "is_off_hours",
)

# ---------------------------------------------------------------------------
# Record metrics
# ---------------------------------------------------------------------------
records_total = Counter(
    "af_feature_records_total",
    "Feature records processed",
    ["user_role"],
)
flags_total = Counter(
    "af_feature_flags_total",
    "Feature records with a given flag set",
    ["feature", "user_role"],
)
privacy_violations_total = Counter(
    "af_privacy_violations_total",
    "Records labelled as privacy violations",
    ["user_role"],
)

# ---------------------------------------------------------------------------
# Distributions
# ---------------------------------------------------------------------------
records_viewed = Histogram(
    "af_records_viewed",
    "Records viewed per access event",
    buckets=[10, 50, 100, 500, 1000, 5000, 10000, 50000],
)
unauthorized_ratio = Histogram(
    "af_unauthorized_ratio",
    "Per-user unauthorized share of records viewed, observed per record",
    buckets=[0.0, 0.01, 0.05, 0.1, 0.25, 0.5, 0.75, 1.0],
)
sensitive_ratio = Histogram(
    "af_sensitive_ratio",
    "Per-user sensitive share of records viewed, observed per record",
    buckets=[0.0, 0.01, 0.05, 0.1, 0.25, 0.5, 0.75, 1.0],
)

# ---------------------------------------------------------------------------
# Throughput gauge (updated every second)
# ---------------------------------------------------------------------------
records_per_second = Gauge(
    "af_records_per_second",
    "Current record processing rate",
)
export_errors_total = Counter(
    "af_export_errors_total",
    "JSON parse or Kafka consumer errors in the exporter",
)

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down exporter...")
    running = False


signal.signal(signal.SIGINT, _shutdown)
signal.signal(signal.SIGTERM, _shutdown)


# ---------------------------------------------------------------------------
# Metric updaters
# ---------------------------------------------------------------------------

def _process_record(record: dict):
    """Update Prometheus metrics for one feature record."""
    role = record.get("user_role", "unknown")

    records_total.labels(user_role=role).inc()
    for feature in FLAG_FEATURES:
        if record.get(feature):
            flags_total.labels(feature=feature, user_role=role).inc()
    if record.get("is_privacy_violation"):
        privacy_violations_total.labels(user_role=role).inc()

    records_viewed.observe(record.get("records_viewed", 0))
    # Ratios may be null when the job ran in lenient mode.
    if record.get("unauthorized_ratio") is not None:
        unauthorized_ratio.observe(record["unauthorized_ratio"])
    if record.get("sensitive_ratio") is not None:
        sensitive_ratio.observe(record["sensitive_ratio"])


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="Prometheus metrics exporter")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--topic", default="access-features")
    parser.add_argument(
        "--port", type=int, default=9090, help="Prometheus metrics HTTP port",
    )
    args = parser.parse_args()

    start_http_server(args.port)
    print(f"Prometheus metrics server started on :{args.port}")

    consumer = Consumer({
        "bootstrap.servers": args.bootstrap_servers,
        "group.id": "feature-metrics-exporter",
        "auto.offset.reset": "latest",
        "enable.auto.commit": True,
    })
    consumer.subscribe([args.topic])

    count = 0
    window_start = time.time()
    window_count = 0

    print(f"Exporter consuming from {args.topic} ...")

    try:
        while running:
            msg = consumer.poll(1.0)
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                export_errors_total.inc()
                print(f"Consumer error: {msg.error()}", file=sys.stderr)
                continue

            try:
                record = json.loads(msg.value().decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError):
                export_errors_total.inc()
                continue

            _process_record(record)

            count += 1
            window_count += 1

            # Update rate gauge roughly every second
            now = time.time()
            elapsed = now - window_start
            if elapsed >= 1.0:
                records_per_second.set(window_count / elapsed)
                window_start = now
                window_count = 0

            if count % 5000 == 0:
                print(f"  ... {count} records exported to metrics")
    finally:
        consumer.close()
        print(f"Exporter done. {count} records processed.")


if __name__ == "__main__":
    main()
