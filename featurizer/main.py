"""Feature batch job — reads access events, computes features, writes records.

Events come from a JSON-lines file or from a Kafka topic read up to the end
of every partition (that read is the run's point-in-time snapshot).  Feature
records go to a JSON-lines file, stdout, or a Kafka topic keyed by user_id.
Progress goes to stderr so stdout can carry the records.

Usage:
    python -m featurizer.main --input-file events.jsonl --output-file features.jsonl
    python -m featurizer.main --bootstrap-servers kafka-1:29092 --input-topic access-events \\
        --output-topic access-features
    python -m featurizer.main --input-file events.jsonl --report users
"""

import argparse
import json
import logging
import signal
import sys

from confluent_kafka import Consumer, Producer, KafkaError
from confluent_kafka.admin import AdminClient, NewTopic

from featurizer.engine import FeatureEngine
from featurizer.errors import FeatureError, IncompleteSnapshotError, MalformedEventError
from featurizer.events import parse_events, read_jsonl
from featurizer.reports import role_access_matrix, user_activity_report

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down feature job...", file=sys.stderr)
    running = False


signal.signal(signal.SIGINT, _shutdown)
signal.signal(signal.SIGTERM, _shutdown)


def _ensure_topic(bootstrap_servers, topic):
    """Create the output topic if it doesn't already exist."""
    admin = AdminClient({"bootstrap.servers": bootstrap_servers})
    fs = admin.create_topics([NewTopic(topic, num_partitions=3, replication_factor=3)])
    for t, f in fs.items():
        try:
            f.result()
            print(f"Created topic '{t}'", file=sys.stderr)
        except Exception as e:
            if "TOPIC_ALREADY_EXISTS" in str(e):
                print(f"Topic '{t}' already exists", file=sys.stderr)
            else:
                raise


def read_topic(bootstrap_servers, topic, group_id) -> list[dict]:
    """Consume *topic* from the beginning until every assigned partition hits EOF.

    Offsets are never committed, so each run re-reads the full history.  A
    read stopped by a shutdown signal before that point raises
    IncompleteSnapshotError instead of returning a partial history.
    """
    consumer = Consumer({
        "bootstrap.servers": bootstrap_servers,
        "group.id": group_id,
        "auto.offset.reset": "earliest",
        "enable.auto.commit": False,
        "enable.partition.eof": True,
    })
    assigned = set()
    finished = set()

    def _complete():
        return bool(assigned) and finished >= assigned

    def _on_assign(c, partitions):
        assigned.update(p.partition for p in partitions)

    consumer.subscribe([topic], on_assign=_on_assign)

    records = []
    try:
        while running:
            msg = consumer.poll(1.0)
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    finished.add(msg.partition())
                    if _complete():
                        break
                    continue
                print(f"Consumer error: {msg.error()}", file=sys.stderr)
                continue

            try:
                records.append(json.loads(msg.value().decode("utf-8")))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise MalformedEventError(
                    None, f"{topic}[{msg.partition()}]@{msg.offset()}: undecodable message ({e})"
                ) from None
            if len(records) % 5000 == 0:
                print(f"  ... {len(records)} events read", file=sys.stderr)
    finally:
        consumer.close()

    if not _complete():
        raise IncompleteSnapshotError(topic, assigned - finished)
    return records


def write_topic(bootstrap_servers, topic, rows: list[dict]):
    _ensure_topic(bootstrap_servers, topic)
    producer = Producer({
        "bootstrap.servers": bootstrap_servers,
        "acks": "all",
        "client.id": "feature-engine",
    })
    try:
        for i, row in enumerate(rows, start=1):
            producer.produce(
                topic,
                key=str(row["user_id"]).encode(),
                value=json.dumps(row).encode("utf-8"),
            )
            producer.poll(0)
            # Batch flush every 1000 records (producer buffers internally)
            if i % 1000 == 0:
                producer.flush()
    finally:
        producer.flush()


def write_jsonl(rows: list[dict], out):
    for row in rows:
        out.write(json.dumps(row))
        out.write("\n")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Access-event feature job")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--input-file", help="JSON-lines file of access events")
    source.add_argument("--input-topic", help="Kafka topic of access events")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--group-id", default="feature-engine")
    parser.add_argument("--output-file", help="JSON-lines output (default: stdout)")
    parser.add_argument("--output-topic", help="Kafka topic for feature records")
    parser.add_argument(
        "--parallel", action="store_true", default=False,
        help="Run detectors concurrently",
    )
    parser.add_argument(
        "--report", choices=("users", "roles"),
        help="Emit an analyst report instead of feature records",
    )
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), stream=sys.stderr,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        if args.input_file:
            events = parse_events(read_jsonl(args.input_file))
        else:
            events = parse_events(
                read_topic(args.bootstrap_servers, args.input_topic, args.group_id)
            )

        if args.report == "users":
            rows = [a.to_dict() for a in user_activity_report(events)]
        elif args.report == "roles":
            rows = [c.to_dict() for c in role_access_matrix(events)]
        else:
            run = FeatureEngine(parallel=args.parallel).run(events)
            rows = [r.to_dict() for r in run.records]
            for detector_id, evidence in run.evidence.items():
                print(f"  {detector_id:<22s} {json.dumps(evidence)}", file=sys.stderr)
    except FeatureError as e:
        print(f"Feature run failed: {e}", file=sys.stderr)
        return 1

    if args.output_topic:
        write_topic(args.bootstrap_servers, args.output_topic, rows)
    elif args.output_file:
        with open(args.output_file, "w") as f:
            write_jsonl(rows, f)
    else:
        write_jsonl(rows, sys.stdout)

    print(f"Done. {len(events)} events in, {len(rows)} rows out.", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
