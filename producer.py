"""Synthetic access-log generator.

Simulates a month of resource access across the five roles, with a mix of
well-behaved users and anomalous profiles that each exercise one detector.
Output is deterministic for a given --seed, so a generated file doubles as a
regression fixture.

Usage:
    python producer.py --output-file events.jsonl
    python producer.py --normal 40 --travelers 2 --violators 3 --seed 7
    python producer.py --topic access-events --bootstrap-servers kafka-1:29092
"""

import argparse
import json
import random
import signal
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta

from confluent_kafka import Producer
from confluent_kafka.admin import AdminClient, NewTopic

# resource -> sensitive?
RESOURCES = {
    "hr_files": True,
    "payroll_records": True,
    "customer_table": True,
    "flight_logs": False,
    "maintenance_logs": False,
    "server_logs": False,
}

# Resources each role normally works with, and the access types it uses on
# them.  Mirrors the bundled role policy.
ROLE_ACCESS = {
    "HR": {"hr_files": ["read", "write"], "payroll_records": ["read"]},
    "Finance": {"payroll_records": ["read", "write", "export"]},
    "IT": {r: ["read", "write", "delete"] for r in RESOURCES},
    "Customer Service": {"customer_table": ["read", "write"]},
    "Pilot": {"flight_logs": ["read", "write"], "maintenance_logs": ["read"]},
}

LOCATIONS = ["New York", "Chicago", "Dallas", "Denver", "Seattle", "Atlanta", "Miami"]
DEVICES = ["laptop", "desktop", "mobile", "tablet"]

PROFILES = ("normal", "traveler", "device_hopper", "violator", "night_owl", "bulk_exporter")

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down generator...")
    running = False


signal.signal(signal.SIGINT, _shutdown)   # Ctrl+C (local dev)
signal.signal(signal.SIGTERM, _shutdown)  # docker stop / k8s pod termination


# ---------------------------------------------------------------------------
# User profiles
# ---------------------------------------------------------------------------

@dataclass
class User:
    user_id: int
    role: str
    profile: str  # one of PROFILES
    home_location: str
    device: str


def _create_users(rng, counts: dict[str, int]) -> list[User]:
    """Build the user pool. Each user gets a stable role, home and device."""
    users = []
    uid = 100
    roles = list(ROLE_ACCESS)
    for profile in PROFILES:
        for _ in range(counts.get(profile, 0)):
            uid += 1
            users.append(User(
                user_id=uid,
                role=rng.choice(roles),
                profile=profile,
                home_location=rng.choice(LOCATIONS),
                device=rng.choice(DEVICES),
            ))
    return users


# ---------------------------------------------------------------------------
# Event generation
# ---------------------------------------------------------------------------

def _next_business_time(rng, ts: datetime) -> datetime:
    """Roll *ts* forward into a weekday 08:00–17:59 slot."""
    if ts.hour >= 18:
        ts = (ts + timedelta(days=1)).replace(hour=8, minute=rng.randint(0, 45))
    elif ts.hour < 8:
        ts = ts.replace(hour=8, minute=rng.randint(0, 45))
    while ts.weekday() >= 5:  # Saturday, Sunday
        ts = (ts + timedelta(days=1)).replace(hour=8, minute=rng.randint(0, 45))
    return ts


def _make_event(rng, user: User, ts: datetime, prev: dict | None) -> dict:
    """Generate one access event for *user* at *ts* based on their profile."""
    allowed = ROLE_ACCESS[user.role]
    resource = rng.choice(list(allowed))
    access_type = rng.choice(allowed[resource])
    authorized = True
    records = rng.randint(5, 400)
    location = user.home_location
    device = user.device

    forbidden = [r for r in RESOURCES if r not in allowed]  # empty for IT

    if user.profile == "violator" and forbidden and rng.random() < 0.4:
        resource = rng.choice(forbidden)
        access_type = rng.choice(["read", "export"])
        authorized = rng.random() < 0.2

    elif user.profile == "bulk_exporter" and rng.random() < 0.3:
        access_type = "export" if "export" in allowed[resource] else access_type
        records = rng.randint(5_000, 20_000)

    elif user.profile == "traveler" and prev is not None and rng.random() < 0.5:
        location = rng.choice([loc for loc in LOCATIONS if loc != prev["location"]])

    elif user.profile == "device_hopper" and prev is not None and rng.random() < 0.5:
        device = rng.choice([d for d in DEVICES if d != prev["device_type"]])

    sensitive = RESOURCES[resource]
    return {
        "event_id": 0,  # assigned by generate()
        "user_id": user.user_id,
        "user_role": user.role,
        "resource_accessed": resource,
        "resource_sens": sensitive,
        "access_timestamp": ts.isoformat(timespec="seconds"),
        "location": location,
        "device_type": device,
        "access_type": access_type,
        "records_viewed": records,
        "is_authorized": authorized,
        "is_privacy_violation": sensitive and not authorized,
    }


def _user_events(rng, user: User, start: datetime, count: int) -> list[dict]:
    events = []
    ts = start + timedelta(minutes=rng.randint(0, 600))
    prev = None
    for _ in range(count):
        if user.profile in ("traveler", "device_hopper"):
            ts += timedelta(minutes=rng.randint(5, 100))
        else:
            ts += timedelta(minutes=rng.randint(30, 300))
        if user.profile != "night_owl":
            ts = _next_business_time(rng, ts)
        event = _make_event(rng, user, ts, prev)
        events.append(event)
        prev = event
    return events


def generate(counts: dict[str, int], events_per_user: int = 40, seed: int = 42,
             start: datetime = datetime(2025, 1, 6, 8, 0)) -> list[dict]:
    """Build the full synthetic event set.

    event_ids follow generation order (user by user), which is deliberately
    not the same as timestamp order.
    """
    rng = random.Random(seed)
    users = _create_users(rng, counts)
    events = []
    for user in users:
        n = max(1, events_per_user + rng.randint(-events_per_user // 4, events_per_user // 4))
        events.extend(_user_events(rng, user, start, n))
    for event_id, event in enumerate(events, start=1):
        event["event_id"] = event_id
    return events


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

def _ensure_topics(bootstrap_servers, topics):
    """Create Kafka topics if they don't already exist."""
    admin = AdminClient({"bootstrap.servers": bootstrap_servers})
    new_topics = [NewTopic(t, num_partitions=3, replication_factor=3) for t in topics]
    fs = admin.create_topics(new_topics)
    for topic, f in fs.items():
        try:
            f.result()
            print(f"Created topic '{topic}'")
        except Exception as e:
            if "TOPIC_ALREADY_EXISTS" in str(e):
                print(f"Topic '{topic}' already exists")
            else:
                raise


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="Synthetic access-log generator")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--topic", default="access-events")
    parser.add_argument("--output-file", help="Write JSON lines here instead of Kafka")
    parser.add_argument("--normal", type=int, default=20)
    parser.add_argument("--travelers", type=int, default=1)
    parser.add_argument("--device-hoppers", type=int, default=1)
    parser.add_argument("--violators", type=int, default=2)
    parser.add_argument("--night-owls", type=int, default=1)
    parser.add_argument("--bulk-exporters", type=int, default=1)
    parser.add_argument("--events-per-user", type=int, default=40)
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    counts = {
        "normal": args.normal,
        "traveler": args.travelers,
        "device_hopper": args.device_hoppers,
        "violator": args.violators,
        "night_owl": args.night_owls,
        "bulk_exporter": args.bulk_exporters,
    }
    events = generate(counts, events_per_user=args.events_per_user, seed=args.seed)
    print(f"Generated {len(events)} events for {sum(counts.values())} users "
          f"(seed={args.seed})", file=sys.stderr)

    if args.output_file:
        with open(args.output_file, "w") as f:
            for event in events:
                f.write(json.dumps(event) + "\n")
        print(f"Done. {len(events)} events written to {args.output_file}", file=sys.stderr)
        return

    _ensure_topics(args.bootstrap_servers, [args.topic])

    producer = Producer({
        "bootstrap.servers": args.bootstrap_servers,
        "acks": "all",
        "client.id": "access-event-generator",
    })

    count = 0
    for event in events:
        if not running:
            break
        producer.produce(
            topic=args.topic,
            key=str(event["user_id"]).encode(),
            value=json.dumps(event),
        )
        producer.poll(0)

        count += 1
        if count % 500 == 0:
            print(f"  ... {count} events produced")

    producer.flush()
    print(f"Done. {count} events produced.")


if __name__ == "__main__":
    main()
