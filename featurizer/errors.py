"""Error taxonomy for a feature run.

Failures caused by the input are deterministic: the same input fails the
same way on every run, so nothing here is retried.  Each error carries the
component and the offending key so the caller can diagnose without
re-running with extra logging.
"""


class FeatureError(Exception):
    """Base class for all feature-engine failures."""


class EmptyPopulationError(FeatureError):
    """Population percentiles were requested over an empty event set."""

    def __init__(self, component: str):
        self.component = component
        super().__init__(f"{component}: percentiles are undefined for an empty event set")


class MalformedEventError(FeatureError):
    """An input event violates the AccessEvent schema."""

    def __init__(self, event_id, reason: str):
        self.event_id = event_id
        self.reason = reason
        super().__init__(f"event {event_id!r}: {reason}")


class AssemblyGapError(FeatureError):
    """A detector produced no output for a key the assembler needed.

    Every detector is total over the event set, so this always points at a
    detector bug rather than bad input.
    """

    def __init__(self, detector: str, key):
        self.detector = detector
        self.key = key
        super().__init__(f"{detector}: no output for key {key!r}")


class PolicyError(FeatureError):
    """The role-policy document is invalid."""


class IncompleteSnapshotError(FeatureError):
    """The input topic was not read to the end of every assigned partition."""

    def __init__(self, topic: str, pending):
        self.topic = topic
        self.pending = sorted(pending)
        if self.pending:
            detail = f"partitions {self.pending} not read to the end"
        else:
            detail = "no partitions assigned"
        super().__init__(f"{topic}: read interrupted, {detail}")
