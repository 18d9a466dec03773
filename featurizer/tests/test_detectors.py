"""Tests for feature detectors — thresholds, boundary semantics, determinism."""

from datetime import datetime, timedelta

import pytest

from featurizer.detectors import ALL_DETECTORS, EVENT_KEY, USER_KEY
from featurizer.detectors.first_access import FirstAccess
from featurizer.detectors.off_hours import OffHours, day_of_week, is_off_hours
from featurizer.detectors.role_policy import RoleViolation
from featurizer.detectors.user_ratios import (
    SensitiveRatio, UnauthorizedRatio, ratio, user_aggregates,
)
from featurizer.detectors.velocity import DeviceVelocity, LocationVelocity
from featurizer.detectors.volume_spike import VolumeSpike, population_bounds
from featurizer.errors import EmptyPopulationError
from featurizer.events import AccessEvent, AccessType, Role

# Tuesday
_BASE = datetime(2025, 1, 7, 9, 0)


def _event(event_id=1, user_id=1, role=Role.HR, resource="hr_files",
           access_type=AccessType.READ, minutes=0, location="Chicago",
           device="laptop", records=10, authorized=True, sensitive=True,
           ts=None):
    """Helper to build an AccessEvent with sane defaults."""
    return AccessEvent(
        event_id=event_id,
        user_id=user_id,
        user_role=role,
        resource_accessed=resource,
        resource_sens=sensitive,
        access_timestamp=ts or _BASE + timedelta(minutes=minutes),
        location=location,
        device_type=device,
        access_type=access_type,
        records_viewed=records,
        is_authorized=authorized,
        is_privacy_violation=False,
    )


# ---------------------------------------------------------------------------
# Population baseline + volume spike
# ---------------------------------------------------------------------------

class TestPopulationBounds:
    def test_linear_interpolation(self):
        """1..100: p5 = 1 + 0.05*99, p95 = 1 + 0.95*99 (continuous, not nearest-rank)."""
        events = [_event(i, records=i) for i in range(1, 101)]
        b = population_bounds(events)
        assert b.p5 == pytest.approx(5.95)
        assert b.p95 == pytest.approx(95.05)

    def test_single_event(self):
        b = population_bounds([_event(records=42)])
        assert b.p5 == b.p95 == 42.0

    def test_empty_population_raises(self):
        with pytest.raises(EmptyPopulationError) as exc:
            population_bounds(())
        assert exc.value.component == "population_baseline"


class TestVolumeSpike:
    def setup_method(self):
        self.detector = VolumeSpike()

    def test_outside_band_flagged(self):
        # 0..100: p5 = 5, p95 = 95 exactly
        events = [_event(i + 1, records=i) for i in range(101)]
        flags = self.detector.compute(events)
        spiked = sorted(e.records_viewed for e in events if flags[e.event_id])
        assert spiked == [0, 1, 2, 3, 4, 96, 97, 98, 99, 100]

    def test_values_on_bounds_not_flagged(self):
        events = [_event(i + 1, records=i) for i in range(101)]
        flags = self.detector.compute(events)
        by_records = {e.records_viewed: flags[e.event_id] for e in events}
        assert by_records[5] is False
        assert by_records[95] is False

    def test_uniform_population_has_no_spikes(self):
        events = [_event(i, records=30) for i in range(1, 11)]
        assert not any(self.detector.compute(events).values())

    def test_every_event_gets_a_flag(self):
        events = [_event(i, records=i * 7 % 13) for i in range(1, 40)]
        flags = self.detector.compute(events)
        assert set(flags) == {e.event_id for e in events}
        assert all(isinstance(v, bool) for v in flags.values())

    def test_empty_raises(self):
        with pytest.raises(EmptyPopulationError):
            self.detector.compute(())

    def test_evidence_reports_bounds(self):
        events = [_event(i + 1, records=i) for i in range(101)]
        ev = self.detector.evidence(events, self.detector.compute(events))
        assert ev["p5"] == pytest.approx(5.0)
        assert ev["p95"] == pytest.approx(95.0)
        assert ev["flagged"] == 10


# ---------------------------------------------------------------------------
# Per-user ratios
# ---------------------------------------------------------------------------

class TestRatio:
    def test_zero_total_is_zero(self):
        assert ratio(0, 0) == 0.0

    def test_rounds_to_three_places(self):
        assert ratio(1, 3) == 0.333
        assert ratio(2, 3) == 0.667

    def test_rounds_half_up(self):
        """0.0145 is below the tie as a binary float; the exact quotient rounds up."""
        assert ratio(29, 2000) == 0.015

    def test_full_ratio(self):
        assert ratio(10, 10) == 1.0


class TestUserAggregates:
    def test_sums_per_user(self):
        events = [
            _event(1, user_id=1, records=100, authorized=True, sensitive=True),
            _event(2, user_id=1, records=50, authorized=False, sensitive=False),
            _event(3, user_id=2, records=40, authorized=False, sensitive=True),
        ]
        aggs = user_aggregates(events)
        u1 = aggs[1]
        assert u1.total_records == 150
        assert u1.unauthorized_records == 50
        assert u1.unauthorized_ratio == 0.333
        assert u1.sensitive_records == 100
        assert u1.sensitive_ratio == 0.667
        assert aggs[2].unauthorized_ratio == 1.0
        assert aggs[2].sensitive_ratio == 1.0

    def test_zero_volume_user_gets_zero_ratios(self):
        events = [_event(1, records=0, authorized=False, sensitive=True)]
        agg = user_aggregates(events)[1]
        assert agg.total_records == 0
        assert agg.unauthorized_ratio == 0.0
        assert agg.sensitive_ratio == 0.0


class TestRatioDetectors:
    def test_keyed_by_user(self):
        assert UnauthorizedRatio().key == USER_KEY
        assert SensitiveRatio().key == USER_KEY

    def test_outputs_one_value_per_user(self):
        events = [
            _event(1, user_id=1, records=10, authorized=False),
            _event(2, user_id=1, records=30),
            _event(3, user_id=2, records=5, sensitive=False),
        ]
        assert UnauthorizedRatio().compute(events) == {1: 0.25, 2: 0.0}
        assert SensitiveRatio().compute(events) == {1: 1.0, 2: 0.0}

    def test_ratios_within_unit_interval(self):
        events = [
            _event(i, user_id=i % 4, records=i * 11 % 17,
                   authorized=i % 3 != 0, sensitive=i % 2 == 0)
            for i in range(1, 60)
        ]
        for detector in (UnauthorizedRatio(), SensitiveRatio()):
            for value in detector.compute(events).values():
                assert 0.0 <= value <= 1.0
                assert round(value, 3) == value


# ---------------------------------------------------------------------------
# First-time access
# ---------------------------------------------------------------------------

class TestFirstAccess:
    def setup_method(self):
        self.detector = FirstAccess()

    def test_earliest_event_in_partition_flagged(self):
        events = [
            _event(1, minutes=60),
            _event(2, minutes=120),
            _event(3, minutes=0),  # earliest despite the highest id
        ]
        assert self.detector.compute(events) == {1: False, 2: False, 3: True}

    def test_single_event_partition_flagged(self):
        assert self.detector.compute([_event(8)]) == {8: True}

    def test_timestamp_tie_broken_by_event_id(self):
        events = [_event(11, minutes=5), _event(10, minutes=5)]
        assert self.detector.compute(events) == {10: True, 11: False}
        assert self.detector.compute(list(reversed(events))) == {10: True, 11: False}

    def test_exactly_one_first_per_user_resource(self):
        events = [
            _event(i, user_id=i % 3, resource=["hr_files", "payroll_records"][i % 2],
                   minutes=(i * 37) % 50)
            for i in range(1, 40)
        ]
        flags = self.detector.compute(events)
        firsts = {}
        for e in events:
            if flags[e.event_id]:
                pair = (e.user_id, e.resource_accessed)
                assert pair not in firsts
                firsts[pair] = e
        assert len(firsts) == len({(e.user_id, e.resource_accessed) for e in events})
        for (user_id, resource), first in firsts.items():
            same = [e for e in events if (e.user_id, e.resource_accessed) == (user_id, resource)]
            assert first == min(same, key=lambda e: (e.access_timestamp, e.event_id))

    def test_other_users_do_not_count(self):
        events = [_event(1, user_id=1, minutes=0), _event(2, user_id=2, minutes=10)]
        assert self.detector.compute(events) == {1: True, 2: True}


# ---------------------------------------------------------------------------
# Role policy
# ---------------------------------------------------------------------------

R = Role
A = AccessType

_POLICY_CASES = [
    # role, resource, access type, violation?
    (R.HR, "hr_files", A.READ, False),
    (R.HR, "hr_files", A.WRITE, False),
    (R.HR, "payroll_records", A.READ, False),
    (R.HR, "payroll_records", A.WRITE, True),
    (R.HR, "payroll_records", A.EXPORT, True),
    (R.HR, "customer_table", A.READ, True),
    (R.CUSTOMER_SERVICE, "customer_table", A.DELETE, False),
    (R.CUSTOMER_SERVICE, "customer_table", A.READ, False),
    (R.CUSTOMER_SERVICE, "payroll_records", A.READ, True),
    (R.FINANCE, "payroll_records", A.EXPORT, False),
    (R.FINANCE, "payroll_records", A.WRITE, False),
    (R.FINANCE, "hr_files", A.READ, True),
    (R.PILOT, "flight_logs", A.WRITE, False),
    (R.PILOT, "flight_logs", A.READ, False),
    (R.PILOT, "maintenance_logs", A.READ, False),
    (R.PILOT, "maintenance_logs", A.WRITE, True),
    (R.PILOT, "payroll_records", A.READ, True),
]


class TestRoleViolation:
    def setup_method(self):
        self.detector = RoleViolation()

    @pytest.mark.parametrize("role,resource,access_type,expected", _POLICY_CASES)
    def test_policy_table(self, role, resource, access_type, expected):
        e = _event(role=role, resource=resource, access_type=access_type)
        assert self.detector.compute([e]) == {e.event_id: expected}

    @pytest.mark.parametrize("resource", [
        "hr_files", "payroll_records", "customer_table", "flight_logs",
        "maintenance_logs", "anything_else",
    ])
    @pytest.mark.parametrize("access_type", list(AccessType))
    def test_it_is_never_a_violation(self, resource, access_type):
        e = _event(role=Role.IT, resource=resource, access_type=access_type)
        assert self.detector.compute([e]) == {e.event_id: False}

    def test_unknown_resource_is_violation_for_non_it(self):
        for role in (Role.HR, Role.FINANCE, Role.CUSTOMER_SERVICE, Role.PILOT):
            e = _event(role=role, resource="server_logs")
            assert self.detector.compute([e])[e.event_id] is True

    def test_evidence_counts_by_role(self):
        events = [
            _event(1, role=Role.PILOT, resource="payroll_records"),
            _event(2, role=Role.HR, resource="customer_table"),
            _event(3, role=Role.HR, resource="hr_files"),
        ]
        ev = self.detector.evidence(events, self.detector.compute(events))
        assert ev["violations_by_role"] == {"HR": 1, "Pilot": 1}
        assert ev["flagged"] == 2


# ---------------------------------------------------------------------------
# Location velocity (LD1): different location, gap strictly under 2h
# ---------------------------------------------------------------------------

class TestLocationVelocity:
    def setup_method(self):
        self.detector = LocationVelocity()

    def _pair(self, gap_minutes, second_location="Denver"):
        return [
            _event(1, minutes=0, location="Chicago"),
            _event(2, minutes=gap_minutes, location=second_location),
        ]

    def test_90_minutes_different_location_fires(self):
        assert self.detector.compute(self._pair(90)) == {1: False, 2: True}

    def test_150_minutes_does_not_fire(self):
        assert self.detector.compute(self._pair(150)) == {1: False, 2: False}

    def test_exactly_2_hours_does_not_fire(self):
        """Boundary: strict < — a gap of exactly 2h is plausible travel."""
        assert self.detector.compute(self._pair(120))[2] is False

    def test_just_under_2_hours_fires(self):
        events = [
            _event(1, ts=_BASE, location="Chicago"),
            _event(2, ts=_BASE + timedelta(hours=2) - timedelta(seconds=1), location="Denver"),
        ]
        assert self.detector.compute(events)[2] is True

    def test_same_location_does_not_fire(self):
        assert self.detector.compute(self._pair(10, "Chicago"))[2] is False

    def test_first_event_never_fires(self):
        assert self.detector.compute([_event(1, location="Miami")]) == {1: False}

    def test_compares_with_chronological_predecessor(self):
        """Input order and event_id order must not matter — only timestamps."""
        events = [
            _event(5, minutes=300, location="Denver"),  # 4h after id 9
            _event(9, minutes=60, location="Chicago"),
            _event(7, minutes=0, location="Chicago"),
        ]
        assert self.detector.compute(events) == {7: False, 9: False, 5: False}

    def test_users_do_not_share_sequences(self):
        events = [
            _event(1, user_id=1, minutes=0, location="Chicago"),
            _event(2, user_id=2, minutes=10, location="Denver"),
        ]
        assert self.detector.compute(events) == {1: False, 2: False}


# ---------------------------------------------------------------------------
# Device velocity (LD2): different device, gap of 30 minutes or less
# ---------------------------------------------------------------------------

class TestDeviceVelocity:
    def setup_method(self):
        self.detector = DeviceVelocity()

    def _pair(self, gap_minutes, second_device="mobile"):
        return [
            _event(1, minutes=0, device="laptop"),
            _event(2, minutes=gap_minutes, device=second_device),
        ]

    def test_exactly_30_minutes_fires(self):
        """Boundary: inclusive <= (unlike location velocity)."""
        assert self.detector.compute(self._pair(30)) == {1: False, 2: True}

    def test_31_minutes_does_not_fire(self):
        assert self.detector.compute(self._pair(31))[2] is False

    def test_same_device_does_not_fire(self):
        assert self.detector.compute(self._pair(1, "laptop"))[2] is False

    def test_simultaneous_switch_fires(self):
        events = [
            _event(1, minutes=0, device="laptop"),
            _event(2, minutes=0, device="tablet"),
        ]
        assert self.detector.compute(events) == {1: False, 2: True}

    def test_first_event_never_fires(self):
        assert self.detector.compute([_event(3, device="mobile")]) == {3: False}

    def test_chain_of_switches(self):
        events = [
            _event(1, minutes=0, device="laptop"),
            _event(2, minutes=10, device="mobile"),
            _event(3, minutes=20, device="tablet"),
            _event(4, minutes=90, device="laptop"),
        ]
        assert self.detector.compute(events) == {1: False, 2: True, 3: True, 4: False}


# ---------------------------------------------------------------------------
# Off-hours (TB1)
# ---------------------------------------------------------------------------

class TestOffHours:
    def setup_method(self):
        self.detector = OffHours()

    def _flag(self, ts):
        e = _event(1, ts=ts)
        return self.detector.compute([e])[1]

    def test_saturday_morning_is_off_hours(self):
        assert self._flag(datetime(2025, 1, 11, 10, 0))

    def test_sunday_afternoon_is_off_hours(self):
        assert self._flag(datetime(2025, 1, 12, 14, 0))

    def test_tuesday_afternoon_is_standard(self):
        assert not self._flag(datetime(2025, 1, 7, 14, 0))

    def test_tuesday_1830_is_standard(self):
        """Hour-granular boundary: hour 18 is not > 18."""
        assert not self._flag(datetime(2025, 1, 7, 18, 30))

    def test_1859_is_standard(self):
        assert not self._flag(datetime(2025, 1, 7, 18, 59, 59))

    def test_1900_is_off_hours(self):
        assert self._flag(datetime(2025, 1, 7, 19, 0))

    def test_0759_is_off_hours(self):
        assert self._flag(datetime(2025, 1, 7, 7, 59))

    def test_0800_is_standard(self):
        assert not self._flag(datetime(2025, 1, 7, 8, 0))

    def test_friday_evening_late(self):
        assert self._flag(datetime(2025, 1, 10, 23, 15))

    def test_day_of_week_sunday_is_zero(self):
        assert day_of_week(datetime(2025, 1, 12)) == 0
        assert day_of_week(datetime(2025, 1, 11)) == 6
        assert day_of_week(datetime(2025, 1, 6)) == 1  # Monday

    def test_function_and_detector_agree(self):
        ts = datetime(2025, 1, 8, 6, 45)
        assert is_off_hours(ts) == self._flag(ts)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestRegistry:
    def test_unique_ids(self):
        ids = [d.id for d in ALL_DETECTORS]
        assert len(ids) == len(set(ids))

    def test_join_keys(self):
        keys = {d.id: d.key for d in ALL_DETECTORS}
        assert keys["unauthorized_ratio"] == USER_KEY
        assert keys["sensitive_ratio"] == USER_KEY
        assert keys["is_spike"] == EVENT_KEY
        assert keys["impossible_travel"] == EVENT_KEY

    def test_every_detector_is_total(self):
        events = [
            _event(i, user_id=i % 5, minutes=i * 13, records=i,
                   location=["Chicago", "Denver"][i % 2])
            for i in range(1, 30)
        ]
        for detector in ALL_DETECTORS:
            output = detector.compute(events)
            keys = {detector.join_key(e) for e in events}
            assert keys <= set(output), detector.id
