"""Off-hours access — weekends, or outside the 08:00–18:xx business window.

The boundary is hour-granular: only hour values above 18 count as late, so
18:00:00 through 18:59:59 is still standard hours.
"""

from datetime import datetime

from featurizer.detectors import FlagDetector

# Day-of-week numbering: 0=Sunday .. 6=Saturday.
SUNDAY = 0
SATURDAY = 6


def day_of_week(ts: datetime) -> int:
    return ts.isoweekday() % 7


def is_off_hours(ts: datetime, start_hour: int = 8, end_hour: int = 18) -> bool:
    if day_of_week(ts) in (SUNDAY, SATURDAY):
        return True
    return ts.hour < start_hour or ts.hour > end_hour


class OffHours(FlagDetector):
    id = "is_off_hours"
    name = "Off-Hours Access"
    start_hour = 8
    end_hour = 18

    def compute(self, events):
        return {
            e.event_id: is_off_hours(e.access_timestamp, self.start_hour, self.end_hour)
            for e in events
        }
