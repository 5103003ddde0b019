"""Schedule policy models.

A policy is one of three shapes, discriminated on ``type``:

    schedule:
      type: weekly
      hour: 2
      minute: 0
      days: [mon, wed, fri]
      skip_on_battery: true
"""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class Weekday(str, Enum):
    """Days of the week, ordered like ``date.weekday()`` (Monday first)"""

    MONDAY = "mon"
    TUESDAY = "tue"
    WEDNESDAY = "wed"
    THURSDAY = "thu"
    FRIDAY = "fri"
    SATURDAY = "sat"
    SUNDAY = "sun"

    @property
    def index(self) -> int:
        return list(Weekday).index(self)

    @property
    def short_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def from_date(cls, value: date) -> "Weekday":
        return list(cls)[value.weekday()]


WEEKDAYS = frozenset(
    {
        Weekday.MONDAY,
        Weekday.TUESDAY,
        Weekday.WEDNESDAY,
        Weekday.THURSDAY,
        Weekday.FRIDAY,
    }
)
WEEKEND = frozenset({Weekday.SATURDAY, Weekday.SUNDAY})


class DisabledPolicy(BaseModel):
    """No unattended runs"""

    model_config = ConfigDict(frozen=True)

    type: Literal["disabled"] = "disabled"

    @property
    def skip_on_battery(self) -> bool:
        return False

    def describe(self) -> str:
        return "Backups are not scheduled"


class IntervalPolicy(BaseModel):
    """Run every ``hours`` hours, measured from the last run"""

    model_config = ConfigDict(frozen=True)

    type: Literal["interval"] = "interval"
    hours: int = Field(6, ge=1, le=48)
    skip_on_battery: bool = True

    def describe(self) -> str:
        return f"Every {self.hours} hour{'' if self.hours == 1 else 's'}"


class WeeklyPolicy(BaseModel):
    """Run at ``hour:minute`` on each selected weekday"""

    model_config = ConfigDict(frozen=True)

    type: Literal["weekly"] = "weekly"
    hour: int = Field(2, ge=0, le=23)
    minute: int = Field(0, ge=0, le=59)
    days: Set[Weekday] = Field(default_factory=lambda: set(Weekday))
    skip_on_battery: bool = True

    @field_serializer("days")
    def _serialize_days(self, days: Set[Weekday]) -> List[str]:
        return [d.value for d in sorted(days, key=lambda d: d.index)]

    @property
    def formatted_time(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def describe(self) -> str:
        if not self.days:
            return "No days selected"
        if len(self.days) == 7:
            return f"Daily at {self.formatted_time}"
        if self.days == WEEKDAYS:
            return f"Weekdays at {self.formatted_time}"
        if self.days == WEEKEND:
            return f"Weekends at {self.formatted_time}"
        names = ", ".join(
            d.short_name for d in sorted(self.days, key=lambda d: d.index)
        )
        return f"{names} at {self.formatted_time}"


SchedulePolicy = Annotated[
    Union[DisabledPolicy, IntervalPolicy, WeeklyPolicy],
    Field(discriminator="type"),
]


class ScheduleState(BaseModel):
    """Persisted schedule inputs: the user's policy and the last run time.

    ``next_run_at`` is derived and never stored.
    """

    policy: SchedulePolicy = Field(default_factory=DisabledPolicy)
    last_run_at: Optional[datetime] = None
