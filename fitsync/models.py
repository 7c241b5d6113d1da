"""Domain entities shared between participants of a fitness challenge."""

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 6


class GoalType(Enum):
    FITNESS = "Fitness"
    STRENGTH = "Strength"
    CARDIO = "Cardio"
    FLEXIBILITY = "Flexibility"
    WEIGHT_LOSS = "Weight Loss"
    MUSCLE = "Build Muscle"
    ENDURANCE = "Endurance"
    WELLNESS = "Wellness"


class ChallengeLocation(Enum):
    HOME = "Home"
    GYM = "Gym"
    OUTDOOR = "Outdoor"
    ANYWHERE = "Anywhere"


class DistanceUnit(Enum):
    MILES = "mi"
    KILOMETERS = "km"


def _new_id() -> str:
    return str(uuid.uuid4())


def generate_invite_code(rng: random.Random | None = None) -> str:
    """Generate a short invite code without look-alike characters (0/O, 1/I)."""
    rng = rng or random.SystemRandom()
    return "".join(rng.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


@dataclass
class Challenge:
    """A shared challenge; the aggregate root for participants and day logs."""

    name: str
    creator_id: str
    id: str = field(default_factory=_new_id)
    description: str = ""
    duration_days: int = 30
    start_date: datetime = field(default_factory=datetime.now)
    end_date: datetime | None = None
    goal_type: GoalType = GoalType.FITNESS
    location: ChallengeLocation = ChallengeLocation.ANYWHERE
    invite_code: str = field(default_factory=generate_invite_code)
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        if self.end_date is None:
            self.end_date = self.start_date + timedelta(days=self.duration_days)


@dataclass
class ActivityData:
    """Cardio, strength and endurance measurements attached to a day log."""

    day_log_id: str
    id: str = field(default_factory=_new_id)

    # Cardio
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_seconds: int | None = None
    distance_value: float | None = None
    distance_unit: DistanceUnit | None = None
    average_pace_seconds_per_mile: int | None = None
    calories_burned: int | None = None

    # Strength
    total_weight_lifted: float | None = None
    total_sets: int | None = None
    total_reps: int | None = None
    exercises_completed: int | None = None
    is_pr: bool = False

    # Endurance
    average_heart_rate: int | None = None
    max_heart_rate: int | None = None

    needs_sync: bool = True
    last_synced_at: datetime | None = None
    remote_record_id: str | None = None


@dataclass
class DayLog:
    """Completion record for one day of a challenge."""

    participant_id: str
    day_number: int
    id: str = field(default_factory=_new_id)
    is_completed: bool = False
    completed_at: datetime | None = None
    notes: str | None = None
    entry_source: str | None = None
    entry_timestamp: datetime | None = None
    activity_data: ActivityData | None = None

    needs_sync: bool = True
    last_synced_at: datetime | None = None
    remote_record_id: str | None = None


@dataclass
class Participant:
    """A user's membership in a challenge with aggregate progress stats."""

    challenge_id: str
    user_id: str
    display_name: str
    id: str = field(default_factory=_new_id)
    avatar_emoji: str = "😀"
    joined_at: datetime = field(default_factory=datetime.now)
    is_owner: bool = False
    completed_days: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    total_distance_miles: float = 0.0
    total_duration_seconds: int = 0
    total_weight_lifted: float = 0.0
    total_calories_burned: int = 0
    prs_achieved: int = 0
    day_logs: list[DayLog] = field(default_factory=list)

    needs_sync: bool = True
    last_synced_at: datetime | None = None
    remote_record_id: str | None = None

    def record_day(self, day_log: DayLog) -> None:
        """Attach a day log and roll its outcome into the streak counters."""
        day_log.participant_id = self.id
        self.day_logs.append(day_log)

        if day_log.is_completed:
            self.completed_days += 1
            self.current_streak += 1
            self.longest_streak = max(self.longest_streak, self.current_streak)
        else:
            self.current_streak = 0

        self.needs_sync = True


SyncableEntity = Participant | DayLog | ActivityData


def entity_to_dict(entity: Any) -> dict[str, Any]:
    """Serialize an entity's scalar fields for local persistence.

    Child collections (``day_logs``, ``activity_data``) are left out; the
    local store keeps them in their own tables.
    """
    data: dict[str, Any] = {}
    for name, value in vars(entity).items():
        if name in ("day_logs", "activity_data"):
            continue
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        data[name] = value
    return data


_DATETIME_FIELDS = {
    Challenge: ("start_date", "end_date", "created_at"),
    Participant: ("joined_at", "last_synced_at"),
    DayLog: ("completed_at", "entry_timestamp", "last_synced_at"),
    ActivityData: ("start_time", "end_time", "last_synced_at"),
}

_ENUM_FIELDS = {
    Challenge: {"goal_type": GoalType, "location": ChallengeLocation},
    ActivityData: {"distance_unit": DistanceUnit},
}


def entity_from_dict(cls: type, data: dict[str, Any]) -> Any:
    """Inverse of :func:`entity_to_dict`."""
    values = dict(data)
    for name in _DATETIME_FIELDS.get(cls, ()):
        if values.get(name):
            values[name] = datetime.fromisoformat(values[name])
    for name, enum_cls in _ENUM_FIELDS.get(cls, {}).items():
        if values.get(name) is not None:
            values[name] = enum_cls(values[name])
    return cls(**values)
