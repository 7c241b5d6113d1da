"""Translation between domain entities and remote store records.

Records carry camelCase field names. Datetimes travel as ISO-8601 strings
and enums as their raw values. Child records reference their parent through
the parent's record id (``participant`` on day logs, ``dayLog`` on activity
data) so queries can be scoped to a parent.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..models import (
    ActivityData,
    Challenge,
    ChallengeLocation,
    DayLog,
    DistanceUnit,
    GoalType,
    Participant,
)
from .errors import RecordMappingError

logger = logging.getLogger(__name__)


class RecordType(Enum):
    CHALLENGE = "Challenge"
    PARTICIPANT = "ChallengeParticipant"
    DAY_LOG = "ChallengeDayLog"
    ACTIVITY_DATA = "ChallengeActivityData"


@dataclass
class RemoteRecord:
    """Wire representation of one entity in the remote store."""

    record_type: RecordType
    record_id: str
    fields: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_type": self.record_type.value,
            "record_id": self.record_id,
            "fields": self.fields,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RemoteRecord":
        try:
            return cls(
                record_type=RecordType(data["record_type"]),
                record_id=data["record_id"],
                fields=dict(data.get("fields") or {}),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise RecordMappingError(f"Malformed record: {e}") from e


_MISSING = object()


def _get(record: RemoteRecord, key: str, expected: type, required: bool, default: Any = None) -> Any:
    value = record.fields.get(key, _MISSING)
    if value is _MISSING or value is None:
        if required:
            raise RecordMappingError(
                f"{record.record_type.value} {record.record_id} is missing '{key}'"
            )
        return default

    if expected is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if expected is int and isinstance(value, bool):
        raise RecordMappingError(f"'{key}' must be int, got bool")
    if not isinstance(value, expected):
        raise RecordMappingError(
            f"'{key}' on {record.record_type.value} {record.record_id} must be "
            f"{expected.__name__}, got {type(value).__name__}"
        )
    return value


def _required(record: RemoteRecord, key: str, expected: type) -> Any:
    return _get(record, key, expected, required=True)


def _optional(record: RemoteRecord, key: str, expected: type, default: Any = None) -> Any:
    return _get(record, key, expected, required=False, default=default)


def _datetime(record: RemoteRecord, key: str, required: bool = False) -> datetime | None:
    raw = _get(record, key, str, required=required)
    if raw is None:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError as e:
        raise RecordMappingError(f"'{key}' is not an ISO timestamp: {raw!r}") from e


def _enum(record: RemoteRecord, key: str, enum_cls: type[Enum], default: Any) -> Any:
    raw = _optional(record, key, str)
    if raw is None:
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        logger.debug(f"Unknown {enum_cls.__name__} {raw!r}, using {default}")
        return default


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def participant_record_id(participant: Participant) -> str:
    return participant.remote_record_id or participant.id


class RecordMapper:
    """Encodes entities as :class:`RemoteRecord` and decodes them back."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock

    # ==================== Encoding ====================

    def challenge_to_record(self, challenge: Challenge) -> RemoteRecord:
        return RemoteRecord(
            record_type=RecordType.CHALLENGE,
            record_id=challenge.id,
            fields={
                "id": challenge.id,
                "name": challenge.name,
                "challengeDescription": challenge.description,
                "durationDays": challenge.duration_days,
                "startDate": _iso(challenge.start_date),
                "endDate": _iso(challenge.end_date),
                "goalType": challenge.goal_type.value,
                "location": challenge.location.value,
                "creatorId": challenge.creator_id,
                "inviteCode": challenge.invite_code,
                "isActive": challenge.is_active,
                "createdAt": _iso(challenge.created_at),
            },
        )

    def participant_to_record(self, participant: Participant) -> RemoteRecord:
        return RemoteRecord(
            record_type=RecordType.PARTICIPANT,
            record_id=participant_record_id(participant),
            fields={
                "id": participant.id,
                "challengeID": participant.challenge_id,
                "userId": participant.user_id,
                "displayName": participant.display_name,
                "avatarEmoji": participant.avatar_emoji,
                "joinedAt": _iso(participant.joined_at),
                "isOwner": participant.is_owner,
                "completedDays": participant.completed_days,
                "currentStreak": participant.current_streak,
                "longestStreak": participant.longest_streak,
                "totalDistanceMiles": participant.total_distance_miles,
                "totalDurationSeconds": participant.total_duration_seconds,
                "totalWeightLifted": participant.total_weight_lifted,
                "totalCaloriesBurned": participant.total_calories_burned,
                "prsAchieved": participant.prs_achieved,
            },
        )

    def day_log_to_record(self, day_log: DayLog, participant_record: str) -> RemoteRecord:
        return RemoteRecord(
            record_type=RecordType.DAY_LOG,
            record_id=day_log.remote_record_id or day_log.id,
            fields={
                "id": day_log.id,
                "participantID": day_log.participant_id,
                "dayNumber": day_log.day_number,
                "isCompleted": day_log.is_completed,
                "completedAt": _iso(day_log.completed_at),
                "notes": day_log.notes,
                "entrySource": day_log.entry_source,
                "entryTimestamp": _iso(day_log.entry_timestamp),
                "participant": participant_record,
            },
        )

    def activity_data_to_record(self, data: ActivityData, day_log_record: str) -> RemoteRecord:
        return RemoteRecord(
            record_type=RecordType.ACTIVITY_DATA,
            record_id=data.remote_record_id or data.id,
            fields={
                "id": data.id,
                "dayLogID": data.day_log_id,
                "startTime": _iso(data.start_time),
                "endTime": _iso(data.end_time),
                "durationSeconds": data.duration_seconds,
                "distanceValue": data.distance_value,
                "distanceUnit": data.distance_unit.value if data.distance_unit else None,
                "averagePaceSecondsPerMile": data.average_pace_seconds_per_mile,
                "caloriesBurned": data.calories_burned,
                "totalWeightLifted": data.total_weight_lifted,
                "totalSets": data.total_sets,
                "totalReps": data.total_reps,
                "exercisesCompleted": data.exercises_completed,
                "isPR": data.is_pr,
                "averageHeartRate": data.average_heart_rate,
                "maxHeartRate": data.max_heart_rate,
                "dayLog": day_log_record,
            },
        )

    # ==================== Decoding ====================

    def record_to_challenge(self, record: RemoteRecord) -> Challenge:
        """Decode a challenge record.

        Raises:
            RecordMappingError: If id, name or creatorId is missing or mistyped.
        """
        self._expect(record, RecordType.CHALLENGE)
        return Challenge(
            id=_required(record, "id", str),
            name=_required(record, "name", str),
            creator_id=_required(record, "creatorId", str),
            description=_optional(record, "challengeDescription", str, ""),
            duration_days=_optional(record, "durationDays", int, 30),
            start_date=_datetime(record, "startDate") or self._clock(),
            end_date=_datetime(record, "endDate"),
            goal_type=_enum(record, "goalType", GoalType, GoalType.FITNESS),
            location=_enum(record, "location", ChallengeLocation, ChallengeLocation.ANYWHERE),
            invite_code=_optional(record, "inviteCode", str, ""),
            is_active=_optional(record, "isActive", bool, True),
            created_at=_datetime(record, "createdAt") or self._clock(),
        )

    def record_to_participant(self, record: RemoteRecord) -> Participant:
        """Decode a participant record; the result is marked as freshly synced."""
        self._expect(record, RecordType.PARTICIPANT)
        return Participant(
            id=_required(record, "id", str),
            challenge_id=_required(record, "challengeID", str),
            user_id=_required(record, "userId", str),
            display_name=_required(record, "displayName", str),
            avatar_emoji=_optional(record, "avatarEmoji", str, "😀"),
            joined_at=_datetime(record, "joinedAt") or self._clock(),
            is_owner=_optional(record, "isOwner", bool, False),
            completed_days=_optional(record, "completedDays", int, 0),
            current_streak=_optional(record, "currentStreak", int, 0),
            longest_streak=_optional(record, "longestStreak", int, 0),
            total_distance_miles=_optional(record, "totalDistanceMiles", float, 0.0),
            total_duration_seconds=_optional(record, "totalDurationSeconds", int, 0),
            total_weight_lifted=_optional(record, "totalWeightLifted", float, 0.0),
            total_calories_burned=_optional(record, "totalCaloriesBurned", int, 0),
            prs_achieved=_optional(record, "prsAchieved", int, 0),
            needs_sync=False,
            last_synced_at=self._clock(),
            remote_record_id=record.record_id,
        )

    def record_to_day_log(self, record: RemoteRecord) -> DayLog:
        self._expect(record, RecordType.DAY_LOG)
        participant_id = _optional(record, "participantID", str) or _required(
            record, "participant", str
        )
        return DayLog(
            id=_required(record, "id", str),
            participant_id=participant_id,
            day_number=_required(record, "dayNumber", int),
            is_completed=_optional(record, "isCompleted", bool, False),
            completed_at=_datetime(record, "completedAt"),
            notes=_optional(record, "notes", str),
            entry_source=_optional(record, "entrySource", str),
            entry_timestamp=_datetime(record, "entryTimestamp"),
            needs_sync=False,
            last_synced_at=self._clock(),
            remote_record_id=record.record_id,
        )

    def record_to_activity_data(self, record: RemoteRecord) -> ActivityData:
        self._expect(record, RecordType.ACTIVITY_DATA)
        day_log_id = _optional(record, "dayLogID", str) or _required(record, "dayLog", str)
        unit = _optional(record, "distanceUnit", str)
        return ActivityData(
            id=_required(record, "id", str),
            day_log_id=day_log_id,
            start_time=_datetime(record, "startTime"),
            end_time=_datetime(record, "endTime"),
            duration_seconds=_optional(record, "durationSeconds", int),
            distance_value=_optional(record, "distanceValue", float),
            distance_unit=DistanceUnit(unit) if unit in {u.value for u in DistanceUnit} else None,
            average_pace_seconds_per_mile=_optional(record, "averagePaceSecondsPerMile", int),
            calories_burned=_optional(record, "caloriesBurned", int),
            total_weight_lifted=_optional(record, "totalWeightLifted", float),
            total_sets=_optional(record, "totalSets", int),
            total_reps=_optional(record, "totalReps", int),
            exercises_completed=_optional(record, "exercisesCompleted", int),
            is_pr=_optional(record, "isPR", bool, False),
            average_heart_rate=_optional(record, "averageHeartRate", int),
            max_heart_rate=_optional(record, "maxHeartRate", int),
            needs_sync=False,
            last_synced_at=self._clock(),
            remote_record_id=record.record_id,
        )

    @staticmethod
    def _expect(record: RemoteRecord, record_type: RecordType) -> None:
        if record.record_type != record_type:
            raise RecordMappingError(
                f"Expected {record_type.value} record, got {record.record_type.value}"
            )
