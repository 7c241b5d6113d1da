"""Tests for local entity storage."""

import pytest

from fitsync.models import ActivityData, Challenge, DayLog, Participant
from fitsync.storage import LocalStore, SQLiteBlobStore


class TestSQLiteBlobStore:
    """Tests for SQLiteBlobStore."""

    def test_missing_key(self, blob_store):
        assert blob_store.load_blob("nothing") is None

    def test_save_replace_delete(self, blob_store):
        blob_store.save_blob("k", b"one")
        blob_store.save_blob("k", b"two")
        assert blob_store.load_blob("k") == b"two"

        blob_store.delete_blob("k")
        assert blob_store.load_blob("k") is None

    def test_survives_reconnect(self, tmp_path):
        db_path = tmp_path / "blobs.db"
        first = SQLiteBlobStore(db_path)
        first.connect()
        first.save_blob("queue", b"[]")
        first.close()

        second = SQLiteBlobStore(db_path)
        second.connect()
        assert second.load_blob("queue") == b"[]"
        second.close()


class TestChallenges:
    """Tests for challenge storage."""

    def test_save_and_get(self, store, challenge):
        store.save_challenge(challenge)

        assert store.get_challenge(challenge.id) == challenge
        assert store.get_challenge("missing") is None

    def test_find_by_invite_code(self, store, challenge):
        store.save_challenge(challenge)

        assert store.find_challenge_by_invite_code("MRCH42").id == challenge.id
        assert store.find_challenge_by_invite_code("NOPE99") is None


class TestParticipants:
    """Tests for participant trees."""

    def test_round_trip_tree(self, store, participant):
        store.save_participant(participant)

        loaded = store.get_participant(participant.id)

        assert loaded.display_name == "Alex"
        assert loaded.current_streak == 2
        assert [log.day_number for log in loaded.day_logs] == [1, 2]
        assert loaded.day_logs[0].activity_data is None
        assert loaded.day_logs[1].activity_data.calories_burned == 320

    def test_list_by_challenge(self, store, participant, challenge):
        other = Participant(challenge_id="other-challenge", user_id="u2", display_name="Jo")
        store.save_participant(participant)
        store.save_participant(other)

        assert [p.id for p in store.list_participants(challenge.id)] == [participant.id]

    def test_needing_sync_includes_dirty_children(self, store, challenge):
        clean = Participant(
            challenge_id=challenge.id, user_id="u1", display_name="Clean", needs_sync=False
        )
        dirty_child = Participant(
            challenge_id=challenge.id, user_id="u2", display_name="Child", needs_sync=False
        )
        log = DayLog(participant_id=dirty_child.id, day_number=1, needs_sync=False)
        log.activity_data = ActivityData(day_log_id=log.id, needs_sync=True)
        dirty_child.day_logs.append(log)
        store.save_participant(clean)
        store.save_participant(dirty_child)

        assert [p.id for p in store.participants_needing_sync()] == [dirty_child.id]

    def test_stats(self, store, challenge, participant):
        store.save_challenge(challenge)
        store.save_participant(participant)

        stats = store.get_stats()

        assert stats["challenge_count"] == 1
        assert stats["participants_count"] == 1
        assert stats["day_logs_count"] == 2
        assert stats["activity_data_count"] == 1
        assert stats["day_logs_needing_sync"] == 2


class TestPersistence:
    """Tests for on-disk storage."""

    def test_creates_parent_directory(self, tmp_path, participant):
        db_path = tmp_path / "nested" / "fitsync.db"
        store = LocalStore(db_path)
        store.connect()
        store.save_participant(participant)
        store.close()

        reopened = LocalStore(db_path)
        assert reopened.get_participant(participant.id) is not None
        reopened.close()


class TestModels:
    """Tests for domain model behaviour the store relies on."""

    def test_challenge_end_date_defaults_from_duration(self):
        challenge = Challenge(name="Plank", creator_id="u1", duration_days=14)
        assert (challenge.end_date - challenge.start_date).days == 14

    def test_invite_code_alphabet(self):
        challenge = Challenge(name="Plank", creator_id="u1")
        assert len(challenge.invite_code) == 6
        assert not set(challenge.invite_code) & set("01IO")

    def test_record_day_tracks_streaks(self, challenge):
        p = Participant(challenge_id=challenge.id, user_id="u1", display_name="A", needs_sync=False)
        for day, done in enumerate([True, True, False, True], start=1):
            p.record_day(DayLog(participant_id="", day_number=day, is_completed=done))

        assert p.completed_days == 3
        assert p.current_streak == 1
        assert p.longest_streak == 2
        assert p.needs_sync is True
        assert all(log.participant_id == p.id for log in p.day_logs)


@pytest.fixture
def tmp_store(tmp_path):
    s = LocalStore(tmp_path / "fitsync.db")
    s.connect()
    yield s
    s.close()


def test_activity_data_saved_directly(tmp_store):
    data = ActivityData(day_log_id="d1", total_sets=5, total_reps=50)
    tmp_store.save_activity_data(data)

    assert tmp_store.get_activity_data(data.id).total_reps == 50
