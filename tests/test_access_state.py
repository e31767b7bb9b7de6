"""Tests for the per-entry lock state machine."""

from datetime import datetime, time, timedelta
from pathlib import Path

import pytest

from hostgate.errors import CooldownActive
from hostgate.hosts import HostsDocument
from hostgate.models import (
    Config,
    DynamicUsage,
    Entry,
    StaticWindows,
    TimeWindow,
    UnlockFail,
    UnlockSuccess,
)
from hostgate.policies import AccessState
from hostgate.storage import StateSnapshot, read_state_file

NOW = datetime(2024, 1, 26, 12, 0).astimezone()

BASE_HOSTS = "127.0.0.1 localhost\n"


def make_config() -> Config:
    return Config(
        entries={
            "video": Entry(
                name="video",
                domains=["www.youtube.com", "www.twitch.tv"],
                restriction=StaticWindows(
                    windows=(TimeWindow(begin=time(11, 0), end=time(13, 0)),)
                ),
            ),
            "social": Entry(
                name="social",
                domains=["twitter.com"],
                restriction=DynamicUsage(
                    period=timedelta(minutes=20),
                    cool_time=timedelta(minutes=30),
                ),
            ),
        }
    )


class RecordingTrigger:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def __call__(self, name: str) -> None:
        self.calls.append(name)


@pytest.fixture()
def config() -> Config:
    return make_config()


@pytest.fixture()
def hosts_path(tmp_path: Path) -> Path:
    path = tmp_path / "hosts"
    path.write_text(BASE_HOSTS)
    return path


@pytest.fixture()
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "state"


@pytest.fixture()
def after_lock() -> RecordingTrigger:
    return RecordingTrigger()


@pytest.fixture()
def after_unlock() -> RecordingTrigger:
    return RecordingTrigger()


def make_state(
    config: Config,
    hosts_path: Path,
    state_path: Path,
    after_lock: RecordingTrigger,
    after_unlock: RecordingTrigger,
    snapshot: StateSnapshot | None = None,
) -> AccessState:
    return AccessState(
        config,
        hosts_path,
        state_path,
        snapshot=snapshot,
        after_lock=after_lock,
        after_unlock=after_unlock,
        clock=lambda: NOW,
    )


@pytest.fixture()
def state(
    config: Config,
    hosts_path: Path,
    state_path: Path,
    after_lock: RecordingTrigger,
    after_unlock: RecordingTrigger,
) -> AccessState:
    return make_state(config, hosts_path, state_path, after_lock, after_unlock)


class TestLock:
    def test_lock_blocks_domains(self, state: AccessState, config: Config, hosts_path: Path) -> None:
        state.lock("video", config.entries["video"])

        doc = HostsDocument.read(hosts_path)
        assert doc.is_locked("www.youtube.com")
        assert doc.is_locked("www.twitch.tv")
        assert not doc.is_locked("twitter.com")
        assert state.is_locked["video"] is True

    def test_lock_fires_trigger(
        self,
        state: AccessState,
        config: Config,
        after_lock: RecordingTrigger,
    ) -> None:
        state.lock("video", config.entries["video"])
        state.lock("video", config.entries["video"])
        assert after_lock.calls == ["video"]

    def test_lock_records_time_for_dynamic_only(self, state: AccessState, config: Config) -> None:
        state.lock("video", config.entries["video"])
        state.lock("social", config.entries["social"])

        assert "video" not in state.last_locked
        assert state.last_locked["social"] == NOW

    def test_lock_persists_state(self, state: AccessState, config: Config, state_path: Path) -> None:
        state.lock("social", config.entries["social"])

        saved = read_state_file(state_path)
        assert saved.is_locked == {"social": True}
        assert saved.last_locked == {"social": NOW}


class TestUnlock:
    def test_unlock_comments_out_domains(
        self,
        state: AccessState,
        config: Config,
        hosts_path: Path,
    ) -> None:
        state.lock("video", config.entries["video"])
        state.unlock("video", config.entries["video"])

        text = hosts_path.read_text()
        assert "# 127.0.0.1 www.youtube.com" in text.splitlines()
        assert text.startswith(BASE_HOSTS)

    def test_unlock_twice_writes_once(
        self,
        state: AccessState,
        config: Config,
        hosts_path: Path,
        after_unlock: RecordingTrigger,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        state.lock("video", config.entries["video"])

        writes: list[Path] = []
        original_save = HostsDocument.save

        def counting_save(self: HostsDocument, path: Path) -> None:
            writes.append(path)
            original_save(self, path)

        monkeypatch.setattr(HostsDocument, "save", counting_save)

        state.unlock("video", config.entries["video"])
        after_first = hosts_path.read_text()
        state.unlock("video", config.entries["video"])

        assert len(writes) == 1
        assert hosts_path.read_text() == after_first
        assert state.is_locked["video"] is False
        assert after_unlock.calls == ["video"]

    def test_cooldown_active(self, state: AccessState, config: Config) -> None:
        entry = config.entries["social"]
        state.is_locked["social"] = True
        state.last_unlocked["social"] = NOW - timedelta(minutes=10)

        with pytest.raises(CooldownActive) as exc_info:
            state.unlock("social", entry, NOW)

        assert exc_info.value.available_at == NOW + timedelta(minutes=20)
        assert state.is_locked["social"] is True
        assert state.last_unlocked["social"] == NOW - timedelta(minutes=10)

    def test_cooldown_elapsed(
        self,
        state: AccessState,
        config: Config,
        hosts_path: Path,
        after_unlock: RecordingTrigger,
    ) -> None:
        entry = config.entries["social"]
        state.lock("social", entry)
        state.last_unlocked["social"] = NOW - timedelta(minutes=40)

        state.unlock("social", entry, NOW)

        assert state.is_locked["social"] is False
        assert state.last_unlocked["social"] == NOW
        assert not HostsDocument.read(hosts_path).is_locked("twitter.com")
        assert after_unlock.calls == ["social"]

    def test_static_unlock_ignores_cooldown(self, state: AccessState, config: Config) -> None:
        state.is_locked["video"] = True
        state.last_unlocked["video"] = NOW

        state.unlock("video", config.entries["video"], NOW)
        assert state.is_locked["video"] is False
        assert state.last_unlocked["video"] == NOW

    def test_unlock_never_observed_entry(
        self,
        state: AccessState,
        config: Config,
        after_unlock: RecordingTrigger,
    ) -> None:
        state.unlock("video", config.entries["video"], NOW)

        assert state.is_locked["video"] is False
        assert after_unlock.calls == ["video"]

    def test_never_observed_is_locked(self, state: AccessState) -> None:
        assert state.is_entry_locked("video") is True
        state.is_locked["video"] = False
        assert state.is_entry_locked("video") is False


class TestUpdate:
    def test_static_windows(self, state: AccessState, config: Config, hosts_path: Path) -> None:
        assert state.update(config, NOW) == []
        assert state.is_locked["video"] is False

        evening = NOW.replace(hour=20)
        assert state.update(config, evening) == []
        assert state.is_locked["video"] is True
        assert HostsDocument.read(hosts_path).is_locked("www.youtube.com")

    def test_dynamic_never_unlocked_starts_unlocked(self, state: AccessState, config: Config) -> None:
        state.update(config, NOW)
        assert state.is_locked["social"] is False
        assert state.last_unlocked["social"] == NOW

    def test_dynamic_period_expires(self, state: AccessState, config: Config, hosts_path: Path) -> None:
        state.update(config, NOW)
        state.update(config, NOW + timedelta(minutes=19))
        assert state.is_locked["social"] is False

        state.update(config, NOW + timedelta(minutes=20))
        assert state.is_locked["social"] is True
        assert state.last_locked["social"] == NOW + timedelta(minutes=20)
        assert HostsDocument.read(hosts_path).is_locked("twitter.com")

    def test_failures_are_collected(
        self,
        config: Config,
        hosts_path: Path,
        state_path: Path,
        after_lock: RecordingTrigger,
        after_unlock: RecordingTrigger,
    ) -> None:
        # social wants to be unlocked (within its period) but is still cooling down
        snapshot = StateSnapshot(
            is_locked={"social": True},
            last_unlocked={"social": NOW - timedelta(minutes=5)},
        )
        state = make_state(config, hosts_path, state_path, after_lock, after_unlock, snapshot)

        failures = state.update(config, NOW)

        assert len(failures) == 1
        assert failures[0].name == "social"
        assert isinstance(failures[0].error, CooldownActive)
        assert state.is_locked["social"] is True
        assert state.is_locked["video"] is False
        assert after_unlock.calls == ["video"]

    def test_io_failure_does_not_stop_other_entries(
        self,
        state: AccessState,
        config: Config,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls: list[str] = []
        original_unlock = AccessState.unlock

        def flaky_unlock(self: AccessState, name: str, entry: Entry, now: datetime | None = None) -> None:
            calls.append(name)
            if name == "video":
                raise OSError("read-only file system")
            original_unlock(self, name, entry, now)

        monkeypatch.setattr(AccessState, "unlock", flaky_unlock)

        failures = state.update(config, NOW)

        assert [f.name for f in failures] == ["video"]
        assert calls == ["video", "social"]
        assert state.is_locked["social"] is False


class TestRequestUnlock:
    def test_success_reports_last_lock(self, state: AccessState, config: Config) -> None:
        entry = config.entries["social"]
        state.lock("social", entry, NOW - timedelta(hours=1))

        response = state.request_unlock("social", entry, NOW)

        assert response == UnlockSuccess(locked_at=NOW - timedelta(hours=1))
        assert state.is_locked["social"] is False

    def test_already_unlocked_is_success(self, state: AccessState, config: Config) -> None:
        state.is_locked["video"] = False
        response = state.request_unlock("video", config.entries["video"], NOW)
        assert response == UnlockSuccess(locked_at=None)

    def test_cooldown_reports_fail(self, state: AccessState, config: Config) -> None:
        entry = config.entries["social"]
        state.is_locked["social"] = True
        state.last_unlocked["social"] = NOW - timedelta(minutes=10)

        response = state.request_unlock("social", entry, NOW)

        assert isinstance(response, UnlockFail)
        assert "cooled down" in response.cause
        assert response.unlocked_at == NOW - timedelta(minutes=10)


class TestCommit:
    def test_commit_is_fixed_point(self, state: AccessState, config: Config, hosts_path: Path) -> None:
        state.is_locked.update({"video": True, "social": False})
        assert state.commit() is True

        written = hosts_path.read_text()
        assert state.commit() is False
        assert hosts_path.read_text() == written

    def test_commit_restores_external_edit(
        self,
        state: AccessState,
        config: Config,
        hosts_path: Path,
    ) -> None:
        state.lock("video", config.entries["video"])
        hosts_path.write_text(hosts_path.read_text().replace("127.0.0.1 www.youtube.com", "# 127.0.0.1 www.youtube.com"))

        assert state.commit() is True
        assert HostsDocument.read(hosts_path).is_locked("www.youtube.com")

    def test_stale_domains_untouched(self, state: AccessState, hosts_path: Path) -> None:
        hosts_path.write_text(BASE_HOSTS + "127.0.0.1 removed.example.com\n")
        state.is_locked["video"] = True
        state.commit()

        assert "127.0.0.1 removed.example.com" in hosts_path.read_text().splitlines()

    def test_load_restores_snapshot(
        self,
        state: AccessState,
        config: Config,
        hosts_path: Path,
        state_path: Path,
    ) -> None:
        state.lock("social", config.entries["social"])

        restored = AccessState.load(config, hosts_path, state_path)
        assert restored.is_locked == {"social": True}
        assert restored.last_locked == {"social": NOW}
