"""Tests for configuration loading and bounded retry."""

from pathlib import Path

import pytest

from conftest import FakeClock
from sdtlib import paths
from sdtlib.config import SdtConfig, load_config
from sdtlib.errors import ValidationError
from sdtlib.retry import BoundedRetry


class TestLoadConfig:
    """Tests for load_config()."""

    @pytest.fixture(autouse=True)
    def no_env(self, monkeypatch, tmp_path):
        monkeypatch.delenv("SDT_CONFIG", raising=False)
        monkeypatch.setattr(paths, "CONFIG_FILE", tmp_path / "absent.toml")

    def test_missing_default_file_gives_defaults(self):
        """No config file at the default location is not an error."""
        assert load_config() == SdtConfig()

    def test_missing_explicit_file_is_rejected(self, tmp_path):
        with pytest.raises(ValidationError, match="not found"):
            load_config(tmp_path / "nope.toml")

    def test_env_var_names_the_file(self, monkeypatch, tmp_path):
        path = tmp_path / "env.toml"
        path.write_text('lookup_name = "debian.org"\n')
        monkeypatch.setenv("SDT_CONFIG", str(path))
        assert load_config().lookup_name == "debian.org"

    def test_sdt_section_overrides_defaults(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            "[sdt]\n"
            'backup_root = "/srv/backups"\n'
            "lock_attempts = 60\n"
            "lookup_interval = 2\n"
            'apt_locks = ["/run/lock/a", "/run/lock/b"]\n'
        )
        config = load_config(path)
        assert config.backup_root == Path("/srv/backups")
        assert config.lock_attempts == 60
        assert config.lookup_interval == 2.0
        assert isinstance(config.lookup_interval, float)
        assert config.apt_locks == (Path("/run/lock/a"), Path("/run/lock/b"))
        # Untouched fields keep their defaults
        assert config.resolver_service == "systemd-resolved"

    def test_unknown_key_is_rejected(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[sdt]\nbackup_rot = '/tmp'\n")
        with pytest.raises(ValidationError, match="backup_rot"):
            load_config(path)

    def test_wrong_type_is_rejected(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[sdt]\nlock_attempts = 'many'\n")
        with pytest.raises(ValidationError, match="must be a number"):
            load_config(path)

    def test_invalid_toml_is_rejected(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[sdt\n")
        with pytest.raises(ValidationError, match="Invalid TOML"):
            load_config(path)

    def test_replace_returns_new_config(self):
        base = SdtConfig()
        changed = base.replace(lookup_name="debian.org")
        assert changed.lookup_name == "debian.org"
        assert base.lookup_name == "example.com"


class TestBoundedRetry:
    """Tests for BoundedRetry."""

    def test_succeeds_first_try_without_sleeping(self):
        sleeps = []
        retry = BoundedRetry(5, 1.0, sleep=sleeps.append)
        assert retry.run(lambda: True) is True
        assert sleeps == []

    def test_sleeps_only_between_attempts(self):
        """A condition that never holds is tried N times with N-1 sleeps."""
        sleeps = []
        calls = []
        retry = BoundedRetry(3, 2.0, sleep=sleeps.append)

        assert retry.run(lambda: calls.append(1) and False) is False
        assert len(calls) == 3
        assert sleeps == [2.0, 2.0]
        assert sum(sleeps) <= retry.ceiling

    def test_stops_when_condition_holds(self):
        results = iter([False, False, True, True])
        sleeps = []
        retry = BoundedRetry(10, 0.5, sleep=sleeps.append)
        assert retry.run(lambda: next(results)) is True
        assert len(sleeps) == 2

    def test_on_retry_gets_attempt_numbers(self):
        seen = []
        BoundedRetry(3, 0, sleep=lambda s: None).run(lambda: False, on_retry=seen.append)
        assert seen == [1, 2]

    def test_ceiling(self):
        assert BoundedRetry(180, 2.0).ceiling == 360.0

    @pytest.mark.parametrize("attempts,interval", [(0, 1.0), (3, -1.0)])
    def test_rejects_bad_bounds(self, attempts, interval):
        with pytest.raises(ValueError):
            BoundedRetry(attempts, interval)

    def test_uses_time_sleep_by_default(self, host):
        BoundedRetry(2, 0.25).run(lambda: False)
        assert host.sleeps == [0.25]


class TestBoundedRetryWithin:
    """Tests for BoundedRetry.run_within(), where attempts count against the budget."""

    def test_instant_failures_match_run(self):
        clock = FakeClock()
        budgets = []
        retry = BoundedRetry(3, 0.5, sleep=clock.sleep, clock=clock)

        assert retry.run_within(lambda remaining: budgets.append(remaining) and False) is False
        assert budgets == [1.5, 1.0, 0.5]
        assert clock.now == 101.0

    def test_slow_attempts_stay_within_ceiling(self):
        """Every attempt hangs for its whole allowance; the loop still ends at the ceiling."""
        clock = FakeClock()
        calls = []
        retry = BoundedRetry(5, 1.0, sleep=clock.sleep, clock=clock)

        def hang(remaining):
            calls.append(remaining)
            clock.sleep(remaining)
            return False

        assert retry.run_within(hang) is False
        assert calls == [5.0]
        assert clock.now - 100.0 <= retry.ceiling

    def test_partly_slow_attempts(self):
        clock = FakeClock()
        retry = BoundedRetry(5, 1.0, sleep=clock.sleep, clock=clock)

        def slow(remaining):
            clock.sleep(min(2.0, remaining))
            return False

        assert retry.run_within(slow) is False
        # 2s attempt, 1s sleep, 2s attempt, budget spent
        assert clock.now - 100.0 == retry.ceiling

    def test_success_returns_early(self):
        clock = FakeClock()
        results = iter([False, True])
        retry = BoundedRetry(5, 1.0, sleep=clock.sleep, clock=clock)
        assert retry.run_within(lambda remaining: next(results)) is True
        assert clock.now == 101.0

    def test_zero_budget_still_tries_once(self):
        calls = []
        retry = BoundedRetry(3, 0, sleep=lambda s: None, clock=FakeClock())
        assert retry.run_within(lambda remaining: calls.append(remaining) and False) is False
        assert calls == [0.0]
