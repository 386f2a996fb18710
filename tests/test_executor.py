import sys

import pytest

from pglock.lib.errors import CommandError, LockQueryError
from pglock.models import LockOutcome, LockRequest
from pglock.services.executor import GuardedExecutor


def touch_command(path, exit_code=0):
    code = f"open({str(path)!r}, 'a').write('ran\\n'); raise SystemExit({exit_code})"
    return [sys.executable, "-c", code]


def test_acquired_runs_command_once(tmp_path, capsys):
    marker = tmp_path / "marker"
    executor = GuardedExecutor(touch_command(marker), LockRequest(42))
    rc = executor.run(LockOutcome.acquired())
    err = capsys.readouterr().err
    assert rc == 0
    assert marker.read_text() == "ran\n"
    assert executor.runs == 1
    assert "Lock ID 42 obtained successfully!" in err
    assert "Execution finished" in err


def test_not_acquired_skips_command(tmp_path, capsys):
    marker = tmp_path / "marker"
    executor = GuardedExecutor(touch_command(marker), LockRequest(42))
    rc = executor.run(LockOutcome.not_acquired())
    assert rc == 0
    assert not marker.exists()
    assert executor.runs == 0
    assert "Could not obtain lock 42, skipping command" in capsys.readouterr().err


def test_failed_skips_command(tmp_path, capsys):
    marker = tmp_path / "marker"
    executor = GuardedExecutor(touch_command(marker), LockRequest(42))
    rc = executor.run(LockOutcome.failed(LockQueryError(42, RuntimeError("connection reset"))))
    assert rc == 1
    assert not marker.exists()
    assert executor.runs == 0
    err = capsys.readouterr().err
    assert "FATAL: Error trying to obtain lock" in err
    assert "connection reset" in err


def test_command_exit_status_is_propagated(tmp_path, capsys):
    marker = tmp_path / "marker"
    executor = GuardedExecutor(touch_command(marker, exit_code=3), LockRequest(42))
    rc = executor.run(LockOutcome.acquired())
    err = capsys.readouterr().err
    assert rc == 3
    assert marker.exists()
    assert "ERROR: command failed while holding lock 42" in err
    assert "exited with status 3" in err
    assert "Error trying to obtain lock" not in err


def test_missing_command(tmp_path):
    executor = GuardedExecutor([str(tmp_path / "no-such-binary")], LockRequest(42))
    with pytest.raises(CommandError) as exc:
        executor.run_command()
    assert exc.value.exit_code == 127


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
def test_non_executable_command(tmp_path, capsys):
    script = tmp_path / "job.sh"
    script.write_text("#!/bin/sh\nexit 0\n")
    script.chmod(0o644)
    executor = GuardedExecutor([str(script)], LockRequest(42))
    assert executor.run(LockOutcome.acquired()) == 126
    assert "cannot start" in capsys.readouterr().err


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
def test_command_killed_by_signal():
    code = "import os, signal; os.kill(os.getpid(), signal.SIGTERM)"
    executor = GuardedExecutor([sys.executable, "-c", code], LockRequest(42))
    with pytest.raises(CommandError) as exc:
        executor.run_command()
    assert exc.value.returncode == -15
    assert exc.value.exit_code == 143


def test_command_runs_at_most_once(tmp_path):
    executor = GuardedExecutor(touch_command(tmp_path / "marker"), LockRequest(42))
    assert executor.run_command() == 0
    with pytest.raises(RuntimeError):
        executor.run_command()


def test_empty_command_rejected():
    with pytest.raises(ValueError):
        GuardedExecutor([], LockRequest(42))
