"""Run the guarded command once the lock is known to be held."""
from __future__ import annotations

import subprocess
import sys
from typing import Sequence, Tuple

from pglock.lib.errors import CommandError
from pglock.models.lock import LockOutcome, LockRequest, LockStatus

EXIT_OK = 0
EXIT_LOCK_ERROR = 1
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127


class GuardedExecutor:
    """Gate a command on a ``LockOutcome``.

    The command only runs for ``ACQUIRED``, at most once per executor, with
    stdin/stdout/stderr inherited from this process. ``run`` returns the exit
    status pglock should terminate with.
    """

    def __init__(self, command: Sequence[str], request: LockRequest):
        if not command:
            raise ValueError("command must contain at least one token")
        self.command: Tuple[str, ...] = tuple(command)
        self.request = request
        self.runs = 0

    def run(self, outcome: LockOutcome) -> int:
        lock_id = self.request.lock_id
        if outcome.status is LockStatus.FAILED:
            print(f"FATAL: Error trying to obtain lock: {outcome.cause}", file=sys.stderr, flush=True)
            return EXIT_LOCK_ERROR
        if outcome.status is LockStatus.NOT_ACQUIRED:
            print(f"Could not obtain lock {lock_id}, skipping command", file=sys.stderr, flush=True)
            return EXIT_OK

        print(f"Lock ID {lock_id} obtained successfully!", file=sys.stderr)
        print(f"Executing command: {list(self.command)}", file=sys.stderr, flush=True)
        try:
            self.run_command()
        except CommandError as e:
            print(f"ERROR: command failed while holding lock {lock_id}: {e}", file=sys.stderr, flush=True)
            return e.exit_code
        print("Execution finished, exiting and cleaning up lock.", file=sys.stderr, flush=True)
        return EXIT_OK

    def run_command(self) -> int:
        """Run the command to completion.

        Raises:
            CommandError: the command could not be started, exited non-zero
                or was killed by a signal
        """
        if self.runs:
            raise RuntimeError("guarded command already ran")
        self.runs += 1
        try:
            proc = subprocess.run(list(self.command))
        except FileNotFoundError as e:
            raise CommandError(f"cannot start {self.command[0]!r}: {e.strerror}", EXIT_NOT_FOUND) from e
        except PermissionError as e:
            raise CommandError(f"cannot start {self.command[0]!r}: {e.strerror}", EXIT_NOT_EXECUTABLE) from e
        except OSError as e:
            raise CommandError(f"cannot start {self.command[0]!r}: {e}", EXIT_NOT_EXECUTABLE) from e

        rc = proc.returncode
        if rc < 0:
            raise CommandError(f"{self.command[0]!r} was killed by signal {-rc}", 128 - rc, rc)
        if rc > 0:
            raise CommandError(f"{self.command[0]!r} exited with status {rc}", rc, rc)
        return rc
