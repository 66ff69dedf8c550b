"""Run the ``gh`` and ``git`` command-line tools."""

import logging
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Protocol, Sequence

from ghdeck.exceptions import GhDeckError

logger = logging.getLogger(__name__)


class CommandFailed(GhDeckError):
    """An external command exited non-zero or could not be started."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str = ""):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = self.stderr.splitlines()[-1] if self.stderr else f"exit status {returncode}"
        super().__init__(f"{args[0]} failed: {detail}")


class Runner(Protocol):
    def run(self, args: Sequence[str], input: Optional[str] = None) -> str: ...


class CommandRunner:
    """Blocking subprocess runner used from worker threads.

    Args:
        cwd: Directory the commands run in (the clone for git commands).
        timeout: Seconds before a command is abandoned.
    """

    def __init__(self, cwd: Optional[Path] = None, timeout: float = 60.0):
        self.cwd = cwd
        self.timeout = timeout

    def run(self, args: Sequence[str], input: Optional[str] = None) -> str:
        """Run a command and return its stdout.

        Raises:
            CommandFailed: If the tool is missing, times out, or exits non-zero.
        """
        if shutil.which(args[0]) is None:
            raise CommandFailed(args, 127, f"{args[0]} not found on PATH")

        logger.info("running: %s", shlex.join(args))
        try:
            result = subprocess.run(
                list(args),
                cwd=self.cwd,
                input=input,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandFailed(args, -1, f"timed out after {self.timeout:.0f}s") from e

        if result.returncode != 0:
            raise CommandFailed(args, result.returncode, result.stderr)
        return result.stdout


def gh_auth_token(runner: Optional[Runner] = None) -> Optional[str]:
    """Token stored by ``gh auth login``, or None when gh is unavailable."""
    runner = runner or CommandRunner()
    try:
        token = runner.run(["gh", "auth", "token"]).strip()
    except CommandFailed as e:
        logger.debug("no gh token: %s", e)
        return None
    return token or None
