from __future__ import annotations

from typing import Optional, Sequence


class SelfHealingError(Exception):
    """Base class for failures raised inside the self-healing core."""


class ProcessFailed(SelfHealingError):
    def __init__(
        self,
        argv: Sequence[str],
        returncode: Optional[int],
        stdout: str = "",
        stderr: str = "",
        message: Optional[str] = None,
    ) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = message or (stderr.strip() or stdout.strip() or f"exit status {returncode}")
        super().__init__(f"{' '.join(self.argv)}: {detail}")


class ProcessTimeout(ProcessFailed):
    def __init__(self, argv: Sequence[str], timeout_s: float) -> None:
        self.timeout_s = timeout_s
        super().__init__(argv, None, message=f"timed out after {timeout_s:.1f}s")


class DependencyStartTimeout(SelfHealingError):
    """A dependency was started but never became ready within its retry bound."""


class ConfigFileError(SelfHealingError):
    """The dependent service's env file could not be read or written."""
