from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from .errors import ProcessFailed, ProcessTimeout

logger = logging.getLogger("self_healing.process")

# Output kept on results and errors; long command output is truncated from the front.
_MAX_OUTPUT_CHARS = 8000


@dataclass(frozen=True)
class CommandResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return f"{self.stdout}\n{self.stderr}".strip()


class ProcessRunner:
    """
    Runs a single external command with a timeout.

    With check=True (the default) a non-zero exit raises ProcessFailed, so callers
    can chain fallbacks with try/except. A hung command raises ProcessTimeout.
    """

    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float,
        check: bool = True,
        input_text: Optional[str] = None,
    ) -> CommandResult:
        argv = [str(a) for a in argv]
        start = time.perf_counter()
        try:
            proc = subprocess.run(
                argv,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            logger.debug("command timed out after %.1fs: %s", timeout, " ".join(argv))
            raise ProcessTimeout(argv, timeout)
        except OSError as e:
            # Missing binary or permission problem launching it.
            raise ProcessFailed(argv, None, message=str(e)) from e

        duration_ms = int((time.perf_counter() - start) * 1000)
        result = CommandResult(
            argv=argv,
            returncode=proc.returncode,
            stdout=(proc.stdout or "")[-_MAX_OUTPUT_CHARS:],
            stderr=(proc.stderr or "")[-_MAX_OUTPUT_CHARS:],
            duration_ms=duration_ms,
        )
        logger.debug("command exit=%s duration_ms=%s: %s", proc.returncode, duration_ms, " ".join(argv))
        if check and not result.ok:
            raise ProcessFailed(argv, result.returncode, result.stdout, result.stderr)
        return result
