from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

from .commands import PULL_VARIANTS, CommandRunner
from .errors import ProcessFailed
from .repair import RepairOrchestrator

logger = logging.getLogger("self_healing.pull")


class RetryPuller:
    """
    Pull a container image with exponential backoff and strategy rotation.

    Attempt k (k >= 2) waits ``base * 2**(k-2)`` seconds first. Every attempt
    tries each pull variant in order. When the attempt at the midpoint of the
    retry count fails completely, the network repair runs once before the
    next attempt. The call blocks its caller; monitors never invoke it from a
    tick.
    """

    def __init__(
        self,
        commands: CommandRunner,
        repair: Optional[RepairOrchestrator] = None,
        *,
        base_delay_seconds: float = 1.0,
        timeout_seconds: float = 300.0,
        platform_name: str = "linux/amd64",
        variants: Sequence[str] = PULL_VARIANTS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._commands = commands
        self._repair = repair
        self._base_delay = base_delay_seconds
        self._timeout = timeout_seconds
        self._platform = platform_name
        self._variants = tuple(variants)
        self._sleep = sleep
        self.last_error: Optional[str] = None

    def backoff_seconds(self, attempt: int) -> float:
        if attempt < 2:
            return 0.0
        return self._base_delay * 2 ** (attempt - 2)

    def _try_variants(self, image: str) -> bool:
        for variant in self._variants:
            try:
                self._commands.pull_variant(image, variant, timeout=self._timeout, platform_name=self._platform)
            except ProcessFailed as e:
                self.last_error = str(e)
                logger.debug("pull %s (%s) failed: %s", image, variant, e)
                continue
            logger.info("Pulled %s using %s strategy", image, variant)
            return True
        return False

    def pull_image_with_retry(self, image: str, max_retries: int = 5) -> bool:
        self.last_error = None
        midpoint = max_retries // 2
        for attempt in range(1, max_retries + 1):
            delay = self.backoff_seconds(attempt)
            if delay:
                logger.info("Retrying pull of %s in %ss (attempt %d/%d)", image, delay, attempt, max_retries)
                self._sleep(delay)
            try:
                if self._try_variants(image):
                    return True
            except Exception as e:
                self.last_error = str(e)
                logger.warning("Pull attempt %d for %s raised: %s", attempt, image, e)

            if attempt == midpoint and self._repair is not None:
                logger.warning("Pull of %s keeps failing; running network repair", image)
                try:
                    self._repair.repair()
                except Exception as e:
                    logger.warning("Network repair during pull raised: %s", e)

        logger.error("Failed to pull %s after %d attempts: %s", image, max_retries, self.last_error)
        return False
