"""
Verbosity control for queue operations.

Each queue carries its own QueueVerbosity instead of a process-wide flag,
so two queues in the same process can log at different levels.

Levels:
    0 - only the warnings about parallel processing anomalies
    1 - one line per operation
    2 - also statement parameters and payload dumps
"""

import logging
from typing import Any, Optional

from .errors import ConfigurationError

_default_logger = logging.getLogger('tablequeue')


class QueueVerbosity:
    """Routes queue diagnostics to a logger according to a verbosity level."""

    def __init__(self, level: int = 0, logger: Optional[logging.Logger] = None):
        self.logger = logger or _default_logger
        self.level = level

    @property
    def level(self) -> int:
        return self._level

    @level.setter
    def level(self, value: Any) -> None:
        if value is None:
            value = 0
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ConfigurationError(f"Verbosity must be a non-negative integer, got {value!r}")
        self._level = value

    def step(self, msg: str, *args: Any) -> None:
        """Operation-level trace, shown from level 1."""
        if self._level >= 1:
            self.logger.info(msg, *args)

    def detail(self, msg: str, *args: Any) -> None:
        """Statement and payload trace, shown from level 2."""
        if self._level >= 2:
            self.logger.debug(msg, *args)

    def notice(self, msg: str, *args: Any) -> None:
        self.logger.info(msg, *args)

    def warning(self, msg: str, *args: Any) -> None:
        self.logger.warning(msg, *args)

    def __repr__(self) -> str:
        return f"QueueVerbosity(level={self._level}, logger={self.logger.name!r})"
