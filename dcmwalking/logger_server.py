"""Server that stores vectors of walking data in a plain-text dataset."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing import IO, Any

from dcmwalking.utils import ConfigError, get_string

__all__ = ["LoggerError", "WalkingLoggerModule"]

logger = logging.getLogger(__name__)

_DEFAULT_PERIOD = 0.005
SUCCESS = 1
FAILURE = 0


class LoggerError(RuntimeError):
    """Raised when incoming data cannot be stored."""


class WalkingLoggerModule:
    """Opens a dataset on ``record``, appends rows on ``update``, closes on ``quit``."""

    def __init__(
        self,
        name: str,
        data_port: str,
        rpc_port: str,
        period: float = _DEFAULT_PERIOD,
        directory: str | Path = ".",
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.name = name
        self.data_port = data_port
        self.rpc_port = rpc_port
        self.period = float(period)
        self.directory = Path(directory)
        self._clock = clock
        self._now = now
        self._stream: IO[str] | None = None
        self._number_of_values = 0
        self._time0 = 0.0
        self.path: Path | None = None

    @classmethod
    def from_config(
        cls, config: Mapping[str, Any], directory: str | Path = "."
    ) -> "WalkingLoggerModule":
        """Build the module from ``name``, port names and ``sampling_time``."""
        if not config:
            raise ConfigError("empty configuration for the logger")
        name = get_string(config, "name")
        data_port = "/" + name + get_string(config, "data_port_name")
        rpc_port = "/" + name + get_string(config, "rpc_port_name")
        period = float(config.get("sampling_time", _DEFAULT_PERIOD))
        return cls(name, data_port, rpc_port, period, directory)

    @property
    def is_recording(self) -> bool:
        """Whether a dataset is open."""
        return self._stream is not None

    @property
    def columns(self) -> int:
        """Number of values expected in each row, time excluded."""
        return self._number_of_values

    def respond(self, command: Sequence[str]) -> int:
        """Handle ``("record", names...)`` or ``("quit",)``; return 1 or 0."""
        verb = command[0] if command else ""
        if verb == "quit":
            if self._stream is None:
                logger.error("the stream is not open")
                return FAILURE
            self._stream.close()
            self._stream = None
            logger.info("the stream is closed")
            return SUCCESS
        if verb == "record":
            if self._stream is not None:
                logger.error("the stream is already open")
                return FAILURE
            names = [str(item) for item in command[1:]]
            self._number_of_values = len(names)
            head = "time " + "".join(f"{item} " for item in names)
            logger.info("the following data will be stored: %s", head)
            self._time0 = self._clock()
            stamp = self._now().strftime("%Y_%m_%d_%H_%M_%S")
            self.directory.mkdir(parents=True, exist_ok=True)
            self.path = self.directory / f"Dataset_{stamp}.txt"
            self._stream = self.path.open("w", encoding="utf-8")
            self._stream.write(head + "\n")
            self._stream.flush()
            return SUCCESS
        logger.error("unknown command %r", verb)
        return FAILURE

    def update(self, data: Sequence[float] | None) -> None:
        """Append one row; ``None`` means no data arrived and does nothing."""
        if data is None:
            return
        if self._stream is None:
            raise LoggerError("no stream is open, the data cannot be stored")
        values = list(data)
        if len(values) != self._number_of_values:
            raise LoggerError(
                "the size of the vector is not the one expected. Expected: "
                f"{self._number_of_values} received: {len(values)}"
            )
        elapsed = self._clock() - self._time0
        row = f"{elapsed:g} " + "".join(f"{float(v):g} " for v in values)
        self._stream.write(row + "\n")
        self._stream.flush()

    def close(self) -> None:
        """Close the dataset if it is open."""
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def __enter__(self) -> "WalkingLoggerModule":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()