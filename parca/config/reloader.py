"""Watches the configuration file and applies changes to running components."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from parca.config.config import Config, ConfigError, load_file
from parca.debuginfo.cacheconfig import ValidationError


@dataclass
class ComponentReloader:
    """How to reload one component with a new configuration."""

    name: str
    reloader: Callable[[Config], None]


class ConfigReloader:
    """Reloads the configuration into running components whenever the file is written."""

    def __init__(
        self,
        filename: str,
        reloaders: Sequence[ComponentReloader],
        logger: Optional[logging.Logger] = None,
        poll_interval: float = 1.0,
    ) -> None:
        self.filename = os.fspath(filename)
        self._reloaders = list(reloaders)
        self._poll_interval = poll_interval
        self._logger = logger or logging.getLogger("parca.config.reloader")
        try:
            self._last_stat = self._stat()
        except OSError as exc:
            self._log(logging.ERROR, "failed to start watching config file", err=exc, path=self.filename)
            raise
        self.last_reload_successful: Optional[bool] = None
        self.last_reload_success_timestamp: float = 0.0

    def _log(self, level: int, msg: str, **fields: Any) -> None:
        self._logger.log(level, msg, extra={"fields": fields})

    def _stat(self) -> Tuple[int, int]:
        st = os.stat(self.filename)
        return st.st_mtime_ns, st.st_size

    def _modified(self) -> bool:
        try:
            current = self._stat()
        except OSError as exc:
            self._log(logging.ERROR, "error encountered while watching config file", err=exc)
            return False
        if current == self._last_stat:
            return False
        self._last_stat = current
        self._log(logging.DEBUG, "config file has been modified")
        return True

    def reload_file(self) -> Config:
        """Load, validate and apply the configuration file; return the new config."""
        start = time.monotonic()
        timings: Dict[str, float] = {}
        self._log(logging.INFO, "loading configuration file", filename=self.filename)
        try:
            try:
                cfg = load_file(self.filename)
            except (OSError, ConfigError) as exc:
                raise ConfigError(f"failed to load configuration: {exc}") from exc
            try:
                cfg.validate()
            except ValidationError as exc:
                raise ConfigError(
                    f'parsed configuration invalid (--config-path="{self.filename}"): {exc}'
                ) from exc

            failed = False
            for component in self._reloaders:
                component_start = time.monotonic()
                try:
                    component.reloader(cfg)
                except Exception as exc:
                    self._log(logging.ERROR, "failed to apply configuration", err=exc)
                    failed = True
                timings[component.name] = time.monotonic() - component_start
            if failed:
                raise ConfigError(
                    "one or more errors occurred while applying the new configuration "
                    f'(--config-path="{self.filename}")'
                )
        except Exception:
            self.last_reload_successful = False
            raise

        self.last_reload_successful = True
        self.last_reload_success_timestamp = time.time()
        self._log(
            logging.INFO,
            "completed loading of configuration file",
            filename=self.filename,
            totalDuration=time.monotonic() - start,
            **timings,
        )
        return cfg

    def run(self, stop_event: threading.Event) -> None:
        """Watch the file and reload on each write until stop_event is set."""
        while not stop_event.wait(self._poll_interval):
            if not self._modified():
                continue
            try:
                self.reload_file()
            except Exception as exc:
                self._log(logging.ERROR, "failed to reload configuration file", err=exc)