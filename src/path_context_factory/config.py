from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from typing_extensions import Self

FACTORY_NAME_PROPERTY = "path_context_factory.PathContextFactory"
DEBUG_PROPERTY = "path_context_factory.debug"

INSTALL_CONFIG_RELPATH = Path("lib", "path_context_factory.properties")
SERVICES_PREFIX = "META-INF/services/"

LOGGER_NAME = "path_context_factory"


@dataclass(frozen=True, slots=True)
class DiscoveryConfig:
    """
    Everything the lookup resolver is allowed to look at.

    The resolver never reads the process environment itself; the composition
    root builds one of these (normally via `from_environment`) and passes it in.

    Attributes:
        settings: process-wide named settings (the environment by default).
        install_dir: runtime installation directory; the installation config
            file is looked up at `install_dir / lib / path_context_factory.properties`.
        search_path: resource search path entries (directories or zip archives)
            scanned for `META-INF/services/<setting name>`.
        debug: emit discovery trace lines on the package logger. In
            `from_environment` any value of `path_context_factory.debug`
            turns this on, including `0` or an empty string; only an unset
            variable leaves it off.
    """

    settings: Mapping[str, str] = field(default_factory=dict)
    install_dir: Path | None = None
    search_path: tuple[str, ...] = ()
    debug: bool = False

    @property
    def install_config_file(self) -> Path | None:
        if self.install_dir is None:
            return None
        return self.install_dir / INSTALL_CONFIG_RELPATH

    @classmethod
    def from_environment(cls) -> Self:
        env = dict(os.environ)
        return cls(
            settings=env,
            install_dir=Path(sys.prefix),
            search_path=tuple(sys.path),
            debug=DEBUG_PROPERTY in env,
        )


def service_resource_name(setting_name: str) -> str:
    return SERVICES_PREFIX + setting_name


_stderr_handler: logging.Handler | None = None


def enable_debug_logging() -> logging.Logger:
    """
    Route the package logger to stderr at DEBUG level.

    Installs at most one handler no matter how many times it is called.
    """
    global _stderr_handler

    logger = logging.getLogger(LOGGER_NAME)
    if _stderr_handler is None:
        _stderr_handler = logging.StreamHandler(sys.stderr)
        _stderr_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(_stderr_handler)
    logger.setLevel(logging.DEBUG)
    return logger
