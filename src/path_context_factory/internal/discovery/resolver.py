from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from path_context_factory.config import LOGGER_NAME, DiscoveryConfig
from path_context_factory.internal.discovery.sources import (
    DiscoverySource,
    SourceUnavailable,
    default_sources,
)

_log = logging.getLogger(LOGGER_NAME)


@dataclass(frozen=True, slots=True)
class LookupResolver:
    """
    Runs the discovery sources in order and returns the first identifier found.

    - stateless: no caching here, see internal.discovery.cache
    - never fails: the last source is expected to be a default
    - tracing is gated by config.debug and never changes the outcome
    """

    config: DiscoveryConfig = field(default_factory=DiscoveryConfig)

    def _trace(self, msg: str) -> None:
        if self.config.debug:
            _log.debug(msg)

    def resolve(
        self,
        setting_name: str,
        default_identifier: str,
        *,
        sources: Sequence[DiscoverySource] | None = None,
    ) -> str:
        if sources is None:
            sources = default_sources(default_identifier)

        for source in sources:
            try:
                identifier = source.lookup(setting_name=setting_name, config=self.config)
            except SourceUnavailable as e:
                self._trace(f"source {source.name} unavailable: {e}")
                continue
            except Exception as e:
                self._trace(
                    f"source {source.name} failed: {type(e).__name__}: {e}"
                )
                continue

            if not identifier:
                self._trace(f"source {source.name} returned nothing")
                continue

            self._trace(f"found {setting_name}={identifier} via {source.name}")
            return identifier

        self._trace(f"no source matched, using default {default_identifier}")
        return default_identifier


def resolve_identifier(
    setting_name: str,
    default_identifier: str,
    *,
    config: DiscoveryConfig | None = None,
) -> str:
    """
    Resolve the implementation identifier for `setting_name`.

    Order: named setting, installation config file, META-INF/services resource,
    `default_identifier`. Any failure of a single source falls through to the
    next one.
    """
    resolver = LookupResolver(config=config if config is not None else DiscoveryConfig())
    return resolver.resolve(setting_name, default_identifier)
