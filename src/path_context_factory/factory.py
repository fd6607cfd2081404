from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from path_context_factory.config import FACTORY_NAME_PROPERTY, DiscoveryConfig, enable_debug_logging
from path_context_factory.internal.discovery.cache import ResolvedOnce
from path_context_factory.internal.discovery.resolver import resolve_identifier
from path_context_factory.internal.registry import DEFAULT_FACTORY_ID

if TYPE_CHECKING:
    from path_context_factory.context import PathContext


class PathContextFactoryConfigurationError(RuntimeError):
    """
    Raised when the resolved factory implementation cannot be loaded or constructed.

    This is the only error the factory lookup surfaces. The underlying cause
    (missing module, constructor failure, wrong type, ...) is chained as
    `__cause__`, and the offending identifier is kept on `identifier`.
    """

    def __init__(self, message: str, *, identifier: str | None = None) -> None:
        super().__init__(message)
        self.identifier = identifier


ConfigurationError = PathContextFactoryConfigurationError


def _find_factory() -> str:
    config = DiscoveryConfig.from_environment()
    if config.debug:
        enable_debug_logging()
    return resolve_identifier(FACTORY_NAME_PROPERTY, DEFAULT_FACTORY_ID, config=config)


# Resolved on first use, then fixed for the life of the process.
_FACTORY_IMPL_NAME: ResolvedOnce[str] = ResolvedOnce(_find_factory)


def factory_impl_name() -> str:
    return _FACTORY_IMPL_NAME.get()


def _reset_factory_impl_name_for_tests() -> None:
    _FACTORY_IMPL_NAME._reset_for_tests()


class PathContextFactory(ABC):
    """
    Abstract factory for PathContext instances.

    Obtain a concrete factory with `PathContextFactory.new_instance()`, which
    picks the implementation in this order:

    - the `path_context_factory.PathContextFactory` environment setting
    - `<sys.prefix>/lib/path_context_factory.properties`, same key
    - a `META-INF/services/path_context_factory.PathContextFactory` resource on sys.path
    - the reference implementation

    The choice is made once per process. Each call returns a new factory.
    Subclasses are free to add public constructors of their own.
    """

    @staticmethod
    def new_instance() -> PathContextFactory:
        """
        Raises:
            PathContextFactoryConfigurationError: if the implementation is not
                available or cannot be instantiated.
        """
        from path_context_factory.internal.loader import load_factory
        return load_factory(factory_impl_name())

    @abstractmethod
    def new_context(self, parent_context: PathContext | None, context_bean: Any) -> PathContext:
        """
        Create a PathContext over `context_bean`.

        When `parent_context` is given the new context inherits its variable and
        function bindings; the parent itself must not be modified.
        """
        raise NotImplementedError


def new_instance() -> PathContextFactory:
    return PathContextFactory.new_instance()
