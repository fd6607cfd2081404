from __future__ import annotations

import inspect
import threading
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Callable, Mapping

if TYPE_CHECKING:
    from path_context_factory.factory import PathContextFactory

FACTORY_ENTRYPOINT_GROUP = "path_context_factory.factories"

FactoryConstructor = Callable[[], "PathContextFactory"]


class FactoryRegistryError(RuntimeError):
    pass


class FactoryEntrypointError(FactoryRegistryError):
    pass


def _create_reference() -> PathContextFactory:
    from path_context_factory.internal.reference import PathContextFactoryReferenceImpl
    return PathContextFactoryReferenceImpl()


DEFAULT_FACTORY_ID = "path_context_factory.internal.reference.PathContextFactoryReferenceImpl"

BUILTIN_FACTORY_CONSTRUCTORS: dict[str, FactoryConstructor] = {
    DEFAULT_FACTORY_ID: _create_reference,
}


@dataclass(frozen=True, slots=True)
class FactoryRegistry:
    """
    Factory constructors known to the loader, keyed by implementation identifier.

    builtins: constructors shipped with the library
    externals: constructors discovered via entry points
    registered: constructors added at runtime with register_factory()
    overrides: registered ids allowed to shadow a builtin or entry point
    """

    builtins: Mapping[str, FactoryConstructor]
    externals: Mapping[str, FactoryConstructor]
    registered: Mapping[str, FactoryConstructor]
    overrides: frozenset[str] = frozenset()

    def merged(self) -> dict[str, FactoryConstructor]:
        dupes: set[str] = set(self.builtins).intersection(self.externals)
        if dupes:
            raise FactoryRegistryError(
                f"duplicate factory ids found in builtins and entry points: {sorted(dupes)}"
            )

        shadowed = (
            set(self.registered).intersection(set(self.builtins) | set(self.externals))
            - self.overrides
        )
        if shadowed:
            raise FactoryRegistryError(
                f"registered factory ids collide with builtins or entry points: {sorted(shadowed)}; "
                "register with replace=True to override"
            )

        merged: dict[str, FactoryConstructor] = dict(self.builtins)
        merged.update(self.externals)
        merged.update(self.registered)
        return merged


def _validate_factory_callable(factory_id: str, factory_obj: object) -> FactoryConstructor:
    """
    Entry points must load something callable with no required arguments.

    Unlike a plain registry value, a class is fine here: calling it constructs
    the factory.
    """
    if not callable(factory_obj):
        raise FactoryEntrypointError(
            f"factory entry point '{factory_id}' must load a callable; got {type(factory_obj).__name__}"
        )

    try:
        sig = inspect.signature(factory_obj)
    except (TypeError, ValueError):
        return factory_obj  # builtins without introspectable signatures

    required = [
        p.name
        for p in sig.parameters.values()
        if p.default is inspect.Parameter.empty
        and p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]
    if required:
        raise FactoryEntrypointError(
            f"factory entry point '{factory_id}' must be callable without arguments. Signature={sig}"
        )

    return factory_obj


def _load_entrypoint_factories(*, group: str) -> dict[str, FactoryConstructor]:
    """
    Discover factory constructors from entry points.

    Determinism rules:
      - entry point name is the factory id
      - duplicate ids within the same group are an error
      - loaded object must be callable without arguments
    """
    factories: dict[str, FactoryConstructor] = {}
    dupes: set[str] = set()

    for ep in entry_points().select(group=group):
        factory_id = ep.name
        try:
            factory_obj = ep.load()
        except Exception as e:
            raise FactoryEntrypointError(
                f"factory entry point '{factory_id}' failed to load: {type(e).__name__}: {e}"
            ) from e
        factory = _validate_factory_callable(factory_id, factory_obj)

        if factory_id in factories:
            dupes.add(factory_id)
            continue

        factories[factory_id] = factory

    if dupes:
        raise FactoryEntrypointError(
            f"duplicate factory ids found in entry points group '{group}': {sorted(dupes)}"
        )

    return factories


_registered: dict[str, FactoryConstructor] = {}
_overrides: set[str] = set()
_registered_lock = threading.Lock()


def register_factory(
    factory_id: str, constructor: FactoryConstructor, *, replace: bool = False
) -> None:
    """
    Make `factory_id` loadable without an importable module path.

    Raise FactoryRegistryError if the id is already registered or is a builtin
    and `replace` is false. Collisions with entry points surface when the
    registry is merged, since entry points are only loaded then.
    """
    if not factory_id:
        raise FactoryRegistryError("factory id must be a non-empty string")
    if not callable(constructor):
        raise FactoryRegistryError(
            f"factory '{factory_id}' constructor must be callable; got {type(constructor).__name__}"
        )

    with _registered_lock:
        if replace:
            _overrides.add(factory_id)
        else:
            if factory_id in _registered:
                raise FactoryRegistryError(f"factory id {factory_id!r} is already registered")
            if factory_id in BUILTIN_FACTORY_CONSTRUCTORS:
                raise FactoryRegistryError(f"factory id {factory_id!r} is a builtin factory")
            _overrides.discard(factory_id)
        _registered[factory_id] = constructor


def unregister_factory(factory_id: str) -> bool:
    with _registered_lock:
        _overrides.discard(factory_id)
        return _registered.pop(factory_id, None) is not None


def build_factory_registry() -> FactoryRegistry:
    """
    Snapshot of every known factory constructor.

    This is intentionally the only place that knows about FACTORY_ENTRYPOINT_GROUP.
    """
    externals = _load_entrypoint_factories(group=FACTORY_ENTRYPOINT_GROUP)
    with _registered_lock:
        registered = dict(_registered)
        overrides = frozenset(_overrides)

    return FactoryRegistry(
        builtins=BUILTIN_FACTORY_CONSTRUCTORS,
        externals=externals,
        registered=registered,
        overrides=overrides,
    )
