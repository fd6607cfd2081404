from __future__ import annotations

import importlib
import logging

from path_context_factory.factory import (
    PathContextFactory,
    PathContextFactoryConfigurationError,
)
from path_context_factory.internal.registry import (
    FactoryConstructor,
    FactoryRegistry,
    FactoryRegistryError,
    build_factory_registry,
)


def _import_constructor(identifier: str) -> FactoryConstructor:
    """
    Resolve `package.module:Attr` or `package.module.Attr` to an object.

    For the dotted form the longest importable module prefix wins, so nested
    attributes (`pkg.mod.Outer.Inner`) work too.
    """
    if ":" in identifier:
        module_name, _, attr_path = identifier.partition(":")
        module = importlib.import_module(module_name)
        obj: object = module
        for part in attr_path.split("."):
            obj = getattr(obj, part)
        return obj  # type: ignore[return-value]

    parts = identifier.split(".")
    if len(parts) < 2 or not all(parts):
        raise ImportError(f"not an import path: {identifier!r}")

    last_error: ImportError | None = None
    for cut in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:cut])
        try:
            module = importlib.import_module(module_name)
        except ModuleNotFoundError as e:
            if e.name is not None and not (
                module_name == e.name or module_name.startswith(e.name + ".")
            ):
                # the module exists but one of its own imports is missing
                raise
            last_error = e
            continue

        obj = module
        for part in parts[cut:]:
            obj = getattr(obj, part)
        return obj  # type: ignore[return-value]

    assert last_error is not None
    raise last_error


def load_factory(
    identifier: str, *, registry: FactoryRegistry | None = None
) -> PathContextFactory:
    """
    Construct the factory named by `identifier`.

    Registry entries win over import paths. Every failure is reported as
    PathContextFactoryConfigurationError chained to its cause; nothing is cached.
    """
    try:
        if registry is None:
            registry = build_factory_registry()
        merged = registry.merged()
    except FactoryRegistryError as e:
        raise PathContextFactoryConfigurationError(str(e), identifier=identifier) from e

    try:
        constructor = merged.get(identifier)
        if constructor is None:
            constructor = _import_constructor(identifier)
        if not callable(constructor):
            raise TypeError(f"{identifier!r} resolved to a non-callable {type(constructor).__name__}")
        instance = constructor()
    except Exception as e:
        logging.debug(f"factory load failed: {identifier} err={type(e).__name__}: {e}")
        raise PathContextFactoryConfigurationError(
            f"cannot instantiate path context factory {identifier!r}: {type(e).__name__}: {e}",
            identifier=identifier,
        ) from e

    if not isinstance(instance, PathContextFactory):
        raise PathContextFactoryConfigurationError(
            f"{identifier!r} produced {type(instance).__name__}, which is not a PathContextFactory",
            identifier=identifier,
        )

    return instance
