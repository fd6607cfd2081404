from __future__ import annotations

from typing import Any, Callable, Iterator, Mapping


class UnknownBindingError(KeyError):
    pass


class _ScopedBindings:
    """
    Name -> value bindings that fall back to an enclosing scope.

    Writes only ever touch this scope.
    """

    kind = "binding"

    def __init__(self, parent: _ScopedBindings | None = None) -> None:
        self._parent = parent
        self._own: dict[str, Any] = {}

    def declare(self, name: str, value: Any) -> None:
        self._own[name] = value

    def undeclare(self, name: str) -> None:
        self._own.pop(name, None)

    def is_declared(self, name: str) -> bool:
        scope: _ScopedBindings | None = self
        while scope is not None:
            if name in scope._own:
                return True
            scope = scope._parent
        return False

    def get(self, name: str) -> Any:
        scope: _ScopedBindings | None = self
        while scope is not None:
            if name in scope._own:
                return scope._own[name]
            scope = scope._parent
        raise UnknownBindingError(f"undefined {self.kind}: {name}")

    def names(self) -> Iterator[str]:
        seen: set[str] = set()
        scope: _ScopedBindings | None = self
        while scope is not None:
            for name in scope._own:
                if name not in seen:
                    seen.add(name)
                    yield name
            scope = scope._parent


class Variables(_ScopedBindings):
    kind = "variable"


class Functions(_ScopedBindings):
    kind = "function"

    def declare(self, name: str, value: Callable[..., Any]) -> None:
        if not callable(value):
            raise TypeError(f"function {name!r} must be callable; got {type(value).__name__}")
        super().declare(name, value)


class PathContext:
    """
    Engine session over one subject object.

    Holds the subject (`context_bean`) and the variable/function bindings that
    path expressions are evaluated against. A child context sees everything its
    parent declares; declarations on the child stay on the child.

    Expression evaluation belongs to the engine implementation behind the
    factory, not to this class.
    """

    def __init__(self, parent_context: PathContext | None, context_bean: Any) -> None:
        self._parent_context = parent_context
        self._context_bean = context_bean
        self._variables = Variables(parent_context.variables if parent_context else None)
        self._functions = Functions(parent_context.functions if parent_context else None)

    @property
    def parent_context(self) -> PathContext | None:
        return self._parent_context

    @property
    def context_bean(self) -> Any:
        return self._context_bean

    @property
    def variables(self) -> Variables:
        return self._variables

    @property
    def functions(self) -> Functions:
        return self._functions

    def declare_variables(self, values: Mapping[str, Any]) -> None:
        for name, value in values.items():
            self._variables.declare(name, value)

    @staticmethod
    def new_context(context_bean: Any, *, parent: PathContext | None = None) -> PathContext:
        """
        Create a context through the process-wide factory.

        Shorthand for `PathContextFactory.new_instance().new_context(parent, context_bean)`.
        """
        from path_context_factory.factory import PathContextFactory
        return PathContextFactory.new_instance().new_context(parent, context_bean)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(context_bean={self._context_bean!r}, nested={self._parent_context is not None})"
