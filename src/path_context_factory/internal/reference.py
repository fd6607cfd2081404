from __future__ import annotations

from typing import Any

from path_context_factory.context import PathContext
from path_context_factory.factory import PathContextFactory


class ReferencePathContext(PathContext):
    pass


class PathContextFactoryReferenceImpl(PathContextFactory):
    """Default factory used when no other implementation is configured."""

    def new_context(self, parent_context: PathContext | None, context_bean: Any) -> PathContext:
        return ReferencePathContext(parent_context, context_bean)
