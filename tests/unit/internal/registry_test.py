from __future__ import annotations

# ==============================================================================
# BRANCH LEDGER: registry.py
# ==============================================================================
#
# C000 = module functions, C001 = FactoryRegistry
#
# ## _validate_factory_callable(factory_id, factory_obj)   (C000F001)
# C000F001B0001: factory_obj not callable -> raise FactoryEntrypointError
# C000F001B0002: signature has required parameters -> raise FactoryEntrypointError
# C000F001B0003: signature has no required parameters -> return factory_obj
# C000F001B0004: signature not introspectable -> return factory_obj
#
# ## FactoryRegistry.merged(self)   (C001M001)
# C001M001B0001: builtins and externals share ids -> raise FactoryRegistryError
# C001M001B0002: no shared ids -> builtins updated with externals
# C001M001B0003: registered ids shadow builtins/externals without override -> raise FactoryRegistryError
# C001M001B0004: registered ids listed in overrides replace builtins/externals
# ==============================================================================

from dataclasses import dataclass
from typing import Callable, Iterator

import pytest

from path_context_factory.internal import registry as uut
from unit.helpers.factories_helper import FakeFactory, NeedsArgsFactory, make_fake_factory


# ==============================================================================
# Test-local helpers
# ==============================================================================


def _make_constructor(value: object) -> Callable[[], object]:
    def _constructor() -> object:
        return value

    return _constructor


@dataclass(frozen=True)
class _FakeEntryPoint:
    name: str
    _loader: Callable[[], object]

    def load(self) -> object:
        return self._loader()


class _FakeEntryPoints:
    def __init__(self, eps: list[_FakeEntryPoint]) -> None:
        self._eps = eps

    def select(self, *, group: str) -> list[_FakeEntryPoint]:
        # Group filtering is importlib.metadata's job, not ours.
        return self._eps


@pytest.fixture(autouse=True)
def _clean_registered() -> Iterator[None]:
    saved = dict(uut._registered)  # noqa: SLF001
    saved_overrides = set(uut._overrides)  # noqa: SLF001
    uut._registered.clear()  # noqa: SLF001
    uut._overrides.clear()  # noqa: SLF001
    yield
    uut._registered.clear()  # noqa: SLF001
    uut._registered.update(saved)  # noqa: SLF001
    uut._overrides.clear()  # noqa: SLF001
    uut._overrides.update(saved_overrides)  # noqa: SLF001


# ==============================================================================
# CASE MATRIX
# ==============================================================================

_VALIDATE_CASES = [
    dict(
        factory_id="f0",
        factory_obj=object(),
        exp_exc_substr="must load a callable; got object",
        covers=["C000F001B0001"],
    ),
    dict(
        factory_id="f1",
        factory_obj=(lambda config: object()),
        exp_exc_substr="must be callable without arguments. Signature=",
        covers=["C000F001B0002"],
    ),
    dict(
        factory_id="f2",
        factory_obj=NeedsArgsFactory,
        exp_exc_substr="must be callable without arguments. Signature=",
        covers=["C000F001B0002"],
    ),
    dict(
        factory_id="f3",
        factory_obj=FakeFactory,
        exp_exc_substr=None,
        covers=["C000F001B0003"],
    ),
    dict(
        factory_id="f4",
        factory_obj=(lambda *args, retries=3, **kwargs: object()),
        exp_exc_substr=None,
        covers=["C000F001B0003"],
    ),
    dict(
        factory_id="f5",
        factory_obj=dict,
        exp_exc_substr=None,
        covers=["C000F001B0004"],
    ),
]

_MERGED_CASES = [
    dict(
        builtins={"a": _make_constructor("builtin")},
        externals={"a": _make_constructor("external")},
        registered={},
        exp_exc_substr="duplicate factory ids found in builtins and entry points: ['a']",
        exp_values=None,
        covers=["C001M001B0001"],
    ),
    dict(
        builtins={"a": _make_constructor("builtin")},
        externals={"b": _make_constructor("external")},
        registered={},
        exp_exc_substr=None,
        exp_values={"a": "builtin", "b": "external"},
        covers=["C001M001B0002"],
    ),
    dict(
        builtins={"a": _make_constructor("builtin")},
        externals={"b": _make_constructor("external")},
        registered={"a": _make_constructor("registered"), "c": _make_constructor("extra")},
        overrides=frozenset({"a"}),
        exp_exc_substr=None,
        exp_values={"a": "registered", "b": "external", "c": "extra"},
        covers=["C001M001B0004"],
    ),
    dict(
        builtins={"a": _make_constructor("builtin")},
        externals={"b": _make_constructor("external")},
        registered={"a": _make_constructor("registered")},
        exp_exc_substr="registered factory ids collide with builtins or entry points: ['a']",
        exp_values=None,
        covers=["C001M001B0003"],
    ),
    dict(
        builtins={},
        externals={"b": _make_constructor("external")},
        registered={"b": _make_constructor("registered")},
        exp_exc_substr="register with replace=True to override",
        exp_values=None,
        covers=["C001M001B0003"],
    ),
    dict(
        builtins={},
        externals={"b": _make_constructor("external")},
        registered={"b": _make_constructor("registered")},
        overrides=frozenset({"b"}),
        exp_exc_substr=None,
        exp_values={"b": "registered"},
        covers=["C001M001B0004"],
    ),
]

_LOAD_ENTRYPOINT_CASES = [
    dict(
        name="no-entrypoints",
        eps=[],
        exp_exc_substr=None,
        exp_single=None,
    ),
    dict(
        name="single-entrypoint",
        eps=[("fA", _make_constructor("A"))],
        exp_exc_substr=None,
        exp_single=("fA", "A"),
    ),
    dict(
        name="duplicate-entrypoints",
        eps=[("fA", _make_constructor("A1")), ("fA", _make_constructor("A2"))],
        exp_exc_substr="duplicate factory ids found in entry points group 'test.group': ['fA']",
        exp_single=None,
    ),
    dict(
        name="invalid-entrypoint",
        eps=[("fB", object())],
        exp_exc_substr="factory entry point 'fB' must load a callable",
        exp_single=None,
    ),
]


# ==============================================================================
# Tests
# ==============================================================================


@pytest.mark.parametrize("case", _VALIDATE_CASES, ids=[c["factory_id"] for c in _VALIDATE_CASES])
def test_validate_factory_callable(case: dict) -> None:
    if case["exp_exc_substr"] is not None:
        with pytest.raises(uut.FactoryEntrypointError) as ei:
            uut._validate_factory_callable(case["factory_id"], case["factory_obj"])
        assert case["exp_exc_substr"] in str(ei.value)
        return

    assert uut._validate_factory_callable(case["factory_id"], case["factory_obj"]) is case["factory_obj"]


@pytest.mark.parametrize("case", _MERGED_CASES)
def test_factory_registry_merged(case: dict) -> None:
    reg = uut.FactoryRegistry(
        builtins=case["builtins"],
        externals=case["externals"],
        registered=case["registered"],
        overrides=case.get("overrides", frozenset()),
    )

    if case["exp_exc_substr"] is not None:
        with pytest.raises(uut.FactoryRegistryError) as ei:
            reg.merged()
        assert case["exp_exc_substr"] in str(ei.value)
        return

    merged = reg.merged()
    assert {k: v() for k, v in merged.items()} == case["exp_values"]


@pytest.mark.parametrize("case", _LOAD_ENTRYPOINT_CASES, ids=[c["name"] for c in _LOAD_ENTRYPOINT_CASES])
def test_load_entrypoint_factories(monkeypatch: pytest.MonkeyPatch, case: dict) -> None:
    fake_eps = [_FakeEntryPoint(name=n, _loader=(lambda obj=o: obj)) for (n, o) in case["eps"]]
    monkeypatch.setattr(uut, "entry_points", lambda: _FakeEntryPoints(fake_eps))

    if case["exp_exc_substr"] is not None:
        with pytest.raises(uut.FactoryEntrypointError) as ei:
            uut._load_entrypoint_factories(group="test.group")
        assert case["exp_exc_substr"] in str(ei.value)
        return

    factories = uut._load_entrypoint_factories(group="test.group")

    if case["exp_single"] is None:
        assert factories == {}
        return

    factory_id, exp_value = case["exp_single"]
    assert set(factories) == {factory_id}
    assert factories[factory_id]() == exp_value


def test_load_entrypoint_factories_wraps_load_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    def _broken() -> object:
        raise ModuleNotFoundError("No module named 'plugin_gone'", name="plugin_gone")

    fake_eps = [_FakeEntryPoint(name="broken", _loader=_broken)]
    monkeypatch.setattr(uut, "entry_points", lambda: _FakeEntryPoints(fake_eps))

    with pytest.raises(uut.FactoryEntrypointError) as ei:
        uut._load_entrypoint_factories(group="test.group")

    assert "factory entry point 'broken' failed to load: ModuleNotFoundError" in str(ei.value)
    assert isinstance(ei.value.__cause__, ModuleNotFoundError)


def test_build_factory_registry(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(uut, "BUILTIN_FACTORY_CONSTRUCTORS", {"builtin": _make_constructor("B")})
    monkeypatch.setattr(uut, "FACTORY_ENTRYPOINT_GROUP", "the.group")

    def _load(*, group: str) -> dict:
        assert group == "the.group"
        return {"external": _make_constructor("E")}

    monkeypatch.setattr(uut, "_load_entrypoint_factories", _load)
    uut.register_factory("runtime", make_fake_factory)

    reg = uut.build_factory_registry()
    assert isinstance(reg, uut.FactoryRegistry)
    assert set(reg.builtins) == {"builtin"}
    assert set(reg.externals) == {"external"}
    assert dict(reg.registered) == {"runtime": make_fake_factory}
    assert reg.overrides == frozenset()


def test_build_factory_registry_snapshot_is_detached(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(uut, "_load_entrypoint_factories", lambda *, group: {})
    uut.register_factory("runtime", make_fake_factory)

    reg = uut.build_factory_registry()
    uut.unregister_factory("runtime")

    assert "runtime" in reg.registered


def test_builtin_default_constructs_reference_factory() -> None:
    from path_context_factory.internal.reference import PathContextFactoryReferenceImpl

    factory = uut.BUILTIN_FACTORY_CONSTRUCTORS[uut.DEFAULT_FACTORY_ID]()
    assert isinstance(factory, PathContextFactoryReferenceImpl)


def test_register_factory_rules() -> None:
    uut.register_factory("com.example.MyFactoryImpl", FakeFactory)

    with pytest.raises(uut.FactoryRegistryError, match="already registered"):
        uut.register_factory("com.example.MyFactoryImpl", make_fake_factory)

    uut.register_factory("com.example.MyFactoryImpl", make_fake_factory, replace=True)
    assert uut._registered["com.example.MyFactoryImpl"] is make_fake_factory  # noqa: SLF001

    with pytest.raises(uut.FactoryRegistryError, match="non-empty"):
        uut.register_factory("", FakeFactory)

    with pytest.raises(uut.FactoryRegistryError, match="must be callable"):
        uut.register_factory("bad", "not callable")  # type: ignore[arg-type]


def test_register_factory_refuses_builtin_ids_without_replace(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(uut, "_load_entrypoint_factories", lambda *, group: {})

    with pytest.raises(uut.FactoryRegistryError, match="is a builtin factory"):
        uut.register_factory(uut.DEFAULT_FACTORY_ID, FakeFactory)
    assert uut.DEFAULT_FACTORY_ID not in uut._registered  # noqa: SLF001

    uut.register_factory(uut.DEFAULT_FACTORY_ID, FakeFactory, replace=True)
    reg = uut.build_factory_registry()
    assert reg.overrides == frozenset({uut.DEFAULT_FACTORY_ID})
    assert isinstance(reg.merged()[uut.DEFAULT_FACTORY_ID](), FakeFactory)

    assert uut.unregister_factory(uut.DEFAULT_FACTORY_ID) is True
    assert uut.DEFAULT_FACTORY_ID not in uut._overrides  # noqa: SLF001


def test_register_without_replace_collides_with_entry_point(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        uut, "_load_entrypoint_factories", lambda *, group: {"plugin": _make_constructor("E")}
    )
    uut.register_factory("plugin", make_fake_factory)

    with pytest.raises(uut.FactoryRegistryError, match=r"collide with builtins or entry points: \['plugin'\]"):
        uut.build_factory_registry().merged()

    uut.register_factory("plugin", make_fake_factory, replace=True)
    assert uut.build_factory_registry().merged()["plugin"] is make_fake_factory

    assert uut.unregister_factory("com.example.MyFactoryImpl") is True
    assert uut.unregister_factory("com.example.MyFactoryImpl") is False
