from __future__ import annotations

import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from path_context_factory.config import DiscoveryConfig, service_resource_name


class SourceUnavailable(Exception):
    """
    Used for normal control flow: "this source has nothing to offer".

    Covers a missing, unreadable or empty source. Never leaves the resolver.
    """

    pass


@dataclass(frozen=True, slots=True)
class DiscoverySource(ABC):
    """
    One lookup strategy in the ordered discovery search.

    A source must not cache anything; the resolver may run it again.
    """

    name: str

    @abstractmethod
    def lookup(self, *, setting_name: str, config: DiscoveryConfig) -> str:
        """
        Return the implementation identifier offered by this source.

        Raise:
          - SourceUnavailable when the source is missing, unreadable or empty
        """
        raise NotImplementedError


def _non_empty(value: str | None, *, what: str) -> str:
    if value is None:
        raise SourceUnavailable(f"{what}: not set")
    value = value.strip()
    if not value:
        raise SourceUnavailable(f"{what}: empty value")
    return value


# --------------------------------------------------------------------------- #
# 1. named setting
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class NamedSettingSource(DiscoverySource):
    name: str = "setting"

    def lookup(self, *, setting_name: str, config: DiscoveryConfig) -> str:
        return _non_empty(config.settings.get(setting_name), what=f"setting {setting_name}")


# --------------------------------------------------------------------------- #
# 2. installation config file
# --------------------------------------------------------------------------- #


_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


def _continues(line: str) -> bool:
    # an odd number of trailing backslashes joins the next line
    return (len(line) - len(line.rstrip("\\"))) % 2 == 1


def _logical_lines(lines: Iterable[str]) -> Iterable[str]:
    pending: str | None = None
    for raw in lines:
        line = raw.rstrip("\r\n").lstrip()
        if pending is None and (not line or line[0] in "#!"):
            continue

        if _continues(line):
            pending = (pending or "") + line[:-1]
            continue

        yield (pending or "") + line
        pending = None

    if pending is not None:
        yield pending


def _unescape(text: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(text):
        c = text[i]
        if c != "\\" or i + 1 >= len(text):
            out.append(c)
            i += 1
            continue

        nxt = text[i + 1]
        if nxt == "u":
            digits = text[i + 2:i + 6]
            if len(digits) != 4:
                raise ValueError(f"malformed \\uxxxx escape: {text[i:i + 6]!r}")
            out.append(chr(int(digits, 16)))
            i += 6
            continue

        out.append(_ESCAPES.get(nxt, nxt))
        i += 2
    return "".join(out)


def _split_property(line: str) -> tuple[str, str]:
    i, n = 0, len(line)
    while i < n:
        c = line[i]
        if c == "\\":
            i += 2
            continue
        if c in "=:" or c.isspace():
            break
        i += 1
    key = line[:i]

    while i < n and line[i].isspace():
        i += 1
    if i < n and line[i] in "=:":
        i += 1
    while i < n and line[i].isspace():
        i += 1

    return _unescape(key), _unescape(line[i:])


def parse_properties(lines: Iterable[str]) -> dict[str, str]:
    """
    Parse a java.util.Properties style file.

    The key ends at the first unescaped `=`, `:` or whitespace, so `key=value`,
    `key: value` and `key value` all work. Lines starting with `#` or `!` are
    comments, a trailing backslash continues the line, and `\\t`, `\\n`, `\\r`,
    `\\f`, `\\uXXXX` escapes are decoded. Later duplicates win.

    Raise ValueError on a malformed `\\uXXXX` escape.
    """
    props: dict[str, str] = {}
    for line in _logical_lines(lines):
        key, value = _split_property(line)
        if key:
            props[key] = value
    return props


@dataclass(frozen=True, slots=True)
class InstallConfigSource(DiscoverySource):
    name: str = "install-config"

    def lookup(self, *, setting_name: str, config: DiscoveryConfig) -> str:
        path = config.install_config_file
        if path is None:
            raise SourceUnavailable("no installation directory configured")
        if not path.is_file():
            raise SourceUnavailable(f"{path}: not found")

        try:
            with path.open("r", encoding="utf-8") as fh:
                props: Mapping[str, str] = parse_properties(fh)
        except (OSError, ValueError) as e:
            raise SourceUnavailable(f"{path}: unreadable ({type(e).__name__}: {e})") from e

        return _non_empty(props.get(setting_name), what=f"{path} [{setting_name}]")


# --------------------------------------------------------------------------- #
# 3. registry resource on the search path
# --------------------------------------------------------------------------- #


def first_identifier_line(text: str) -> str | None:
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if line:
            return line
    return None


def _read_resource(entry: str, resource: str) -> str | None:
    """
    Read `resource` from one search path entry.

    Return None when the entry does not hold the resource. Read errors on a
    resource that exists propagate as OSError / UnicodeDecodeError.
    """
    base = Path(entry or ".")
    if base.is_dir():
        candidate = base.joinpath(*resource.split("/"))
        if not candidate.is_file():
            return None
        return candidate.read_text(encoding="utf-8")

    if base.is_file() and zipfile.is_zipfile(base):
        with zipfile.ZipFile(base) as zf:
            try:
                data = zf.read(resource)
            except KeyError:
                return None
        return data.decode("utf-8")

    return None


@dataclass(frozen=True, slots=True)
class ServiceResourceSource(DiscoverySource):
    """
    Looks for `META-INF/services/<setting name>` on the resource search path.

    Only the first resource found is consulted, like a class-loader resource
    lookup. Its first non-empty line (comments stripped) is the identifier.
    """

    name: str = "service-resource"

    def lookup(self, *, setting_name: str, config: DiscoveryConfig) -> str:
        resource = service_resource_name(setting_name)
        for entry in config.search_path:
            try:
                text = _read_resource(entry, resource)
            except (OSError, UnicodeDecodeError, zipfile.BadZipFile) as e:
                raise SourceUnavailable(
                    f"{resource} in {entry!r}: unreadable ({type(e).__name__}: {e})"
                ) from e
            if text is None:
                continue
            return _non_empty(first_identifier_line(text), what=f"{resource} in {entry!r}")

        raise SourceUnavailable(f"{resource}: not found on search path")


# --------------------------------------------------------------------------- #
# 4. default
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class DefaultSource(DiscoverySource):
    default_identifier: str = ""
    name: str = "default"

    def lookup(self, *, setting_name: str, config: DiscoveryConfig) -> str:
        return self.default_identifier


def default_sources(default_identifier: str) -> tuple[DiscoverySource, ...]:
    return (
        NamedSettingSource(),
        InstallConfigSource(),
        ServiceResourceSource(),
        DefaultSource(default_identifier=default_identifier),
    )
