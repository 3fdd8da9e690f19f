"""Capability probes for external command-line tools."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol, Sequence, TypeVar


@dataclass(frozen=True, slots=True)
class ToolAvailable:
    """Tool found on the host."""

    name: str
    path: Path


@dataclass(frozen=True, slots=True)
class ToolUnavailable:
    """Tool not found on the host."""

    name: str
    reason: str


ToolProbe = ToolAvailable | ToolUnavailable


class Provider(Protocol):
    """Anything backed by one external tool that can be probed."""

    @property
    def tool_name(self) -> str: ...


P = TypeVar("P", bound=Provider)


def probe_tool(name: str) -> ToolProbe:
    """Resolve a tool by PATH lookup or by explicit filesystem path."""

    located = shutil.which(name)
    if located:
        return ToolAvailable(name=name, path=Path(located))

    explicit = Path(name)
    if explicit.is_absolute() and explicit.is_file() and os.access(explicit, os.X_OK):
        return ToolAvailable(name=name, path=explicit)
    return ToolUnavailable(name=name, reason=f"{name} not found on PATH")


def probe_first(names: Iterable[str]) -> ToolProbe:
    """Return the first available tool of an ordered list of alternatives."""

    tried: list[str] = []
    for name in names:
        probe = probe_tool(name)
        if isinstance(probe, ToolAvailable):
            return probe
        tried.append(name)
    return ToolUnavailable(name="|".join(tried), reason=f"none of {', '.join(tried) or '<none>'} found on PATH")


def choose_provider(providers: Sequence[P]) -> tuple[P, ToolAvailable] | None:
    """Walk providers in preference order and return the first whose tool is present."""

    for provider in providers:
        probe = probe_tool(provider.tool_name)
        if isinstance(probe, ToolAvailable):
            return provider, probe
    return None
