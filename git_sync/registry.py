"""Remote targets and their grouping.

Naming rule: remotes whose names differ only by a trailing ``-<digits>``
suffix (``gitee``, ``gitee-2``, ``gitee-3``) are one logical repository
hosted at several addresses. The first declared member is the group's
primary remote; the others are extra push destinations for it and are never
used as fetch or pull sources.

A remote marked ``standalone`` is exempt from the rule and always forms a
group of its own, so a name like ``release-2024`` can be used literally.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Iterable

from git_sync.errors import EmptyRegistryError

_GROUP_SUFFIX_RE = re.compile(r"-\d+$")


@dataclass(frozen=True)
class RemoteTarget:
    """A configured remote endpoint."""

    name: str
    url: str
    enabled: bool = True
    source_line: int | None = None
    standalone: bool = False


@dataclass(frozen=True)
class RemoteGroup:
    """Remotes that share a base name."""

    base_name: str
    primary: RemoteTarget
    extras: tuple[RemoteTarget, ...] = field(default_factory=tuple)

    @property
    def members(self) -> tuple[RemoteTarget, ...]:
        return (self.primary, *self.extras)


def base_name(name: str) -> str:
    """Strip one trailing ``-<digits>`` suffix from a remote name."""
    return _GROUP_SUFFIX_RE.sub("", name)


def group_key(target: RemoteTarget) -> str:
    if target.standalone:
        return target.name
    return base_name(target.name)


def enabled_targets(entries: Iterable[RemoteTarget]) -> list[RemoteTarget]:
    """Return the enabled entries in declaration order.

    Raises:
        EmptyRegistryError: No entry is enabled.
    """
    targets = [entry for entry in entries if entry.enabled]
    if not targets:
        raise EmptyRegistryError()
    return targets


def resolve(entries: Iterable[RemoteTarget]) -> list[RemoteGroup]:
    """Group enabled remotes by base name, preserving declaration order."""
    members: dict[str, list[RemoteTarget]] = {}
    for target in enabled_targets(entries):
        members.setdefault(group_key(target), []).append(target)

    return [
        RemoteGroup(base_name=key, primary=group[0], extras=tuple(group[1:]))
        for key, group in members.items()
    ]


def restrict(entries: Iterable[RemoteTarget], names: Iterable[str]) -> list[RemoteTarget]:
    """Disable every entry whose name is not in ``names``."""
    wanted = set(names)
    return [entry if entry.name in wanted else replace(entry, enabled=False) for entry in entries]


def disable(entries: Iterable[RemoteTarget], names: Iterable[str]) -> list[RemoteTarget]:
    """Disable the entries named in ``names``."""
    unwanted = set(names)
    return [replace(entry, enabled=False) if entry.name in unwanted else entry for entry in entries]
