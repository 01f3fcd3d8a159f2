#!/usr/bin/env python3
"""
merge.py

Merge domain streams into one deduplicated set and apply the whitelist.

Whitelist policies:
  exact     -- drop a domain only if it is itself whitelisted
  ancestor  -- also drop it if any parent domain is whitelisted
               (whitelisting example.com drops ads.example.com)

Domains passed as `protected` (the blacklist) survive either policy.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Callable, Iterable

from hostsmerge import utils


class WhitelistPolicy(str, Enum):
    EXACT = "exact"
    ANCESTOR = "ancestor"


@lru_cache(maxsize=262144)
def _cached_suffixes(domain: str) -> tuple[str, ...]:
    """Return cached tuple of suffixes for repeated lookups."""
    return tuple(utils.walk_suffixes(domain))


def aggregate(
    blacklist: Iterable[str] | None, sources: Iterable[Iterable[str]]
) -> set[str]:
    """
    Return the union of the blacklist and every source's domains.

    Blacklist domains go in first; duplicates collapse.
    """
    merged: set[str] = set(blacklist or ())
    for domains in sources:
        merged.update(domains)
    return merged


def _make_exact_checker(whitelist: frozenset[str]) -> Callable[[str], bool]:
    return whitelist.__contains__


def _make_ancestor_checker(whitelist: frozenset[str]) -> Callable[[str], bool]:
    """Return cached predicate: domain or any of its parents is whitelisted."""

    @lru_cache(maxsize=131072)
    def _is_whitelisted(domain: str) -> bool:
        if not domain:
            return False
        return any(suffix in whitelist for suffix in _cached_suffixes(domain))

    return _is_whitelisted


_CHECKER_FACTORIES = {
    WhitelistPolicy.EXACT: _make_exact_checker,
    WhitelistPolicy.ANCESTOR: _make_ancestor_checker,
}


class WhitelistFilter:
    """
    Remove whitelisted domains from an aggregated set.

    A `whitelist` of None means no whitelist file was present and the filter
    is the identity.
    """

    def __init__(
        self,
        whitelist: Iterable[str] | None,
        policy: WhitelistPolicy | str = WhitelistPolicy.ANCESTOR,
    ) -> None:
        self.policy = WhitelistPolicy(policy)
        self.whitelist = frozenset(whitelist) if whitelist is not None else None
        self.removed = 0
        if self.whitelist:
            self._is_whitelisted = _CHECKER_FACTORIES[self.policy](self.whitelist)
        else:
            self._is_whitelisted = None

    @property
    def active(self) -> bool:
        return self.whitelist is not None

    def is_whitelisted(self, domain: str) -> bool:
        """True if `domain` matches the whitelist under the active policy."""
        return self._is_whitelisted is not None and self._is_whitelisted(domain)

    def apply(
        self, domains: Iterable[str], protected: Iterable[str] = frozenset()
    ) -> set[str]:
        """Return a new set without whitelisted, unprotected domains."""
        kept = set(domains)
        if self._is_whitelisted is None:
            self.removed = 0
            return kept
        keep_always = frozenset(protected)
        dropped = {d for d in kept if d not in keep_always and self.is_whitelisted(d)}
        self.removed = len(dropped)
        return kept - dropped
