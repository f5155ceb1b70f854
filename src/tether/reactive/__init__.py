"""Lifetime-scoped reactive primitives.

- :class:`LifetimeTree` / :class:`Lifetime` -- cascading cancellation scopes.
- :class:`SequentialLifetimes` -- at most one issued lifetime alive at a time.
- :class:`ReactiveProperty` / :class:`ReactiveFlag` -- observable values
  whose subscriptions are scoped by lifetimes.
"""

from tether.reactive.lifetime import (
    Lifetime,
    LifetimeState,
    LifetimeTree,
    SequentialLifetimes,
)
from tether.reactive.property import ReactiveFlag, ReactiveProperty

__all__ = [
    "Lifetime",
    "LifetimeState",
    "LifetimeTree",
    "ReactiveFlag",
    "ReactiveProperty",
    "SequentialLifetimes",
]
