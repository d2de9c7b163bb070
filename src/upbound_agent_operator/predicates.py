"""Event filters deciding which watch events reach the reconciler.

A predicate is a plain function of ``(kind, name)``; they compose with
``all_of`` and ``any_of``.
"""

from typing import Callable

from . import constants as C

Predicate = Callable[[str, str], bool]


def is_of_kind(kind: str) -> Predicate:
    """Accept objects of the given kind."""
    def predicate(obj_kind: str, obj_name: str) -> bool:
        return obj_kind == kind
    return predicate


def is_named(name: str) -> Predicate:
    """Accept objects with the given name."""
    def predicate(obj_kind: str, obj_name: str) -> bool:
        return obj_name == name
    return predicate


def all_of(*predicates: Predicate) -> Predicate:
    """Accept objects accepted by every predicate."""
    def predicate(obj_kind: str, obj_name: str) -> bool:
        return all(p(obj_kind, obj_name) for p in predicates)
    return predicate


def any_of(*predicates: Predicate) -> Predicate:
    """Accept objects accepted by at least one predicate."""
    def predicate(obj_kind: str, obj_name: str) -> bool:
        return any(p(obj_kind, obj_name) for p in predicates)
    return predicate


def build_event_filter(token_secret: str) -> Predicate:
    """Only the token Secret and the agent Deployment trigger reconciles."""
    return any_of(
        all_of(is_of_kind(C.KIND_SECRET), is_named(token_secret)),
        all_of(is_of_kind(C.KIND_DEPLOYMENT), is_named(C.DEPLOYMENT_UPBOUND_AGENT)),
    )
