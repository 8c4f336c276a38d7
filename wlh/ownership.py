from __future__ import annotations

from typing import Sequence

from .objects import Kind, MetaObject, OwnerReference
from .settings import settings

PODGROUP_NAME_PREFIX = settings.podgroup_prefix


def _owner_references(obj: MetaObject) -> Sequence[OwnerReference] | None:
    """Owner references of `obj`, or None when its metadata cannot be read."""
    try:
        refs = obj.owner_references()
    except (AttributeError, TypeError):
        return None
    return refs if refs is not None else ()


def controller_refs(obj: MetaObject) -> list[OwnerReference]:
    """All controller-flagged owner references, in the order given."""
    refs = _owner_references(obj) or ()
    return [r for r in refs if r.controller is True]


def get_controller_of(obj: MetaObject) -> OwnerReference | None:
    """Return the controller reference of `obj`, if any.

    An object should carry at most one. If upstream breaks that, the first
    one in the caller-supplied order wins.
    """
    refs = _owner_references(obj)
    if not refs:
        return None
    for ref in refs:
        if ref.controller is True:
            return ref
    return None


def get_controller(obj: MetaObject) -> str | None:
    """Uid of the object's controller, or None."""
    ref = get_controller_of(obj)
    if ref is None:
        return None
    return ref.uid


def controlled_by(obj: MetaObject, kind: Kind | str) -> bool:
    ref = get_controller_of(obj)
    if ref is None:
        return False
    want = kind.kind if isinstance(kind, Kind) else kind
    return ref.kind == want


def generate_podgroup_name(pod: MetaObject, prefix: str = PODGROUP_NAME_PREFIX) -> str:
    """Name of the pod group a bare pod is scheduled under.

    Pods created by a controller share one group keyed by the controller's
    uid; anything else gets a group of its own.
    """
    ref = get_controller_of(pod)
    if ref is not None:
        return prefix + ref.uid
    return prefix + pod.identity()
