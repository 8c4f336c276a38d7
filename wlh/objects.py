from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Sequence


@dataclass(frozen=True)
class Kind:
    group: str
    version: str
    kind: str

    @property
    def api_version(self) -> str:
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"


JOB_KIND = Kind("batch.volcano.sh", "v1alpha1", "Job")
COMMAND_KIND = Kind("bus.volcano.sh", "v1alpha1", "Command")
CONFIGMAP_KIND = Kind("", "v1", "ConfigMap")


@dataclass(frozen=True)
class OwnerReference:
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool | None = None
    block_owner_deletion: bool | None = None


@dataclass(frozen=True)
class ObjectMeta:
    name: str
    namespace: str = ""
    uid: str = ""
    owner_references: tuple[OwnerReference, ...] = ()
    resource_version: str | None = None


class MetaObject(Protocol):
    """Anything whose ownership can be inspected."""

    def identity(self) -> str: ...

    def owner_references(self) -> Sequence[OwnerReference]: ...


class _HasMeta:
    metadata: ObjectMeta

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def uid(self) -> str:
        return self.metadata.uid

    def identity(self) -> str:
        return self.metadata.uid

    def owner_references(self) -> Sequence[OwnerReference]:
        return self.metadata.owner_references


@dataclass(frozen=True)
class Job(_HasMeta):
    metadata: ObjectMeta


@dataclass(frozen=True)
class Command(_HasMeta):
    metadata: ObjectMeta
    action: str = ""


@dataclass(frozen=True)
class Pod(_HasMeta):
    metadata: ObjectMeta


@dataclass
class ConfigMap(_HasMeta):
    metadata: ObjectMeta
    data: dict[str, str] = field(default_factory=dict)


def new_controller_ref(owner: Job | Command, kind: Kind) -> OwnerReference:
    """Reference marking `owner` as the managing controller of a dependent."""
    return OwnerReference(
        api_version=kind.api_version,
        kind=kind.kind,
        name=owner.name,
        uid=owner.uid,
        controller=True,
        block_owner_deletion=True,
    )
