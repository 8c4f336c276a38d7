from __future__ import annotations

from dataclasses import asdict

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .objects import CONFIGMAP_KIND, ConfigMap, ObjectMeta, OwnerReference


class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class OwnerReferenceModel(_Wire):
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool | None = None
    block_owner_deletion: bool | None = None


class ObjectMetaModel(_Wire):
    name: str
    namespace: str = ""
    uid: str = ""
    resource_version: str | None = None
    owner_references: list[OwnerReferenceModel] = Field(default_factory=list)


class ConfigMapModel(_Wire):
    api_version: str = CONFIGMAP_KIND.api_version
    kind: str = CONFIGMAP_KIND.kind
    metadata: ObjectMetaModel
    data: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_configmap(cls, cm: ConfigMap) -> "ConfigMapModel":
        meta = cm.metadata
        return cls(
            metadata=ObjectMetaModel(
                name=meta.name,
                namespace=meta.namespace,
                uid=meta.uid,
                resource_version=meta.resource_version,
                owner_references=[OwnerReferenceModel(**asdict(r)) for r in meta.owner_references],
            ),
            data=dict(cm.data),
        )

    def to_configmap(self) -> ConfigMap:
        meta = self.metadata
        return ConfigMap(
            metadata=ObjectMeta(
                name=meta.name,
                namespace=meta.namespace,
                uid=meta.uid,
                resource_version=meta.resource_version,
                owner_references=tuple(OwnerReference(**r.model_dump()) for r in meta.owner_references),
            ),
            data=dict(self.data),
        )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class StatusModel(_Wire):
    """Error body returned by the API server."""

    message: str = ""
    reason: str = ""
    code: int | None = None
