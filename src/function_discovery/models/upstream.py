"""Upstream and function models shared by every discovery strategy."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

UPSTREAM_TYPE_AWS = "aws"
UPSTREAM_TYPE_GCF = "gcf"
UPSTREAM_TYPE_KUBE = "kubernetes"
UPSTREAM_TYPE_SERVICE = "service"

ANNOTATION_SERVICE_TYPE = "gloo.solo.io/service_type"
ANNOTATION_SWAGGER_URL = "gloo.solo.io/swagger_url"
SERVICE_TYPE_SWAGGER = "swagger"


def make_key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"


class Function(BaseModel):
    """One invocable unit exposed by an upstream."""

    name: str
    spec: Dict[str, Any] = Field(default_factory=dict)


class Upstream(BaseModel):
    """A backend service whose functions the gateway needs to know about.

    ``resource_version`` is assigned by the store and echoed back on update
    so the store can reject writes made against a stale copy.
    """

    model_config = ConfigDict(validate_assignment=True)

    namespace: str = "default"
    name: str
    type: str
    spec: Dict[str, Any] = Field(default_factory=dict)
    functions: List[Function] = Field(default_factory=list)
    annotations: Dict[str, str] = Field(default_factory=dict)
    resource_version: Optional[str] = None

    @field_validator('functions')
    @classmethod
    def validate_unique_function_names(cls, v: List[Function]) -> List[Function]:
        seen = set()
        for function in v:
            if function.name in seen:
                raise ValueError(f"duplicate function name {function.name!r}")
            seen.add(function.name)
        return v

    @property
    def key(self) -> str:
        return make_key(self.namespace, self.name)


class EventType(str, Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


class WatchEvent(BaseModel):
    """A change notification from the upstream store."""

    type: EventType
    upstream: Upstream
