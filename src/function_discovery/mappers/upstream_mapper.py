"""Upstream custom resource mapping utilities."""

from typing import Any, Dict

import structlog

from function_discovery.models.upstream import Function, Upstream

logger = structlog.get_logger(__name__)


class UpstreamMapper:
    """Maps upstream custom resources to and from the ``Upstream`` model."""

    def __init__(self, group: str, version: str, kind: str = "Upstream"):
        self.api_version = f"{group}/{version}"
        self.kind = kind

    def from_resource(self, resource: Dict[str, Any]) -> Upstream:
        """Map a custom resource dict (as returned by the API server) to an Upstream."""
        metadata = resource.get('metadata') or {}
        spec = resource.get('spec') or {}
        return Upstream(
            namespace=metadata.get('namespace', 'default'),
            name=metadata['name'],
            type=spec.get('type', ''),
            spec=spec.get('spec') or {},
            functions=[
                Function(name=f['name'], spec=f.get('spec') or {})
                for f in spec.get('functions') or []
            ],
            annotations=metadata.get('annotations') or {},
            resource_version=metadata.get('resourceVersion'),
        )

    def to_resource(self, upstream: Upstream) -> Dict[str, Any]:
        """Map an Upstream to a custom resource body suitable for replace calls."""
        metadata: Dict[str, Any] = {
            'name': upstream.name,
            'namespace': upstream.namespace,
            'annotations': dict(upstream.annotations),
        }
        if upstream.resource_version:
            metadata['resourceVersion'] = upstream.resource_version

        return {
            'apiVersion': self.api_version,
            'kind': self.kind,
            'metadata': metadata,
            'spec': {
                'type': upstream.type,
                'spec': dict(upstream.spec),
                'functions': [
                    {'name': f.name, 'spec': dict(f.spec)}
                    for f in upstream.functions
                ],
            },
        }
