from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from kubernetes.client.rest import ApiException

from conftest import make_upstream
from function_discovery.discovery.resolver import (
    KubernetesServiceResolver,
    ServiceResolver,
    UpstreamResolver,
)


def _k8s_client(cluster_ip="10.96.0.12", ports=(8080,), error=None):
    k8s_client = MagicMock()
    if error is not None:
        k8s_client.v1.read_namespaced_service.side_effect = error
    else:
        k8s_client.v1.read_namespaced_service.return_value = SimpleNamespace(
            spec=SimpleNamespace(
                cluster_ip=cluster_ip,
                ports=[SimpleNamespace(port=p) for p in ports],
            )
        )
    return k8s_client


@pytest.mark.asyncio
async def test_service_resolver_uses_first_host() -> None:
    upstream = make_upstream(spec={"hosts": [{"addr": "petstore.local", "port": 80}, {"addr": "backup"}]})

    assert await ServiceResolver().resolve(upstream) == "petstore.local:80"


@pytest.mark.asyncio
async def test_service_resolver_without_hosts_is_unresolved() -> None:
    assert await ServiceResolver().resolve(make_upstream()) == ""


@pytest.mark.asyncio
async def test_kubernetes_resolver_uses_cluster_ip_and_declared_port() -> None:
    k8s_client = _k8s_client()
    upstream = make_upstream(
        type="kubernetes",
        namespace="gateway",
        spec={"service_name": "petstore", "service_port": 9090},
    )

    assert await KubernetesServiceResolver(k8s_client).resolve(upstream) == "10.96.0.12:9090"
    k8s_client.v1.read_namespaced_service.assert_called_once_with("petstore", "gateway")


@pytest.mark.asyncio
async def test_kubernetes_resolver_falls_back_to_first_service_port() -> None:
    upstream = make_upstream(type="kubernetes", spec={"service_name": "petstore"})

    assert await KubernetesServiceResolver(_k8s_client()).resolve(upstream) == "10.96.0.12:8080"


@pytest.mark.asyncio
async def test_kubernetes_resolver_ignores_headless_and_missing_services() -> None:
    upstream = make_upstream(type="kubernetes", spec={"service_name": "petstore"})

    headless = KubernetesServiceResolver(_k8s_client(cluster_ip="None"))
    missing = KubernetesServiceResolver(_k8s_client(error=ApiException(status=404, reason="Not Found")))

    assert await headless.resolve(upstream) == ""
    assert await missing.resolve(upstream) == ""


@pytest.mark.asyncio
async def test_kubernetes_resolver_raises_api_errors() -> None:
    upstream = make_upstream(type="kubernetes", spec={"service_name": "petstore"})
    resolver = KubernetesServiceResolver(_k8s_client(error=ApiException(status=500, reason="Internal")))

    with pytest.raises(ApiException):
        await resolver.resolve(upstream)


@pytest.mark.asyncio
async def test_upstream_resolver_dispatches_by_type() -> None:
    resolver = UpstreamResolver({"service": ServiceResolver()})

    assert await resolver.resolve(make_upstream(spec={"hosts": [{"addr": "a", "port": 1}]})) == "a:1"
    assert await resolver.resolve(make_upstream(type="aws")) == ""
