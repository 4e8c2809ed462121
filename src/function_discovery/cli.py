# src/function_discovery/cli.py
"""Function discovery CLI."""

import asyncio
import signal
import sys

import click
import structlog

from function_discovery.clients.kubernetes.client_factory import KubernetesClientFactory
from function_discovery.config.settings import LogLevel, Settings
from function_discovery.core.exceptions import ConfigurationException, FunctionDiscoveryException
from function_discovery.core.utils import setup_logging
from function_discovery.server import DiscoveryServer

logger = structlog.get_logger(__name__)


def _load_settings(debug: bool) -> Settings:
    try:
        settings = Settings.create_from_env()
    except ConfigurationException as e:
        click.echo(str(e), err=True)
        sys.exit(1)
    if debug:
        settings.log_level = LogLevel.DEBUG
    setup_logging(log_level=settings.log_level.value,
                  json_logs=settings.log_format == "json")
    return settings


@click.group()
def cli():
    """Keep gateway upstreams in sync with the functions their backends expose."""


@cli.command()
@click.option('--kubeconfig', default=None, help='Path to kubeconfig; in-cluster config when unset')
@click.option('--namespace', default=None, help='Namespace to watch for upstreams ("" for all)')
@click.option('--swagger-uri', 'swagger_uris', multiple=True, help='Swagger URI to try before the built-in ones (repeatable)')
@click.option('--swagger-retries', type=int, default=None, help='Additional attempts for one swagger discovery')
@click.option('--max-retries', type=int, default=None, help='Reconciliation retries before a key is dropped')
@click.option('--workers', type=int, default=None, help='Number of reconciliation workers')
@click.option('--poll-period', type=float, default=None, help='AWS Lambda poll period in seconds')
@click.option('--disable-swagger', is_flag=True, help='Disable swagger discovery')
@click.option('--disable-aws', is_flag=True, help='Disable AWS Lambda discovery')
@click.option('--disable-gcf', is_flag=True, help='Disable Google Cloud Functions discovery')
@click.option('--debug', is_flag=True, help='Enable debug logging')
def start(kubeconfig, namespace, swagger_uris, swagger_retries, max_retries, workers,
          poll_period, disable_swagger, disable_aws, disable_gcf, debug):
    """
    Start the function discovery service.

    Watches upstream resources and keeps their function lists and swagger
    annotations up to date until interrupted. Every option can also be set
    through the environment, for example:

        K8S_NAMESPACE=gateway
        DISCOVERY_MAX_RETRIES=5
        SWAGGER_URIS='["/api/swagger.json"]'
        AWS_ACCESS_KEY_ID=... AWS_SECRET_ACCESS_KEY=...
        GOOGLE_APPLICATION_CREDENTIALS=/path/to/service-key.json
    """
    settings = _load_settings(debug)

    if kubeconfig is not None:
        settings.kubernetes.kubeconfig_path = kubeconfig
    if namespace is not None:
        settings.kubernetes.namespace = namespace
    if swagger_uris:
        settings.swagger.uris = list(swagger_uris)
    if swagger_retries is not None:
        settings.swagger.retries = swagger_retries
    if max_retries is not None:
        settings.discovery.max_retries = max_retries
    if workers is not None:
        settings.discovery.workers = workers
    if poll_period is not None:
        settings.aws.poll_period_seconds = poll_period
    if disable_swagger:
        settings.swagger.enabled = False
    if disable_aws:
        settings.aws.enabled = False
    if disable_gcf:
        settings.gcf.enabled = False

    async def run_server():
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        try:
            async with DiscoveryServer(settings) as server:
                await server.run(stop)
            return 0
        except FunctionDiscoveryException as e:
            logger.error("Function discovery failed to start", error=str(e))
            return 1

    sys.exit(asyncio.run(run_server()))


@cli.command('register-crd')
@click.option('--kubeconfig', default=None, help='Path to kubeconfig; in-cluster config when unset')
@click.option('--debug', is_flag=True, help='Enable debug logging')
def register_crd(kubeconfig, debug):
    """Register the upstream CustomResourceDefinition."""
    settings = _load_settings(debug)
    if kubeconfig is not None:
        settings.kubernetes.kubeconfig_path = kubeconfig

    async def run_registration():
        factory = KubernetesClientFactory(settings.kubernetes.model_dump())
        try:
            async with factory.create_client() as k8s_client:
                created = await factory.create_upstream_store(k8s_client).register_crd()
        except FunctionDiscoveryException as e:
            click.echo(f"Unable to register upstream CRD: {e}")
            return 1
        click.echo("Registered upstream CRD" if created else "Upstream CRD already registered")
        return 0

    sys.exit(asyncio.run(run_registration()))


if __name__ == '__main__':
    cli()
