"""AWS Lambda fetcher."""

import asyncio
from typing import Any, Callable, List, Optional

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from function_discovery.core.exceptions import FetchException
from .poller import AccessToken, Lambda

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[str, AccessToken], Any]


class AWSLambdaFetcher:
    """Lists every version and alias of every Lambda function in a region.

    Versions that are not ``Active`` yet are left out until a later poll.
    """

    def __init__(self,
                 timeout_seconds: float = 30.0,
                 client_factory: Optional[ClientFactory] = None):
        self.timeout_seconds = timeout_seconds
        self._client_factory = client_factory or self._create_client

    async def __call__(self, region: str, token: AccessToken) -> List[Lambda]:
        return await asyncio.to_thread(self._list_lambdas, region, token)

    def _create_client(self, region: str, token: AccessToken):
        return boto3.client(
            "lambda",
            region_name=region,
            aws_access_key_id=token.id or None,
            aws_secret_access_key=token.secret or None,
            config=Config(connect_timeout=self.timeout_seconds, read_timeout=self.timeout_seconds),
        )

    def _list_lambdas(self, region: str, token: AccessToken) -> List[Lambda]:
        client = self._client_factory(region, token)
        lambdas = []
        try:
            for page in client.get_paginator('list_functions').paginate():
                for function in page.get('Functions', []):
                    lambdas.extend(self._qualified(client, function['FunctionName']))
        except (BotoCoreError, ClientError) as e:
            raise FetchException("AWS Lambda", f"region {region}: {e}") from e

        logger.debug(f"Found {len(lambdas)} lambdas", region=region)
        return lambdas

    def _qualified(self, client, name: str) -> List[Lambda]:
        lambdas = []
        for page in client.get_paginator('list_versions_by_function').paginate(FunctionName=name):
            for version in page.get('Versions', []):
                state = version.get('State')
                if state and state != 'Active':
                    continue
                lambdas.append(Lambda(name=name, qualifier=version['Version']))
        for page in client.get_paginator('list_aliases').paginate(FunctionName=name):
            for alias in page.get('Aliases', []):
                lambdas.append(Lambda(name=name, qualifier=alias['Name']))
        return lambdas
