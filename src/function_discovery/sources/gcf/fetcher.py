"""Google Cloud Functions fetcher."""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import google.auth
import google_auth_httplib2
import httplib2
import structlog
from google.auth.exceptions import DefaultCredentialsError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from function_discovery.core.exceptions import ClientConnectionException, FetchException
from function_discovery.models.upstream import Function, Upstream, UPSTREAM_TYPE_GCF
from function_discovery.sources.base import FunctionFetcher

logger = structlog.get_logger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
PROJECT_ID_KEY = "project"
# all locations
LOCATION_ID = "-"


def project_id(upstream: Upstream) -> str:
    return upstream.spec.get(PROJECT_ID_KEY) or ""


class GCFFetcher(FunctionFetcher):
    """Lists active Cloud Functions of the project named in a ``gcf`` upstream.

    Credentials come from application default credentials
    (``GOOGLE_APPLICATION_CREDENTIALS`` or the metadata server).
    """

    source = "gcf"

    def __init__(self,
                 timeout_seconds: float = 30.0,
                 service_factory: Optional[Callable[[], Any]] = None):
        self.timeout_seconds = timeout_seconds
        self._service_factory = service_factory or self._build_service
        self.logger = logger.bind(fetcher=self.source)

    def can_fetch(self, upstream: Upstream) -> bool:
        return upstream.type == UPSTREAM_TYPE_GCF

    async def fetch(self, upstream: Upstream) -> List[Function]:
        project = project_id(upstream)
        if not project:
            raise FetchException("GCF", f"upstream {upstream.key} does not name a project")
        return await asyncio.to_thread(self._list_functions, project)

    def _build_service(self):
        try:
            credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
        except DefaultCredentialsError as e:
            raise ClientConnectionException("GCF", f"Unable to get OAuth credentials: {e}") from e
        http = google_auth_httplib2.AuthorizedHttp(
            credentials, http=httplib2.Http(timeout=self.timeout_seconds)
        )
        return build("cloudfunctions", "v1", http=http, cache_discovery=False)

    def _list_functions(self, project: str) -> List[Function]:
        functions_api = self._service_factory().projects().locations().functions()
        request = functions_api.list(parent=f"projects/{project}/locations/{LOCATION_ID}")
        functions = []
        try:
            while request is not None:
                response = request.execute()
                for f in response.get('functions', []):
                    # Functions still deploying show up once they turn ACTIVE on a later pass
                    if f.get('status') != 'ACTIVE':
                        continue
                    functions.append(self._to_function(f))
                request = functions_api.list_next(previous_request=request, previous_response=response)
        except HttpError as e:
            raise FetchException("GCF", f"unable to get list of GCF functions: {e}") from e

        self.logger.debug(f"Found {len(functions)} active functions", project=project)
        return functions

    def _to_function(self, f: Dict[str, Any]) -> Function:
        https_trigger = f.get('httpsTrigger')
        if https_trigger is not None:
            trigger = {
                'Type': 'HTTP',
                'URL': https_trigger.get('url'),
            }
        else:
            event_trigger = f.get('eventTrigger') or {}
            trigger = {
                'Type': 'Event',
                'Event': event_trigger.get('eventType'),
                'Resource': event_trigger.get('resource'),
                'Service': event_trigger.get('service'),
            }
        return Function(
            name=f['name'],
            spec={
                'Version': f.get('versionId'),
                'Entry': f.get('entryPoint'),
                'Trigger': trigger,
            }
        )
