"""HTTP import sink for a destination import endpoint."""

import time
import logging
from typing import Any, Dict, Optional, Union

import requests
from pydantic import BaseModel, Field
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import ImportSink, is_relation_id
from ..errors import ImportRejected, SinkConnectionError
from ..models.record import SourceID

logger = logging.getLogger(__name__)

DestinationID = Union[int, str]


class ImportRequest(BaseModel):
    source_id: Optional[SourceID] = None
    fields: Dict[str, Any] = Field(default_factory=dict)
    aux: Dict[str, Any] = Field(default_factory=dict)


class ImportResponse(BaseModel):
    destination_id: Optional[DestinationID] = None
    skipped: bool = False
    message: Optional[str] = None


class MappingResponse(BaseModel):
    destination_id: Optional[DestinationID] = None


class CredentialUpdate(BaseModel):
    password: str


class APIImportSink(ImportSink):
    """
    Import sink speaking to the destination over HTTP.

    Endpoints, relative to ``base_url``:

    - ``POST /import/{tag}`` creates a record; on 409 the record already
      exists and is updated with ``PUT /import/{tag}/{source_id}``
    - ``GET /mapping/{tag}/{source_id}`` returns the destination id, 404 if
      the record was never imported
    - ``PUT /users/{id}/password`` stores a tagged credential

    Lookups are cached in the sink's IDMapping.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        dry_run: bool = False,
        rate_limit: float = 0.0,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the API sink.

        Args:
            base_url: Base URL of the import endpoint
            api_key: Bearer token
            dry_run: If True, simulate without making changes
            rate_limit: Max requests per second (0 disables)
            timeout: Per-request timeout in seconds
            max_retries: Retries on 429 and 5xx responses
            backoff_factor: Retry backoff factor
            session: Custom requests session
        """
        super().__init__(dry_run)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.rate_limit = rate_limit
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._last_request_time = 0.0
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with authentication and retry logic."""
        session = requests.Session()

        retries = Retry(
            total=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=None,
            # Hand the last 5xx response back instead of raising RetryError
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        if self.api_key:
            session.headers["Authorization"] = f"Bearer {self.api_key}"
        session.headers["Content-Type"] = "application/json"

        return session

    def _rate_limit_wait(self):
        """Wait to respect rate limits."""
        if self.rate_limit > 0:
            elapsed = time.time() - self._last_request_time
            wait_time = (1.0 / self.rate_limit) - elapsed
            if wait_time > 0:
                time.sleep(wait_time)
        self._last_request_time = time.time()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        self._rate_limit_wait()
        url = f"{self.base_url}{path}"
        try:
            return self._session.request(method, url, timeout=self.timeout, **kwargs)
        except (
            requests.exceptions.ConnectionError,
            requests.exceptions.Timeout,
            requests.exceptions.RetryError,
        ) as e:
            raise SinkConnectionError(f"{method} {url} failed: {e}") from e

    def import_record(
        self,
        tag: str,
        source_id: Optional[SourceID],
        fields: Dict[str, Any],
        aux: Optional[Dict[str, Any]] = None
    ) -> Optional[Any]:
        relation = is_relation_id(source_id)

        if self.dry_run:
            if relation:
                return 0
            self.mapping.assign(tag, source_id, source_id)
            return source_id

        payload = ImportRequest(
            source_id=None if relation else source_id,
            fields=fields,
            aux=aux or {},
        ).model_dump(mode="json")

        response = self._request("POST", f"/import/{tag}", json=payload)
        if response.status_code == 409 and not relation:
            # Already imported, update in place
            response = self._request("PUT", f"/import/{tag}/{source_id}", json=payload)

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            if response.status_code >= 500:
                raise SinkConnectionError(f"Import of {tag} {source_id} failed: {e}") from e
            raise ImportRejected(
                f"Destination rejected {tag} {source_id}: {self._error_message(e)}",
                tag=tag,
                source_id=source_id,
            ) from e

        result = ImportResponse.model_validate(response.json() if response.text else {})
        if result.skipped or result.destination_id is None:
            logger.info(f"Destination skipped {tag} {source_id}: {result.message or 'no reason given'}")
            return None

        if not relation:
            self.mapping.assign(tag, source_id, result.destination_id)
        return result.destination_id

    def lookup(self, tag: str, source_id: SourceID) -> Optional[Any]:
        if is_relation_id(source_id):
            return None

        cached = self.mapping.get(tag, source_id)
        if cached is not None or self.dry_run:
            return cached

        response = self._request("GET", f"/mapping/{tag}/{source_id}")
        if response.status_code == 404:
            return None
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise SinkConnectionError(f"Lookup of {tag} {source_id} failed: {e}") from e

        destination_id = MappingResponse.model_validate(response.json()).destination_id
        if destination_id is not None:
            self.mapping.assign(tag, source_id, destination_id)
        return destination_id

    def update_credential(self, user_id: Any, tagged_credential: str) -> None:
        if self.dry_run:
            return

        payload = CredentialUpdate(password=tagged_credential).model_dump()
        response = self._request("PUT", f"/users/{user_id}/password", json=payload)
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            if response.status_code >= 500:
                raise SinkConnectionError(f"Credential update of user {user_id} failed: {e}") from e
            logger.warning(f"Could not store credential of user {user_id}: {self._error_message(e)}")

    def validate_connection(self) -> None:
        """Validate connection to the import endpoint."""
        if self.dry_run:
            return

        response = self._request("GET", "/")
        if response.status_code >= 500:
            raise SinkConnectionError(
                f"Import endpoint {self.base_url} answered {response.status_code}"
            )
        if response.status_code in (401, 403):
            raise SinkConnectionError(f"Import endpoint {self.base_url} rejected the API key")

    def close(self) -> None:
        self._session.close()

    @staticmethod
    def _error_message(error: requests.exceptions.HTTPError) -> str:
        try:
            error_data = error.response.json()
        except ValueError:
            return str(error)
        if isinstance(error_data, dict):
            return error_data.get("message") or error_data.get("error") or str(error_data)
        return str(error_data)
