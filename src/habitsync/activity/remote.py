"""HTTP client for a remote Activity Authority."""

import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from .authority import ActivityAuthority, CreateResult
from .exceptions import (
    AuthenticationError,
    AuthorityRejectedError,
    AuthorityUnavailableError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from .models import ActivityDraft, ActivityRecord

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]


class HttpAuthority(ActivityAuthority):
    """REST Authority: POST/GET /activities and DELETE /activities/{id}.

    Caller identity travels as a bearer token from ``token_provider``; how
    that token is obtained is up to the authentication layer.
    """

    def __init__(self, base_url: str, token_provider: Optional[TokenProvider] = None,
                 timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.token_provider = token_provider
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})

    def _headers(self) -> Dict[str, str]:
        headers = {}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers['Authorization'] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, activity_id: str = None, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise AuthorityUnavailableError(f"{method} {url} failed: {e}", activity_id=activity_id) from e

        if response.status_code < 400:
            return response

        message = self._error_message(response)
        status = response.status_code
        if status in (400, 422):
            raise ValidationError(f"Authority rejected request: {message}")
        if status == 401:
            raise AuthenticationError(message, status_code=status)
        if status == 403:
            if method == 'POST':
                # Not allowed to create this record at all
                raise AuthorityRejectedError(f"Authority refused to create activity: {message}", status_code=status)
            raise ForbiddenError(activity_id or "", status_code=status)
        if status == 404:
            raise NotFoundError(activity_id or path, status_code=status)
        if status >= 500 or status == 429:
            raise AuthorityUnavailableError(f"Authority error {status}: {message}",
                                            activity_id=activity_id, status_code=status)
        raise AuthorityRejectedError(f"Authority error {status}: {message}", activity_id=activity_id,
                                     status_code=status)

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason or ""
        if isinstance(body, dict):
            return str(body.get('message') or body.get('error') or body)
        return str(body)

    @staticmethod
    def _decode(document: Any) -> ActivityRecord:
        if not isinstance(document, dict):
            raise AuthorityUnavailableError(f"Unexpected Authority response: {document!r}")
        try:
            return ActivityRecord.from_remote(document)
        except (KeyError, TypeError, ValueError) as e:
            raise AuthorityUnavailableError(f"Malformed Authority record: {e}") from e

    def create(self, draft: ActivityDraft) -> CreateResult:
        response = self._request('POST', '/activities', json=draft.to_payload())
        try:
            record = self._decode(response.json())
        except ValueError as e:
            raise AuthorityUnavailableError(f"Authority returned invalid JSON: {e}") from e
        return CreateResult(record, created=response.status_code == 201)

    def list(self) -> List[ActivityRecord]:
        response = self._request('GET', '/activities')
        try:
            documents = response.json()
        except ValueError as e:
            raise AuthorityUnavailableError(f"Authority returned invalid JSON: {e}") from e
        if not isinstance(documents, list):
            return []

        records = []
        for document in documents:
            try:
                records.append(ActivityRecord.from_remote(document))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed remote activity: {e}")
        return records

    def remove(self, activity_id: str) -> None:
        self._request('DELETE', f"/activities/{activity_id}", activity_id=str(activity_id))

    def close(self):
        self.session.close()
