r"""GraphQL persistence for collective webhooks.

This module wraps the two GraphQL operations the webhook editor needs: reading
a collective together with its webhook notifications, and replacing that list
with ``editWebhooks``. Reads are cached per collective and successful writes
update the cached snapshot, so a later read reflects the saved records without
another round trip.

Failed writes raise :class:`~collective_pages.errors.CommitError`; field
errors take precedence over other GraphQL errors, which take precedence over
transport failures.

Example
-------
>>> from collective_pages.persistence import GraphQLPersistenceService
>>> service = GraphQLPersistenceService(token="oc_example")  # doctest: +SKIP
>>> snapshot = service.read("webpack")  # doctest: +SKIP
>>> snapshot.entity.type  # doctest: +SKIP
<CollectiveType.COLLECTIVE: 'COLLECTIVE'>
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses as dc
import json
import logging
import typing as typ
from http import HTTPStatus

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .capabilities import CollectiveEntity
from .config.models import DEFAULT_API_URL
from .errors import CommitError, PersistenceError
from .webhooks import WebhookRecord

logger = logging.getLogger(__name__)

COLLECTIVE_NOTIFICATIONS_QUERY = """
query CollectiveNotifications($collectiveSlug: String) {
  Collective(slug: $collectiveSlug) {
    id
    type
    slug
    name
    isHost
    isArchived
    notifications(channel: "webhook") {
      id
      type
      active
      webhookUrl
    }
  }
}
"""

EDIT_WEBHOOKS_MUTATION = """
mutation editWebhooks($collectiveId: Int!, $notifications: [NotificationInputType]) {
  editWebhooks(collectiveId: $collectiveId, notifications: $notifications) {
    id
    type
    active
    webhookUrl
  }
}
"""

_FIELD_ERROR_CODES = frozenset({"BAD_USER_INPUT", "ValidationFailed"})


@dc.dataclass(frozen=True, slots=True)
class CollectiveSnapshot:
    """A collective and its webhooks as last read from the API."""

    entity: CollectiveEntity
    records: tuple[WebhookRecord, ...]


class PersistenceService(typ.Protocol):
    """Remote read/write access to a collective's webhooks."""

    def read(self, slug: str) -> CollectiveSnapshot: ...

    def write(
        self, collective_id: int, notifications: list[dict[str, typ.Any]]
    ) -> list[WebhookRecord]: ...


class RecordCache:
    """Snapshots keyed by collective id, addressable by slug."""

    def __init__(self) -> None:
        self._snapshots: dict[int, CollectiveSnapshot] = {}
        self._ids_by_slug: dict[str, int] = {}

    def get(self, slug: str) -> CollectiveSnapshot | None:
        collective_id = self._ids_by_slug.get(slug)
        if collective_id is None:
            return None
        return self._snapshots.get(collective_id)

    def store(self, snapshot: CollectiveSnapshot) -> None:
        self._snapshots[snapshot.entity.id] = snapshot
        if snapshot.entity.slug:
            self._ids_by_slug[snapshot.entity.slug] = snapshot.entity.id

    def update_records(
        self, collective_id: int, records: cabc.Iterable[WebhookRecord]
    ) -> None:
        """Replace the cached records of a collective that was read before."""
        snapshot = self._snapshots.get(collective_id)
        if snapshot is None:
            return
        self._snapshots[collective_id] = dc.replace(snapshot, records=tuple(records))

    def clear(self) -> None:
        self._snapshots.clear()
        self._ids_by_slug.clear()


class GraphQLPersistenceService:
    """Thin wrapper around the collective notifications GraphQL operations."""

    default_api_url = DEFAULT_API_URL

    def __init__(
        self,
        *,
        token: str | None = None,
        api_url: str = DEFAULT_API_URL,
        session: requests.Session | None = None,
        timeout: float = 10.0,
        cache: RecordCache | None = None,
    ) -> None:
        """Initialise the client with optional authentication and transport.

        Parameters
        ----------
        token : str | None, optional
            API token sent as a bearer token; required by ``editWebhooks``.
        api_url : str, optional
            GraphQL endpoint. Defaults to ``DEFAULT_API_URL``.
        session : requests.Session, optional
            Preconfigured session to reuse connections. Defaults to a new
            session that retries failed connection attempts.
        timeout : float, optional
            Per-request timeout in seconds. Defaults to ``10.0``.
        cache : RecordCache, optional
            Shared snapshot cache. Defaults to a private cache.
        """
        self._api_url = api_url.strip() or DEFAULT_API_URL
        self._session = session or _build_session()
        self.timeout = timeout
        self.cache = cache if cache is not None else RecordCache()
        self._headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "collective-pages/0.1",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    def read(self, slug: str, *, refresh: bool = False) -> CollectiveSnapshot:
        """Return the collective ``slug`` and its webhook records.

        Parameters
        ----------
        slug:
            Collective slug.
        refresh:
            Bypass the cache and query the API.

        Raises
        ------
        PersistenceError
            If the request fails, the API reports errors, or the collective
            does not exist.
        """
        normalized = slug.strip()
        if not normalized:
            msg = "Collective slug cannot be empty"
            raise ValueError(msg)
        if not refresh:
            cached = self.cache.get(normalized)
            if cached is not None:
                return cached

        try:
            response = self._post(
                COLLECTIVE_NOTIFICATIONS_QUERY, {"collectiveSlug": normalized}
            )
        except requests.RequestException as exc:
            msg = f"Failed to reach the API for '{normalized}': {exc}"
            raise PersistenceError(msg) from exc

        payload = _decode(response)
        if response.status_code >= HTTPStatus.BAD_REQUEST or payload.get("errors"):
            message = _first_error_message(payload) or response.text[:200]
            msg = (
                f"Reading '{normalized}' failed with status "
                f"{response.status_code}: {message}"
            )
            raise PersistenceError(msg)

        collective = (payload.get("data") or {}).get("Collective")
        if not collective:
            msg = f"Collective '{normalized}' not found."
            raise PersistenceError(msg)

        snapshot = CollectiveSnapshot(
            entity=CollectiveEntity.from_payload(collective),
            records=tuple(
                WebhookRecord.from_payload(item)
                for item in collective.get("notifications") or []
            ),
        )
        self.cache.store(snapshot)
        return snapshot

    def write(
        self, collective_id: int, notifications: list[dict[str, typ.Any]]
    ) -> list[WebhookRecord]:
        """Replace the webhooks of ``collective_id`` and return the saved set.

        Raises
        ------
        CommitError
            If the request fails or the API rejects the change.
        """
        variables = {"collectiveId": collective_id, "notifications": notifications}
        try:
            response = self._post(EDIT_WEBHOOKS_MUTATION, variables)
        except requests.RequestException as exc:
            raise CommitError.from_failure(message=str(exc)) from exc

        try:
            payload = _decode(response)
        except PersistenceError as exc:
            raise CommitError.from_failure(message=str(exc)) from exc

        errors = payload.get("errors") or []
        if errors or response.status_code >= HTTPStatus.BAD_REQUEST:
            field_errors = [e for e in errors if _is_field_error(e)]
            transport_errors = [e for e in errors if not _is_field_error(e)]
            raise CommitError.from_failure(
                field_errors=field_errors,
                transport_errors=transport_errors,
                message=f"Request failed with status {response.status_code}",
            )

        saved = (payload.get("data") or {}).get("editWebhooks")
        if saved is None:
            raise CommitError.from_failure(message="The API returned no webhooks.")
        records = [WebhookRecord.from_payload(item) for item in saved]
        self.cache.update_records(collective_id, records)
        logger.debug("saved %d webhooks for collective %s", len(records), collective_id)
        return records

    def _post(self, query: str, variables: dict[str, typ.Any]) -> requests.Response:
        return self._session.post(
            self._api_url,
            json={"query": query, "variables": variables},
            headers=self._headers,
            timeout=self.timeout,
        )


def _build_session() -> requests.Session:
    session = requests.Session()
    # Only connection failures are retried: the mutation is not idempotent.
    retry = Retry(total=3, connect=3, read=0, status=0, backoff_factor=0.5)
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def _decode(response: requests.Response) -> dict[str, typ.Any]:
    try:
        payload = response.json()
    except json.JSONDecodeError as exc:
        msg = f"API response (status {response.status_code}) was not valid JSON"
        raise PersistenceError(msg) from exc
    if not isinstance(payload, dict):
        msg = "API response must be a JSON object"
        raise PersistenceError(msg)
    return payload


def _is_field_error(error: object) -> bool:
    """Return whether a GraphQL error describes invalid input fields."""
    if not isinstance(error, cabc.Mapping):
        return False
    extensions = error.get("extensions") or {}
    if not isinstance(extensions, cabc.Mapping):
        return False
    return bool(extensions.get("field") or extensions.get("fields")) or (
        extensions.get("code") in _FIELD_ERROR_CODES
    )


def _first_error_message(payload: cabc.Mapping[str, typ.Any]) -> str | None:
    for error in payload.get("errors") or []:
        if isinstance(error, cabc.Mapping) and error.get("message"):
            return str(error["message"])
    return None


__all__ = [
    "COLLECTIVE_NOTIFICATIONS_QUERY",
    "EDIT_WEBHOOKS_MUTATION",
    "CollectiveSnapshot",
    "GraphQLPersistenceService",
    "PersistenceService",
    "RecordCache",
]
