"""
This module contains the PortClient class, which is responsible for all
interactions with the Port API: integration lookup, blueprint discovery,
paginated entity search and bulk datasource patching.
"""
import logging
import time

import requests

from .auth import TokenManager
from .exceptions import FetchError, PatchError
from .models import Entity

# Entities requested per search page
SEARCH_PAGE_SIZE = 200
# Upper bound accepted by the bulk datasource endpoint
MAX_BULK_PATCH_SIZE = 100

# Datasource markers of the legacy GitHub App and of GitHub Ocean
OLD_DATASOURCE_PREFIX = "port/github/v1.0.0"
NEW_DATASOURCE_PREFIX = "port-ocean/github-ocean"

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def old_integration_rules(old_installation_id):
    """Search rules matching entities owned by the legacy GitHub App."""
    return [
        {"property": "$datasource", "operator": "contains", "value": OLD_DATASOURCE_PREFIX},
        {"property": "$datasource", "operator": "contains", "value": old_installation_id},
    ]


def new_integration_rules(new_installation_id):
    """Search rules matching entities owned by the GitHub Ocean exporter."""
    return [
        {"property": "$datasource", "operator": "contains", "value": NEW_DATASOURCE_PREFIX},
        {
            "property": "$datasource",
            "operator": "contains",
            "value": f"{new_installation_id}/exporter",
        },
    ]


def build_new_datasource(version, new_installation_id):
    """Composes the datasource string entities are reassigned to."""
    return f"{NEW_DATASOURCE_PREFIX}/{version}/{new_installation_id}/exporter"


def _status_code(error):
    response = getattr(error, "response", None)
    return response.status_code if response is not None else None


def _error_message(error):
    """Prefers Port's own error message over the generic requests one."""
    response = getattr(error, "response", None)
    if response is None:
        return str(error)
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return f"{response.status_code}: {body['message']}"
    return f"{response.status_code}: {response.text or error}"


class PortClient:
    """A client for the subset of the Port API used by the migration."""

    def __init__(self, config_obj, token_manager=None, session=None, sleep=time.sleep):
        self.logger = logging.getLogger(__name__)
        self._config = config_obj
        self._base_url = config_obj.PORT_API_URL.rstrip("/")
        self._token_manager = token_manager or TokenManager(
            self._base_url,
            config_obj.PORT_CLIENT_ID,
            config_obj.PORT_CLIENT_SECRET,
            timeout=config_obj.REQUEST_TIMEOUT,
        )
        self._session = session or requests.Session()
        self._sleep = sleep

    def _url(self, path):
        return f"{self._base_url}/v1/{path}"

    def _headers(self):
        return {"Authorization": f"Bearer {self._token_manager.get_token()}"}

    def _read(self, send, path, description, **kwargs):
        """
        Issues an idempotent request and returns its decoded JSON body.

        Connection errors, timeouts, 429 and 5xx responses are retried with
        exponential backoff. A 401 drops the cached token before retrying.
        Anything else fails straight away with a FetchError.
        """
        attempts = max(1, self._config.MAX_READ_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            try:
                response = send(
                    self._url(path),
                    headers=self._headers(),
                    timeout=self._config.REQUEST_TIMEOUT,
                    **kwargs,
                )
                response.raise_for_status()
            except requests.exceptions.RequestException as e:
                status = _status_code(e)
                if status == 401:
                    self._token_manager.invalidate()
                elif status is not None and status not in RETRYABLE_STATUS_CODES:
                    raise FetchError(f"{description} failed: {_error_message(e)}") from e
                if attempt == attempts:
                    raise FetchError(
                        f"{description} failed after {attempts} attempts: {_error_message(e)}"
                    ) from e
                delay = self._config.RETRY_BACKOFF_SECONDS * 2 ** (attempt - 1)
                self.logger.warning(
                    "Attempt %d/%d: %s failed: %s. Retrying in %.1f seconds...",
                    attempt,
                    attempts,
                    description,
                    _error_message(e),
                    delay,
                )
                self._sleep(delay)
                continue

            try:
                return response.json()
            except ValueError as e:
                raise FetchError(f"{description} failed: response is not valid JSON") from e
        # Unreachable, the loop either returns or raises.
        raise FetchError(f"{description} failed")

    def get_integration_version(self, installation_id):
        """Returns the version of the integration with the given installation id."""
        self.logger.info("Fetching integration version for: %s", installation_id)
        try:
            data = self._read(
                self._session.get,
                f"integration/{installation_id}",
                f"Fetching integration '{installation_id}'",
            )
        except FetchError as e:
            if _status_code(e.__cause__) == 404:
                raise FetchError(f"Integration not found: {installation_id}") from e
            raise

        integration = data.get("integration") if isinstance(data, dict) else None
        version = integration.get("version") if isinstance(integration, dict) else None
        if not version:
            raise FetchError("Integration version not found in response")

        self.logger.info("Integration version: %s", version)
        return version

    def get_new_datasource(self, new_installation_id):
        """Looks up the integration version and composes the new datasource."""
        version = self.get_integration_version(new_installation_id)
        return build_new_datasource(version, new_installation_id)

    def get_blueprints_by_datasource(self, installation_id):
        """
        Returns the identifiers of every blueprint the given installation
        ingests into, in the order Port lists them, without duplicates.
        """
        self.logger.info("Fetching blueprints for installation: %s", installation_id)
        data = self._read(self._session.get, "data-sources", "Fetching data sources")

        data_sources = data.get("dataSources") if isinstance(data, dict) else None
        if not isinstance(data_sources, list):
            raise FetchError("Fetching data sources failed: malformed response")

        matching = []
        for data_source in data_sources:
            context = data_source.get("context") if isinstance(data_source, dict) else None
            if context is not None and not isinstance(context, dict):
                raise FetchError("Fetching data sources failed: malformed response")
            if (context or {}).get("installationId") == installation_id:
                matching.append(data_source)
        if not matching:
            self.logger.warning("No data sources found for installation: %s", installation_id)
            return []

        self.logger.info("Found %d data sources for installation", len(matching))
        blueprints = []
        for data_source in matching:
            entries = data_source.get("blueprints") or []
            if not isinstance(entries, list):
                raise FetchError("Fetching data sources failed: malformed response")
            for blueprint in entries:
                if not isinstance(blueprint, dict):
                    raise FetchError("Fetching data sources failed: malformed response")
                identifier = blueprint.get("identifier")
                if identifier and identifier not in blueprints:
                    blueprints.append(identifier)

        self.logger.info("Found %d affected blueprints", len(blueprints))
        return blueprints

    def search_entities(self, blueprint_identifier, rules):
        """
        Fetches every entity of a blueprint matching all `rules`, following
        the pagination cursor until Port stops returning one.
        """
        query = {"combinator": "and", "rules": rules}
        description = f"Searching entities for blueprint '{blueprint_identifier}'"
        entities = []
        cursor = None
        page = 0

        while True:
            payload = {"limit": SEARCH_PAGE_SIZE, "query": query}
            if cursor:
                payload["from"] = cursor
            data = self._read(
                self._session.post,
                f"blueprints/{blueprint_identifier}/entities/search",
                description,
                json=payload,
            )
            page += 1

            items = data.get("entities") if isinstance(data, dict) else None
            if not isinstance(items, list):
                raise FetchError(f"{description} failed: malformed page {page}")
            for item in items:
                if not isinstance(item, dict) or "identifier" not in item:
                    raise FetchError(f"{description} failed: entity without identifier")
                entities.append(Entity.from_api(item, blueprint_identifier))

            next_cursor = data.get("next")
            if not next_cursor:
                break
            if next_cursor == cursor:
                raise FetchError(
                    f"{description} failed: pagination cursor repeated on page {page}"
                )
            cursor = next_cursor

        self.logger.debug(
            "Fetched %d entities for blueprint '%s' in %d page(s)",
            len(entities),
            blueprint_identifier,
            page,
        )
        return entities

    def search_old_entities(self, blueprint_identifier, old_installation_id):
        """Entities of the blueprint still owned by the legacy GitHub App."""
        return self.search_entities(
            blueprint_identifier, old_integration_rules(old_installation_id)
        )

    def search_new_entities(self, blueprint_identifier, new_installation_id):
        """Entities of the blueprint owned by the GitHub Ocean exporter."""
        return self.search_entities(
            blueprint_identifier, new_integration_rules(new_installation_id)
        )

    def patch_entities_datasource_bulk(self, blueprint_identifier, entity_identifiers, datasource):
        """
        Reassigns the datasource of up to MAX_BULK_PATCH_SIZE entities in one
        call. This cannot be undone and is never retried.
        """
        if not entity_identifiers:
            self.logger.info("Skipping batch - no entities to patch")
            return
        if len(entity_identifiers) > MAX_BULK_PATCH_SIZE:
            raise PatchError(
                f"At most {MAX_BULK_PATCH_SIZE} entities can be patched per call, "
                f"got {len(entity_identifiers)}"
            )

        payload = {
            "entitiesIdentifiers": list(entity_identifiers),
            "datasource": datasource,
        }
        try:
            response = self._session.patch(
                self._url(f"blueprints/{blueprint_identifier}/datasource/bulk"),
                json=payload,
                headers=self._headers(),
                timeout=self._config.REQUEST_TIMEOUT,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            err = _error_message(e)
            self.logger.error(
                "API error patching entities of blueprint %s: %s", blueprint_identifier, err
            )
            raise PatchError(
                f"Failed to patch entities for blueprint {blueprint_identifier}: {err}"
            ) from e

        self.logger.info(
            "Successfully patched %d entities to datasource: %s",
            len(entity_identifiers),
            datasource,
        )
