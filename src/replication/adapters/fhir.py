"""FHIR-backed source and sink adapters."""

from __future__ import annotations

import logging
from urllib.parse import quote

import requests  # type: ignore

from fhir.client import FhirClient, FhirHttpError
from fhir.models import FhirResource, bundle_resources

from ..errors import DeliveryError, FetchError
from .base import ResourceSink, ResourceSource

logger = logging.getLogger(__name__)


class FhirProxySource(ResourceSource):
    """ResourceSource implementation reading from the upstream FHIR proxy."""

    def __init__(self, client: FhirClient):
        """Create a source that reads through the given client."""
        self._client = client

    async def fetch_one(self, path: str) -> FhirResource:
        """GET a single resource and validate that it carries a type and id."""
        payload = await self._get(path)
        try:
            resource = FhirResource.from_api(payload)
        except ValueError as exc:
            raise FetchError(path, str(exc)) from exc
        logger.debug("Fetched %s from %s", resource.key, path)
        return resource

    async def fetch_collection(self, query: str) -> list[FhirResource]:
        """GET a search Bundle and return its well-formed entries."""
        payload = await self._get(query)
        try:
            resources = bundle_resources(payload)
        except ValueError as exc:
            raise FetchError(query, str(exc)) from exc
        logger.debug("Search %s returned %d resources", query, len(resources))
        return resources

    async def _get(self, path: str):
        try:
            return await self._client.get(path)
        except FhirHttpError as exc:
            raise FetchError(path, str(exc), status_code=exc.status_code) from exc
        except requests.RequestException as exc:
            raise FetchError(path, str(exc)) from exc


class FhirNodeSink(ResourceSink):
    """ResourceSink implementation writing to the downstream FHIR node."""

    def __init__(self, client: FhirClient):
        """Create a sink that writes through the given client."""
        self._client = client

    async def deliver(self, resource: FhirResource) -> int:
        """PUT the resource verbatim to `/<type>/<id>`."""
        path = f"/{quote(resource.resource_type, safe='')}/{quote(resource.id, safe='')}"
        try:
            status_code = await self._client.put(path, resource.payload)
        except FhirHttpError as exc:
            raise DeliveryError(resource.resource_type, resource.id, str(exc), status_code=exc.status_code) from exc
        except requests.RequestException as exc:
            raise DeliveryError(resource.resource_type, resource.id, str(exc)) from exc
        logger.debug("Delivered %s (HTTP %d)", resource.key, status_code)
        return status_code
