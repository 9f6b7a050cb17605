"""FHIR REST client and the resource models the replicator interprets."""

from .client import FhirClient, FhirHttpError
from .models import FhirResource, bundle_resources

__all__ = ["FhirClient", "FhirHttpError", "FhirResource", "bundle_resources"]
