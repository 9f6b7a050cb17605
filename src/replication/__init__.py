"""Event-driven replication of encounters from a FHIR proxy to a FHIR node."""
