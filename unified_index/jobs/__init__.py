"""Queue item handlers for the ingestion worker."""
