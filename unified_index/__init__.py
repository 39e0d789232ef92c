"""Unified index service: ingestion, enrichment and query over external sources."""
