"""Business logic: ingestion pipeline, vector layer and retrieval."""
