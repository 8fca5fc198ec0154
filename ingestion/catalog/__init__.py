"""Plain catalog data types shared across the ingestion pipeline."""
