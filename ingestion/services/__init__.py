"""
Services for the ingestion pipeline: rate limiting, dedupe/merge,
enrichment, cooldowns, housekeeping, the stale scanner and the worker.
"""
