"""
Ingestion Django application.

This app runs the price refresh pipeline for the affiliate catalog: the work
queue, the shared vendor rate limiter, the freshness policy and the
dedupe/merge engine that maintains canonical products.
"""
