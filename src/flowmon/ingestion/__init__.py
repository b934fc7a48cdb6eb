"""Ingestion layer.

Adapters between raw source notifications and validated models: payload
normalization and candidate-path resolution.
"""
