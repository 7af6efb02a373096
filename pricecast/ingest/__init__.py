"""Readers for data owned by the price ingestion service."""
