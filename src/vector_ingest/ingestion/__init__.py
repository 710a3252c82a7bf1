"""
Ingestion — document reading, chunking, batching, and embedding.

This module is responsible for the ETL-like pipeline that converts raw
documents (plain text, Markdown, PDF, scanned images) into embedded chunks
handed to a persistence sink.
"""
