"""content-search — ingest heterogeneous content and search it semantically."""

__version__ = "0.1.0"
