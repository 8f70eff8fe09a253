"""
Serving — FastAPI application exposing search and ingestion over HTTP.
"""
