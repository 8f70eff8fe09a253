"""
Ingestion — section detection, chunking, embedding and the pipeline that
turns one content item's extracted text into stored (chunk, vector) pairs.
"""
