"""
File Upload Service.
Streaming single-file multipart ingest with pluggable storage backends.
"""

__version__ = "1.0.0"
