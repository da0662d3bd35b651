"""Batch upload with exponential backoff."""
from .retry import RetryPolicy, UploadTask
from .uploader import Uploader, classify_response, documents_url

__all__ = ["RetryPolicy", "UploadTask", "Uploader", "classify_response", "documents_url"]
