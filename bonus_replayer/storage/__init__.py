"""
Object storage access
Lists and stages redeemed-bonus objects locally
"""

from .fetcher import (
    BlobFetcher,
    FetchResult,
    RemoteObjectRef,
    SkippedObject,
    StagedFile,
    create_s3_client,
)

__all__ = [
    "BlobFetcher",
    "FetchResult",
    "RemoteObjectRef",
    "SkippedObject",
    "StagedFile",
    "create_s3_client",
]
