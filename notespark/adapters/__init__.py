"""
File access adapters.

Every image read goes through a FileAccessor so the pipeline can run against
the local filesystem or an in-memory store in tests.
"""

from .file_accessor import FileAccessor, LocalFileAccessor, InMemoryFileAccessor, strip_file_uri

__all__ = [
    "FileAccessor",
    "LocalFileAccessor",
    "InMemoryFileAccessor",
    "strip_file_uri",
]
