"""
Jot Vault - vault index and structure engine for a collaborative note-taking app.
This package turns a collection of documents with replicated bodies into a
link graph and heading outline, keeps the document tree consistently ordered,
and mediates between a local and a remote storage backend.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("jot-vault")
except PackageNotFoundError:
    __version__ = "0.3.0"
