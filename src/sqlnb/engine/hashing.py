"""Content addressing for notebook artifacts.

Artifacts are digested the way git digests a blob object, so a stored
``interpretable_code_hash`` can be checked with ``git hash-object``::

    sha1(b"blob " + str(len(data)).encode() + b"\\0" + data)
"""

from __future__ import annotations

import hashlib

from sqlnb.engine.errors import PersistenceEncodingError

BLOB_TAG = "blob"


def encode_artifact(text: str) -> bytes:
    """UTF-8 encode an artifact, raising PersistenceEncodingError on failure."""
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise PersistenceEncodingError(f"artifact is not valid UTF-8 text: {e}") from e


def blob_header(size: int) -> bytes:
    """Length-prefix header for a blob of ``size`` bytes."""
    return f"{BLOB_TAG} {size}\0".encode("ascii")


def git_blob_hash(content: str | bytes) -> str:
    """Hex SHA-1 of ``content`` framed as a git blob.

    The header uses the UTF-8 byte length, not the character count, so
    non-ASCII text hashes identically to ``git hash-object``.
    """
    data = content if isinstance(content, bytes) else encode_artifact(content)
    h = hashlib.sha1()
    h.update(blob_header(len(data)))
    h.update(data)
    return h.hexdigest()
