"""Document sub-resource synchronization.

A mapped payload may carry ``documents``: sub-payloads with a base64
``file`` and an optional ``filename``.  Each document is uploaded on its
own as a multipart request and its slot in the parent payload is replaced
by the reference the remote system returns.

Failures are isolated per document: a document that cannot be decoded,
named, or uploaded is reported in its ``DocumentResult`` and left out of
the substituted list; its siblings and the parent are unaffected.  The
order of the surviving references matches the input order.  Documents do
not get synchronization records.
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
from typing import Any

import filetype

from zgw_vrijbrp_sync.config_schema import SourceConfig
from zgw_vrijbrp_sync.core.client import GatewayClient
from zgw_vrijbrp_sync.errors import (
    DocumentProcessingError,
    RemoteCallError,
    SyncError,
)
from zgw_vrijbrp_sync.sync.models import DocumentResult
from zgw_vrijbrp_sync.sync.state import extract_remote_id

logger = logging.getLogger(__name__)


def decode_file(encoded: Any) -> bytes:
    """Decode a base64 (optionally ``data:`` URI) file payload."""
    if not isinstance(encoded, str) or not encoded.strip():
        raise DocumentProcessingError("Document has no 'file' content")

    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]

    # MIME-wrapped payloads carry line breaks
    encoded = "".join(encoded.split())
    try:
        binary = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DocumentProcessingError(
            f"Document 'file' is not valid base64: {exc}"
        ) from exc

    if not binary:
        raise DocumentProcessingError("Document 'file' decodes to nothing")
    return binary


def _is_text(binary: bytes) -> bool:
    if b"\x00" in binary:
        return False
    try:
        binary.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def generate_filename(binary: bytes, stem: str = "file") -> str:
    """Build ``<stem>.<ext>`` from the MIME type sniffed from *binary*.

    Content without a binary signature that decodes as UTF-8 is named as
    plain text.

    Raises:
        DocumentProcessingError: No MIME type or extension can be determined.
    """
    kind = filetype.guess(binary)
    if kind is None:
        if _is_text(binary):
            return f"{stem}.txt"
        raise DocumentProcessingError(
            "Could not determine a MIME type for document without filename"
        )

    extension = mimetypes.guess_extension(kind.mime) or (
        f".{kind.extension}" if kind.extension else None
    )
    if not extension:
        raise DocumentProcessingError(
            f"Could not find a file extension for MIME type {kind.mime}"
        )
    return f"{stem}{extension}"


class DocumentSynchronizer:
    """Upload documents of a mapped payload to a remote source.

    Args:
        client: Remote caller.
        source: Source receiving the documents.
        endpoint: Document collection endpoint.
    """

    def __init__(
        self,
        client: GatewayClient,
        source: SourceConfig,
        endpoint: str = "/api/documents",
    ) -> None:
        self.client = client
        self.source = source
        self.endpoint = endpoint

    def sync_document(self, document: dict[str, Any]) -> tuple[str, str]:
        """Upload one document.

        Returns:
            ``(remote_ref, filename)``.

        Raises:
            DocumentProcessingError: The document cannot be prepared.
            RemoteCallError: The upload failed or returned no reference.
        """
        if not isinstance(document, dict) or "file" not in document:
            raise DocumentProcessingError("Document expects a key 'file'")

        binary = decode_file(document["file"])
        filename = document.get("filename") or generate_filename(binary)

        body = self.client.request_json(
            self.source,
            self.endpoint,
            "POST",
            multipart=[
                {"name": "file", "contents": binary, "filename": filename}
            ],
        )
        remote_ref = extract_remote_id(body)
        if not remote_ref:
            raise RemoteCallError(
                f"Document upload to {self.endpoint} returned no reference",
                response_body=str(body),
            )
        return remote_ref, filename

    def sync_documents(
        self, documents: list[Any]
    ) -> tuple[list[str], list[DocumentResult]]:
        """Upload every document, isolating failures.

        Entries that are already strings are treated as references from
        an earlier upload and kept as they are.

        Returns:
            ``(references, results)``; references keep input order and
            omit failed documents.
        """
        references: list[str] = []
        results: list[DocumentResult] = []

        for index, document in enumerate(documents):
            if isinstance(document, str):
                references.append(document)
                results.append(
                    DocumentResult(index=index, remote_ref=document, success=True)
                )
                continue

            try:
                remote_ref, filename = self.sync_document(document)
            except SyncError as exc:
                if isinstance(exc, RemoteCallError):
                    logger.error(
                        "Could not create document %d: %s\nFull response: %s",
                        index,
                        exc,
                        exc.response_body or "",
                    )
                else:
                    logger.error("Could not create document %d: %s", index, exc)
                results.append(
                    DocumentResult(
                        index=index,
                        filename=document.get("filename")
                        if isinstance(document, dict)
                        else None,
                        success=False,
                        error=str(exc),
                        error_type=exc.error_type,
                    )
                )
                continue

            references.append(remote_ref)
            results.append(
                DocumentResult(
                    index=index,
                    filename=filename,
                    remote_ref=remote_ref,
                    success=True,
                )
            )

        return references, results
