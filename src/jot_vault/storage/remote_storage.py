"""Remote vault storage backed by the collaboration server's HTTP API."""
import logging
from typing import Any, Dict, List, Optional

import requests

from jot_vault.config import JotVaultConfig, config as default_config
from jot_vault.exceptions import (
    DocumentNotFoundError,
    RemoteUnavailableError,
    StorageError,
    StorageErrorKind,
    StorageIOError,
    StoragePermissionError,
)
from jot_vault.models.schema import (
    BackendKind,
    Document,
    DocumentMetadata,
    DocumentType,
    VaultStructure,
)
from jot_vault.storage.base import StorageBackend

logger = logging.getLogger(__name__)


def metadata_to_document(item: Dict[str, Any]) -> Document:
    """Map one server metadata record to a Document.

    The body is empty unless the server sent a ``state``; remote bodies
    normally arrive through the live collaboration channel.
    """
    doc_type = item.get("doc_type")
    metadata = DocumentMetadata(
        title=item.get("title") or "Untitled",
        created=item["created_at"],
        modified=item.get("modified_at") or item["created_at"],
        tags=item.get("tags") or [],
        icon=item.get("icon"),
        description=item.get("description"),
        parent_id=item.get("parent_guid"),
        type=DocumentType(doc_type) if doc_type in ("document", "folder") else None,
    )
    return Document(id=item["guid"], metadata=metadata, body=item.get("state") or "")


def document_payload(metadata: DocumentMetadata, body: str) -> Dict[str, Any]:
    """Build the request body for a document write."""
    payload: Dict[str, Any] = {
        "title": metadata.title,
        "doc_type": metadata.type.value if metadata.type else None,
        "icon": metadata.icon,
        "description": metadata.description,
        "tags": sorted(metadata.tags),
        "parent_guid": metadata.parent_id,
        "modified_at": metadata.modified.isoformat(),
    }
    if body:
        payload["state"] = body
    return payload


class RemoteStorage(StorageBackend):
    """Vaults held by the server; the location is the server vault id.

    Remote vaults are flat. Hierarchy travels only in ``parent_id`` and
    there is no structure record.
    """

    kind = BackendKind.REMOTE

    def __init__(
        self,
        cfg: Optional[JotVaultConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = cfg or default_config
        self.base_url = self.config.api_url.rstrip("/")
        self.timeout = self.config.request_timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.auth_token:
            headers["Authorization"] = f"Bearer {self.config.auth_token}"
        return headers

    def _request(
        self,
        method: str,
        endpoint: str,
        operation: str,
        payload: Optional[Dict[str, Any]] = None,
        document_id: Optional[str] = None,
    ) -> Any:
        """Send one request and translate every failure into a StorageError."""
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.request(
                method, url, json=payload, headers=self._headers(), timeout=self.timeout
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RemoteUnavailableError(
                f"Server unreachable at {self.base_url}",
                operation=operation,
                original_error=e,
            ) from e
        except requests.RequestException as e:
            raise StorageIOError(
                f"Request to {endpoint} failed", operation=operation, original_error=e
            ) from e

        status = response.status_code
        if status >= 500:
            raise RemoteUnavailableError(
                f"Server error {status} on {endpoint}: {response.text[:200]}",
                operation=operation,
            )
        if status == 404:
            if document_id:
                raise DocumentNotFoundError(document_id, operation=operation)
            raise StorageError(
                f"Not found: {endpoint}", kind=StorageErrorKind.NOT_FOUND, operation=operation
            )
        if status in (401, 403):
            raise StoragePermissionError(
                f"Access denied ({status}) on {endpoint}", operation=operation
            )
        if status >= 400:
            raise StorageIOError(
                f"Request failed ({status}) on {endpoint}: {response.text[:200]}",
                operation=operation,
            )
        if status == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise StorageIOError(
                f"Invalid JSON from {endpoint}", operation=operation, original_error=e
            ) from e

    def _documents(self, location: str) -> List[Document]:
        items = self._request(
            "GET", f"/api/vaults/{location}/documents/metadata", "read_all"
        ) or []
        documents: List[Document] = []
        for item in items:
            try:
                documents.append(metadata_to_document(item))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed document metadata {item.get('guid')}: {e}")
        return documents

    def choose_location(self) -> Optional[str]:
        """Return the first vault the server lists, or None."""
        vaults = self._request("GET", "/api/vaults", "choose_location") or []
        if not vaults:
            return None
        return str(vaults[0]["id"])

    def initialize(self, location: str) -> None:
        """Verify the vault exists on the server."""
        vault = self._request("GET", f"/api/vaults/{location}", "initialize")
        logger.info(f"Connected to remote vault {location} ({(vault or {}).get('name')})")

    def list_ids(self, location: str) -> List[str]:
        return [doc.id for doc in self._documents(location)]

    def read_all(self, location: str) -> List[Document]:
        """Fetch metadata for every document; bodies stay empty."""
        documents = self._documents(location)
        logger.debug(f"Fetched {len(documents)} document records from vault {location}")
        return documents

    def read(self, location: str, document_id: str) -> Document:
        item = self._request(
            "GET",
            f"/api/vaults/{location}/documents/{document_id}",
            "read",
            document_id=document_id,
        )
        try:
            return metadata_to_document(item)
        except (KeyError, TypeError, ValueError) as e:
            raise StorageIOError(
                f"Malformed record for document {document_id}",
                operation="read",
                original_error=e,
            ) from e

    def write(
        self,
        location: str,
        document_id: str,
        metadata: DocumentMetadata,
        body: str,
    ) -> None:
        self._request(
            "PUT",
            f"/api/vaults/{location}/documents/{document_id}",
            "write",
            payload=document_payload(metadata, body),
            document_id=document_id,
        )

    def create(self, location: str, title: str) -> Document:
        item = self._request(
            "POST", f"/api/vaults/{location}/documents", "create", payload={"title": title}
        )
        try:
            document = metadata_to_document(item)
        except (KeyError, TypeError, ValueError) as e:
            raise StorageIOError(
                "Server returned a malformed document", operation="create", original_error=e
            ) from e
        logger.info(f"Created remote document {document.id} ({title!r})")
        return document

    def delete(self, location: str, document_id: str) -> None:
        self._request(
            "DELETE",
            f"/api/vaults/{location}/documents/{document_id}",
            "delete",
            document_id=document_id,
        )

    def read_structure(self, location: str) -> Optional[VaultStructure]:
        """Remote vaults keep no structure."""
        return None

    def write_structure(self, location: str, structure: VaultStructure) -> None:
        raise StoragePermissionError(
            "Remote vaults do not store a document structure",
            operation="write_structure",
        )
