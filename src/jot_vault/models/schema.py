"""Data models for Jot Vault."""

import datetime
import re
import uuid
from dataclasses import dataclass, field
from datetime import timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from pydantic import BaseModel, Field, field_serializer, field_validator

# Document ids double as file names in local vaults
SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]+$")

# Current on-disk schema version of a Document record
DOCUMENT_VERSION = 1


def validate_safe_path_component(value: str, field_name: str = "value") -> str:
    """Validate that a value is safe to use as a filesystem path component.

    Rejects path separators, parent directory references and any
    characters outside alphanumerics, underscores and hyphens.

    Raises:
        ValueError: If the value contains unsafe characters
    """
    if not value:
        raise ValueError(f"{field_name} cannot be empty")

    if ".." in value:
        raise ValueError(f"{field_name} cannot contain '..' (path traversal)")

    if "/" in value or "\\" in value:
        raise ValueError(f"{field_name} cannot contain path separators")

    if not SAFE_ID_PATTERN.match(value):
        raise ValueError(
            f"{field_name} contains invalid characters. "
            "Only alphanumeric characters, underscores and hyphens are allowed."
        )

    return value


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC."""
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def generate_id() -> str:
    """Generate a vault-unique document id."""
    return str(uuid.uuid4())


class DocumentType(str, Enum):
    """Kinds of entries in the document tree."""

    DOCUMENT = "document"
    FOLDER = "folder"


class BackendKind(str, Enum):
    """The two storage backend variants."""

    LOCAL = "local"
    REMOTE = "remote"


class MoveKind(str, Enum):
    """How a dragged document relates to its drop target."""

    REORDER = "reorder"  # Take the target sibling's position
    REPARENT = "reparent"  # Append into the target folder


class DocumentMetadata(BaseModel):
    """Metadata of a document, mutated independently of its body."""

    title: str = Field(..., description="Title of the document")
    created: datetime.datetime = Field(
        default_factory=utc_now, description="When the document was created (UTC)"
    )
    modified: datetime.datetime = Field(
        default_factory=utc_now, description="When the document was last modified (UTC)"
    )
    tags: Set[str] = Field(default_factory=set, description="Tags for categorization")
    icon: Optional[str] = Field(default=None, description="Emoji or icon name")
    description: Optional[str] = Field(default=None, description="Short summary")
    parent_id: Optional[str] = Field(
        default=None, description="Parent document in the same vault; None is root"
    )
    type: Optional[DocumentType] = Field(
        default=None, description="Document or folder; None behaves as a document"
    )
    order: Optional[int] = Field(
        default=None, description="Sibling position hint, see VaultStructure"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """A stored document without a title cannot be read back."""
        v = v.strip()
        if not v:
            raise ValueError("Title must not be blank")
        return v

    @field_validator("created", "modified")
    @classmethod
    def validate_timestamps(cls, v: datetime.datetime) -> datetime.datetime:
        """Store timestamps as timezone-aware UTC."""
        return ensure_timezone_aware(v)

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: Any) -> Set[str]:
        """Accept any iterable of names, dropping blanks."""
        if v is None:
            return set()
        if isinstance(v, str):
            v = v.split(",")
        return {str(tag).strip() for tag in v if str(tag).strip()}

    @field_serializer("tags")
    def serialize_tags(self, tags: Set[str]) -> List[str]:
        return sorted(tags)

    @property
    def is_folder(self) -> bool:
        return self.type == DocumentType.FOLDER

    def merged(self, updates: Mapping[str, Any]) -> "DocumentMetadata":
        """Return a copy with ``updates`` applied and ``modified`` stamped.

        Raises:
            ValueError: If an update names an unknown field.
        """
        unknown = set(updates) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown metadata fields: {', '.join(sorted(unknown))}")
        data = self.model_dump()
        data.update(updates)
        data["modified"] = utc_now()
        return DocumentMetadata.model_validate(data)


class Document(BaseModel):
    """A single note: metadata plus an opaque replicated body."""

    id: str = Field(default_factory=generate_id, description="Vault-unique ID")
    metadata: DocumentMetadata = Field(..., description="Document metadata")
    body: str = Field(
        default="", description="Encoded replicated state; empty for a new document"
    )
    version: int = Field(default=DOCUMENT_VERSION, description="Schema version tag")

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate that the ID is safe for filesystem use."""
        return validate_safe_path_component(v, "Document ID")

    @classmethod
    def new(cls, title: str) -> "Document":
        """Create a fresh document with an empty body."""
        now = utc_now()
        return cls(metadata=DocumentMetadata(title=title, created=now, modified=now))

    @property
    def title(self) -> str:
        return self.metadata.title


class DocumentStructure(BaseModel):
    """Placement of one document: its parent and its sibling position."""

    id: str
    parent_id: Optional[str] = None
    order: int = Field(..., ge=0)

    model_config = {"frozen": True}


class VaultStructure(BaseModel):
    """Ordering source of truth for local vaults."""

    documents: List[DocumentStructure] = Field(default_factory=list)
    version: int = 1

    def entry(self, document_id: str) -> Optional[DocumentStructure]:
        """Get the placement of one document, if recorded."""
        for item in self.documents:
            if item.id == document_id:
                return item
        return None

    def children_of(self, parent_id: Optional[str]) -> List[DocumentStructure]:
        """Get the placements under ``parent_id`` sorted by order."""
        children = [d for d in self.documents if d.parent_id == parent_id]
        return sorted(children, key=lambda d: d.order)


class StructureMove(BaseModel):
    """A drag gesture: move ``active_id`` relative to ``target_id``.

    ``target_id`` may be None only for REPARENT, meaning the root group.
    """

    active_id: str
    target_id: Optional[str] = None
    kind: MoveKind = MoveKind.REORDER

    model_config = {"frozen": True}


class DocumentHeader(BaseModel):
    """A heading block of a document."""

    level: int = Field(..., ge=1, le=6)
    text: str
    slug: str

    model_config = {"frozen": True}


class DocumentIndex(BaseModel):
    """Derived link and outline data for one document."""

    id: str
    title: str
    links: List[str] = Field(default_factory=list, description="Outgoing targets")
    backlinks: List[str] = Field(
        default_factory=list, description="Documents linking here"
    )
    headers: List[DocumentHeader] = Field(default_factory=list)


class VaultIndex(BaseModel):
    """Link graph and outline of a whole vault, rebuilt in full."""

    documents: Dict[str, DocumentIndex] = Field(default_factory=dict)
    last_updated: datetime.datetime = Field(default_factory=utc_now)

    def get(self, document_id: str) -> Optional[DocumentIndex]:
        return self.documents.get(document_id)

    def backlinks(self, document_id: str) -> List[str]:
        entry = self.documents.get(document_id)
        return list(entry.backlinks) if entry else []

    def is_newer_than(self, other: Optional["VaultIndex"]) -> bool:
        """Whether this index supersedes ``other``."""
        return other is None or self.last_updated >= other.last_updated


class VaultRecord(BaseModel):
    """A vault known to this installation."""

    id: str = Field(default_factory=generate_id)
    name: str = Field(..., description="Display name")
    location: str = Field(..., description="Filesystem path or server vault id")
    backend: BackendKind = Field(default=BackendKind.LOCAL)
    server_vault_id: Optional[str] = Field(
        default=None, description="Remote counterpart of a local vault"
    )
    created_at: datetime.datetime = Field(default_factory=utc_now)
    last_opened: Optional[datetime.datetime] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Vault name cannot be empty")
        return v.strip()


@dataclass(frozen=True)
class SyncStatus:
    """Connection state published by the external synchronization channel."""

    connected: bool = False
    synced: bool = False


@dataclass(frozen=True)
class VaultSnapshot:
    """The session's consistent (documents, index, structure) triple.

    Replaced wholesale on every rebuild, never patched in place.
    """

    documents: Tuple[Document, ...] = ()
    index: Optional[VaultIndex] = None
    structure: Optional[VaultStructure] = None
    by_id: Dict[str, Document] = field(default_factory=dict, compare=False)

    @classmethod
    def build(
        cls,
        documents: List[Document],
        index: Optional[VaultIndex],
        structure: Optional[VaultStructure],
    ) -> "VaultSnapshot":
        return cls(
            documents=tuple(documents),
            index=index,
            structure=structure,
            by_id={doc.id: doc for doc in documents},
        )

    def get(self, document_id: str) -> Optional[Document]:
        return self.by_id.get(document_id)
