"""Registry of vaults known to this installation and the current one."""
import logging
from typing import Any, List, Optional

from sqlalchemy import select, update

from jot_vault.config import JotVaultConfig, config as default_config
from jot_vault.exceptions import (
    ConfigurationError,
    ErrorCode,
    StorageError,
    StorageErrorKind,
    ValidationError,
)
from jot_vault.models.db_models import DBVault, get_session_factory, init_db
from jot_vault.models.schema import (
    BackendKind,
    VaultRecord,
    ensure_timezone_aware,
    generate_id,
    utc_now,
)
from jot_vault.storage.base import StorageBackend
from jot_vault.storage.local_storage import LocalStorage
from jot_vault.storage.remote_storage import RemoteStorage

logger = logging.getLogger(__name__)

# Fields update_vault may change
_UPDATABLE = {"name", "location", "server_vault_id"}


class VaultRegistry:
    """Vault records stored in SQLite.

    Exactly one vault is current while any are registered. Adding a vault
    makes it current; removing the current vault falls back to the oldest
    remaining one.
    """

    def __init__(self, engine=None):
        """Initialize the registry.

        Args:
            engine: SQLAlchemy engine. If None, uses default from config.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)

    @staticmethod
    def _db_to_model(db_vault: DBVault) -> VaultRecord:
        return VaultRecord(
            id=db_vault.id,
            name=db_vault.name,
            location=db_vault.location,
            backend=BackendKind(db_vault.backend),
            server_vault_id=db_vault.server_vault_id,
            created_at=ensure_timezone_aware(db_vault.created_at),
            last_opened=(
                ensure_timezone_aware(db_vault.last_opened)
                if db_vault.last_opened
                else None
            ),
        )

    def _require(self, session, vault_id: str) -> DBVault:
        db_vault = session.get(DBVault, vault_id)
        if not db_vault:
            raise StorageError(
                f"Vault '{vault_id}' is not registered",
                kind=StorageErrorKind.NOT_FOUND,
                operation="registry",
            )
        return db_vault

    def add_vault(
        self,
        name: str,
        location: str,
        backend: BackendKind = BackendKind.LOCAL,
        server_vault_id: Optional[str] = None,
    ) -> VaultRecord:
        """Register a vault and make it current."""
        try:
            record = VaultRecord(
                id=generate_id(),
                name=name,
                location=location,
                backend=backend,
                server_vault_id=server_vault_id,
            )
        except ValueError as e:
            raise ValidationError(str(e), field="name", value=name) from e

        with self.session_factory() as session:
            session.execute(update(DBVault).values(is_current=False))
            session.add(DBVault(
                id=record.id,
                name=record.name,
                location=record.location,
                backend=record.backend.value,
                server_vault_id=record.server_vault_id,
                is_current=True,
                created_at=record.created_at,
            ))
            session.commit()

        logger.info(f"Registered {backend.value} vault '{record.name}' ({record.id})")
        return record

    def remove_vault(self, vault_id: str) -> None:
        """Forget a vault. Its documents are left untouched."""
        with self.session_factory() as session:
            db_vault = self._require(session, vault_id)
            was_current = db_vault.is_current
            session.delete(db_vault)
            session.flush()

            if was_current:
                oldest = session.execute(
                    select(DBVault).order_by(DBVault.created_at, DBVault.id).limit(1)
                ).scalar_one_or_none()
                if oldest:
                    oldest.is_current = True
                    logger.info(f"Current vault is now '{oldest.name}'")
            session.commit()

        logger.info(f"Removed vault {vault_id}")

    def update_vault(self, vault_id: str, **fields: Any) -> VaultRecord:
        """Change the name, location or server counterpart of a vault."""
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValidationError(
                f"Cannot update vault fields: {', '.join(sorted(unknown))}",
                code=ErrorCode.VALIDATION_FAILED,
            )
        with self.session_factory() as session:
            db_vault = self._require(session, vault_id)
            for key, value in fields.items():
                setattr(db_vault, key, value)
            session.commit()
            return self._db_to_model(db_vault)

    def set_current(self, vault_id: str) -> VaultRecord:
        """Make a vault current and stamp when it was opened."""
        with self.session_factory() as session:
            db_vault = self._require(session, vault_id)
            session.execute(update(DBVault).values(is_current=False))
            db_vault.is_current = True
            db_vault.last_opened = utc_now()
            session.commit()
            return self._db_to_model(db_vault)

    def get_current(self) -> Optional[VaultRecord]:
        with self.session_factory() as session:
            db_vault = session.execute(
                select(DBVault).where(DBVault.is_current.is_(True))
            ).scalar_one_or_none()
            return self._db_to_model(db_vault) if db_vault else None

    def get(self, vault_id: str) -> Optional[VaultRecord]:
        with self.session_factory() as session:
            db_vault = session.get(DBVault, vault_id)
            return self._db_to_model(db_vault) if db_vault else None

    def list_vaults(self) -> List[VaultRecord]:
        """All registered vaults, oldest first."""
        with self.session_factory() as session:
            result = session.execute(
                select(DBVault).order_by(DBVault.created_at, DBVault.id)
            )
            return [self._db_to_model(db) for db in result.scalars().all()]


def create_backend(
    record: VaultRecord, cfg: Optional[JotVaultConfig] = None
) -> StorageBackend:
    """Build the storage backend a vault record asks for."""
    cfg = cfg or default_config
    if record.backend == BackendKind.LOCAL:
        return LocalStorage(cfg=cfg)
    if record.backend == BackendKind.REMOTE:
        return RemoteStorage(cfg=cfg)
    raise ConfigurationError(
        f"Unsupported backend '{record.backend}'",
        config_key="backend",
        code=ErrorCode.CONFIG_INVALID,
    )
