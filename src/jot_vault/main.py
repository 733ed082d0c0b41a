#!/usr/bin/env python
"""Main entry point for the Jot Vault MCP server."""
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from jot_vault.config import config
from jot_vault.exceptions import JotVaultError
from jot_vault.models.db_models import init_db
from jot_vault.models.schema import BackendKind, VaultRecord
from jot_vault.observability import configure_logging
from jot_vault.server.mcp_server import JotVaultMcpServer
from jot_vault.services.vault_session import VaultSession
from jot_vault.storage.vault_registry import VaultRegistry, create_backend

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Jot Vault MCP Server")
    parser.add_argument(
        "--vault",
        help="Registered vault id or name, a local vault path, or a server vault id",
        type=str,
        default=os.environ.get("JOT_VAULT"),
    )
    parser.add_argument(
        "--backend",
        help="Backend for a vault that is not registered yet",
        choices=[k.value for k in BackendKind],
        default=os.environ.get("JOT_BACKEND", BackendKind.LOCAL.value),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level,
    )
    return parser.parse_args(argv)


def resolve_vault(
    registry: VaultRegistry, vault: Optional[str], backend: BackendKind
) -> VaultRecord:
    """Find or register the vault to open and make it current."""
    if vault:
        for record in registry.list_vaults():
            if vault in (record.id, record.name):
                return registry.set_current(record.id)
        if backend == BackendKind.LOCAL:
            vault = str(Path(vault).expanduser().resolve())
            name = Path(vault).name or "vault"
        else:
            name = f"remote-{vault}"
        record = registry.add_vault(name, vault, backend)
        return registry.set_current(record.id)

    current = registry.get_current()
    if current is not None:
        return registry.set_current(current.id)

    location = create_backend(
        VaultRecord(name="default", location="", backend=backend), config
    ).choose_location()
    if not location:
        raise JotVaultError("No vault location available; pass --vault")
    record = registry.add_vault("Default vault", location, backend)
    return registry.set_current(record.id)


def open_session(record: VaultRecord) -> VaultSession:
    """Create a session for a vault record and load it."""
    backend = create_backend(record, config)
    session = VaultSession(backend, record.location)
    try:
        if record.backend == BackendKind.LOCAL and not Path(record.location).is_dir():
            backend.initialize(record.location)
        session.load()
    except JotVaultError as e:
        # The server still starts; vault_status shows the error and
        # vault_reload retries
        logger.error(f"Vault '{record.name}' failed to load: {e}")
    return session


def main(argv=None):
    """Run the Jot Vault MCP server."""
    args = parse_args(argv)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(level=log_level, console=True)
        logger.info(f"Persistent logging enabled: {log_dir}")
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")

    try:
        logger.info(f"Using vault registry: {config.get_registry_url()}")
        registry = VaultRegistry(init_db())
        record = resolve_vault(registry, args.vault, BackendKind(args.backend))
    except Exception as e:
        logger.error(f"Failed to open vault registry: {e}")
        sys.exit(1)

    logger.info(f"Opening {record.backend.value} vault '{record.name}' at {record.location}")
    session = open_session(record)

    try:
        logger.info("Starting Jot Vault MCP server")
        server = JotVaultMcpServer(session)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
