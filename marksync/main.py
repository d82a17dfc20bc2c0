"""
Main application entry point for marksync.

Wires configuration, storage, the bookmark tree, the GitHub client, the sync
service, the change event dispatcher and the HTTP control API.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from .api import set_services
from .api.server import ApiServer
from .config import ConfigValidator, EnvironmentLoader, SyncSettings
from .exceptions import ConfigurationError, handle_unexpected_error
from .storage import (
    KeyValueStore,
    MemoryKeyValueStore,
    SQLiteDatabase,
    StorageScope,
)
from .sync import (
    AuthGuard,
    FolderShareRegistry,
    FolderSyncService,
    GitHubClient,
    OrphanReconciler,
    RemoteReader,
    RemoteWriter,
    SecureCredentialStore,
    SnapshotExporter,
    SnapshotFileFilter,
    SyncTriggerDispatcher,
)
from .tree import BookmarkMetadataStore, BookmarkTreeProvider, InMemoryBookmarkTree


class MarkSyncApp:
    """Main application class for marksync."""

    def __init__(self, tree: Optional[BookmarkTreeProvider] = None):
        self.config: Optional[SyncSettings] = None
        self.tree = tree
        self.database: Optional[SQLiteDatabase] = None
        self.client: Optional[GitHubClient] = None
        self.guard: Optional[AuthGuard] = None
        self.registry: Optional[FolderShareRegistry] = None
        self.service: Optional[FolderSyncService] = None
        self.dispatcher: Optional[SyncTriggerDispatcher] = None
        self.api_server: Optional[ApiServer] = None
        self.running = False

        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[logging.StreamHandler(sys.stdout)]
        )
        self.logger = logging.getLogger(__name__)

    async def initialize(self, env_file: str = ".env") -> None:
        """Initialize all application components."""
        try:
            self.logger.info("Initializing marksync...")

            self.config = EnvironmentLoader.load_config(env_file)
            logging.getLogger().setLevel(self.config.log_level.value)

            errors = ConfigValidator.validate_config(self.config)
            if errors:
                raise ConfigurationError(
                    "Invalid configuration: " + "; ".join(errors),
                    error_code="INVALID_CONFIGURATION",
                )

            local_store, sync_store = await self._initialize_storage()
            await self._initialize_sync(local_store, sync_store)

            if self.config.api.enabled:
                self.api_server = ApiServer(self.config)

            self.logger.info("All components initialized successfully")

        except Exception as e:
            error = handle_unexpected_error(e)
            self.logger.error(f"Failed to initialize application: {error.to_log_string()}")
            raise

    async def _initialize_storage(self):
        """Create the device-local and account-synced stores."""
        if self.config.storage.backend == "sqlite":
            db_path = self.config.storage.db_path
            self.logger.info(f"Using SQLite storage at {db_path}")
            self.database = SQLiteDatabase(db_path)
            await self.database.connect()
            return self.database.scope(StorageScope.LOCAL), self.database.scope(StorageScope.SYNC)

        self.logger.warning("Using in-memory storage - shares and credentials are lost on restart")
        return MemoryKeyValueStore(StorageScope.LOCAL), MemoryKeyValueStore(StorageScope.SYNC)

    async def _initialize_sync(self, local_store: KeyValueStore, sync_store: KeyValueStore) -> None:
        config = self.config
        if self.tree is None:
            self.tree = InMemoryBookmarkTree()

        self.client = GitHubClient(base_url=config.github_api_url, timeout=config.request_timeout)
        credentials = SecureCredentialStore(local_store, config.token_encryption_key)
        self.guard = AuthGuard(self.client, credentials)

        self.registry = FolderShareRegistry(sync_store)
        await self.registry.load()

        metadata = BookmarkMetadataStore(local_store)
        writer = RemoteWriter(self.client, self.guard)
        reader = RemoteReader(self.client, self.guard, self.registry)
        reconciler = OrphanReconciler(
            self.client,
            self.guard,
            self.registry,
            writer,
            file_filter=SnapshotFileFilter(config.excluded_files),
        )

        self.service = FolderSyncService(
            registry=self.registry,
            tree=self.tree,
            metadata=metadata,
            guard=self.guard,
            reader=reader,
            writer=writer,
            reconciler=reconciler,
            exporter=SnapshotExporter(config.include_tags, config.include_notes),
        )

        self.dispatcher = SyncTriggerDispatcher(
            registry=self.registry,
            tree=self.tree,
            handler=self.service,
            debounce_seconds=config.debounce_seconds,
            queue_size=config.event_queue_size,
        )
        self.tree.subscribe(self.dispatcher.publish_nowait)

        set_services(sync_service=self.service, auth_guard=self.guard, dispatcher=self.dispatcher)

    async def _check_credential(self) -> None:
        """Seed the credential from GITHUB_TOKEN if given, then validate what is stored."""
        if self.config.github_token:
            try:
                credential = await self.guard.connect(self.config.github_token)
                self.logger.info(f"Connected to GitHub as {credential.username}")
                return
            except Exception as e:
                error = handle_unexpected_error(e)
                self.logger.warning(f"GITHUB_TOKEN could not be used: {error.to_log_string()}")

        if await self.guard.check_stored_credential():
            self.logger.info("GitHub credential is valid")
        else:
            self.logger.warning("Not connected to GitHub - running unauthenticated until a token is set")

    async def start(self) -> None:
        """Start the application and all services."""
        if not self.config or not self.service:
            raise RuntimeError("Application not initialized. Call initialize() first.")

        self.running = True
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._signal_handler, sig)

        try:
            await self._check_credential()
            self.dispatcher.start()
            if self.api_server:
                await self.api_server.start_server()

            self.logger.info(f"marksync is running with {len(await self.registry.all())} shared folders")
            while self.running:
                await asyncio.sleep(1)

        except Exception as e:
            error = handle_unexpected_error(e)
            self.logger.error(f"Failed to start application: {error.to_log_string()}")
            raise

    async def stop(self) -> None:
        """Stop the application gracefully, shutting down all services."""
        self.logger.info("Initiating graceful shutdown...")
        self.running = False

        if self.api_server:
            await self.api_server.stop_server()
        if self.dispatcher:
            await self.dispatcher.stop()
        if self.registry:
            await self.registry.close()
        if self.client:
            await self.client.close()
        if self.database:
            await self.database.disconnect()

        self.logger.info("marksync stopped cleanly")

    def _signal_handler(self, signum) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM)."""
        self.logger.info(f"Received {signal.Signals(signum).name}, initiating graceful shutdown...")
        self.running = False


async def main() -> None:
    """Main entry point for marksync."""
    app = MarkSyncApp()
    try:
        await app.initialize()
        await app.start()
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        await app.stop()
        sys.exit(1)
    await app.stop()
