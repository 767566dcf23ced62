"""
Main entry point for euphony.

Initializes all components and starts the server.
"""

import logging
import os
from typing import Optional

import uvicorn

from .audio import AudioSessionDriver, create_backend
from .catalog import CatalogStore, build_catalog, generate_sample_catalog, load_catalog_csv
from .config_manager import DEFAULT_SAMPLE_AUDIO_URLS, ConfigManager
from .database import Database, StorageRepository
from .history import HistoryManager
from .library import LibraryManager
from .playback import PlaybackController
from .recommendations import RecommendationService
from .resolver import ResourceResolver
from .web.server import create_app

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


class EuphonyServer:
    """Main server class that orchestrates all components."""

    def __init__(self, db_path: Optional[str] = None, catalog_path: Optional[str] = None):
        """
        Initialize all components.

        Args:
            db_path: SQLite database path (defaults to ~/.euphony/euphony.db)
            catalog_path: CSV catalog to merge in (overrides catalog_csv_path config)
        """
        logger.info("Initializing euphony server...")

        # Initialize database and configuration
        self.database = Database(db_path)
        self.config_manager = ConfigManager(self.database)
        self.storage = StorageRepository(self.database)

        # Build the session catalog
        self.catalog = CatalogStore(self._load_catalog(catalog_path))
        logger.info("Catalog ready with %s songs", len(self.catalog))

        self.history_manager = HistoryManager(
            self.storage,
            recently_played_limit=self.config_manager.get_int("recently_played_limit", 20),
            listening_history_limit=self.config_manager.get_int("listening_history_limit", 50),
        )
        self.library_manager = LibraryManager(self.storage)
        self.recommendation_service = RecommendationService(
            self.catalog,
            self.history_manager,
            self.library_manager,
            limit=self.config_manager.get_int("recommendation_limit", 20),
        )

        # Audio
        backend = create_backend(
            self.config_manager.get("audio_backend"), self.config_manager.get("audio_sink")
        )
        self.audio_driver = AudioSessionDriver(
            backend,
            watchdog_grace_seconds=self.config_manager.get_float("watchdog_grace_seconds", 2.0),
        )
        audio_urls = self.config_manager.get_list("sample_audio_urls")
        if not audio_urls:
            logger.warning("No sample audio URLs configured, using built-in pool")
            audio_urls = DEFAULT_SAMPLE_AUDIO_URLS.split(",")
        self.resolver = ResourceResolver(audio_urls)

        # PlaybackController
        self.playback_controller = PlaybackController(
            self.catalog,
            self.audio_driver,
            self.resolver,
            self.history_manager,
            self.recommendation_service,
            fallback_duration_seconds=self.config_manager.get_int("fallback_duration_seconds", 180),
            restart_threshold_seconds=self.config_manager.get_float("restart_threshold_seconds", 3.0),
            shuffle_exclusion_count=self.config_manager.get_int("shuffle_exclusion_count", 10),
            volume=self.config_manager.get_float("default_volume", 0.7),
        )

        # Web server
        self.web_app = create_app(
            self.catalog,
            self.playback_controller,
            self.history_manager,
            self.library_manager,
            self.recommendation_service,
            self.config_manager,
        )

        # Uvicorn server instance (will be created in run())
        self.uvicorn_server = None

        logger.info("euphony server initialized")

    def _load_catalog(self, catalog_path: Optional[str]):
        """Merge the CSV catalog (if any) with the built-in sample catalog."""
        sample = generate_sample_catalog()
        path = catalog_path or self.config_manager.get("catalog_csv_path")
        if not path:
            return sample

        path = os.path.expanduser(path)
        try:
            csv_songs = load_catalog_csv(path)
        except OSError as e:
            logger.warning("Could not read catalog %s: %s. Using sample catalog only.", path, e)
            return sample

        logger.info("Loaded %s songs from %s", len(csv_songs), path)
        return build_catalog(csv_songs, sample)

    def run(self, host: str = "0.0.0.0", port: int = 8000):
        """Start the server."""
        logger.info("Starting euphony server...")

        logger.info("=" * 60)
        logger.info("euphony is running!")
        logger.info("API: http://%s:%s/api", host, port)
        logger.info("=" * 60)

        # Use uvicorn Server API for better control over shutdown
        config = uvicorn.Config(self.web_app, host=host, port=port, log_level="info")
        self.uvicorn_server = uvicorn.Server(config)
        self.uvicorn_server.run()

    def stop(self):
        """Stop all components."""
        logger.info("Stopping euphony server...")

        if self.uvicorn_server:
            self.uvicorn_server.should_exit = True

        if self.playback_controller:
            self.playback_controller.shutdown()

        if self.database:
            self.database.close()

        logger.info("euphony server stopped")


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="euphony - Music streaming playback server")
    parser.add_argument("--host", default="0.0.0.0", help="Address to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on (default: 8000)")
    parser.add_argument("--db", dest="db_path", help="SQLite database path")
    parser.add_argument("--catalog", dest="catalog_path", help="CSV catalog to load")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    server = EuphonyServer(db_path=args.db_path, catalog_path=args.catalog_path)
    try:
        server.run(host=args.host, port=args.port)
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()


if __name__ == "__main__":
    main()
