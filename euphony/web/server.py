"""
FastAPI web server for euphony.

Provides the REST API for catalog browsing, playback control, history,
recommendations, library management and configuration.
"""

import logging
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel

from ..catalog import CatalogStore
from ..config_manager import ConfigManager
from ..history import HistoryManager
from ..library import LibraryManager
from ..models import Song
from ..playback import PlaybackController
from ..recommendations import RecommendationService

logger = logging.getLogger(__name__)


# Request models
class PlayRequest(BaseModel):
    song_id: str


class SeekRequest(BaseModel):
    position_seconds: float


class VolumeRequest(BaseModel):
    level: float


class InteractionRequest(BaseModel):
    kind: str = "pointer"


class PlaylistRequest(BaseModel):
    name: str


class ConfigUpdateRequest(BaseModel):
    key: str
    value: str


def _songs(songs: List[Song]) -> List[dict]:
    return [song.to_dict() for song in songs]


# Dependency to get components
def get_catalog(request: Request) -> CatalogStore:
    """Get CatalogStore from app state."""
    return request.app.state.catalog


def get_playback_controller(request: Request) -> PlaybackController:
    """Get PlaybackController from app state."""
    return request.app.state.playback_controller


def get_history_manager(request: Request) -> HistoryManager:
    """Get HistoryManager from app state."""
    return request.app.state.history_manager


def get_library_manager(request: Request) -> LibraryManager:
    """Get LibraryManager from app state."""
    return request.app.state.library_manager


def get_recommendation_service(request: Request) -> RecommendationService:
    """Get RecommendationService from app state."""
    return request.app.state.recommendation_service


def get_config_manager(request: Request) -> ConfigManager:
    """Get ConfigManager from app state."""
    return request.app.state.config_manager


def create_app(
    catalog: CatalogStore,
    playback_controller: PlaybackController,
    history_manager: HistoryManager,
    library_manager: LibraryManager,
    recommendation_service: RecommendationService,
    config_manager: ConfigManager,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        catalog: CatalogStore instance
        playback_controller: PlaybackController instance
        history_manager: HistoryManager instance
        library_manager: LibraryManager instance
        recommendation_service: RecommendationService instance
        config_manager: ConfigManager instance

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(title="euphony", version="1.0.0")

    # Store components in app state
    app.state.catalog = catalog
    app.state.playback_controller = playback_controller
    app.state.history_manager = history_manager
    app.state.library_manager = library_manager
    app.state.recommendation_service = recommendation_service
    app.state.config_manager = config_manager

    def require_song(catalog: CatalogStore, song_id: str) -> Song:
        song = catalog.get(song_id)
        if song is None:
            raise HTTPException(status_code=404, detail="Song not found")
        return song

    # Catalog endpoints
    @app.get("/api/songs")
    async def list_songs(catalog: CatalogStore = Depends(get_catalog)):
        """Get the full catalog in catalog order."""
        return {"songs": _songs(catalog.all())}

    @app.get("/api/songs/search")
    async def search_songs(q: str = "", catalog: CatalogStore = Depends(get_catalog)):
        """Search songs by name, artist, album or genre."""
        result = catalog.search(q)
        return {"results": _songs(result.results), "suggestions": _songs(result.suggestions)}

    @app.get("/api/songs/{song_id}")
    async def get_song(
        song_id: str,
        catalog: CatalogStore = Depends(get_catalog),
        library: LibraryManager = Depends(get_library_manager),
    ):
        song = require_song(catalog, song_id)
        return {"song": song.to_dict(), "liked": library.is_liked(song_id)}

    @app.get("/api/artists")
    async def list_artists(catalog: CatalogStore = Depends(get_catalog)):
        """Get the artists with the most songs."""
        return {"artists": [artist.to_dict() for artist in catalog.top_artists()]}

    @app.get("/api/artists/{name}/songs")
    async def artist_songs(name: str, catalog: CatalogStore = Depends(get_catalog)):
        return {"artist": name, "songs": _songs(catalog.by_artist(name))}

    @app.get("/api/moods")
    async def list_moods(catalog: CatalogStore = Depends(get_catalog)):
        return {"moods": [mood.to_dict() for mood in catalog.mood_categories()]}

    @app.get("/api/moods/{mood}/songs")
    async def mood_songs(
        mood: str,
        recommendations: RecommendationService = Depends(get_recommendation_service),
    ):
        return {"mood": mood, "songs": _songs(recommendations.get_for_mood(mood))}

    # Playback endpoints
    @app.get("/api/playback/status")
    async def get_playback_status(
        playback: PlaybackController = Depends(get_playback_controller),
    ):
        """Get current playback status."""
        return playback.get_status()

    @app.post("/api/playback/play")
    async def play(
        request_data: PlayRequest,
        catalog: CatalogStore = Depends(get_catalog),
        playback: PlaybackController = Depends(get_playback_controller),
    ):
        """Play a song from the catalog."""
        song = require_song(catalog, request_data.song_id)
        try:
            started = playback.play(song)
        except Exception as e:
            logger.error("Error starting playback of %s: %s", song.id, e, exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))
        return {
            "status": "playing" if started else "awaiting_interaction",
            "current_song": song.to_dict(),
        }

    @app.post("/api/playback/pause")
    async def pause(playback: PlaybackController = Depends(get_playback_controller)):
        """Pause playback."""
        if playback.pause():
            return {"status": "paused"}
        raise HTTPException(status_code=400, detail="Nothing is playing")

    @app.post("/api/playback/resume")
    async def resume(playback: PlaybackController = Depends(get_playback_controller)):
        """Resume paused playback."""
        if playback.resume():
            return {"status": "playing"}
        raise HTTPException(status_code=400, detail="Failed to resume playback")

    @app.post("/api/playback/stop")
    async def stop(playback: PlaybackController = Depends(get_playback_controller)):
        """Stop playback and release audio."""
        if playback.stop():
            return {"status": "stopped"}
        return {"status": "idle"}

    @app.post("/api/playback/next")
    async def next_song(playback: PlaybackController = Depends(get_playback_controller)):
        """Skip to the next song."""
        if len(playback.catalog) == 0:
            return {"status": "no_next_song", "message": "Catalog is empty"}
        playback.next()
        return {"status": "next", "current_song": playback.get_status()["current_song"]}

    @app.post("/api/playback/previous")
    async def previous(playback: PlaybackController = Depends(get_playback_controller)):
        """Restart the current song or go to the previous one."""
        if len(playback.catalog) == 0:
            return {"status": "no_previous_song", "message": "Catalog is empty"}
        playback.previous()
        return {"status": "previous", "current_song": playback.get_status()["current_song"]}

    @app.post("/api/playback/seek")
    async def seek(
        request_data: SeekRequest,
        playback: PlaybackController = Depends(get_playback_controller),
    ):
        """Seek to an absolute position (clamped to the song's duration)."""
        position = playback.seek(request_data.position_seconds)
        return {"status": "seeked", "position_seconds": position}

    @app.post("/api/playback/volume")
    async def set_volume(
        request_data: VolumeRequest,
        playback: PlaybackController = Depends(get_playback_controller),
    ):
        level = playback.set_volume(request_data.level)
        return {"status": "updated", "volume": level}

    @app.post("/api/playback/shuffle")
    async def toggle_shuffle(playback: PlaybackController = Depends(get_playback_controller)):
        return {"shuffle": playback.toggle_shuffle()}

    @app.post("/api/playback/repeat")
    async def toggle_repeat(playback: PlaybackController = Depends(get_playback_controller)):
        return {"repeat": playback.toggle_repeat()}

    @app.post("/api/interaction")
    async def user_interaction(
        request_data: InteractionRequest,
        playback: PlaybackController = Depends(get_playback_controller),
    ):
        """
        Report a user gesture from the client.

        Starts playback that was blocked waiting for user interaction.
        """
        started = playback.notify_user_interaction(request_data.kind)
        return {"started": started}

    # History endpoints
    @app.get("/api/history/recent")
    async def recently_played(history: HistoryManager = Depends(get_history_manager)):
        return {"songs": _songs(history.get_recently_played())}

    @app.get("/api/history/listening")
    async def listening_history(history: HistoryManager = Depends(get_history_manager)):
        return {"songs": _songs(history.get_listening_history())}

    # Recommendation endpoints
    @app.get("/api/recommendations")
    async def get_recommendations(
        recommendations: RecommendationService = Depends(get_recommendation_service),
    ):
        """Get history-based recommendations."""
        return {"songs": _songs(recommendations.get_recommendations())}

    @app.get("/api/recommendations/trending")
    async def get_trending(
        recommendations: RecommendationService = Depends(get_recommendation_service),
    ):
        return {"songs": _songs(recommendations.get_trending())}

    @app.get("/api/recommendations/personalized")
    async def get_personalized(
        recommendations: RecommendationService = Depends(get_recommendation_service),
    ):
        return {"songs": _songs(recommendations.get_personalized())}

    @app.get("/api/recommendations/similar/{song_id}")
    async def get_similar(
        song_id: str,
        catalog: CatalogStore = Depends(get_catalog),
        recommendations: RecommendationService = Depends(get_recommendation_service),
    ):
        song = require_song(catalog, song_id)
        return {"songs": _songs(recommendations.get_similar(song))}

    # Library endpoints
    @app.get("/api/library")
    async def get_library(library: LibraryManager = Depends(get_library_manager)):
        """Get liked songs, saved songs and playlists."""
        return {
            "liked_songs": _songs(library.get_liked_songs()),
            "songs": _songs(library.get_library()),
            "playlists": [playlist.to_dict() for playlist in library.get_playlists()],
        }

    @app.post("/api/library/liked/{song_id}")
    async def toggle_like(
        song_id: str,
        catalog: CatalogStore = Depends(get_catalog),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Like a song, or unlike it if already liked."""
        song = require_song(catalog, song_id)
        return {"song_id": song_id, "liked": library.toggle_like(song)}

    @app.post("/api/library/songs/{song_id}")
    async def add_to_library(
        song_id: str,
        catalog: CatalogStore = Depends(get_catalog),
        library: LibraryManager = Depends(get_library_manager),
    ):
        song = require_song(catalog, song_id)
        if library.add_to_library(song):
            return {"status": "added"}
        return {"status": "already_in_library"}

    @app.delete("/api/library/songs/{song_id}")
    async def remove_from_library(
        song_id: str,
        library: LibraryManager = Depends(get_library_manager),
    ):
        if library.remove_from_library(song_id):
            return {"status": "removed"}
        return {"status": "not_in_library"}

    # Playlist endpoints
    @app.get("/api/playlists")
    async def list_playlists(library: LibraryManager = Depends(get_library_manager)):
        return {"playlists": [playlist.to_dict() for playlist in library.get_playlists()]}

    @app.post("/api/playlists")
    async def create_playlist(
        request_data: PlaylistRequest,
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Create an empty playlist."""
        playlist = library.create_playlist(request_data.name)
        if playlist is None:
            raise HTTPException(status_code=400, detail="Playlist name must not be blank")
        return {"status": "created", "playlist": playlist.to_dict()}

    @app.get("/api/playlists/{playlist_id}")
    async def get_playlist(
        playlist_id: str,
        library: LibraryManager = Depends(get_library_manager),
    ):
        playlist = library.get_playlist(playlist_id)
        if playlist is None:
            raise HTTPException(status_code=404, detail="Playlist not found")
        return {"playlist": playlist.to_dict()}

    @app.delete("/api/playlists/{playlist_id}")
    async def delete_playlist(
        playlist_id: str,
        library: LibraryManager = Depends(get_library_manager),
    ):
        if not library.remove_playlist(playlist_id):
            raise HTTPException(status_code=404, detail="Playlist not found")
        return {"status": "removed"}

    @app.post("/api/playlists/{playlist_id}/songs/{song_id}")
    async def add_to_playlist(
        playlist_id: str,
        song_id: str,
        catalog: CatalogStore = Depends(get_catalog),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Add a song to a playlist (no duplicates)."""
        song = require_song(catalog, song_id)
        if library.get_playlist(playlist_id) is None:
            raise HTTPException(status_code=404, detail="Playlist not found")
        if library.add_to_playlist(playlist_id, song):
            return {"status": "added"}
        return {"status": "already_in_playlist"}

    @app.delete("/api/playlists/{playlist_id}/songs/{song_id}")
    async def remove_from_playlist(
        playlist_id: str,
        song_id: str,
        library: LibraryManager = Depends(get_library_manager),
    ):
        if library.get_playlist(playlist_id) is None:
            raise HTTPException(status_code=404, detail="Playlist not found")
        if library.remove_from_playlist(playlist_id, song_id):
            return {"status": "removed"}
        return {"status": "not_in_playlist"}

    # Configuration endpoints
    @app.get("/api/config")
    async def get_config(config: ConfigManager = Depends(get_config_manager)):
        """
        Get all configuration with schema metadata.

        Returns:
            - values: Current configuration values
            - schema: Metadata for each editable key
            - groups: Group definitions for organizing the config UI
        """
        return config.get_full_config()

    @app.patch("/api/config")
    async def update_config(
        request_data: ConfigUpdateRequest,
        config: ConfigManager = Depends(get_config_manager),
    ):
        """Update a configuration value (takes effect on restart)."""
        if not config.set(request_data.key, request_data.value):
            raise HTTPException(status_code=500, detail="Failed to update configuration")
        return {
            "status": "updated",
            "key": request_data.key,
            "value": request_data.value,
        }

    return app
