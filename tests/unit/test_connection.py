"""
Unit tests for ConnectionManager.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from manifest_engine.core.connection import ConnectionManager
from manifest_engine.exceptions import InitializationError


@pytest.fixture
def connection_config():
    return {
        "mongo_uri": "mongodb://localhost:27017",
        "db_name": "events",
        "max_pool_size": 10,
        "min_pool_size": 1,
    }


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1})
    return client


class TestConnectionManager:
    """Test the connection lifecycle."""

    @pytest.mark.asyncio
    async def test_initialize_pings(self, connection_config, mock_client):
        """Test that initialize pings the server and exposes collections."""
        with patch(
            "manifest_engine.core.connection.AsyncIOMotorClient", return_value=mock_client
        ) as client_cls:
            manager = ConnectionManager(**connection_config)
            await manager.initialize()

        mock_client.admin.command.assert_awaited_once_with("ping")
        assert client_cls.call_args.kwargs["appname"] == "MANIFEST_ENGINE"
        assert manager.initialized
        manager.collection("rooms")
        mock_client.__getitem__.assert_called_with("events")

    @pytest.mark.asyncio
    async def test_initialize_twice_is_skipped(self, connection_config, mock_client):
        """Test that re-initialization does not open a second client."""
        with patch(
            "manifest_engine.core.connection.AsyncIOMotorClient", return_value=mock_client
        ) as client_cls:
            manager = ConnectionManager(**connection_config)
            await manager.initialize()
            await manager.initialize()
        assert client_cls.call_count == 1

    @pytest.mark.asyncio
    async def test_unreachable_server(self, connection_config, mock_client):
        """Test that connection failures become InitializationError."""
        mock_client.admin.command = AsyncMock(
            side_effect=ServerSelectionTimeoutError("no servers")
        )
        with patch("manifest_engine.core.connection.AsyncIOMotorClient", return_value=mock_client):
            manager = ConnectionManager(**connection_config)
            with pytest.raises(InitializationError) as exc_info:
                await manager.initialize()

        assert exc_info.value.db_name == "events"
        assert exc_info.value.context["error_type"] == "ServerSelectionTimeoutError"
        assert not manager.initialized
        mock_client.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, connection_config, mock_client):
        """Test that shutdown closes once and can be repeated."""
        with patch("manifest_engine.core.connection.AsyncIOMotorClient", return_value=mock_client):
            manager = ConnectionManager(**connection_config)
            await manager.initialize()
            await manager.shutdown()
            await manager.shutdown()

        mock_client.close.assert_called_once()
        assert not manager.initialized

    def test_db_before_initialize(self, connection_config):
        """Test that database access requires initialize()."""
        manager = ConnectionManager(**connection_config)
        with pytest.raises(RuntimeError):
            manager.mongo_db
