"""Unit tests for MinIO blob storage provider."""

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest


class TestMinioBlobStorage:
    """Tests for MinioBlobStorage against a mocked SDK client."""

    @pytest.fixture
    def mock_client(self):
        """Patch the blocking Minio client."""
        with patch(
            "mediavault.commons.infrastructure.blob.minio_provider.Minio"
        ) as mock_client_class:
            client = MagicMock()
            mock_client_class.return_value = client
            yield client

    @pytest.fixture
    def storage(self, mock_client):
        from mediavault.commons.infrastructure.blob.minio_provider import MinioBlobStorage

        return MinioBlobStorage(
            endpoint="localhost:9000",
            access_key="minioadmin",
            secret_key="minioadmin",
        )

    async def test_create_bucket(self, storage, mock_client):
        mock_client.bucket_exists.return_value = False

        assert await storage.create_bucket("mv-sources") is True
        mock_client.make_bucket.assert_called_once_with("mv-sources")

    async def test_create_existing_bucket(self, storage, mock_client):
        mock_client.bucket_exists.return_value = True

        assert await storage.create_bucket("mv-sources") is False
        mock_client.make_bucket.assert_not_called()

    async def test_copy_is_server_side(self, storage, mock_client):
        mock_client.stat_object.return_value = MagicMock(
            size=2048,
            content_type="video/mp4",
            last_modified=datetime(2026, 1, 1, tzinfo=UTC),
            etag="abc",
        )

        metadata = await storage.copy("srv-a", "videos/v1/720p.mp4", "srv-b", "backups/r1/x.mp4")

        bucket, path, source = mock_client.copy_object.call_args.args
        assert (bucket, path) == ("srv-b", "backups/r1/x.mp4")
        assert (source.bucket_name, source.object_name) == ("srv-a", "videos/v1/720p.mp4")
        assert metadata.size_bytes == 2048
        mock_client.get_object.assert_not_called()

    async def test_health_check(self, storage, mock_client):
        mock_client.list_buckets.return_value = []

        status = await storage.health_check()

        assert status.healthy is True
        assert status.details == {"endpoint": "localhost:9000"}

    async def test_health_check_failure(self, storage, mock_client):
        mock_client.list_buckets.side_effect = ConnectionError("connection refused")

        status = await storage.health_check()

        assert status.healthy is False
        assert "connection refused" in status.message
