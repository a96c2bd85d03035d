"""Tests for the S3 storage client.

A MagicMock stands in for the boto3 client; no network calls.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from engui.storage.s3 import (
    S3Config,
    S3Service,
    S3StorageError,
    sanitize_file_name,
    strip_volume_prefix,
)


def client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "Operation",
    )


@pytest.fixture
def boto_client() -> MagicMock:
    client = MagicMock()
    client.head_object.side_effect = client_error("404", 404)
    return client


@pytest.fixture
def service(boto_client) -> S3Service:
    config = S3Config(
        endpoint_url="https://s3api-eu-ro-1.runpod.io/",
        access_key_id="key",
        secret_access_key="secret",
        bucket_name="vol-123",
        retry_delay=0.5,
    )
    return S3Service(config, client=boto_client, sleep=lambda _: None)


class TestHelpers:
    """Test name and path helpers."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("my photo (1).png", "my_photo_1.png"),
            ("__weird  name__.wav", "weird_name_.wav"),
            ("[a]b{c}.mp4", "abc.mp4"),
        ],
    )
    def test_sanitize_file_name(self, name, expected):
        assert sanitize_file_name(name) == expected

    def test_strip_volume_prefix(self):
        assert strip_volume_prefix("/runpod-volume/loras/a.safetensors") == "loras/a.safetensors"
        assert strip_volume_prefix("/loras/a.safetensors") == "loras/a.safetensors"

    def test_config_requires_credentials(self):
        """Missing fields are named in the error."""
        with pytest.raises(ValueError, match="bucket_name"):
            S3Config("https://x", "key", "secret", "")

    def test_from_settings_defaults_region(self):
        service = S3Service.from_settings(
            {"endpointUrl": "https://x", "accessKeyId": "k", "secretAccessKey": "s", "bucketName": "b"},
            client=MagicMock(),
        )
        assert service.config.region == "us-east-1"
        assert service.bucket == "b"


class TestListFiles:
    """Test S3Service.list_files."""

    def test_directories_first_marker_hidden(self, service, boto_client):
        """Folder markers and nested keys are not listed as files."""
        boto_client.list_objects_v2.return_value = {
            "CommonPrefixes": [{"Prefix": "loras/sub/"}],
            "Contents": [
                {"Key": "loras/a.safetensors", "Size": 10, "LastModified": datetime(2026, 1, 1, tzinfo=timezone.utc)},
                {"Key": "loras/folder-marker.txt", "Size": 0},
            ],
        }
        entries = service.list_files("loras")
        assert [e["key"] for e in entries] == ["loras/sub/", "loras/a.safetensors"]
        assert entries[0]["type"] == "directory"
        assert entries[1]["extension"] == "safetensors"
        assert boto_client.list_objects_v2.call_args.kwargs["Prefix"] == "loras/"

    def test_follows_continuation(self, service, boto_client):
        """Truncated listings are paged through."""
        boto_client.list_objects_v2.side_effect = [
            {"Contents": [{"Key": "a.png", "Size": 1}], "IsTruncated": True, "NextContinuationToken": "t1"},
            {"Contents": [{"Key": "b.png", "Size": 1}]},
        ]
        assert [e["key"] for e in service.list_files()] == ["a.png", "b.png"]
        assert boto_client.list_objects_v2.call_args.kwargs["ContinuationToken"] == "t1"


class TestRetries:
    """Test retry behavior of S3Service."""

    def test_retries_transient_errors(self, boto_client):
        """A 503 is retried with growing delays."""
        delays = []
        config = S3Config("https://x", "k", "s", "b", retry_delay=1.0)
        service = S3Service(config, client=boto_client, sleep=delays.append)
        boto_client.delete_object.side_effect = [client_error("ServiceUnavailable", 503), None]

        service.delete_file("a.png")
        assert boto_client.delete_object.call_count == 2
        assert delays == [1.0]

    def test_gives_up_after_max_retries(self, boto_client):
        config = S3Config("https://x", "k", "s", "b", max_retries=3)
        service = S3Service(config, client=boto_client, sleep=lambda _: None)
        boto_client.delete_object.side_effect = client_error("SlowDown", 503)

        with pytest.raises(S3StorageError):
            service.delete_file("a.png")
        assert boto_client.delete_object.call_count == 3

    def test_permanent_errors_are_not_retried(self, service, boto_client):
        """AccessDenied fails at once and keeps its code."""
        boto_client.get_object.side_effect = client_error("AccessDenied", 403)
        with pytest.raises(S3StorageError) as exc_info:
            service.download_file("a.png")
        assert exc_info.value.code == "AccessDenied"
        assert boto_client.get_object.call_count == 1


class TestWrites:
    """Test uploads and folder creation."""

    def test_upload_returns_volume_path(self, service, boto_client):
        result = service.upload_file(b"img", "face (1).png", "image/png", "/input/")
        assert result == {
            "s3Url": "https://s3api-eu-ro-1.runpod.io/vol-123/input/face_1.png",
            "filePath": "/runpod-volume/input/face_1.png",
            "key": "input/face_1.png",
        }
        assert boto_client.put_object.call_args.kwargs["ContentType"] == "image/png"

    def test_upload_avoids_existing_keys(self, service, boto_client):
        """An existing key gets a numeric suffix."""
        boto_client.head_object.side_effect = [{}, client_error("404", 404)]
        result = service.upload_file(b"x", "a.png")
        assert result["key"] == "a_1.png"

    def test_upload_multiple_files(self, service):
        paths = service.upload_multiple_files(
            [(b"a", "face.png", "image/png"), (b"b", "voice.wav", "audio/wav")], "input"
        )
        assert paths == ["/runpod-volume/input/face.png", "/runpod-volume/input/voice.wav"]

    def test_create_folder_replaces_clashing_object(self, service, boto_client):
        """A zero-length object named like the folder is removed first."""
        boto_client.head_object.side_effect = None
        boto_client.head_object.return_value = {}
        assert service.create_folder("/outputs/") == "outputs/"
        boto_client.delete_object.assert_called_once_with(Bucket="vol-123", Key="outputs")
        boto_client.put_object.assert_called_once_with(
            Bucket="vol-123", Key="outputs/folder-marker.txt", Body=b""
        )

    def test_file_exists_not_found(self, service):
        assert service.file_exists("missing.png") is False
