"""
Tests for optional object storage and its local-only degradation.
"""

from manualgen.storage import ObjectStorage, StorageConfig


class RecordingClient:
    def __init__(self, exists=True, put_error=None, probe_error=None):
        self.exists = exists
        self.put_error = put_error
        self.probe_error = probe_error
        self.made = []
        self.objects = {}

    def bucket_exists(self, bucket_name):
        if self.probe_error:
            raise self.probe_error
        return self.exists

    def make_bucket(self, bucket_name):
        self.made.append(bucket_name)

    def put_object(self, bucket_name, object_name, data, length, content_type):
        if self.put_error:
            raise self.put_error
        self.objects[object_name] = data.read()


CONFIG = StorageConfig(endpoint="minio:9000", access_key="a", secret_key="s", bucket="docs")


class TestStorageConfig:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MINIO_ENDPOINT", "storage.local")
        monkeypatch.setenv("MINIO_PORT", "9001")
        monkeypatch.setenv("MINIO_ACCESS_KEY", "ak")
        monkeypatch.setenv("MINIO_SECRET_KEY", "sk")
        monkeypatch.setenv("MINIO_USE_SSL", "true")
        monkeypatch.delenv("MINIO_BUCKET_NAME", raising=False)
        config = StorageConfig.from_env()
        assert config.endpoint == "storage.local:9001"
        assert config.secure
        assert config.bucket == "documentacao"
        assert config.is_configured

    def test_missing_endpoint_is_unconfigured(self, monkeypatch):
        monkeypatch.delenv("MINIO_ENDPOINT", raising=False)
        assert not StorageConfig.from_env().is_configured


class TestObjectStorage:

    def test_unconfigured_storage_keeps_files_local(self):
        storage = ObjectStorage(StorageConfig())
        assert not storage.available
        assert storage.put_object("documents/a.md", b"x") is None

    def test_upload_returns_object_url(self):
        client = RecordingClient()
        storage = ObjectStorage(CONFIG, client=client)
        assert storage.put_object("documents/a.md", b"hello", "text/markdown") == "http://minio:9000/docs/documents/a.md"
        assert client.objects == {"documents/a.md": b"hello"}

    def test_missing_bucket_is_created(self):
        client = RecordingClient(exists=False)
        assert ObjectStorage(CONFIG, client=client).available
        assert client.made == ["docs"]

    def test_unreachable_endpoint_degrades(self):
        client = RecordingClient(probe_error=ConnectionRefusedError("refused"))
        storage = ObjectStorage(CONFIG, client=client)
        assert storage.put_object("documents/a.md", b"x") is None
        assert not storage.available

    def test_failed_upload_returns_none(self):
        storage = ObjectStorage(CONFIG, client=RecordingClient(put_error=OSError("disk full")))
        assert storage.available
        assert storage.put_object("documents/a.md", b"x") is None

    def test_upload_file_guesses_content_type(self, tmp_path):
        client = RecordingClient()
        path = tmp_path / "shot.png"
        path.write_bytes(b"PNG")
        url = ObjectStorage(CONFIG, client=client).upload_file(str(path), "screenshots/shot.png")
        assert url.endswith("/docs/screenshots/shot.png")
        assert client.objects["screenshots/shot.png"] == b"PNG"

    def test_upload_of_missing_file(self, tmp_path):
        storage = ObjectStorage(CONFIG, client=RecordingClient())
        assert storage.upload_file(str(tmp_path / "nope.png")) is None
