"""In-memory stand-ins for the object store, the encoder and the executor."""

from concurrent.futures import Future
from pathlib import Path

from streaming.encoder import EncodeResult
from streaming.errors import EmptyObject, EncodeFailure, NotFound, StoreFailure
from streaming.s3 import ObjectMetadata, ObjectStore


class FakeStore(ObjectStore):
    """ObjectStore keeping objects in a dict; URL and key-scheme logic is the real one."""

    def __init__(self, bucket: str = "media", public_base_url: str = "http://minio:9000"):
        super().__init__(None, bucket, public_base_url=public_base_url, chunk_size=4)
        self.objects: dict[str, tuple[bytes, str | None]] = {}
        self.deleted: list[str] = []
        self.uploads: list[str] = []
        self.fail_upload_when = None  # predicate(key) -> bool
        self.fail_delete = False

    def put(self, key: str, data: bytes, content_type: str | None = "video/mp4") -> None:
        self.objects[key] = (data, content_type)

    def _check_upload(self, key: str) -> None:
        if self.fail_upload_when and self.fail_upload_when(key):
            raise StoreFailure(f"Upload failed for {key}: simulated")

    def upload(self, data: bytes, key: str, content_type: str) -> str:
        self._check_upload(key)
        self.objects[key] = (bytes(data), content_type)
        self.uploads.append(key)
        return self.public_url(key)

    def upload_file(self, local_path, key: str, content_type: str | None = None) -> str:
        self._check_upload(key)
        self.objects[key] = (Path(local_path).read_bytes(), content_type)
        self.uploads.append(key)
        return self.public_url(key)

    def delete(self, key: str) -> None:
        if self.fail_delete:
            raise StoreFailure(f"Delete failed for {key}: simulated")
        self.objects.pop(key, None)
        self.deleted.append(key)

    def head_metadata(self, key: str) -> ObjectMetadata:
        if key not in self.objects:
            raise NotFound(f"Object not found: {key}")
        data, content_type = self.objects[key]
        return ObjectMetadata(size=len(data), content_type=content_type, last_modified=None)

    def open_range(self, key: str, start=None, end=None):
        if key not in self.objects:
            raise NotFound(f"Object not found: {key}")
        data, _ = self.objects[key]
        if not data:
            raise EmptyObject(f"Empty file: {key}")
        lo = start or 0
        hi = len(data) - 1 if end is None else end
        window = data[lo:hi + 1]
        return iter([window[i:i + self.chunk_size] for i in range(0, len(window), self.chunk_size)])

    def read_text(self, key: str, encoding: str = "utf-8") -> str:
        if key not in self.objects:
            raise NotFound(f"Object not found: {key}")
        return self.objects[key][0].decode(encoding)

    def download_to_file(self, key: str, local_path) -> None:
        if key not in self.objects:
            raise NotFound(f"Object not found: {key}")
        Path(local_path).write_bytes(self.objects[key][0])

    def presigned_url(self, key: str, ttl_seconds=None) -> str:
        return f"{self.public_url(key)}?X-Amz-Expires={ttl_seconds or self.presign_ttl}"


class FakeEncoder:
    """Writes a small manifest plus `segments` .ts files per quality."""

    def __init__(self, segments: int = 3, fail_on: set[str] | None = None):
        self.segments = segments
        self.fail_on = fail_on or set()
        self.calls: list[tuple[str, Path]] = []

    def encode(self, input_path, output_dir, profile, segment_seconds):
        output_dir = Path(output_dir)
        self.calls.append((profile.quality, output_dir))
        if profile.quality in self.fail_on:
            raise EncodeFailure(f"ffmpeg failed for {profile.quality}: simulated")

        output_dir.mkdir(parents=True, exist_ok=True)
        names = [f"segment_{i:03d}.ts" for i in range(self.segments)]
        for name in names:
            (output_dir / name).write_bytes(f"{profile.quality}:{name}".encode())
        manifest = output_dir / f"{profile.quality}.m3u8"
        body = "".join(f"#EXTINF:{segment_seconds:.3f},\n{name}\n" for name in names)
        manifest.write_text(
            f"#EXTM3U\n#EXT-X-VERSION:3\n#EXT-X-TARGETDURATION:{segment_seconds}\n{body}#EXT-X-ENDLIST\n",
            encoding="utf-8",
        )
        return EncodeResult(manifest_path=manifest, segment_paths=[output_dir / n for n in reversed(names)])


class ImmediateExecutor:
    """Runs submitted work inline."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True):
        pass


class DeferredExecutor:
    """Queues work until run_all() is called."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_all(self):
        while self.pending:
            future, fn, args, kwargs = self.pending.pop(0)
            future.set_result(fn(*args, **kwargs))

    def shutdown(self, wait=True):
        pass
