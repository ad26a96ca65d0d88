import subprocess
from datetime import timedelta
from pathlib import Path

import pytest
from botocore.exceptions import ClientError
from django.utils import timezone

from transcoder.models import Post
from transcoder.s3 import ObjectStore


def client_error(code: str, op: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls ObjectStore makes."""

    def __init__(self):
        self.buckets = {"videos"}
        self.objects = {}          # (bucket, key) -> bytes
        self.content_types = {}    # (bucket, key) -> str
        self.upload_order = []
        self.policies = {}
        self.fail_upload = None    # callable(key) -> bool

    def head_bucket(self, Bucket):
        if Bucket not in self.buckets:
            raise client_error("404", "HeadBucket")

    def create_bucket(self, Bucket, **kwargs):
        self.buckets.add(Bucket)

    def put_bucket_policy(self, Bucket, Policy):
        self.policies[Bucket] = Policy

    def download_file(self, bucket, key, filename):
        if (bucket, key) not in self.objects:
            raise client_error("404", "HeadObject")
        Path(filename).write_bytes(self.objects[(bucket, key)])

    def upload_file(self, filename, bucket, key, ExtraArgs=None):
        if self.fail_upload and self.fail_upload(key):
            raise client_error("InternalError", "PutObject")
        self.objects[(bucket, key)] = Path(filename).read_bytes()
        self.content_types[(bucket, key)] = (ExtraArgs or {}).get("ContentType")
        self.upload_order.append(key)


class FakeFFmpeg:
    """
    Replaces subprocess.run for ffmpeg: writes `segments` .ts files and a
    VOD playlist listing them, or fails with `returncode`.
    """

    def __init__(self, segments: int = 3, returncode: int = 0, stderr: bytes = b""):
        self.segments = segments
        self.returncode = returncode
        self.stderr = stderr
        self.calls = []

    def __call__(self, cmd, check=False, stdout=None, stderr=None, **kwargs):
        self.calls.append(cmd)
        if self.returncode:
            raise subprocess.CalledProcessError(self.returncode, cmd, output=b"", stderr=self.stderr)

        manifest = Path(cmd[-1])
        pattern = cmd[cmd.index("-hls_segment_filename") + 1]
        lines = ["#EXTM3U", "#EXT-X-VERSION:3", "#EXT-X-TARGETDURATION:10", "#EXT-X-MEDIA-SEQUENCE:0"]
        for i in range(self.segments):
            seg = Path(pattern % i)
            seg.write_bytes(b"segment %d" % i)
            lines += ["#EXTINF:10.000000,", seg.name]
        lines.append("#EXT-X-ENDLIST")
        manifest.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return subprocess.CompletedProcess(cmd, 0, b"", b"")


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def store(s3_client):
    return ObjectStore(
        s3_client,
        region="us-east-1",
        public_endpoint="https://public",
        url_style="path",
        cdn_domain="",
    )


@pytest.fixture
def fake_ffmpeg(monkeypatch):
    fake = FakeFFmpeg()
    monkeypatch.setattr("transcoder.ffmpeg.subprocess.run", fake)
    return fake


@pytest.fixture
def work_root(tmp_path):
    root = tmp_path / "work"
    root.mkdir()
    return root


@pytest.fixture
def make_post(db):
    """Create a post; `age` in seconds pushes created_at into the past."""

    def _make(media_url="https://store/videos/u1/123-a.mp4", *, type=Post.Type.VIDEO,
              status=Post.ProcessingStatus.PENDING, age=0):
        post = Post.objects.create(type=type, media_url=media_url, processing_status=status)
        if age:
            Post.objects.filter(pk=post.pk).update(created_at=timezone.now() - timedelta(seconds=age))
            post.refresh_from_db()
        return post

    return _make
