import threading
from unittest import mock

import pytest
from django.db import DatabaseError, connection

from conftest import FakeFFmpeg
from transcoder.ffmpeg import EncodeParams, TranscodeEngine
from transcoder.jobs import JobStore
from transcoder.models import Post
from transcoder.pipeline import TranscodePipeline
from transcoder.worker import Worker

Status = Post.ProcessingStatus

pytestmark = pytest.mark.django_db

RAW_URL = "https://store/videos/u1/123-a.mp4"


@pytest.fixture
def pipeline(store, work_root):
    return TranscodePipeline(
        store=store,
        engine=TranscodeEngine(EncodeParams(), ffmpeg_bin="ffmpeg"),
        raw_bucket="videos",
        work_root=work_root,
    )


@pytest.fixture
def worker(pipeline):
    return Worker(jobs=JobStore(), pipeline=pipeline, idle_interval=0, error_backoff=0)


@pytest.fixture
def raw_upload(s3_client):
    s3_client.objects[("videos", "u1/123-a.mp4")] = b"raw video bytes"


def test_successful_run_publishes_manifest(worker, make_post, raw_upload, fake_ffmpeg, s3_client, work_root, settings):
    settings.S3_HLS_BUCKET = "hls"
    post = make_post(RAW_URL)

    assert worker.run_once() is True

    post.refresh_from_db()
    assert post.processing_status == Status.COMPLETED
    assert post.media_url == f"https://public/hls/{post.id}/index.m3u8"
    assert ("hls", f"{post.id}/index.m3u8") in s3_client.objects
    assert ("hls", f"{post.id}/segment_002.ts") in s3_client.objects
    # the encoder read the file that was downloaded
    assert fake_ffmpeg.calls[0][fake_ffmpeg.calls[0].index("-i") + 1].endswith("input.mp4")
    assert list(work_root.iterdir()) == []


def test_idle_when_nothing_pending(worker, make_post):
    make_post(status=Status.COMPLETED)
    assert worker.run_once() is False


def test_encoder_failure_marks_failed(worker, make_post, raw_upload, monkeypatch, s3_client, work_root):
    monkeypatch.setattr("transcoder.ffmpeg.subprocess.run", FakeFFmpeg(returncode=1, stderr=b"moov atom not found"))
    post = make_post(RAW_URL)

    worker.run_once()

    post.refresh_from_db()
    assert post.processing_status == Status.FAILED
    assert post.media_url == RAW_URL
    assert list(work_root.iterdir()) == []
    assert not any(bucket == "hls" for bucket, _ in s3_client.objects)


def test_upload_failure_on_last_file_marks_failed(worker, make_post, raw_upload, fake_ffmpeg, s3_client, work_root):
    s3_client.fail_upload = lambda key: key.endswith("index.m3u8")
    post = make_post(RAW_URL)

    worker.run_once()

    post.refresh_from_db()
    assert post.processing_status == Status.FAILED
    assert post.media_url == RAW_URL
    assert list(work_root.iterdir()) == []


def test_missing_raw_object_marks_failed(worker, make_post, fake_ffmpeg, work_root):
    post = make_post(RAW_URL)

    worker.run_once()

    post.refresh_from_db()
    assert post.processing_status == Status.FAILED
    assert fake_ffmpeg.calls == []
    assert list(work_root.iterdir()) == []


def test_unresolvable_url_marks_failed(worker, make_post, fake_ffmpeg, work_root):
    post = make_post("not a url")

    worker.run_once()

    post.refresh_from_db()
    assert post.processing_status == Status.FAILED
    assert post.media_url == "not a url"
    assert fake_ffmpeg.calls == []


def test_unexpected_error_marks_failed(make_post):
    pipeline = mock.MagicMock()
    pipeline.run.side_effect = RuntimeError("disk full")
    post = make_post(RAW_URL)

    Worker(jobs=JobStore(), pipeline=pipeline, idle_interval=0).run_once()

    post.refresh_from_db()
    assert post.processing_status == Status.FAILED


def test_post_is_processing_while_pipeline_runs(make_post):
    post = make_post(RAW_URL)
    seen = {}

    def run(p):
        seen["status"] = Post.objects.get(pk=p.pk).processing_status
        return "https://public/hls/x/index.m3u8"

    pipeline = mock.MagicMock()
    pipeline.run.side_effect = run
    Worker(jobs=JobStore(), pipeline=pipeline).run_once()

    assert seen["status"] == Status.PROCESSING


def test_lost_claim_skips_processing(make_post):
    make_post(RAW_URL)
    jobs = mock.MagicMock(wraps=JobStore())
    jobs.claim.return_value = False
    pipeline = mock.MagicMock()

    assert Worker(jobs=jobs, pipeline=pipeline).run_once() is True
    pipeline.run.assert_not_called()


def test_failed_post_does_not_stop_the_next(worker, make_post, s3_client, fake_ffmpeg):
    s3_client.objects[("videos", "u1/good.mp4")] = b"ok"
    bad = make_post("https://store/videos/u1/missing.mp4", age=60)
    good = make_post("https://store/videos/u1/good.mp4", age=30)

    worker.run_once()
    worker.run_once()

    bad.refresh_from_db()
    good.refresh_from_db()
    assert bad.processing_status == Status.FAILED
    assert good.processing_status == Status.COMPLETED


@pytest.mark.django_db(transaction=True)
def test_run_provisions_bucket_and_stops_on_event(pipeline, s3_client, make_post):
    stop = threading.Event()
    jobs = mock.MagicMock()

    def next_pending(post_type):
        stop.set()
        return None

    jobs.next_pending.side_effect = next_pending
    Worker(jobs=jobs, pipeline=pipeline, idle_interval=0, stop_event=stop).run()

    assert "hls" in s3_client.buckets
    assert "hls" in s3_client.policies
    jobs.next_pending.assert_called_once_with(Post.Type.VIDEO)


@pytest.mark.django_db(transaction=True)
def test_database_error_does_not_end_loop(pipeline):
    stop = threading.Event()
    jobs = mock.MagicMock()
    calls = []

    def next_pending(post_type):
        calls.append(post_type)
        if len(calls) == 1:
            raise DatabaseError("connection reset")
        stop.set()
        return None

    jobs.next_pending.side_effect = next_pending
    Worker(jobs=jobs, pipeline=pipeline, idle_interval=0, error_backoff=0, stop_event=stop).run()

    assert len(calls) == 2


@pytest.mark.django_db(transaction=True)
def test_run_reconnects_after_lost_connection(make_post):
    post = make_post(RAW_URL)
    # database restarted underneath the worker
    connection.ensure_connection()
    connection.connection.close()

    stop = threading.Event()
    pipeline = mock.MagicMock()

    def run(p):
        stop.set()
        return "https://public/hls/x/index.m3u8"

    pipeline.run.side_effect = run
    Worker(jobs=JobStore(), pipeline=pipeline, idle_interval=0, error_backoff=0, stop_event=stop).run()

    pipeline.run.assert_called_once()
    post.refresh_from_db()
    assert post.processing_status == Status.COMPLETED
