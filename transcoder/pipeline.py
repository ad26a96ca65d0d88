import logging
import tempfile
from pathlib import Path

from django.conf import settings

from .ffmpeg import TranscodeEngine
from .publisher import OutputPublisher
from .resolver import SourceResolver
from .s3 import ObjectStore

logger = logging.getLogger(__name__)


class TranscodePipeline:
    """
    download raw upload -> ffmpeg to HLS -> upload to the output bucket.

    All local files live in one per-run temp directory that is removed on the
    way out, whichever stage failed.
    """

    def __init__(
        self,
        store: ObjectStore | None = None,
        resolver: SourceResolver | None = None,
        engine: TranscodeEngine | None = None,
        publisher: OutputPublisher | None = None,
        raw_bucket: str | None = None,
        work_root: str | Path | None = None,
    ):
        self.store = store if store is not None else ObjectStore()
        self.raw_bucket = raw_bucket or settings.S3_RAW_BUCKET
        self.resolver = resolver or SourceResolver(self.raw_bucket)
        self.engine = engine or TranscodeEngine()
        self.publisher = publisher or OutputPublisher(self.store)
        self.work_root = work_root if work_root is not None else settings.HLS_WORK_DIR
        self._prepared = False

    def prepare(self):
        """Make sure the output bucket exists and is publicly readable."""
        if self._prepared:
            return
        self.store.ensure_bucket(self.publisher.bucket)
        self._prepared = True

    def run(self, post) -> str:
        """Process one post and return the public URL of its HLS manifest."""
        key = self.resolver.resolve(post.media_url)

        if self.work_root:
            Path(self.work_root).mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="hls-", dir=self.work_root) as tmp:
            workdir = Path(tmp)
            input_path = workdir / f"input{Path(key).suffix or '.mp4'}"
            self.store.download(self.raw_bucket, key, input_path)

            artifacts = self.engine.transcode(input_path, workdir / "hls")
            return self.publisher.publish(post.id, artifacts)
