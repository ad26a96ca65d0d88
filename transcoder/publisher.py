import logging
import shutil

from django.conf import settings

from .ffmpeg import ArtifactSet

logger = logging.getLogger(__name__)

MANIFEST_CONTENT_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_CONTENT_TYPE = "video/MP2T"


class OutputPublisher:
    def __init__(self, store, bucket: str | None = None):
        self.store = store
        self.bucket = bucket or settings.S3_HLS_BUCKET

    def publish(self, job_id, artifacts: ArtifactSet) -> str:
        """
        Upload every file of the artifact set to <bucket>/<job_id>/<name> and
        return the public URL of the manifest. The artifact directory is removed
        afterwards, whether or not the upload went through.
        """
        prefix = str(job_id)
        try:
            # segments come before the manifest: a manifest in the bucket always has its segments
            for p in artifacts.files:
                content_type = MANIFEST_CONTENT_TYPE if p == artifacts.manifest else SEGMENT_CONTENT_TYPE
                self.store.upload(self.bucket, f"{prefix}/{p.name}", p, content_type)
        finally:
            shutil.rmtree(artifacts.directory, ignore_errors=True)

        logger.info("Uploaded %d HLS file(s) under %s/%s", len(artifacts.files), self.bucket, prefix)
        return self.store.public_url(self.bucket, f"{prefix}/{artifacts.manifest.name}")
