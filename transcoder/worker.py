import logging
import threading

from django.conf import settings
from django.db import DatabaseError, close_old_connections, connections

from .errors import PipelineError, TranscodeError
from .jobs import JobStore
from .models import Post
from .pipeline import TranscodePipeline

logger = logging.getLogger(__name__)


class Worker:
    """
    Polls the posts table and transcodes one video at a time.

    Each iteration claims the oldest PENDING video, runs the pipeline and
    commits COMPLETED or FAILED. A failing post never stops the loop; only
    stop_event does.
    """

    def __init__(
        self,
        jobs: JobStore | None = None,
        pipeline: TranscodePipeline | None = None,
        idle_interval: float | None = None,
        error_backoff: float | None = None,
        stop_event: threading.Event | None = None,
    ):
        self.jobs = jobs or JobStore()
        self.pipeline = pipeline or TranscodePipeline()
        self.idle_interval = settings.WORKER_IDLE_INTERVAL if idle_interval is None else idle_interval
        self.error_backoff = settings.WORKER_ERROR_BACKOFF if error_backoff is None else error_backoff
        self.stop_event = stop_event or threading.Event()

    def run(self):
        self.pipeline.prepare()
        logger.info("Worker started (idle interval %ss)", self.idle_interval)

        while not self.stop_event.is_set():
            close_old_connections()
            try:
                worked = self.run_once()
            except DatabaseError:
                logger.exception("Worker loop error")
                # Drop the broken connection; the next poll reconnects
                connections.close_all()
                self.stop_event.wait(self.error_backoff)
                continue
            if not worked:
                self.stop_event.wait(self.idle_interval)

        logger.info("Worker stopped")

    def run_once(self) -> bool:
        """
        One polling cycle. Returns False when there was nothing to claim.
        """
        post = self.jobs.next_pending(Post.Type.VIDEO)
        if post is None:
            return False
        # Claim before any I/O so no other worker picks the same post
        if not self.jobs.claim(post.id):
            return True
        self.process(post)
        return True

    def process(self, post: Post) -> bool:
        """Run the pipeline for a claimed post and record the outcome."""
        logger.info("Processing post %s...", post.id)
        try:
            media_url = self.pipeline.run(post)
        except PipelineError as e:
            logger.error("Post %s failed: %s: %s", post.id, type(e).__name__, e)
            if isinstance(e, TranscodeError) and e.diagnostic:
                logger.error("ffmpeg output for post %s:\n%s", post.id, e.diagnostic)
            self.jobs.fail(post.id)
            return False
        except Exception:
            logger.exception("Post %s failed unexpectedly", post.id)
            self.jobs.fail(post.id)
            return False

        self.jobs.complete(post.id, media_url)
        logger.info("Post %s processing complete.", post.id)
        return True
