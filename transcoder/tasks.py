import logging

from celery import shared_task

from .models import Post
from .worker import Worker

logger = logging.getLogger(__name__)


@shared_task(name="transcoder.tasks.transcode_post")
def transcode_post(post_id: str) -> str:
    """
    Claim and transcode one specific post. Lets the API enqueue work directly
    instead of waiting for the polling worker; the claim keeps both paths from
    processing the same post.
    """
    post = Post.objects.filter(pk=post_id).first()
    if post is None:
        logger.error("Post %s not found.", post_id)
        return "missing"

    worker = Worker()
    worker.pipeline.prepare()
    if not worker.jobs.claim(post.id):
        logger.warning("Post %s is %s, skipping.", post_id, post.processing_status)
        return "skipped"

    return "completed" if worker.process(post) else "failed"


@shared_task(name="transcoder.tasks.poll_pending")
def poll_pending() -> bool:
    """One polling cycle, for celery beat deployments."""
    worker = Worker()
    worker.pipeline.prepare()
    return worker.run_once()
