import logging

from .models import Post

logger = logging.getLogger(__name__)

Status = Post.ProcessingStatus


class JobStore:
    """
    Read and transition video posts in the shared posts table. Each write is a
    single UPDATE; the API service inserts rows concurrently.
    """

    def next_pending(self, post_type: str = Post.Type.VIDEO) -> Post | None:
        """Oldest PENDING post of the given type, or None."""
        return (
            Post.objects.filter(type=post_type, processing_status=Status.PENDING)
            .order_by("created_at")
            .first()
        )

    def claim(self, post_id) -> bool:
        """
        PENDING -> PROCESSING as one conditional UPDATE. Returns False when
        another worker (or anything else) moved the post first.
        """
        updated = Post.objects.filter(pk=post_id, processing_status=Status.PENDING).update(
            processing_status=Status.PROCESSING
        )
        if updated != 1:
            logger.warning("Post %s: claim lost, no longer PENDING", post_id)
            return False
        logger.info("Post %s: PENDING -> PROCESSING", post_id)
        return True

    def complete(self, post_id, media_url: str):
        Post.objects.filter(pk=post_id).update(
            processing_status=Status.COMPLETED, media_url=media_url
        )
        logger.info("Post %s: PROCESSING -> COMPLETED (%s)", post_id, media_url)

    def fail(self, post_id):
        # media_url stays pointed at the raw upload
        Post.objects.filter(pk=post_id).update(processing_status=Status.FAILED)
        logger.info("Post %s: PROCESSING -> FAILED", post_id)
