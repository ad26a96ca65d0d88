import uuid
from django.conf import settings
from django.db import models


class Post(models.Model):
    """
    A row of the shared `posts` table. The API service inserts video posts as
    PENDING; this worker only moves them forward and rewrites media_url.
    """

    class Type(models.TextChoices):
        TEXT = "TEXT"
        IMAGE = "IMAGE"
        VIDEO = "VIDEO"

    class ProcessingStatus(models.TextChoices):
        PENDING = "PENDING"
        PROCESSING = "PROCESSING"
        COMPLETED = "COMPLETED"
        FAILED = "FAILED"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    type = models.CharField(max_length=16, choices=Type.choices, default=Type.VIDEO)
    media_url = models.TextField(blank=True, default="")   # raw upload URL, later the HLS manifest URL
    # NULL for posts that predate processing (treated like COMPLETED by the feed)
    processing_status = models.CharField(
        max_length=16, choices=ProcessingStatus.choices, null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "posts"
        managed = settings.POSTS_TABLE_MANAGED
        ordering = ["created_at"]

    def __str__(self):
        return f"Post {self.id} ({self.type}, {self.processing_status})"
