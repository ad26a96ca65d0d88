import json
import logging
from pathlib import Path
from urllib.parse import quote, urlsplit

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import DownloadError, ObjectStoreError, UploadError

logger = logging.getLogger(__name__)


def get_s3_client():
    """
    SDK client for server-side upload/download.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


def public_read_policy(bucket: str) -> dict:
    """Anonymous GetObject on every key of the bucket."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"AWS": ["*"]},
                "Action": ["s3:GetObject"],
                "Resource": [f"arn:aws:s3:::{bucket}/*"],
            }
        ],
    }


class ObjectStore:
    """
    Thin wrapper over an S3/MinIO client. Transfer failures surface as
    DownloadError / UploadError so the worker can fail the post.
    """

    def __init__(
        self,
        client=None,
        *,
        region: str | None = None,
        public_endpoint: str | None = None,
        url_style: str | None = None,
        cdn_domain: str | None = None,
    ):
        self.client = client if client is not None else get_s3_client()
        self.region = region or settings.S3_REGION
        self.public_endpoint = (public_endpoint or settings.S3_PUBLIC_ENDPOINT).rstrip("/")
        self.url_style = url_style or settings.S3_URL_STYLE
        self.cdn_domain = cdn_domain if cdn_domain is not None else settings.S3_CDN_DOMAIN

    # ---------------- Buckets ----------------
    def exists(self, bucket: str) -> bool:
        try:
            self.client.head_bucket(Bucket=bucket)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in {"404", "NoSuchBucket", "NotFound"}:
                return False
            raise ObjectStoreError(f"Cannot inspect bucket {bucket}: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"Cannot inspect bucket {bucket}: {e}") from e
        return True

    def create_bucket(self, bucket: str):
        params = {"Bucket": bucket}
        # us-east-1 rejects an explicit LocationConstraint
        if self.region and self.region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self.client.create_bucket(**params)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}:
                return
            raise ObjectStoreError(f"Cannot create bucket {bucket}: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"Cannot create bucket {bucket}: {e}") from e

    def set_public_read_policy(self, bucket: str):
        try:
            self.client.put_bucket_policy(Bucket=bucket, Policy=json.dumps(public_read_policy(bucket)))
        except (ClientError, BotoCoreError) as e:
            raise ObjectStoreError(f"Cannot set public policy on {bucket}: {e}") from e

    def ensure_bucket(self, bucket: str) -> bool:
        """
        Create the bucket with a public-read policy if it is missing.
        Returns True when the bucket was created.
        """
        if self.exists(bucket):
            return False
        self.create_bucket(bucket)
        self.set_public_read_policy(bucket)
        logger.info("Bucket %s created and public policy set.", bucket)
        return True

    # ---------------- Transfers ----------------
    def download(self, bucket: str, key: str, local_path):
        logger.info("Downloading %s from %s...", key, bucket)
        try:
            self.client.download_file(bucket, key, str(local_path))
        except (ClientError, BotoCoreError, OSError) as e:
            raise DownloadError(f"Download of {bucket}/{key} failed: {e}") from e

    def upload(self, bucket: str, key: str, local_path, content_type: str | None = None):
        """
        Upload a single file to S3/MinIO with an optional Content-Type.
        """
        extra = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self.client.upload_file(str(Path(local_path)), bucket, key, ExtraArgs=extra or None)
        except (ClientError, BotoCoreError, OSError) as e:
            raise UploadError(f"Upload of {bucket}/{key} failed: {e}") from e
        logger.info("Uploaded %s/%s", bucket, key)

    # ---------------- Locators ----------------
    def public_url(self, bucket: str, key: str) -> str:
        """
        Browser-reachable URL of an object, shaped for the configured backend.
        """
        quoted = quote(key, safe="/")
        if self.url_style == "cdn":
            # bare host means https
            base = self.cdn_domain if "://" in self.cdn_domain else f"https://{self.cdn_domain}"
            return f"{base.rstrip('/')}/{quoted}"
        if self.url_style == "virtual":
            base = urlsplit(self.public_endpoint)
            return f"{base.scheme}://{bucket}.{base.netloc}/{quoted}"
        return f"{self.public_endpoint}/{bucket}/{quoted}"
