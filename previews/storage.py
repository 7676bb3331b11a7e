from pathlib import Path
from urllib.parse import quote, unquote, urlparse

import boto3
from botocore.config import Config as BotoConfig
from django.conf import settings

# Object metadata key holding the public download token. S3/MinIO never checks
# the token; it only versions the public URL (see DESIGN.md for the bucket policy).
TOKEN_METADATA_KEY = "download-token"


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


def public_url(key: str, token: str, *, endpoint: str | None = None, bucket: str | None = None) -> str:
    """
    Publicly fetchable URL for an uploaded object:
    <public-endpoint>/<bucket>/<key>?alt=media&token=<token>
    """
    base = (endpoint or settings.S3_PUBLIC_ENDPOINT).rstrip("/")
    return f"{base}/{bucket or settings.S3_BUCKET}/{quote(key)}?alt=media&token={token}"


def blob_key_from_ref(ref: str, *, bucket: str | None = None) -> str:
    """
    Turn a record's source reference into an object key.

    Accepts a bare key ("uploads/a.mp4"), one of our public URLs
    (".../<bucket>/uploads/a.mp4?alt=media&token=..."), or a Firebase-style
    download URL (".../o/uploads%2Fa.mp4?alt=media").
    """
    ref = (ref or "").strip()
    if not ref:
        return ""
    parsed = urlparse(ref)
    if not parsed.scheme:
        return ref.lstrip("/")

    path = parsed.path
    if "/o/" in path:
        return unquote(path.split("/o/", 1)[1])

    bucket = bucket or settings.S3_BUCKET
    prefix = f"/{bucket}/"
    if path.startswith(prefix):
        return unquote(path[len(prefix):])
    return unquote(path.lstrip("/"))


class BlobStore:
    """
    Thin wrapper over the S3 client so the pipeline can take the store as a dependency.
    """

    def __init__(self, client=None, bucket: str | None = None, public_endpoint: str | None = None):
        self._client = client
        self.bucket = bucket or settings.S3_BUCKET
        self.public_endpoint = public_endpoint or settings.S3_PUBLIC_ENDPOINT

    @property
    def client(self):
        if self._client is None:
            self._client = get_s3_client()
        return self._client

    def download(self, key: str, local_path) -> Path:
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        self.client.download_file(self.bucket, key, str(local_path))
        return local_path

    def upload(self, local_path, key: str, *, content_type: str, cache_control: str, access_token: str) -> str:
        """
        Upload a single file and return its public URL carrying ``access_token``.
        Re-uploading to the same key overwrites the object (and its token).
        """
        extra = {
            "ContentType": content_type,
            "CacheControl": cache_control,
            "Metadata": {TOKEN_METADATA_KEY: access_token},
        }
        self.client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra)
        return public_url(key, access_token, endpoint=self.public_endpoint, bucket=self.bucket)


def get_blob_store() -> BlobStore:
    return BlobStore()
