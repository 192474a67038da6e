from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

import structlog
from minio import Minio

logger = structlog.get_logger()


def parse_endpoint(endpoint: str, secure: bool = True) -> Tuple[str, bool]:
    """
    Normalize an endpoint input into the ``host[:port]`` form Minio expects.

    A URL scheme is accepted; ``http://`` switches TLS off. Any path part
    is dropped.
    """
    if "://" in endpoint:
        parsed = urlparse(endpoint)
        endpoint = parsed.netloc
        if parsed.scheme == "http":
            secure = False

    if "/" in endpoint:
        endpoint = endpoint.split("/")[0]

    return endpoint, secure


class S3Uploader:
    """
    Object storage client compatible with AWS S3, MinIO, and other
    S3-compatible stores.

    Unlike a fire-and-forget uploader, errors are raised to the caller,
    which decides whether a fallback applies.
    """

    def __init__(
        self,
        endpoint: str,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        session_token: Optional[str] = None,
        region: Optional[str] = None,
        secure: bool = True,
        port: Optional[int] = None,
        client: Optional[Minio] = None,
    ):
        host, secure = parse_endpoint(endpoint, secure)
        if port:
            hostname = urlparse(f"//{host}").hostname or host
            if ":" in hostname:
                hostname = f"[{hostname}]"
            host = f"{hostname}:{port}"

        self.endpoint = host
        self.secure = secure
        self.client = client or Minio(
            host,
            access_key=access_key,
            secret_key=secret_key,
            session_token=session_token,
            secure=secure,
            region=region,
        )

    def upload_file(self, bucket: str, object_name: str, file_path: Path) -> str:
        """
        Upload a local file as ``bucket/object_name``.

        Returns:
            ETag of the stored object

        Raises:
            minio.error.S3Error, urllib3 errors: on any storage failure
        """
        result = self.client.fput_object(
            bucket_name=bucket,
            object_name=object_name,
            file_path=str(file_path),
        )
        logger.info("Uploaded to S3", bucket=bucket, object=object_name)
        return result.etag
