"""Upload backends."""

from .actions_cache_uploader import ActionsCacheUploader
from .s3_uploader import S3Uploader

__all__ = ["ActionsCacheUploader", "S3Uploader"]
