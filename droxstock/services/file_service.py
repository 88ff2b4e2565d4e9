"""File service — keeps accepted CSV uploads in MinIO until a worker picks them up."""

import os
import tempfile
import logging

from minio import Minio
from minio.error import S3Error

from droxstock.core.config import settings
from droxstock.core.exceptions import StorageError

logger = logging.getLogger("droxstock.storage")


class FileService:
    """Manages import files in MinIO."""

    def __init__(self):
        self.client = Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
        )
        self.bucket = settings.MINIO_BUCKET

    def ensure_bucket(self) -> None:
        """Create the default bucket if it doesn't exist."""
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)

    @staticmethod
    def object_key(job_id: str, file_name: str) -> str:
        return f"csv-imports/{job_id}/{os.path.basename(file_name) or 'upload.csv'}"

    def store_upload(self, local_path: str, job_id: str, file_name: str,
                     content_type: str = "text/csv") -> str:
        """Upload a local file and return its object key."""
        key = self.object_key(job_id, file_name)
        try:
            self.ensure_bucket()
            self.client.fput_object(self.bucket, key, local_path, content_type=content_type)
        except S3Error as e:
            raise StorageError(f"Failed to upload to MinIO: {e}")
        logger.info("Stored import file %s", key)
        return key

    def download_to_temp(self, minio_key: str) -> str:
        """Download a MinIO object to a temp file and return the path."""
        ext = os.path.splitext(minio_key)[1]
        tmp = tempfile.NamedTemporaryFile(delete=False, suffix=ext)
        tmp.close()
        try:
            self.client.fget_object(self.bucket, minio_key, tmp.name)
            return tmp.name
        except S3Error as e:
            os.unlink(tmp.name)
            raise StorageError(f"Failed to download from MinIO: {e}")

    def delete_object(self, minio_key: str) -> None:
        """Delete an object from MinIO."""
        try:
            self.client.remove_object(self.bucket, minio_key)
        except S3Error as e:
            raise StorageError(f"Failed to delete from MinIO: {e}")


# Singleton instance
file_service = FileService()
