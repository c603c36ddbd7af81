"""
Export warehouse layers to Parquet and publish them to S3.

Each extent of a layer is written to its own timestamped Parquet file. The
S3 exporter uploads those files to one bucket per layer with retries and a
post-upload MD5 check.
"""
import os
import time
import hashlib
import logging
from datetime import datetime
from typing import Dict, List, Optional

import boto3
import pandas as pd
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import ClientError, EndpointConnectionError

from .config import DEFAULT_BUCKET_PREFIX, DEFAULT_REGION


logger = logging.getLogger("sqlite_warehouse.export")

LAYERS = ("bronze", "silver", "gold")
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 2  # seconds
PART_SIZE = 8 * 1024 * 1024


def export_frames(
    layer: str,
    frames: Dict[str, pd.DataFrame],
    output_dir: str,
    timestamp: Optional[str] = None,
) -> Dict[str, str]:
    """
    Write each frame to <layer>_<name>_<timestamp>.parquet in output_dir.

    Returns:
        Dictionary of extent name -> exported file path
    """
    if layer not in LAYERS:
        raise ValueError(f"Invalid layer: {layer}")

    os.makedirs(output_dir, exist_ok=True)
    timestamp = timestamp or datetime.now().strftime('%Y%m%d_%H%M%S')

    exported = {}
    for name, df in frames.items():
        output_file = os.path.join(output_dir, f"{layer}_{name}_{timestamp}.parquet")
        if df.empty:
            logger.warning(f"{layer} extent '{name}' is empty. Exporting schema only.")
        df.to_parquet(output_file, index=False, engine="pyarrow")
        logger.info(f"Exported {len(df)} records from {layer}.{name} to {output_file}")
        exported[name] = output_file
    return exported


class S3Exporter:
    """
    Publishes exported layer files to S3, one bucket per layer.

    Objects are keyed "<layer>/<partition>/<file>" and carry the file's MD5
    in their metadata; an upload only counts once head_object confirms it.
    """

    def __init__(
        self,
        bucket_prefix: str = DEFAULT_BUCKET_PREFIX,
        region: str = DEFAULT_REGION,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        profile_name: Optional[str] = None,
        s3_client=None,
    ):
        """
        Args:
            bucket_prefix: Bucket names are "<bucket_prefix>-<layer>"
            region: AWS region for the default client
            retry_attempts: Upload attempts per file
            retry_delay: Base of the exponential backoff, in seconds
            profile_name: AWS credentials profile for the default client
            s3_client: Client to use instead of building one from a boto3 session
        """
        self.bucket_prefix = bucket_prefix
        self.region = region
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay

        if s3_client is None:
            s3_client = boto3.Session(profile_name=profile_name, region_name=region).client("s3")
        self.s3_client = s3_client

        self.transfer_config = TransferConfig(
            multipart_threshold=PART_SIZE,
            multipart_chunksize=PART_SIZE,
            max_concurrency=10,
            use_threads=True,
        )

    def bucket_for(self, layer: str) -> str:
        if layer not in LAYERS:
            raise ValueError(f"Invalid layer: {layer}")
        return f"{self.bucket_prefix}-{layer}"

    @staticmethod
    def _calculate_md5(file_path: str) -> str:
        digest = hashlib.md5()
        with open(file_path, "rb") as f:
            for block in iter(lambda: f.read(64 * 1024), b""):
                digest.update(block)
        return digest.hexdigest()

    def _verify_upload(self, bucket: str, object_key: str, expected_md5: str) -> bool:
        try:
            metadata = self.s3_client.head_object(Bucket=bucket, Key=object_key).get("Metadata", {})
        except ClientError as e:
            logger.error(f"Cannot verify s3://{bucket}/{object_key}: {e}")
            return False

        stored_md5 = metadata.get("md5_hash")
        if stored_md5 is not None and stored_md5 != expected_md5:
            logger.warning(
                f"Checksum mismatch on s3://{bucket}/{object_key}: local {expected_md5}, remote {stored_md5}"
            )
            return False
        return True

    def _attempt_upload(self, file_path: str, bucket: str, object_key: str, extra_args: dict) -> bool:
        try:
            self.s3_client.upload_file(
                Filename=file_path,
                Bucket=bucket,
                Key=object_key,
                ExtraArgs=extra_args,
                Config=self.transfer_config,
            )
        except (ClientError, EndpointConnectionError) as e:
            logger.warning(f"Upload of {file_path} to s3://{bucket}/{object_key} failed: {e}")
            return False
        return self._verify_upload(bucket, object_key, extra_args["Metadata"]["md5_hash"])

    def upload_file(self, file_path: str, layer: str, partition_key: Optional[str] = None) -> Optional[str]:
        """
        Upload one exported file to its layer bucket.

        Args:
            file_path: Exported Parquet file
            layer: 'bronze', 'silver' or 'gold'
            partition_key: Partition path segment (default: date=<today>)

        Returns:
            S3 URI of the verified object, or None once every attempt failed
        """
        if not os.path.exists(file_path):
            logger.error(f"Export file not found: {file_path}")
            return None

        bucket = self.bucket_for(layer)
        partition_key = partition_key or f"date={time.strftime('%Y-%m-%d')}"
        object_key = f"{layer}/{partition_key}/{os.path.basename(file_path)}"
        uri = f"s3://{bucket}/{object_key}"
        extra_args = {
            "Metadata": {
                "source": "sqlite_warehouse",
                "layer": layer,
                "md5_hash": self._calculate_md5(file_path),
                "original_size": str(os.path.getsize(file_path)),
            },
            "ContentType": "application/vnd.apache-parquet",
        }

        for attempt in range(1, self.retry_attempts + 1):
            logger.info(f"Uploading {file_path} to {uri} (attempt {attempt}/{self.retry_attempts})")
            if self._attempt_upload(file_path, bucket, object_key, extra_args):
                logger.info(f"Uploaded and verified {uri}")
                return uri
            if attempt < self.retry_attempts:
                backoff = self.retry_delay * (2 ** attempt)
                logger.info(f"Retrying {file_path} in {backoff}s")
                time.sleep(backoff)

        logger.error(f"Giving up on {file_path} after {self.retry_attempts} attempts")
        return None

    def upload_layer(self, layer: str, files: List[str]) -> Dict[str, Optional[str]]:
        """Upload every file exported for a layer; returns file -> S3 URI (None on failure)."""
        uploaded = {file_path: self.upload_file(file_path, layer) for file_path in files}
        failed = [path for path, uri in uploaded.items() if uri is None]
        if failed:
            logger.error(f"{len(failed)} of {len(files)} {layer} files were not uploaded")
        return uploaded
