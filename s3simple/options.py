"""Bucket options."""

from pydantic import BaseModel, ConfigDict, Field

from s3simple.constants import CHANNEL_CAPACITY, CHUNK_SIZE, MIN_CHUNK_SIZE


class BucketOptions(BaseModel):
    """Addressing, listing and streaming options of a bucket."""

    model_config = ConfigDict(frozen=True)

    path_style: bool = Field(
        default=False,
        description="Address the bucket as `host/bucket/key` instead of `bucket.host/key`.",
    )
    list_objects_v2: bool = Field(default=True, description="List with ListObjectsV2 instead of ListObjects (v1).")
    chunk_size: int = Field(
        default=CHUNK_SIZE,
        ge=MIN_CHUNK_SIZE,
        description="Part size of streaming uploads. S3 rejects non-final parts below 5 MiB.",
    )
    channel_capacity: int = Field(
        default=CHANNEL_CAPACITY,
        gt=0,
        description="Chunks a streaming upload may hold in memory at once.",
    )
