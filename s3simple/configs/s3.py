"""S3 config."""

from typing import Self

from pydantic import AnyHttpUrl, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from s3simple.credentials import Credentials, Region
from s3simple.exceptions import S3ConfigurationClientException
from s3simple.options import BucketOptions


class S3Config(BaseSettings):
    """S3 configuration.

    This config is used to bind a `Bucket` to an endpoint.

    Attributes:
        url (AnyHttpUrl): The endpoint of the S3 service, e.g. `https://s3.amazonaws.com`
            or `http://localhost:9000` for S3-compatible stores.
            Can be set via S3_URL environment variable.
        bucket (str): The bucket name. Can be set via S3_BUCKET environment variable.
        region (str): The signing region. Can be set via S3_REGION environment variable.
        access_key_id (str): The access key id for authenticating API requests.
            Can be set via S3_ACCESS_KEY_ID environment variable.
        access_key_secret (SecretStr): The secret access key for authenticating API requests.
            Can be set via S3_ACCESS_KEY_SECRET environment variable.
        path_style (bool): Whether to address the bucket as a path segment instead of a subdomain.
            Can be set via S3_PATH_STYLE environment variable. Defaults to False.
        list_objects_v2 (bool): Whether to list with ListObjectsV2 instead of the legacy ListObjects.
            Can be set via S3_LIST_OBJECTS_V2 environment variable. Defaults to True.
        danger_allow_insecure (bool): Whether to accept invalid TLS certificates.
            Can be set via S3_DANGER_ALLOW_INSECURE environment variable. Defaults to False.

    """

    model_config = SettingsConfigDict(env_prefix="S3_")

    url: AnyHttpUrl = Field(description="The endpoint of the S3 service.")
    bucket: str = Field(min_length=1, description="The bucket name.")
    region: str = Field(min_length=1, description="The signing region (e.g., 'us-east-1').")
    access_key_id: str = Field(min_length=1, description="The access key id for authenticating API requests.")
    access_key_secret: SecretStr = Field(description="The secret access key for authenticating API requests.")
    path_style: bool = Field(default=False, description="Whether to use path-style addressing.")
    list_objects_v2: bool = Field(default=True, description="Whether to list with ListObjectsV2.")
    danger_allow_insecure: bool = Field(
        default=False, description="Whether to accept invalid TLS certificates. Never enable in production."
    )

    @classmethod
    def from_env(cls) -> Self:
        """Load the config from the environment.

        Raises:
            S3ConfigurationClientException: If a variable is missing or cannot be parsed.

        """
        try:
            return cls()  # type: ignore[call-arg]
        except ValidationError as e:
            msg = f"invalid S3 configuration: {e}"
            raise S3ConfigurationClientException(msg) from e

    def credentials(self) -> Credentials:
        """Build the credentials."""
        return Credentials(access_key_id=self.access_key_id, access_key_secret=self.access_key_secret)

    def region_value(self) -> Region:
        """Build the signing region."""
        return Region.new(self.region)

    def bucket_options(self) -> BucketOptions:
        """Build the addressing and listing options."""
        return BucketOptions(path_style=self.path_style, list_objects_v2=self.list_objects_v2)
