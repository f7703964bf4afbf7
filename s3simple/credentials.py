"""Credential and region value types."""

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class Credentials(BaseModel):
    """S3 access key pair.

    The secret is held as a `SecretStr`, so it is masked in `repr`, `str`,
    logs and model dumps. Use `secret_value()` only where the signer needs it.
    """

    model_config = ConfigDict(frozen=True)

    access_key_id: str = Field(description="The public access key id.")
    access_key_secret: SecretStr = Field(description="The secret access key.")

    @classmethod
    def new(cls, access_key_id: str, access_key_secret: str) -> "Credentials":
        """Create credentials from plain strings."""
        return cls(access_key_id=access_key_id, access_key_secret=SecretStr(access_key_secret))

    def secret_value(self) -> str:
        """Return the cleartext secret."""
        return self.access_key_secret.get_secret_value()


class Region(BaseModel):
    """Signing region, opaque to the client."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Region name, e.g. 'us-east-1' or a custom one for S3-compatible stores.")

    @classmethod
    def new(cls, name: str) -> "Region":
        """Create a region."""
        return cls(name=name)

    def __str__(self) -> str:
        return self.name
