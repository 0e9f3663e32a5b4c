"""
Vault Configuration - validated settings loaded from the environment.

Reads:
    VAULT_CIPHER_BACKEND = aesgcm | chacha20
    VAULT_KDF_ITERATIONS = <int, >= 100000>
    VAULT_DECRYPT_CONCURRENCY = <int>
    VAULT_KEY_MARKER = <tab storage marker name>
    VAULT_OWNER_HEADER = <header carrying the owner id>
    VAULT_API_URL = <persistence API base url>
    VAULT_REQUEST_TIMEOUT = <seconds>

Security Note:
    Nothing here is secret. The KDF parameters must stay stable for the
    life of an account: changing them orphans every stored record.
"""
import os
import logging
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("sealed_vault.vault")

DEFAULT_KDF_ITERATIONS = 100_000
DEFAULT_KEY_MARKER = "encryptionKey"
DEFAULT_OWNER_HEADER = "X-Vault-Owner"


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    cipher_backend: str = Field(default="aesgcm")
    kdf_iterations: int = Field(default=DEFAULT_KDF_ITERATIONS, ge=DEFAULT_KDF_ITERATIONS)
    decrypt_concurrency: int = Field(default=8, ge=1, le=256)
    key_marker: str = Field(default=DEFAULT_KEY_MARKER, min_length=1)
    owner_header: str = Field(default=DEFAULT_OWNER_HEADER, min_length=1)
    api_url: str = Field(default="http://localhost:8080")
    request_timeout: float = Field(default=30.0, gt=0)

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in ("aesgcm", "chacha20"):
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Unset variables fall back to the field defaults.

        Returns:
            Populated VaultConfig instance.
        """
        env = {
            "cipher_backend": os.environ.get("VAULT_CIPHER_BACKEND"),
            "kdf_iterations": os.environ.get("VAULT_KDF_ITERATIONS"),
            "decrypt_concurrency": os.environ.get("VAULT_DECRYPT_CONCURRENCY"),
            "key_marker": os.environ.get("VAULT_KEY_MARKER"),
            "owner_header": os.environ.get("VAULT_OWNER_HEADER"),
            "api_url": os.environ.get("VAULT_API_URL"),
            "request_timeout": os.environ.get("VAULT_REQUEST_TIMEOUT"),
        }
        config = cls.model_validate(
            {name: value for name, value in env.items() if value is not None}
        )
        logger.debug(
            "Vault config loaded: cipher=%s iterations=%d",
            config.cipher_backend, config.kdf_iterations,
        )
        return config


@lru_cache
def get_config() -> VaultConfig:
    """Process-wide configuration, loaded once from the environment."""
    return VaultConfig.from_env()
