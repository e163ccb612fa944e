"""
Merchant configuration model.

Represents the Paysera project credentials of one platform installation,
and the helpers that read and write them in the installation's private
metadata.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .errors import ConfigurationError

# Metadata key the configuration is stored under
PAYSERA_CONFIG_KEY = "paysera_config"


@dataclass(frozen=True)
class MerchantConfig:
    """
    Paysera merchant configuration.

    Attributes:
        account_id: Paysera project ID
        shared_secret: Project password used for request/callback signatures
        sandbox_mode: Whether payments are sent with ``test=1``
    """

    account_id: str
    shared_secret: str
    sandbox_mode: bool = True

    def __post_init__(self):
        """Reject incomplete configuration at construction time."""
        self.validate()

    def validate(self) -> None:
        """
        Validate merchant configuration.

        Raises:
            ConfigurationError: If the project ID or password is missing
        """
        if not isinstance(self.account_id, str) or not self.account_id.strip():
            raise ConfigurationError("Project ID is required")

        if not isinstance(self.shared_secret, str) or not self.shared_secret:
            raise ConfigurationError("Password is required")

        if not isinstance(self.sandbox_mode, bool):
            raise ConfigurationError("Test mode must be a boolean")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MerchantConfig':
        """
        Create MerchantConfig from its stored representation.

        Args:
            data: Dictionary with ``projectId``, ``password`` and ``testMode``

        Returns:
            MerchantConfig instance

        Raises:
            ConfigurationError: If required values are missing or invalid
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Invalid Paysera configuration: expected an object")

        project_id = data.get('projectId')
        # Numeric project IDs are common in hand-written configs
        if isinstance(project_id, int) and not isinstance(project_id, bool):
            project_id = str(project_id)

        return cls(
            account_id=project_id or '',
            shared_secret=data.get('password') or '',
            sandbox_mode=data.get('testMode', True)
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert MerchantConfig to its stored representation.

        Returns:
            Dictionary representation
        """
        return {
            'projectId': self.account_id,
            'password': self.shared_secret,
            'testMode': self.sandbox_mode
        }

    def to_public_dict(self) -> Dict[str, Any]:
        """
        Convert MerchantConfig to dictionary for public API (excludes secrets).

        Returns:
            Dictionary representation without the password
        """
        return {
            'projectId': self.account_id,
            'testMode': self.sandbox_mode,
            'isConfigured': True
        }

    def masked_secret(self) -> str:
        """Get the password masked for logging."""
        return mask_secret(self.shared_secret)

    def __repr__(self) -> str:
        return (
            f"MerchantConfig(account_id={self.account_id}, "
            f"secret={self.masked_secret()}, "
            f"sandbox={self.sandbox_mode})"
        )


def mask_secret(secret: str) -> str:
    """
    Mask a password for safe logging.

    Args:
        secret: Value to mask

    Returns:
        ``****`` for short values, otherwise the first and last two
        characters around ``****``
    """
    if len(secret) <= 4:
        return "****"
    return secret[:2] + "****" + secret[-2:]


def get_merchant_config_from_metadata(
    private_metadata: Optional[Iterable[Dict[str, str]]]
) -> MerchantConfig:
    """
    Extract the Paysera configuration from installation private metadata.

    Args:
        private_metadata: List of ``{"key": ..., "value": ...}`` items

    Returns:
        MerchantConfig instance

    Raises:
        ConfigurationError: If configuration is missing or invalid
    """
    items = list(private_metadata or [])
    if not items:
        raise ConfigurationError("No private metadata found")

    entry = next(
        (item for item in items if item.get('key') == PAYSERA_CONFIG_KEY),
        None
    )
    if entry is None:
        raise ConfigurationError("Paysera configuration not found in metadata")

    try:
        parsed = json.loads(entry.get('value') or '')
    except ValueError:
        raise ConfigurationError("Invalid JSON in Paysera configuration")

    try:
        return MerchantConfig.from_dict(parsed)
    except ConfigurationError as e:
        if e.message.startswith("Invalid Paysera configuration"):
            raise
        raise ConfigurationError(f"Invalid Paysera configuration: {e.message}") from e


def serialize_merchant_config(merchant_config: MerchantConfig) -> Dict[str, str]:
    """
    Serialize configuration for storage in installation private metadata.

    Args:
        merchant_config: Configuration to store

    Returns:
        Metadata item with ``key`` and ``value``
    """
    return {
        'key': PAYSERA_CONFIG_KEY,
        'value': json.dumps(merchant_config.to_dict())
    }


def merge_metadata(
    private_metadata: Optional[Iterable[Dict[str, str]]],
    item: Dict[str, str]
) -> List[Dict[str, str]]:
    """Replace or append a metadata item, keeping the others untouched."""
    merged = [m for m in (private_metadata or []) if m.get('key') != item['key']]
    merged.append(item)
    return merged
