"""Shared base models and common type aliases."""

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ModelValidationError


logger = logging.getLogger(__name__)

Money = int
BasisPoints = int
Timestamp = int


def normalize_address(address: str) -> str:
    """Return the canonical lookup key for an account address."""
    return (address or "").strip().lower()


class BaseRecordModel(BaseModel):
    """Base schema for versioned ledger records."""

    version: int = Field(default=1, ge=1)

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=False,
    )

    def to_record(self) -> Dict[str, Any]:
        """Serialize model into a plain dictionary for storage or transport.

        Returns:
            Dict[str, Any]: Serialized model payload.

        Raises:
            ModelValidationError: If serialization fails.
        """
        try:
            return self.model_dump(mode="json", exclude_none=True)
        except (TypeError, ValueError) as exc:
            logger.exception("Failed to serialize %s version=%s", self.__class__.__name__, self.version)
            raise ModelValidationError(str(exc))

    @classmethod
    def from_record(cls, data: Dict[str, Any], version: Optional[int] = None) -> "BaseRecordModel":
        """Create model instance from a stored dictionary.

        Args:
            data: Stored payload.
            version: Optional version override.

        Returns:
            BaseRecordModel: Typed domain instance.

        Raises:
            ModelValidationError: If payload parsing fails.
        """
        try:
            payload = dict(data)
            if version is not None:
                payload["version"] = version
            return cls(**payload)
        except (TypeError, ValidationError) as exc:
            logger.exception("Failed to parse stored payload for %s", cls.__name__)
            raise ModelValidationError(str(exc))
