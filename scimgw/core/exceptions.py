"""Provisioning exceptions raised by the endpoint plugin."""
from __future__ import annotations
from typing import Iterable, Optional

SCIM_ERROR_SCHEMA = "urn:ietf:params:scim:api:messages:2.0:Error"


class ProvisioningError(Exception):
    """Base exception for all plugin operations.

    Attributes:
        status: HTTP status the protocol layer should answer with
        detail: Human-readable error description
        scim_type: Optional SCIM error type (uniqueness, invalidValue, ...)
    """

    status = 500
    scim_type: Optional[str] = None

    def __init__(self, detail: str, status: Optional[int] = None, scim_type: Optional[str] = None):
        self.detail = detail
        if status is not None:
            self.status = status
        if scim_type is not None:
            self.scim_type = scim_type
        super().__init__(detail)

    def to_dict(self) -> dict:
        """Convert to SCIM error response format."""
        error_dict = {
            "schemas": [SCIM_ERROR_SCHEMA],
            "status": str(self.status),
            "detail": self.detail
        }
        if self.scim_type:
            error_dict["scimType"] = self.scim_type
        return error_dict


class UnsupportedAttribute(ProvisioningError):
    """Payload references attributes outside the supported set.

    Attributes:
        attributes: Offending top-level attribute names
        supported: Supported attribute names at the time of the check
    """

    status = 400
    scim_type = "invalidValue"

    def __init__(self, attributes: Iterable[str], supported: Iterable[str] = ()):
        self.attributes = list(attributes)
        self.supported = list(supported)
        super().__init__(
            f"unsupported scim attributes: {','.join(self.attributes)} "
            f"(supporting only these attributes: {','.join(self.supported)})"
        )


class DuplicateKey(ProvisioningError):
    """Store reported a uniqueness violation on create."""

    status = 409
    scim_type = "uniqueness"


class NotFound(ProvisioningError):
    """Identifier lookup matched zero or more than one record."""

    status = 404


class UnsupportedOperation(ProvisioningError):
    """Group modification outside membership changes, or malformed members payload."""

    status = 400
    scim_type = "invalidSyntax"


class MembershipReferenceError(ProvisioningError):
    """One or more added members do not resolve to existing users.

    Raised after the resolvable membership changes have been persisted.

    Attributes:
        identifiers: Member identifiers that could not be resolved
    """

    status = 400
    scim_type = "invalidValue"

    def __init__(self, action: str, identifiers: Iterable[str]):
        self.action = action
        self.identifiers = list(identifiers)
        super().__init__(
            f"can't use {action} including none existing user(s): {','.join(self.identifiers)}"
        )
