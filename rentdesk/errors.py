"""
Error taxonomy for the consistency core.

Every expected failure carries a machine-readable code so callers can pick
a specific message. Collaborator failures (database, blob storage) are not
wrapped and reach the caller unchanged.
"""

from typing import Optional


# Validation
ERROR_TENANT_NAME_REQUIRED = 'ERROR_TENANT_NAME_REQUIRED'
ERROR_TENANT_PROPERTY_REQUIRED = 'ERROR_TENANT_PROPERTY_REQUIRED'
ERROR_TENANT_INVALID_EMAIL = 'ERROR_TENANT_INVALID_EMAIL'
ERROR_CONTRACT_START_DATE_REQUIRED = 'ERROR_CONTRACT_START_DATE_REQUIRED'
ERROR_CONTRACT_END_DATE_REQUIRED = 'ERROR_CONTRACT_END_DATE_REQUIRED'
ERROR_CONTRACT_END_BEFORE_START = 'ERROR_CONTRACT_END_BEFORE_START'
ERROR_CONTRACT_INVALID_DATE = 'ERROR_CONTRACT_INVALID_DATE'
ERROR_CONTRACT_INVALID_LEAD_DAYS = 'ERROR_CONTRACT_INVALID_LEAD_DAYS'
ERROR_CONTRACT_INVALID_STATUS = 'ERROR_CONTRACT_INVALID_STATUS'
ERROR_PROPERTY_INVALID_STATUS = 'ERROR_PROPERTY_INVALID_STATUS'
ERROR_INQUIRY_NAME_REQUIRED = 'ERROR_INQUIRY_NAME_REQUIRED'
ERROR_INQUIRY_INVALID_TYPE = 'ERROR_INQUIRY_INVALID_TYPE'
ERROR_INQUIRY_INVALID_BUDGET = 'ERROR_INQUIRY_INVALID_BUDGET'
ERROR_VALIDATION_INVALID_FIELDS = 'ERROR_VALIDATION_INVALID_FIELDS'

# Conflicts
ERROR_CONTRACT_ACTIVE_CONFLICT = 'ERROR_CONTRACT_ACTIVE_CONFLICT'
ERROR_MATCH_DUPLICATE = 'ERROR_MATCH_DUPLICATE'
ERROR_TENANT_HAS_ACTIVE_CONTRACT = 'ERROR_TENANT_HAS_ACTIVE_CONTRACT'

# Lifecycle
ERROR_INQUIRY_CLOSED = 'ERROR_INQUIRY_CLOSED'

# Lookups
ERROR_NOT_FOUND = 'ERROR_NOT_FOUND'

# Provisioning
ERROR_TENANT_INVALID_RESPONSE = 'ERROR_TENANT_INVALID_RESPONSE'
ERROR_TENANT_PDF_UPLOAD_FAILED = 'ERROR_TENANT_PDF_UPLOAD_FAILED'


class RentDeskError(Exception):
    """Base class for expected, coded failures."""

    def __init__(self, code: str, message: Optional[str] = None):
        self.code = code
        self.message = message or code
        super().__init__(self.message)


class ValidationError(RentDeskError):
    """Input rejected before any write happened."""


class ConflictError(RentDeskError):
    """A uniqueness rule held by the store refused the write."""


class ActiveContractConflictError(ConflictError):
    def __init__(self, property_id: Optional[str] = None):
        message = "Property already has an active contract"
        if property_id:
            message = f"Property {property_id} already has an active contract"
        super().__init__(ERROR_CONTRACT_ACTIVE_CONFLICT, message)
        self.property_id = property_id


class DuplicateMatchError(ConflictError):
    def __init__(self, inquiry_id: Optional[str] = None, property_id: Optional[str] = None):
        super().__init__(
            ERROR_MATCH_DUPLICATE,
            f"Match already recorded for inquiry {inquiry_id} / property {property_id}",
        )
        self.inquiry_id = inquiry_id
        self.property_id = property_id


class TenantHasActiveContractError(ConflictError):
    def __init__(self, tenant_id: str):
        super().__init__(
            ERROR_TENANT_HAS_ACTIVE_CONTRACT,
            f"Tenant {tenant_id} has an active contract and cannot be deleted",
        )
        self.tenant_id = tenant_id


class NotFoundError(RentDeskError):
    def __init__(self, entity: str, entity_id=None):
        message = f"{entity} not found"
        if entity_id is not None:
            message = f"{entity} '{entity_id}' not found"
        super().__init__(ERROR_NOT_FOUND, message)
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransitionError(RentDeskError):
    """Status change not allowed by the entity's lifecycle."""


class ProvisioningError(RentDeskError):
    """Tenant + lease provisioning failed after validation passed."""


class DocumentAttachError(ProvisioningError):
    """
    The lease document could not be attached after tenant and contract were
    committed. Three outcomes are distinguishable:

      rolled_back=True                 tenant and contract were removed again
      manual_cleanup_required=True     the rollback itself failed; the ids of
                                       the orphaned rows are attached
    """

    def __init__(
        self,
        cause: BaseException,
        rolled_back: bool,
        tenant_id: Optional[str] = None,
        contract_id: Optional[str] = None,
        rollback_error: Optional[BaseException] = None,
    ):
        if rolled_back:
            message = f"Document attach failed, transaction rolled back: {cause}"
        else:
            message = (
                f"Document attach failed and rollback failed, manual cleanup required "
                f"(tenant {tenant_id}, contract {contract_id}): {cause}; rollback error: {rollback_error}"
            )
        super().__init__(ERROR_TENANT_PDF_UPLOAD_FAILED, message)
        self.cause = cause
        self.rolled_back = rolled_back
        self.tenant_id = tenant_id
        self.contract_id = contract_id
        self.rollback_error = rollback_error

    @property
    def manual_cleanup_required(self) -> bool:
        return not self.rolled_back
