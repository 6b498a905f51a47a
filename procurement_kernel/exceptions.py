"""
Typed exception hierarchy for the procurement packages.

Every error has a typed class, a machine-readable ``code`` class attribute
and structured attributes carrying the data a caller needs to react.
Callers catch by type and read attributes; they never parse messages.

    ProcurementError (base)
    |
    +-- DraftValidationError
    |   +-- EmptyDraftError
    |   +-- InvalidQuantityError
    |   +-- InvalidRateError
    |   +-- MissingFieldError
    |
    +-- DraftReplaceConfirmationRequired
    |
    +-- ReferenceIntegrityError
    |   +-- BaselineReferenceError
    |
    +-- NotFoundError
    |   +-- ProcessNotFoundError
    |   +-- QuotationNotFoundError
    |   +-- PurchaseOrderNotFoundError
    |   +-- DeliveryNotFoundError
    |
    +-- ConflictError
    |   +-- DuplicateOrderNumberError
    |   +-- DuplicateGuideNumberError
    |   +-- DuplicateQuotationError
    |
    +-- QuotationHasDependentsError
    |
    +-- SettingsError

Category        | Code                         | When raised
----------------|------------------------------|-------------------------------------
Validation      | EMPTY_DRAFT                  | Saving a draft with zero lines
                | INVALID_QUANTITY             | Negative values or no positive line
                | INVALID_RATE                 | IGV or discount outside [0, 100]
                | MISSING_FIELD                | Required header field is blank
Drafts          | DRAFT_REPLACE_CONFIRMATION   | Switching order would drop entries
References      | BASELINE_REFERENCE_INVALID   | Line points outside its process
Lookup          | *_NOT_FOUND                  | Unknown id
Conflicts       | DUPLICATE_ORDER_NUMBER       | Order number already used
                | DUPLICATE_GUIDE_NUMBER       | Guide number already registered
                | DUPLICATE_QUOTATION          | Supplier already quoted the process
Destructive     | QUOTATION_HAS_DEPENDENTS     | Delete without force, orders exist
Config          | INVALID_SETTINGS             | Settings file fails validation

Absence is not an error: a missing best offer, an undefined percentage or
an unpriced offer are represented by ``None``.
"""

from uuid import UUID


class ProcurementError(Exception):
    """Base exception for all procurement errors."""

    code: str = "PROCUREMENT_ERROR"


# Draft validation


class DraftValidationError(ProcurementError):
    """A draft failed validation before any persistence call."""

    code: str = "VALIDATION"


class EmptyDraftError(DraftValidationError):
    """Draft has no lines to save."""

    code: str = "EMPTY_DRAFT"

    def __init__(self, draft_kind: str):
        self.draft_kind = draft_kind
        super().__init__(f"The {draft_kind} draft has no items")


class InvalidQuantityError(DraftValidationError):
    """A line carries an unusable quantity or price."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, draft_kind: str, reason: str, line_id: str | None = None):
        self.draft_kind = draft_kind
        self.reason = reason
        self.line_id = line_id
        super().__init__(f"Invalid {draft_kind} line: {reason}")


class InvalidRateError(DraftValidationError):
    """An IGV or discount percentage outside [0, 100]."""

    code: str = "INVALID_RATE"

    def __init__(self, rate_name: str, value: object):
        self.rate_name = rate_name
        self.value = value
        super().__init__(f"The {rate_name} percentage must be within [0, 100], got {value}")


class MissingFieldError(DraftValidationError):
    """A required header field is blank."""

    code: str = "MISSING_FIELD"

    def __init__(self, draft_kind: str, field_name: str):
        self.draft_kind = draft_kind
        self.field_name = field_name
        super().__init__(f"The {draft_kind} draft requires {field_name}")


class DraftReplaceConfirmationRequired(ProcurementError):
    """Replacing the draft lines would discard quantities the operator entered."""

    code: str = "DRAFT_REPLACE_CONFIRMATION"

    def __init__(self, current_order_id: UUID | None, requested_order_id: UUID):
        self.current_order_id = current_order_id
        self.requested_order_id = requested_order_id
        super().__init__(
            f"Switching the delivery draft to order {requested_order_id} "
            "discards entered quantities; confirmation required"
        )


# Referential integrity


class ReferenceIntegrityError(ProcurementError):
    """Base exception for cross-document reference violations."""

    code: str = "REFERENCE_INTEGRITY"


class BaselineReferenceError(ReferenceIntegrityError):
    """A line references a baseline item outside its process."""

    code: str = "BASELINE_REFERENCE_INVALID"

    def __init__(self, process_id: UUID, baseline_id: UUID):
        self.process_id = process_id
        self.baseline_id = baseline_id
        super().__init__(
            f"Baseline item {baseline_id} does not belong to process {process_id}"
        )


# Lookup


class NotFoundError(ProcurementError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"
    entity: str = "entity"

    def __init__(self, entity_id: UUID):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}")


class ProcessNotFoundError(NotFoundError):
    code: str = "PROCESS_NOT_FOUND"
    entity: str = "Quotation process"


class QuotationNotFoundError(NotFoundError):
    code: str = "QUOTATION_NOT_FOUND"
    entity: str = "Quotation"


class PurchaseOrderNotFoundError(NotFoundError):
    code: str = "PURCHASE_ORDER_NOT_FOUND"
    entity: str = "Purchase order"


class DeliveryNotFoundError(NotFoundError):
    code: str = "DELIVERY_NOT_FOUND"
    entity: str = "Delivery"


# Conflicts


class ConflictError(ProcurementError):
    """Base exception for uniqueness violations."""

    code: str = "CONFLICT"


class DuplicateOrderNumberError(ConflictError):
    """Order number already used by another order of the process."""

    code: str = "DUPLICATE_ORDER_NUMBER"

    def __init__(self, order_number: str, existing_order_id: UUID):
        self.order_number = order_number
        self.existing_order_id = existing_order_id
        super().__init__(f"Order number already exists: {order_number}")


class DuplicateGuideNumberError(ConflictError):
    """Guide number already registered for another delivery."""

    code: str = "DUPLICATE_GUIDE_NUMBER"

    def __init__(self, guide_number: str, existing_delivery_id: UUID):
        self.guide_number = guide_number
        self.existing_delivery_id = existing_delivery_id
        super().__init__(f"Guide number already registered: {guide_number}")


class DuplicateQuotationError(ConflictError):
    """The supplier already has a quotation in the process."""

    code: str = "DUPLICATE_QUOTATION"

    def __init__(self, supplier_name: str, existing_quotation_id: UUID):
        self.supplier_name = supplier_name
        self.existing_quotation_id = existing_quotation_id
        super().__init__(f"Supplier already quoted this process: {supplier_name}")


class QuotationHasDependentsError(ProcurementError):
    """Deleting the quotation would cascade into purchase orders."""

    code: str = "QUOTATION_HAS_DEPENDENTS"

    def __init__(self, quotation_id: UUID, order_ids: tuple[UUID, ...]):
        self.quotation_id = quotation_id
        self.order_ids = order_ids
        super().__init__(
            f"Quotation {quotation_id} is referenced by {len(order_ids)} purchase order(s)"
        )


class SettingsError(ProcurementError):
    """Settings failed validation."""

    code: str = "INVALID_SETTINGS"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid setting {key}: {reason}")
