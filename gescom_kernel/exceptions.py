"""
Typed exception hierarchy for the document engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (forms, list views, print generators) must react to failures by
type, not by parsing messages:

    try:
        service.save(draft)
    except NegativeStockError as e:
        ask_user(f"Only {e.current_stock} left for {e.product_id}")

Every exception carries:
  1. a CODE class attribute (machine-readable, stable across releases)
  2. structured attributes (never just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    GescomError (base)
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- InvalidDiscountError
    |   +-- InvalidPriceError
    |   +-- EmptyDocumentError
    |   +-- DuplicateLineError
    |   +-- InvalidMovementError
    |
    +-- PolicyViolation
    |   +-- NegativeStockError
    |
    +-- PersistenceError
    |   +-- DuplicateNumberError
    |
    +-- ConfigurationError
    |   +-- MissingSettingError
    |   +-- MalformedTaxError
    |
    +-- NumberingError
    |   +-- UnknownDocumentTypeError
    |
    +-- DocumentError
    |   +-- DocumentNotFoundError
    |   +-- InvalidStatusTransitionError
    |   +-- DocumentNotEditableError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
PROPAGATION
===============================================================================

Category            | Handling
--------------------|--------------------------------------------------------
ValidationError     | Recovered locally, surfaced as a structured failure
PolicyViolation     | Recovered locally, reports current stock to the caller
PersistenceError    | Aborts the enclosing transaction, keeps __cause__
ConfigurationError  | Logged, replaced by safe defaults
ImmutabilityError   | Programming error -- never recovered
"""


class GescomError(Exception):
    """
    Base exception for all document engine errors.

    All subclasses define a `code` class attribute.
    """

    code: str = "GESCOM_ERROR"


# Validation-related exceptions


class ValidationError(GescomError):
    """Malformed input rejected before calculation."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationError):
    """Line quantity is negative or not a number."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, line_index: int, quantity: str):
        self.line_index = line_index
        self.quantity = quantity
        super().__init__(f"Line {line_index}: invalid quantity {quantity}")


class InvalidDiscountError(ValidationError):
    """Line discount is outside [0, 100]."""

    code: str = "INVALID_DISCOUNT"

    def __init__(self, line_index: int, discount_percent: str):
        self.line_index = line_index
        self.discount_percent = discount_percent
        super().__init__(
            f"Line {line_index}: discount must be between 0 and 100, "
            f"got {discount_percent}"
        )


class InvalidPriceError(ValidationError):
    """Line unit price is negative or not a number."""

    code: str = "INVALID_PRICE"

    def __init__(self, line_index: int, unit_price: str):
        self.line_index = line_index
        self.unit_price = unit_price
        super().__init__(f"Line {line_index}: invalid unit price {unit_price}")


class EmptyDocumentError(ValidationError):
    """Document has no lines."""

    code: str = "EMPTY_DOCUMENT"

    def __init__(self, document_type: str):
        self.document_type = document_type
        super().__init__(f"Cannot save {document_type} without lines")


class DuplicateLineError(ValidationError):
    """The same saved line is listed twice in an amendment."""

    code: str = "DUPLICATE_LINE"

    def __init__(self, line_index: int, line_id: str):
        self.line_index = line_index
        self.line_id = line_id
        super().__init__(f"Line {line_index}: line {line_id} is already listed")


class InvalidMovementError(ValidationError):
    """Stock movement request with an unusable direction or quantity."""

    code: str = "INVALID_MOVEMENT"

    def __init__(self, product_id: str, field: str, value: str):
        self.product_id = product_id
        self.field = field
        self.value = value
        super().__init__(f"Stock movement for {product_id}: invalid {field} {value}")


# Policy-related exceptions


class PolicyViolation(GescomError):
    """A configurable business policy rejected the operation."""

    code: str = "POLICY_VIOLATION"


class NegativeStockError(PolicyViolation):
    """Outgoing movement would drive the stock balance below zero."""

    code: str = "NEGATIVE_STOCK"

    def __init__(self, product_id: str, requested: str, current_stock: str):
        self.product_id = product_id
        self.requested = requested
        self.current_stock = current_stock
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, on hand {current_stock}"
        )


# Persistence-related exceptions


class PersistenceError(GescomError):
    """
    Underlying storage failure.

    The original driver exception is preserved as ``__cause__``.
    """

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        message = f"Persistence failure during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DuplicateNumberError(PersistenceError):
    """A document number is already taken (uniqueness conflict)."""

    code: str = "DUPLICATE_NUMBER"

    def __init__(self, document_type: str, number: str):
        self.document_type = document_type
        self.number = number
        super().__init__(
            "save_document",
            f"number {number} already used for {document_type}",
        )


# Configuration-related exceptions


class ConfigurationError(GescomError):
    """Missing or malformed configuration record."""

    code: str = "CONFIGURATION_ERROR"


class MissingSettingError(ConfigurationError):
    """A settings-store key is absent."""

    code: str = "MISSING_SETTING"

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Setting not found: {key}")


class MalformedTaxError(ConfigurationError):
    """A tax or tax group row cannot be interpreted."""

    code: str = "MALFORMED_TAX"

    def __init__(self, tax_id: str, reason: str):
        self.tax_id = tax_id
        self.reason = reason
        super().__init__(f"Malformed tax {tax_id}: {reason}")


# Numbering-related exceptions


class NumberingError(GescomError):
    """Base exception for document numbering errors."""

    code: str = "NUMBERING_ERROR"


class UnknownDocumentTypeError(NumberingError):
    """Document type tag is not one of the known types."""

    code: str = "UNKNOWN_DOCUMENT_TYPE"

    def __init__(self, document_type: str):
        self.document_type = document_type
        super().__init__(f"Unknown document type: {document_type}")


# Document-related exceptions


class DocumentError(GescomError):
    """Base exception for document lifecycle errors."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    """Document with given ID was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class InvalidStatusTransitionError(DocumentError):
    """Requested status change is not allowed for this document type."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, document_type: str, from_status: str, to_status: str):
        self.document_type = document_type
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot move {document_type} from '{from_status}' to '{to_status}'"
        )


class DocumentNotEditableError(DocumentError):
    """Document is in a terminal state and cannot be amended."""

    code: str = "DOCUMENT_NOT_EDITABLE"

    def __init__(self, document_id: str, status: str):
        self.document_id = document_id
        self.status = status
        super().__init__(f"Document {document_id} is '{status}' and cannot be amended")


# Immutability-related exceptions


class ImmutabilityError(GescomError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Stock movements and document revisions are immutable from creation;
    saved document totals change only through an amendment.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
