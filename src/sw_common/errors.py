"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth
  2xxx: Offer composition
  3xxx: Trade lifecycle
  9xxx: System

Every failure the core reports is a distinct subclass so callers can switch
on the type (or on `code`) instead of matching message strings.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Invalid or expired token", 401)


class SystemCallerRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(1002, "System caller token required", 403)


# --- 2xxx: Offer composition ---

class OfferValidationError(AppError):
    """Raised by the offer composer; always before any storage access."""


class DuplicateLineError(OfferValidationError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(2001, f"Listing {listing_id} is already part of the offer", 422)


class OwnershipError(OfferValidationError):
    def __init__(self, listing_id: str, owner_id: str) -> None:
        super().__init__(2002, f"Listing {listing_id} is not owned by {owner_id}", 422)


class InvalidAmountError(OfferValidationError):
    def __init__(self, detail: str) -> None:
        super().__init__(2003, f"Invalid amount: {detail}", 422)


class InvalidServiceError(OfferValidationError):
    def __init__(self, detail: str) -> None:
        super().__init__(2004, f"Invalid service line: {detail}", 422)


class EmptyOfferError(OfferValidationError):
    def __init__(self) -> None:
        super().__init__(2005, "Offer must contain at least one line", 422)


class IndexOutOfRangeError(OfferValidationError):
    def __init__(self, index: int, size: int) -> None:
        super().__init__(2006, f"Line index {index} out of range for offer of {size} lines", 422)


class ListingValueMismatchError(OfferValidationError):
    def __init__(self, listing_id: str, declared: int, actual: int) -> None:
        super().__init__(
            2007,
            f"Declared value {declared} for listing {listing_id} does not match listing price {actual}",
            409,
        )


# --- 3xxx: Trade lifecycle ---

class SelfTradeError(AppError):
    def __init__(self) -> None:
        super().__init__(3001, "Cannot propose a trade to yourself", 422)


class ListingUnavailableError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(3002, f"Listing is not available: {listing_id}", 409)


class NotAuthorizedError(AppError):
    def __init__(self, actor_id: str, action: str) -> None:
        super().__init__(3003, f"User {actor_id} may not {action} this trade", 403)


class InvalidStateError(AppError):
    def __init__(self, trade_id: str, status: str, action: str) -> None:
        super().__init__(3004, f"Trade {trade_id} in status {status} cannot {action}", 409)


class InvalidCodeError(AppError):
    def __init__(self) -> None:
        super().__init__(3005, "Completion code does not match", 422)


class TradeNotFoundError(AppError):
    def __init__(self, trade_id: str) -> None:
        super().__init__(3006, f"Trade not found: {trade_id}", 404)


class RejectionReasonRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(3007, "A rejection reason is required", 422)


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class StorageError(AppError):
    def __init__(self, detail: str = "Storage failure") -> None:
        super().__init__(9003, detail, 503)
