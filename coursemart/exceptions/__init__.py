"""Custom exceptions for the CourseMart commerce core."""

class CommerceError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class BusinessLogicError(CommerceError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(CommerceError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class UnauthorizedError(CommerceError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access", status_code=403):
        super().__init__(message, status_code)

class ConflictError(BusinessLogicError):
    """Raised when the request conflicts with current state."""
    def __init__(self, message, payload=None):
        super().__init__(message, status_code=409, payload=payload)


# Checkout / pricing

class InvalidCheckoutTotalError(BusinessLogicError):
    """Raised when a checkout prices to zero or less."""
    def __init__(self, total):
        super().__init__(f"Checkout total must be greater than zero (got {total})")
        self.total = total

class PromoRejectedError(BusinessLogicError):
    """Raised when a promo code fails validation at checkout."""
    def __init__(self, code, reason):
        super().__init__(f"Promo code {code} cannot be applied: {reason}", payload={'reason': reason})
        self.code = code
        self.reason = reason

class AlreadyEnrolledError(ConflictError):
    """Raised when a user tries to buy a course they already own."""
    def __init__(self, message="You are already enrolled in this course"):
        super().__init__(message)


# Group purchases

class InvalidTierError(BusinessLogicError):
    """Raised for missing, inactive or misconfigured group tiers."""

class DuplicateActiveGroupError(ConflictError):
    """Raised when the creator already runs an open group for the course."""
    def __init__(self):
        super().__init__("You already have an active group for this course")

class GroupNotOpenError(BusinessLogicError):
    """Raised when a group is not accepting members."""
    def __init__(self):
        super().__init__("This group is not open for joining yet")

class GroupFullError(ConflictError):
    """Raised when a group has no open slot left."""
    def __init__(self):
        super().__init__("This group is already full")

class InviteCodeExhaustedError(CommerceError):
    """Raised when no unique invite code could be allocated."""
    def __init__(self, attempts):
        super().__init__(f"Could not allocate a unique invite code after {attempts} attempts", 503)

class ConcurrentUpdateError(ConflictError):
    """Raised when optimistic retries on a contended row are exhausted."""
    def __init__(self, message="The group was updated concurrently, please retry"):
        super().__init__(message)


# Payment gateway

class GatewayError(CommerceError):
    """Raised when the payment gateway rejects or fails a call."""
    def __init__(self, message="Payment gateway request failed", http_status=None, response=None):
        super().__init__(message, 502, payload={'gateway_status': http_status} if http_status else None)
        self.http_status = http_status
        self.response = response
