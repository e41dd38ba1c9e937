from typing import Optional


class AppError(Exception):
    """Domain error surfaced to API clients as ``{"detail", "code"}``"""
    status_code = 400
    code = "app_error"
    default_detail = "Request could not be processed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


# ==================== VALIDATION / AUTHORIZATION ====================
class InvalidRequest(AppError):
    code = "invalid_request"
    default_detail = "Invalid request"


class Forbidden(AppError):
    status_code = 403
    code = "forbidden"
    default_detail = "You are not allowed to perform this action"


# ==================== NOT FOUND ====================
class UserNotFound(AppError):
    status_code = 404
    code = "user_not_found"
    default_detail = "User not found"


class TicketNotFound(AppError):
    status_code = 404
    code = "ticket_not_found"
    default_detail = "Ticket not found"


class MessageNotFound(AppError):
    status_code = 404
    code = "message_not_found"
    default_detail = "Message not found"


class ContractNotFound(AppError):
    status_code = 404
    code = "contract_not_found"
    default_detail = "The referenced contract no longer exists"


# ==================== REDEMPTION CODES ====================
class CodeInvalid(AppError):
    # Never say whether the code existed; that would allow enumeration
    code = "code_invalid"
    default_detail = "Code does not exist or has already been used"


class CodeNotFound(AppError):
    # Admin-side lookups by id; redemption uses CodeInvalid instead
    status_code = 404
    code = "code_not_found"
    default_detail = "Redemption code not found"


class CodeAlreadyExists(AppError):
    status_code = 409
    code = "code_already_exists"
    default_detail = "A redemption code with this value already exists"


# ==================== CONTRACTS ====================
class SignatureMismatch(AppError):
    code = "signature_mismatch"
    default_detail = "The typed name does not match the contractor's full name"


class CancellationTokenMismatch(AppError):
    code = "cancellation_token_mismatch"
    default_detail = "Type CANCELAR to confirm the cancellation"


class NotACancellationTicket(AppError):
    code = "not_a_cancellation_ticket"
    default_detail = "This ticket is not linked to a contract cancellation"


class ContractNotPending(AppError):
    status_code = 409
    code = "contract_not_pending"
    default_detail = "Contract is no longer pending"


class CancellationNotPending(AppError):
    status_code = 409
    code = "cancellation_not_pending"
    default_detail = "Cancellation has already been confirmed"


class TicketClosed(AppError):
    code = "ticket_closed"
    default_detail = "Ticket is closed"


# ==================== PAYMENTS ====================
class PaymentGatewayError(AppError):
    status_code = 500
    code = "payment_gateway_error"
    default_detail = "Failed to communicate with the payment gateway"

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(detail)
        if status_code is not None:
            self.status_code = status_code
