"""User facing messages and machine readable error codes, grouped by area."""


class AuthMessages:
    MISSING_TOKEN = "Access denied. No token provided."
    TOKEN_EXPIRED = "Token expired. Please login again."
    INVALID_TOKEN = "Invalid token."
    USER_NOT_FOUND = "Invalid token. User not found."
    ACCOUNT_DEACTIVATED = "Account is deactivated."
    ACCOUNT_LOCKED = "Account is temporarily locked due to repeated failed logins."
    INVALID_CREDENTIALS = "Invalid email or password"
    USER_EXISTS = "User already exists with this email"
    INVALID_PASSWORD = "Current password is incorrect"
    AUTH_REQUIRED = "Authentication required."
    ADMIN_REQUIRED = "Admin privileges required. Upgrade to Tier 4 for admin access."


class UserMessages:
    NOT_FOUND = "User not found"
    CANNOT_MODIFY_SELF = "You cannot deactivate or delete your own account"


class CaseMessages:
    NOT_FOUND = "Case not found"
    NO_UPDATES = "No valid fields to update"
    ALREADY_ESCALATED = "Case is already escalated"
    CASE_CLOSED = "Cannot escalate closed or completed case"
    LIMIT_REACHED = "Monthly case submission limit reached for your tier"
    DATE_RANGE_INCOMPLETE = "start_date and end_date must be given together"
    DATE_RANGE_INVALID = "start_date must be before end_date"


class DocumentMessages:
    NOT_FOUND = "Document not found"
    FILE_MISSING = "Document file is missing from storage"
    NO_FILE = "No file uploaded"
    FILE_EMPTY = "Uploaded file is empty"
    FILE_TOO_LARGE = "File size exceeds limit"
    QR_NOT_FOUND = "QR code not found for this document"
    FORM_NOT_ALLOWED = "Your tier does not allow generating this form"
    SHARE_NOT_FOUND = "Share link not found"
    SHARE_EXPIRED = "Share link has expired"


class BlockchainMessages:
    INVALID_ADDRESS = "Invalid Ethereum address"
    PATH_OUTSIDE_STORAGE = "Document path must point inside the storage directory"
    RPC_NOT_CONFIGURED = "Blockchain RPC not configured"
    CONTRACT_NOT_INITIALIZED = "Blockchain contract not initialized"


class NotificationMessages:
    NOT_FOUND = "Notification not found"
    DELETED = "Notification deleted successfully"
    RECIPIENT_NOT_FOUND = "Recipient not found or inactive"
    SCHEDULED_NOT_FOUND = "Scheduled notification not found"
    CANCELLED = "Scheduled notification cancelled successfully"
    SCHEDULE_IN_PAST = "Scheduled time must be in the future"
    FAILED_NOT_FOUND = "Failed notification not found"


class SecureEntryMessages:
    NOT_FOUND = "Secure entry not found"
    DESCRIPTION_REQUIRED = "A description of the evidence is required"
    DELETED = "Secure entry deleted successfully"


class ErrorCodes:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    ROUTE_NOT_FOUND = "ROUTE_NOT_FOUND"
    MISSING_TOKEN = "MISSING_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    USER_EXISTS = "USER_EXISTS"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INSUFFICIENT_PRIVILEGES = "INSUFFICIENT_PRIVILEGES"
    INSUFFICIENT_TIER = "INSUFFICIENT_TIER"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    FOREIGN_KEY_VIOLATION = "FOREIGN_KEY_VIOLATION"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    BLOCKCHAIN_ERROR = "BLOCKCHAIN_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    NO_UPDATES = "NO_UPDATES"
    ALREADY_ESCALATED = "ALREADY_ESCALATED"
    CASE_CLOSED = "CASE_CLOSED"
    ESCALATION_REJECTED = "ESCALATION_REJECTED"
    CASE_LIMIT_REACHED = "CASE_LIMIT_REACHED"
    UNSUPPORTED_FORM = "UNSUPPORTED_FORM"
    FORM_NOT_ALLOWED = "FORM_NOT_ALLOWED"
    SHARE_EXPIRED = "SHARE_EXPIRED"
