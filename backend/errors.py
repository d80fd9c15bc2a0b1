from typing import Optional


class DonationError(Exception):
    """Base error of the donation flow.

    ``reason`` is the machine-stable code returned to clients, ``message``
    the human-readable text. Neither may carry secrets or internals.
    """

    status_code = 500
    reason = "donation_error"
    default_message = "Donation request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidAmount(DonationError):
    status_code = 400
    reason = "invalid_amount"
    default_message = "Amount must be between 1 and 100 USD"


class InvalidPayload(DonationError):
    status_code = 400
    reason = "invalid_payload"
    default_message = "Invalid payload"


class InvalidNotification(DonationError):
    status_code = 400
    reason = "invalid_notification"
    default_message = "Invalid notification"


class InvalidSignature(DonationError):
    status_code = 400
    reason = "invalid_signature"
    default_message = "Invalid signature"


class DonationNotFound(DonationError):
    status_code = 404
    reason = "donation_not_found"
    default_message = "Donation not found"


class GatewayError(DonationError):
    status_code = 500
    reason = "gateway_error"
    default_message = "Failed to create payment"

    def __init__(self, message: Optional[str] = None, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class DuplicateDonation(DonationError):
    status_code = 409
    reason = "duplicate_donation"
    default_message = "Donation already exists"


class StorageUnavailable(DonationError):
    status_code = 500
    reason = "storage_unavailable"
    default_message = "Donation storage unavailable"
