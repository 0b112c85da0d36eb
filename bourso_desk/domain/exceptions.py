"""Domain-specific exceptions"""

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from bourso_desk.domain.models import MfaChallenge


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidCredentialsError(DomainException):
    """Brokerage rejected the client id / password pair"""

    pass


class MfaRequiredError(DomainException):
    """Brokerage requires a multi-factor challenge before going further

    ``challenges`` carries the outstanding challenges when the adapter already
    knows them (chained MFA); it is empty when they must be listed separately.
    """

    def __init__(self, message: str = "mfa required", challenges: List["MfaChallenge"] | None = None):
        super().__init__(message)
        self.challenges = list(challenges or [])


class MfaExhaustedError(DomainException):
    """MFA was required but no challenge is available to answer"""

    pass


class BrokerageAPIError(DomainException):
    """Brokerage API returned an error or is unavailable"""

    pass


class QrCodePayloadError(BrokerageAPIError):
    """MFA status poll answered with a QR code to scan instead of a status"""

    def __init__(self, data: str):
        super().__init__("qr code payload received")
        self.data = data


class TransferRejectedError(DomainException):
    """Brokerage refused the transfer (business rule on the ledger side)"""

    pass


class ValidationFailure(DomainException):
    """Form-level input is malformed (credentials, transfer, job definition)"""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class SessionStateError(DomainException):
    """Operation is not possible in the current session or transfer state"""

    pass
