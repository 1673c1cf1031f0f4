from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class LMSException(HTTPException):
    """Base class for domain errors. Carries an error code the exception handler renders."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "BAD_REQUEST"
    default_detail: str = "Request could not be processed."

    def __init__(self, detail: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)
        self.details = details


class AccessDeniedError(LMSException):
    status_code = status.HTTP_403_FORBIDDEN
    code = "ACCESS_DENIED"
    default_detail = "Access denied."


class AlreadyPurchasedError(LMSException):
    status_code = status.HTTP_409_CONFLICT
    code = "ALREADY_PURCHASED"
    default_detail = "You already have access to this course."


class InvalidCourseError(LMSException):
    status_code = status.HTTP_404_NOT_FOUND
    code = "INVALID_COURSE"
    default_detail = "Invalid course."


class InvalidLessonError(LMSException):
    status_code = status.HTTP_404_NOT_FOUND
    code = "INVALID_LESSON"
    default_detail = "Invalid lesson."


class UnknownPaymentError(LMSException):
    status_code = status.HTTP_404_NOT_FOUND
    code = "UNKNOWN_PAYMENT"
    default_detail = "No purchase record found for this payment."

    def __init__(self, payment_intent_id: str):
        super().__init__(f"No purchase record found for payment intent: {payment_intent_id}")
        self.payment_intent_id = payment_intent_id


class ExternalPaymentError(LMSException):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "PAYMENT_PROVIDER_ERROR"
    default_detail = "The payment provider rejected the request."

    def __init__(self, detail: Optional[str] = None, *, retryable: bool = False):
        super().__init__(detail, details={"retryable": retryable})
        self.retryable = retryable
        if retryable:
            self.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            self.code = "PAYMENT_PROVIDER_UNAVAILABLE"


class CertificateUnavailableError(LMSException):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "CERTIFICATE_UNAVAILABLE"
    default_detail = "The course has not been completed yet."
