"""
Custom exception classes and error handlers
Provides consistent error responses across the application
"""

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional

class ReferralServiceException(HTTPException):
    """Base exception class for the referral service"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code

class BadRequestException(ReferralServiceException):
    """400 Bad Request"""

    def __init__(self, detail: str, error_code: str = "BAD_REQUEST"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code
        )

class UnauthorizedException(ReferralServiceException):
    """401 Unauthorized"""

    def __init__(self, detail: str = "Unauthorized", error_code: str = "UNAUTHORIZED"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code=error_code
        )

class ConflictException(ReferralServiceException):
    """409 Conflict"""

    def __init__(self, detail: str, error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code
        )

class ValidationException(ReferralServiceException):
    """422 Unprocessable Entity"""

    def __init__(self, detail: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )

class InternalServerException(ReferralServiceException):
    """500 Internal Server Error"""

    def __init__(
        self,
        detail: str = "Internal server error",
        error_code: str = "INTERNAL_ERROR"
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code=error_code
        )

# Referral code exceptions
class InvalidCustomCodeException(ValidationException):
    """Custom referral code fails format rules"""

    def __init__(self, detail: str):
        super().__init__(
            detail=detail,
            error_code="INVALID_CUSTOM_CODE"
        )

class CodeAlreadyTakenException(ConflictException):
    """Custom referral code belongs to someone else"""

    def __init__(self, code: str):
        super().__init__(
            detail=f"Referral code '{code}' is already taken",
            error_code="CODE_ALREADY_TAKEN"
        )
        self.code = code

class CodeGenerationExhaustedException(InternalServerException):
    """Every random code attempt collided"""

    def __init__(self, attempts: int):
        super().__init__(
            detail=f"Failed to create referral code after {attempts} attempts",
            error_code="CODE_GENERATION_EXHAUSTED"
        )
        self.attempts = attempts

# Attribution exceptions
class InvalidReferralCodeException(BadRequestException):
    """Referral code validation failed"""

    def __init__(self, detail: str = "Invalid referral code"):
        super().__init__(
            detail=detail,
            error_code="INVALID_REFERRAL_CODE"
        )

class SelfReferralException(BadRequestException):
    """User tried to redeem their own code"""

    def __init__(self, detail: str = "Cannot use your own referral code"):
        super().__init__(
            detail=detail,
            error_code="SELF_REFERRAL_NOT_ALLOWED"
        )

class AlreadyReferredException(ConflictException):
    """Referred user already has a pending or active referral"""

    def __init__(self, detail: str = "User already has an active referral"):
        super().__init__(
            detail=detail,
            error_code="ALREADY_REFERRED"
        )

# Webhook exceptions
class InvalidWebhookSignatureException(BadRequestException):
    """Webhook signature verification failed"""

    def __init__(self, detail: str = "Invalid webhook signature"):
        super().__init__(
            detail=detail,
            error_code="INVALID_WEBHOOK_SIGNATURE"
        )

class WebhookProcessingException(InternalServerException):
    """Webhook could not be applied; the processor must redeliver it"""

    def __init__(self, detail: str, error_code: str = "WEBHOOK_PROCESSING_FAILED"):
        super().__init__(
            detail=detail,
            error_code=error_code
        )

async def referral_exception_handler(
    request: Request,
    exc: ReferralServiceException
) -> JSONResponse:
    """Render service exceptions with their error code"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error_code": exc.error_code
        },
        headers=exc.headers
    )

def register_exception_handlers(app: FastAPI) -> None:
    """Attach service exception handlers to the app"""
    app.add_exception_handler(ReferralServiceException, referral_exception_handler)
