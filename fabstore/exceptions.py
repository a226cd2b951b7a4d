"""
Error kinds for the order pipeline.

Every error carries the HTTP status the API answers with. Client-correctable
errors (validation, address) name the offending field.
"""

from typing import Optional


class FabstoreError(Exception):
    status_code = 500

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ConfigValidationError(FabstoreError):
    """A product configuration failed structural validation."""
    status_code = 400

    def __init__(self, errors: list, prefix: str = ""):
        self.errors = errors
        first = errors[0]
        field = f"{prefix}{first.field}" if prefix else first.field
        super().__init__(first.message, field=field)

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["errors"] = [{"field": e.field, "message": e.message} for e in self.errors]
        return body


class MissingAddressFields(FabstoreError):
    status_code = 400

    def __init__(self, missing: list):
        self.missing = missing
        super().__init__(
            f"Address is missing required fields: {', '.join(missing)}",
            field=f"address.{missing[0]}",
        )


class EmptyCart(FabstoreError):
    status_code = 400

    def __init__(self):
        super().__init__("Cart items are required", field="items")


class SignatureVerificationFailed(FabstoreError):
    status_code = 400


class GatewayNotConfigured(FabstoreError):
    status_code = 500


class PaymentGatewayError(FabstoreError):
    status_code = 502


class OrderNotFound(FabstoreError):
    status_code = 404

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Order not found: {job_id}")


class DuplicateOrder(FabstoreError):
    status_code = 409

    def __init__(self, job_id: str):
        super().__init__(f"Order already exists: {job_id}", field="jobId")


class InvalidOrderState(FabstoreError):
    status_code = 409


class InvalidJobId(FabstoreError):
    status_code = 400

    def __init__(self, job_id: str):
        super().__init__(
            "jobId may only contain letters, digits, '-' and '_' (at most 64 characters)",
            field="jobId",
        )
        self.job_id = job_id


class DocumentNotAvailable(FabstoreError):
    status_code = 404


class RenderFailure(FabstoreError):
    """Document backend failed. Nothing was recorded, so it is retryable."""
    status_code = 500
