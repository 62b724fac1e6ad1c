from pydantic import BaseModel


class ValidationError(BaseModel):
    """Individual validation error"""
    field: str
    code: str  # required, max_length, min_items, course_mismatch, ...
    message: str


class ValidationPreviewResponse(BaseModel):
    """Dry-run of the finalize gates for a composition session"""
    valid: bool
    errors: list[ValidationError]
    warnings: list[str]  # Non-blocking warnings
