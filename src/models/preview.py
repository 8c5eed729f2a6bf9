"""Request and response models for the strategy endpoints."""

from typing import Any

from pydantic import BaseModel, Field

from src.codegen.assembler import DEFAULT_CLASS_NAME


class PreviewRequestModel(BaseModel):
    """Request to preview generated strategy code.

    `config` is either a bare UI builder document or a full strategy config
    carrying it under `ui_builder`.
    """

    config: dict[str, Any]
    class_name: str = DEFAULT_CLASS_NAME


class PreviewResponseModel(BaseModel):
    """Generated code, or the reason it could not be generated."""

    success: bool
    code: str | None = None
    error: str | None = None
    node_id: str | None = None  # Condition node that failed, when known
    warnings: list[str] = Field(default_factory=list)
    imports: list[str] = Field(default_factory=list)


class ConfigRequestModel(BaseModel):
    """Request carrying a UI builder document."""

    config: dict[str, Any]


class NormalizeResponseModel(BaseModel):
    """Normalized (v2) UI builder document."""

    success: bool
    config: dict[str, Any] | None = None
    error: str | None = None


class ValidationIssueModel(BaseModel):
    path: str
    message: str


class ValidateResponseModel(BaseModel):
    """Validation findings for a UI builder document."""

    success: bool
    valid: bool = False
    complete: bool = False  # Valid and free of warnings
    errors: list[ValidationIssueModel] = Field(default_factory=list)
    warnings: list[ValidationIssueModel] = Field(default_factory=list)
    error: str | None = None
