"""Strategy routes for code preview, normalization and validation."""

import logging
from typing import Any

from fastapi import APIRouter
from pydantic import ValidationError

from src.codegen.assembler import preview_strategy_code, validate_config_size
from src.codegen.errors import CodegenError
from src.codegen.ir import UIBuilderConfig, parse_ui_builder_config
from src.codegen.normalize import normalize_config
from src.codegen.validator import validate_config
from src.models.preview import (
    ConfigRequestModel,
    NormalizeResponseModel,
    PreviewRequestModel,
    PreviewResponseModel,
    ValidateResponseModel,
    ValidationIssueModel,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/strategies", tags=["strategies"])


def format_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic ValidationError into one readable line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return "invalid config: " + "; ".join(parts)


def _decode(document: dict[str, Any]) -> UIBuilderConfig:
    validate_config_size(document)
    return parse_ui_builder_config(document)


@router.post("/preview", response_model=PreviewResponseModel)
async def preview_strategy(request: PreviewRequestModel) -> PreviewResponseModel:
    """Generate strategy code for a UI builder document.

    Generation failures are reported in the payload with success=false;
    they are deterministic, so clients should surface them rather than retry.
    """
    try:
        generated = preview_strategy_code(request.config, request.class_name)
    except ValidationError as e:
        logger.info(f"Preview {request.class_name}: rejected document - {e.error_count()} errors")
        return PreviewResponseModel(success=False, error=format_validation_error(e))
    except CodegenError as e:
        logger.info(f"Preview {request.class_name}: generation failed - {e}")
        return PreviewResponseModel(success=False, error=str(e), node_id=e.node_id)

    return PreviewResponseModel(
        success=True,
        code=generated.code,
        warnings=generated.warnings,
        imports=generated.imports,
    )


@router.post("/normalize", response_model=NormalizeResponseModel)
async def normalize_strategy(request: ConfigRequestModel) -> NormalizeResponseModel:
    """Return the document in its canonical per-direction shape."""
    try:
        config = normalize_config(_decode(request.config))
    except ValidationError as e:
        return NormalizeResponseModel(success=False, error=format_validation_error(e))
    except CodegenError as e:
        return NormalizeResponseModel(success=False, error=str(e))

    return NormalizeResponseModel(
        success=True,
        config=config.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@router.post("/validate", response_model=ValidateResponseModel)
async def validate_strategy(request: ConfigRequestModel) -> ValidateResponseModel:
    """Check a document for referential integrity and completeness."""
    try:
        result = validate_config(normalize_config(_decode(request.config)))
    except ValidationError as e:
        return ValidateResponseModel(success=False, error=format_validation_error(e))
    except CodegenError as e:
        return ValidateResponseModel(success=False, error=str(e))

    return ValidateResponseModel(
        success=True,
        valid=result.is_valid,
        complete=result.is_complete,
        errors=[ValidationIssueModel(path=i.path, message=i.message) for i in result.errors],
        warnings=[ValidationIssueModel(path=i.path, message=i.message) for i in result.warnings],
    )
