"""Batch validation API routes."""

from fastapi import APIRouter

from statsloader.api.deps import ValidatorDep
from statsloader.schemas.common import APIResponse
from statsloader.schemas.validation import ValidationRequest, ValidationResponse
from statsloader.validation.reader import parse_delimited

router = APIRouter(prefix="/validation", tags=["validation"])


@router.post("", response_model=APIResponse[ValidationResponse])
async def validate_batch(
    data: ValidationRequest,
    validator: ValidatorDep,
) -> APIResponse[ValidationResponse]:
    """Validate delimited text without touching the statistics store."""
    header, records = parse_delimited(data.content, data.delimiter)
    result = validator.validate_batch(records, header=header, max_errors=data.max_errors)
    return APIResponse(
        data=ValidationResponse(
            is_valid=result.is_valid,
            total_rows=result.total_rows,
            valid_rows=len(result.valid),
            truncated=result.truncated,
            errors=result.errors,
            warnings=result.warnings,
            column_statistics=result.column_statistics,
        )
    )
