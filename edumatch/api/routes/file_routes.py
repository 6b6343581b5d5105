"""
File Validation Routes

POST /files/validate - Upload a document and check it matches the expected type
GET /files/formats - Supported upload formats
"""

from datetime import datetime, timezone

from fastapi import APIRouter, File, Form, UploadFile

from edumatch.schemas.schemas import DocumentType, FileValidationResponse
from edumatch.services.file_validation_service import (
    get_file_validation_service, get_file_type_display_name
)
from edumatch.utils.file_upload import extract_text_from_file, get_supported_formats

router = APIRouter(prefix="/files", tags=["Files"])


@router.post("/validate", response_model=FileValidationResponse)
async def validate_file(
    file: UploadFile = File(...),
    documentType: DocumentType = Form(...),
):
    """
    Validate an uploaded document.

    The model (or the keyword fallback when it is unreachable) decides
    whether the text looks like the expected document type.
    """
    text, filename = await extract_text_from_file(file)
    result = get_file_validation_service().validate_file(text, documentType, filename)

    return FileValidationResponse(
        fileName=filename,
        expectedType=documentType,
        displayName=get_file_type_display_name(documentType.value),
        result=result,
        validatedAt=datetime.now(timezone.utc),
    )


@router.get("/formats")
async def supported_formats():
    return {"success": True, **get_supported_formats()}
