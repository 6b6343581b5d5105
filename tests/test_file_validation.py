"""
Tests for document validation: model reply parsing, keyword fallback and
the MongoDB result cache. The OpenAI client and the collection are mocks.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from openai import OpenAIError
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from edumatch.schemas.schemas import DocumentType, ValidationAction
from edumatch.services.file_validation_service import (
    FileValidationService, ValidationCache, build_prompt, extract_json,
    fallback_validation, get_file_type_display_name, result_from_json, result_from_text,
)

CV_TEXT = (
    "Jane Doe - jane@example.com\n"
    "Work experience: Data analyst at Acme, 2019-2023\n"
    "Education: BSc Statistics\n"
    "Skills: Python, SQL"
)


def _reply(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def collection():
    coll = MagicMock()
    coll.find_one.return_value = None
    return coll


@pytest.fixture
def openai_client():
    return MagicMock()


@pytest.fixture
def service(openai_client, collection):
    return FileValidationService(client=openai_client, cache=ValidationCache(collection), model="test-model")


# ============================================================
# PARSING
# ============================================================

def test_extract_json_variants():
    assert extract_json('{"isValid": true}') == {"isValid": True}
    assert extract_json('```json\n{"isValid": false, "confidence": 0.2}\n```') == {"isValid": False, "confidence": 0.2}
    assert extract_json('Sure! Here it is: {"a": {"b": 1}} hope this helps') == {"a": {"b": 1}}
    assert extract_json("no json here") is None
    assert extract_json("") is None


def test_result_from_json_normalises_fields():
    result = result_from_json({"isValid": False, "confidence": 1.7, "suggestions": "Upload again"})
    assert result.action == ValidationAction.reupload
    assert result.confidence == 1.0
    assert result.suggestions == ["Upload again"]
    assert result.reasoning == "No reasoning provided"


def test_result_from_text_heuristic():
    result = result_from_text("isValid: true, confidence: 0.7")
    assert result.isValid is True
    assert result.confidence == 0.7

    result = result_from_text("This does not look like a transcript")
    assert result.isValid is False
    assert result.confidence == 0.5
    assert result.action == ValidationAction.reupload


def test_prompt_truncates_long_text():
    system, user = build_prompt(DocumentType.transcripts, "x" * 5000)
    assert "transcript" in system.lower()
    assert '"transcripts"' in system
    assert user.endswith("x...(truncated)")
    assert "x" * 3000 in user
    assert "x" * 3001 not in user


def test_display_names():
    assert get_file_type_display_name("cv-resume") == "CV/Resume"
    assert get_file_type_display_name("mystery") == "mystery"


# ============================================================
# FALLBACK
# ============================================================

def test_fallback_cv_keywords():
    result = fallback_validation(CV_TEXT, DocumentType.cv_resume, "jane.pdf")
    assert result.isValid is True
    assert result.confidence == pytest.approx(0.8)
    assert result.reasoning.startswith("Found 4 CV/Resume-related keywords")


def test_fallback_confidence_is_capped():
    text = "IELTS TOEFL TOEIC Cambridge language proficiency certificate"
    result = fallback_validation(text, DocumentType.language_certificates, "cert.pdf")
    assert result.confidence == 0.8


def test_fallback_rejects_sensitive_application_documents():
    result = fallback_validation("Student application, SSN 123-45-6789", DocumentType.application_documents, "a.pdf")
    assert result.isValid is False
    assert result.confidence == 0.9


def test_fallback_unknown_type_accepts():
    result = fallback_validation("anything", DocumentType.institution_verification, "a.pdf")
    assert result.isValid is True
    assert result.confidence == 0.5


# ============================================================
# SERVICE
# ============================================================

def test_short_text_is_rejected_without_model_call(service, openai_client):
    result = service.validate_file("too short", DocumentType.cv_resume, "cv.pdf")

    assert result.isValid is False
    assert result.confidence == 0.1
    openai_client.chat.completions.create.assert_not_called()


def test_model_reply_is_parsed_and_cached(service, openai_client, collection):
    openai_client.chat.completions.create.return_value = _reply(
        '```json\n{"isValid": true, "action": "accept", "confidence": 0.92, "reasoning": "Looks like a CV"}\n```'
    )

    result = service.validate_file(CV_TEXT, DocumentType.cv_resume, "cv.pdf")

    assert result.isValid is True
    assert result.confidence == 0.92
    kwargs = openai_client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["temperature"] == 0.1
    collection.update_one.assert_called_once()
    assert collection.update_one.call_args.kwargs["upsert"] is True


def test_cache_hit_skips_model(service, openai_client, collection):
    collection.find_one.return_value = {"result": {
        "isValid": False, "confidence": 0.3, "reasoning": "cached", "suggestions": [], "action": "reupload",
    }}

    result = service.validate_file(CV_TEXT, DocumentType.cv_resume, "cv.pdf")

    assert result.reasoning == "cached"
    openai_client.chat.completions.create.assert_not_called()


def test_api_failure_falls_back_to_keywords(service, openai_client, collection):
    openai_client.chat.completions.create.side_effect = OpenAIError("connection refused")

    result = service.validate_file(CV_TEXT, DocumentType.cv_resume, "cv.pdf")

    assert result.isValid is True
    assert result.reasoning.startswith("Found 5 CV/Resume-related keywords")
    collection.update_one.assert_not_called()


def test_empty_reply_falls_back(service, openai_client):
    openai_client.chat.completions.create.return_value = _reply("")

    result = service.validate_file(CV_TEXT, DocumentType.cv_resume, "cv.pdf")

    assert result.reasoning.startswith("Found")


def test_cache_errors_do_not_fail_validation(service, openai_client, collection):
    collection.find_one.side_effect = PyMongoError("down")
    collection.update_one.side_effect = PyMongoError("down")
    openai_client.chat.completions.create.return_value = _reply('{"isValid": false, "confidence": 0.4}')

    result = service.validate_file(CV_TEXT, DocumentType.cv_resume, "cv.pdf")

    assert result.isValid is False
    assert result.action == ValidationAction.reupload


def test_reply_with_wrong_field_types_is_coerced(service, openai_client):
    openai_client.chat.completions.create.return_value = _reply(
        '{"isValid": true, "confidence": 0.9, "reasoning": 42, "detectedType": 7}'
    )

    result = service.validate_file(CV_TEXT, DocumentType.cv_resume, "cv.pdf")

    assert result.isValid is True
    assert result.reasoning == "42"
    assert result.detectedType == "7"


def test_reply_without_choices_falls_back(service, openai_client, collection):
    openai_client.chat.completions.create.return_value = SimpleNamespace(choices=[])

    result = service.validate_file(CV_TEXT, DocumentType.cv_resume, "cv.pdf")

    assert result.reasoning.startswith("Found 5 CV/Resume-related keywords")
    collection.update_one.assert_not_called()


def test_unbuildable_reply_falls_back(service, openai_client, collection):
    openai_client.chat.completions.create.return_value = _reply('{"isValid": true, "suggestions": [1]}')

    with patch("edumatch.services.file_validation_service.result_from_json",
               side_effect=ValidationError.from_exception_data("ValidationResult", [])):
        result = service.validate_file(CV_TEXT, DocumentType.cv_resume, "cv.pdf")

    assert result.reasoning.startswith("Found 5 CV/Resume-related keywords")
    collection.update_one.assert_not_called()
