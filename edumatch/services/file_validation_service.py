"""
File Validation Service - checks that an uploaded document is what the
applicant says it is (CV, transcript, certificate, ...).

The model runs behind an OpenAI-compatible API (Ollama by default), so the
openai library is used.

FLOW:
1. Text shorter than 50 characters is rejected without calling the model
2. Cached result (MongoDB, keyed by type + text hash) is returned when present
3. One chat completion with a strict per-type prompt; the JSON object in the
   reply becomes the result
4. A reply without JSON is read with a textual heuristic
5. Any API failure falls back to keyword matching; the caller always gets a result
"""

import hashlib
import json
import re
from datetime import datetime, timezone
from typing import Optional

from openai import OpenAI, OpenAIError
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from edumatch.core.config import get_settings
from edumatch.core.log import get_logger
from edumatch.db.mongodb import get_collection, COLLECTIONS
from edumatch.schemas.schemas import DocumentType, ValidationAction, ValidationResult

settings = get_settings()
log = get_logger(__name__)

MIN_TEXT_LENGTH = 50
MAX_PROMPT_CHARS = 3000
FALLBACK_MAX_CONFIDENCE = 0.8

DISPLAY_NAMES = {
    DocumentType.cv_resume: "CV/Resume",
    DocumentType.language_certificates: "Language Certificate",
    DocumentType.degree_certificates: "Degree Certificate",
    DocumentType.transcripts: "Academic Transcript",
    DocumentType.application_documents: "Application Document",
    DocumentType.institution_verification: "Institution Verification Document",
}


def get_file_type_display_name(file_type: str) -> str:
    try:
        return DISPLAY_NAMES[DocumentType(file_type)]
    except ValueError:
        return file_type


# ============================================================
# PROMPTS
# ============================================================

TYPE_INSTRUCTIONS = {
    DocumentType.cv_resume: """You are a STRICT CV/Resume validation expert. Determine if the text is a real CV/Resume of a person applying for positions.
A valid CV/Resume contains at minimum:
- Personal information (name, email or phone)
- Work experience OR education background
- Skills, competencies or a professional profile
If the text looks like an essay, webpage, article or random text, it is INVALID. If you are not clearly sure, treat it as invalid.""",

    DocumentType.language_certificates: """You are a STRICT language certificate validation expert. Determine if the text is a language proficiency certificate.
A valid certificate contains:
- Test name (IELTS, TOEFL, TOEIC, HSK, JLPT, TOPIK, ...)
- Scores or proficiency levels
- Test or issue date
- Candidate name
- Issuing authority
If key elements (test name, score, candidate name) are missing, or you are not clearly sure, treat it as invalid.""",

    DocumentType.degree_certificates: """You are a STRICT academic degree certificate validation expert. Determine if the text is a degree/diploma certificate.
A valid certificate contains:
- Degree type (Bachelor's, Master's, PhD, Diploma)
- Field of study
- Institution name
- Graduation or issue date
- Student name
- Official wording, seal or signature
A transcript or generic letter is INVALID. If you are not clearly sure, treat it as invalid.""",

    DocumentType.transcripts: """You are a STRICT academic transcript validation expert. Determine if the text is an academic transcript.
A valid transcript contains:
- A list of courses or subjects with grades or marks
- Academic periods, semesters or terms
- Possibly an overall GPA
- Student name and institution name
Without a clear list of subjects with grades, it is INVALID. If you are not clearly sure, treat it as invalid.""",

    DocumentType.application_documents: """You are a STRICT application document validator. Determine whether the document is appropriate for an application (CV, transcript, certificate, letter) and does NOT contain sensitive personal data.
Documents containing national ID numbers, passport numbers, SSNs, full card numbers, bank account details or un-redacted medical information are INVALID.
If you are not clearly sure the document is appropriate, treat it as invalid.""",

    DocumentType.institution_verification: """You are an institution verification document expert. Determine if the text is a valid institution verification document.
A valid document shows AT LEAST 2 of:
- The institution's official name
- Official identifiers (registration, certificate or accreditation number)
- Letterhead, logo, seal, stamp or authorized signature
- A formal statement of verification, certification or approval
- Contact information (address, phone, email or website)
Only treat it as INVALID if it is clearly an advertisement, has no institutional identity, or is purely personal content.""",
}

RESPONSE_FORMAT = """
You are validating a document of type: "{doc_type}".
If the document clearly does NOT meet the criteria, or you are not sure, set "isValid": false and "action": "reupload".

Respond with ONLY this JSON object, no markdown or extra text:
{{
  "isValid": boolean,
  "action": "accept" or "reupload",
  "confidence": number between 0 and 1,
  "reasoning": "short explanation",
  "suggestions": ["string"]
}}"""


def build_prompt(expected_type: DocumentType, text: str) -> tuple:
    """(system, user) messages; the document text is cut at 3000 characters."""
    instruction = TYPE_INSTRUCTIONS.get(expected_type, TYPE_INSTRUCTIONS[DocumentType.cv_resume])
    snippet = text[:MAX_PROMPT_CHARS] + "...(truncated)" if len(text) > MAX_PROMPT_CHARS else text
    system = instruction + "\n" + RESPONSE_FORMAT.format(doc_type=expected_type.value)
    user = f"Here is the document text to analyze (possibly truncated):\n\n{snippet}"
    return system, user


def extract_json(content: str) -> Optional[dict]:
    """
    Find the JSON object in a model reply.
    Handles markdown code fences and text around the object.
    """
    if not content:
        return None

    try:
        parsed = json.loads(content)
        return parsed if isinstance(parsed, dict) else None
    except ValueError:
        pass

    s = re.sub(r"```(?:json)?([\s\S]*?)```", r"\1", content).replace("`", "").strip()
    first = s.find("{")
    if first == -1:
        return None

    depth = 0
    for i in range(first, len(s)):
        if s[i] == "{":
            depth += 1
        elif s[i] == "}":
            depth -= 1
            if depth == 0:
                try:
                    return json.loads(s[first:i + 1])
                except ValueError:
                    continue
    return None


# ============================================================
# RESULT NORMALISATION
# ============================================================

def _clamp(value) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


def result_from_json(parsed: dict) -> ValidationResult:
    is_valid = bool(parsed.get("isValid", False))
    try:
        action = ValidationAction(parsed.get("action"))
    except ValueError:
        action = ValidationAction.accept if is_valid else ValidationAction.reupload

    suggestions = parsed.get("suggestions") or []
    if not isinstance(suggestions, list):
        suggestions = [str(suggestions)]
    detected = parsed.get("detectedType")

    return ValidationResult(
        isValid=is_valid,
        confidence=_clamp(parsed.get("confidence", 0)),
        reasoning=str(parsed.get("reasoning") or "No reasoning provided"),
        suggestions=[str(s) for s in suggestions],
        action=action,
        detectedType=str(detected) if detected is not None else None,
    )


_CONFIDENCE_RE = re.compile(r"confidence[\"\s:]*(\d+\.?\d*)", re.IGNORECASE)


def result_from_text(content: str) -> ValidationResult:
    """Best-effort reading of a reply that carries no JSON."""
    is_valid = "true" in content.lower()
    match = _CONFIDENCE_RE.search(content)
    return ValidationResult(
        isValid=is_valid,
        confidence=_clamp(match.group(1)) if match else 0.5,
        reasoning=content[:200] + "..." if len(content) > 200 else content,
        suggestions=[] if is_valid else ["Please check if you uploaded the correct document type"],
        action=ValidationAction.accept if is_valid else ValidationAction.reupload,
    )


# ============================================================
# KEYWORD FALLBACK
# ============================================================

# type -> (keywords, minimum matches, confidence per match, label, suggestion)
KEYWORD_RULES = {
    DocumentType.cv_resume: (
        ["experience", "education", "skills", "work", "employment", "resume", "cv", "curriculum"],
        2, 0.2, "CV/Resume", "Please ensure you upload a proper CV/Resume document",
    ),
    DocumentType.language_certificates: (
        ["ielts", "toefl", "toeic", "cambridge", "hsk", "jlpt", "topik", "language", "proficiency", "certificate"],
        1, 0.3, "language certificate", "Please upload an official language proficiency certificate",
    ),
    DocumentType.degree_certificates: (
        ["degree", "diploma", "bachelor", "master", "phd", "university", "graduation", "conferred", "awarded"],
        2, 0.2, "degree certificate", "Please upload an official degree or diploma certificate",
    ),
    DocumentType.transcripts: (
        ["transcript", "gpa", "grade", "course", "semester", "credit", "academic", "marks"],
        2, 0.25, "academic transcript", "Please upload an official academic transcript",
    ),
}

SENSITIVE_PATTERNS = [
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),                         # SSN
    re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"),    # card number
    re.compile(r"\bconfidential\b", re.IGNORECASE),
    re.compile(r"\bprivate\b", re.IGNORECASE),
    re.compile(r"\binternal use only\b", re.IGNORECASE),
]
INAPPROPRIATE_WORDS = ["fuck", "shit", "damn", "hate", "kill", "fraud", "fake", "scam"]
EDUCATIONAL_KEYWORDS = [
    "education", "academic", "school", "university", "college",
    "student", "application", "program", "course", "study",
]


def _count_matches(keywords, text: str, file_name: str) -> int:
    return sum(1 for k in keywords if k in text or k in file_name)


def fallback_validation(text: str, expected_type: DocumentType, file_name: str) -> ValidationResult:
    """Deterministic keyword check used when the model is unreachable."""
    lower_text = text.lower()
    lower_name = file_name.lower()

    if expected_type in KEYWORD_RULES:
        keywords, needed, step, label, suggestion = KEYWORD_RULES[expected_type]
        matches = _count_matches(keywords, lower_text, lower_name)
        ok = matches >= needed
        return ValidationResult(
            isValid=ok,
            confidence=min(FALLBACK_MAX_CONFIDENCE, matches * step),
            reasoning=f"Found {matches} {label}-related keywords. "
                      + (f"Likely a {label}." if ok else f"May not be a {label}."),
            suggestions=[] if ok else [suggestion],
            action=ValidationAction.accept if ok else ValidationAction.reupload,
        )

    if expected_type == DocumentType.application_documents:
        sensitive = any(p.search(text) for p in SENSITIVE_PATTERNS)
        inappropriate = any(w in lower_text for w in INAPPROPRIATE_WORDS)
        if sensitive or inappropriate:
            return ValidationResult(
                isValid=False,
                confidence=0.9,
                reasoning="Document contains potentially sensitive or inappropriate content",
                suggestions=["Please remove sensitive information and upload appropriate educational documents"],
                action=ValidationAction.reupload,
            )

        matches = _count_matches(EDUCATIONAL_KEYWORDS, lower_text, lower_name)
        ok = matches >= 1
        return ValidationResult(
            isValid=ok,
            confidence=min(FALLBACK_MAX_CONFIDENCE, matches * 0.3),
            reasoning=f"Found {matches} educational keywords. "
                      + ("Appears appropriate for educational applications." if ok
                         else "Content may not be suitable for educational applications."),
            suggestions=[] if ok else ["Please upload content relevant to educational applications"],
            action=ValidationAction.accept if ok else ValidationAction.reupload,
        )

    return ValidationResult(
        isValid=True,
        confidence=0.5,
        reasoning="Unknown file type, validation skipped",
        suggestions=[],
        action=ValidationAction.accept,
    )


# ============================================================
# CACHE
# ============================================================

class ValidationCache:
    """
    Model results in MongoDB, one document per (document_type, text_hash).
    Cache problems are logged and never fail a validation.
    """

    def __init__(self, collection=None):
        self._collection = collection

    @property
    def collection(self):
        if self._collection is None:
            self._collection = get_collection(COLLECTIONS["document_validations"])
        return self._collection

    @staticmethod
    def text_hash(text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def get(self, doc_type: DocumentType, text: str) -> Optional[ValidationResult]:
        try:
            doc = self.collection.find_one({"document_type": doc_type.value, "text_hash": self.text_hash(text)})
        except PyMongoError as e:
            log.warning("Validation cache lookup failed: %s", e)
            return None
        return ValidationResult(**doc["result"]) if doc else None

    def put(self, doc_type: DocumentType, text: str, result: ValidationResult) -> None:
        try:
            self.collection.update_one(
                {"document_type": doc_type.value, "text_hash": self.text_hash(text)},
                {"$set": {"result": result.model_dump(mode="json"), "validated_at": datetime.now(timezone.utc)}},
                upsert=True,
            )
        except PyMongoError as e:
            log.warning("Validation cache write failed: %s", e)


# ============================================================
# SERVICE
# ============================================================

class FileValidationService:
    def __init__(self, client: OpenAI = None, cache: ValidationCache = None, model: str = None):
        self.client = client or OpenAI(
            api_key=settings.validation_api_key,
            base_url=settings.validation_base_url,
        )
        self.model = model or settings.validation_model
        self.cache = cache or ValidationCache()

    def _call_api(self, system_prompt: str, user_content: str, max_tokens: int = 1000) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            max_tokens=max_tokens,
            temperature=0.1,  # Low temp for consistent structured output
        )
        try:
            content = response.choices[0].message.content
        except (IndexError, AttributeError, TypeError) as e:
            raise ValueError(f"Malformed response from validation model: {e}") from e
        if not content:
            raise ValueError("Empty response from validation model")
        return content

    def validate_file(self, text: str, expected_type: DocumentType, file_name: str) -> ValidationResult:
        if not text or len(text.strip()) < MIN_TEXT_LENGTH:
            return ValidationResult(
                isValid=False,
                confidence=0.1,
                reasoning="Extracted text is too short or empty to validate properly",
                suggestions=[
                    "Please ensure the file is clear and readable",
                    "Try uploading a higher quality image or PDF",
                ],
                action=ValidationAction.reupload,
            )

        cached = self.cache.get(expected_type, text)
        if cached:
            log.info("Validation cache hit for %s (%s)", file_name, expected_type.value)
            return cached

        system, user = build_prompt(expected_type, text)
        try:
            content = self._call_api(system, user)
        except (OpenAIError, ValueError) as e:
            log.warning("Validation model unavailable for %s, using keyword fallback: %s", file_name, e)
            return fallback_validation(text, expected_type, file_name)

        parsed = extract_json(content)
        if not isinstance(parsed, dict):
            log.warning("Could not parse JSON from validation reply for %s, using text heuristic", file_name)
            return result_from_text(content)

        try:
            result = result_from_json(parsed)
        except (ValidationError, TypeError, ValueError) as e:
            log.warning("Unusable validation reply for %s, using keyword fallback: %s", file_name, e)
            return fallback_validation(text, expected_type, file_name)
        self.cache.put(expected_type, text, result)
        log.info("Validated %s as %s: valid=%s confidence=%.2f",
                 file_name, expected_type.value, result.isValid, result.confidence)
        return result


# Singleton instance
_validation_service: FileValidationService = None


def get_file_validation_service() -> FileValidationService:
    """Get or create the validation service (singleton pattern)"""
    global _validation_service
    if _validation_service is None:
        _validation_service = FileValidationService()
    return _validation_service
