"""
Vision backend adapter

Sends document/selfie images to an OpenAI-compatible multimodal chat endpoint
and normalizes the answer into typed verdicts. Parsing is fail-closed: an
answer that does not yield the expected verdict field raises
VerificationResponseMalformed, it never defaults to "verified".
"""
import base64
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from modules.common.errors import ConfigurationError, UpstreamError, VerificationResponseMalformed
from modules.verification.services.verdict_parser import Malformed, parse_verdict

logger = logging.getLogger(__name__)

DOCUMENT_NAME_PROMPT = (
    "You are verifying a government-issued identity document. "
    "Read the full name printed on the document and compare it to the claimed name: \"{claimed_name}\". "
    "Minor differences in letter case, accents or middle names may still match. "
    "Answer only with a JSON object with the keys: nameVerified (boolean), confidence (number 0-1), "
    "reason (string), extractedName (string), documentType (string)."
)

FACE_PROMPT = (
    "The first image is a live selfie, the second is the photo page of an identity document. "
    "Decide whether both show the same person. "
    "Answer only with a JSON object with the keys: faceVerified (boolean), confidence (number 0-1), "
    "reason (string)."
)


@dataclass
class DocumentNameVerdict:
    name_verified: bool
    confidence: float
    reason: str
    extracted_name: Optional[str] = None
    document_type: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "nameVerified": self.name_verified,
            "confidence": self.confidence,
            "reason": self.reason,
            "extractedName": self.extracted_name,
            "documentType": self.document_type,
        }


@dataclass
class FaceVerdict:
    face_verified: bool
    confidence: float
    reason: str

    def to_dict(self) -> dict:
        return {
            "faceVerified": self.face_verified,
            "confidence": self.confidence,
            "reason": self.reason,
        }


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


# Above this a confidence is read as a percentage; between 1 and it, as an overshot fraction
PERCENT_THRESHOLD = 2.0


def _as_confidence(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(confidence):
        return 0.0
    if confidence > PERCENT_THRESHOLD:
        confidence = confidence / 100
    return max(0.0, min(1.0, confidence))


def _as_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _data_url(image: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(image).decode('ascii')}"


class VerificationAdapter:

    def __init__(
        self,
        http_client: httpx.Client,
        api_url: str,
        api_key: Optional[str],
        model: str,
        timeout: float = 60.0,
    ):
        if not api_key:
            raise ConfigurationError("VISION_API_KEY is not configured")
        self.http_client = http_client
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def _complete(self, prompt: str, images: List[tuple]) -> str:
        """Issues one multimodal request and returns the declared text field"""
        content = [{"type": "text", "text": prompt}]
        for image, mime_type in images:
            content.append({"type": "image_url", "image_url": {"url": _data_url(image, mime_type)}})

        request_body = {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "response_format": {"type": "json_object"},
            "temperature": 0,
        }
        try:
            response = self.http_client.post(
                self.api_url,
                json=request_body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Vision backend answered {e.response.status_code}")
            raise UpstreamError("Verification service error", {"status": e.response.status_code})
        except httpx.HTTPError as e:
            logger.error(f"Vision backend unreachable: {e}")
            raise UpstreamError("Verification service unavailable")

        try:
            return response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise VerificationResponseMalformed("Verification service returned an unexpected envelope")

    def _parse(self, text: str, verdict_keys: tuple) -> Dict[str, Any]:
        result = parse_verdict(text)
        if isinstance(result, Malformed):
            logger.warning(f"Unparseable verification response: {result.reason}")
            raise VerificationResponseMalformed(
                "Verification service returned an unparseable answer", {"reason": result.reason}
            )
        if _as_bool(_pick(result.verdict, *verdict_keys)) is None:
            raise VerificationResponseMalformed(
                "Verification answer is missing its verdict", {"expected": verdict_keys[0]}
            )
        return result.verdict

    def verify_document_name(self, document_image: bytes, claimed_name: str, mime_type: str = "image/jpeg") -> DocumentNameVerdict:
        text = self._complete(DOCUMENT_NAME_PROMPT.format(claimed_name=claimed_name), [(document_image, mime_type)])
        data = self._parse(text, ("nameVerified", "name_verified"))
        return DocumentNameVerdict(
            name_verified=_as_bool(_pick(data, "nameVerified", "name_verified")),
            confidence=_as_confidence(_pick(data, "confidence")),
            reason=str(_pick(data, "reason") or ""),
            extracted_name=_as_text(_pick(data, "extractedName", "extracted_name")),
            document_type=_as_text(_pick(data, "documentType", "document_type")),
        )

    def verify_face(
        self,
        selfie_image: bytes,
        document_image: bytes,
        selfie_mime: str = "image/jpeg",
        document_mime: str = "image/jpeg",
    ) -> FaceVerdict:
        text = self._complete(FACE_PROMPT, [(selfie_image, selfie_mime), (document_image, document_mime)])
        data = self._parse(text, ("faceVerified", "face_verified"))
        return FaceVerdict(
            face_verified=_as_bool(_pick(data, "faceVerified", "face_verified")),
            confidence=_as_confidence(_pick(data, "confidence")),
            reason=str(_pick(data, "reason") or ""),
        )
