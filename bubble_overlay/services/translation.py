"""
Translation services and the per-page translation orchestrator.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Sequence

import httpx

from bubble_overlay.errors import TranslationFailure
from bubble_overlay.models.detection import Detection

logger = logging.getLogger(__name__)

DEEPL_FREE_URL = "https://api-free.deepl.com/v2/translate"
DEEPL_PRO_URL = "https://api.deepl.com/v2/translate"
GOOGLE_TRANSLATE_URL = "https://translation.googleapis.com/language/translate/v2"

LANGUAGE_NAMES = {
    "AUTO": "the detected source language",
    "DE": "German",
    "EN": "English",
    "ES": "Spanish",
    "FR": "French",
    "IT": "Italian",
    "JA": "Japanese",
    "KO": "Korean",
    "PT": "Portuguese",
    "RU": "Russian",
    "ZH": "Chinese",
}


class BaseTranslator:
    def __init__(self, api_key: Optional[str], timeout: float = 30.0) -> None:
        self.api_key = api_key
        self.timeout = timeout

    def name(self) -> str:
        raise NotImplementedError

    def translate(self, text: str, context: str, source: str, target: str) -> str:
        """
        Translate one region's text. Empty text, a missing key or an identical
        non-AUTO language pair return the text unchanged.
        """
        if not text or not text.strip():
            return text
        source = (source or "AUTO").upper()
        target = (target or "EN").upper()
        if not self.api_key or (source == target and source != "AUTO"):
            logger.info(f"[{self.name()}] Translation skipped: missing API key or same language")
            return text
        return self._translate(text, context, source, target)

    def _translate(self, text: str, context: str, source: str, target: str) -> str:
        raise NotImplementedError

    def _post(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise TranslationFailure(f"{self.name()} HTTP error: {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise TranslationFailure(f"{self.name()} request timed out after {self.timeout}s") from e
        except (httpx.RequestError, ValueError) as e:
            raise TranslationFailure(f"{self.name()} request failed: {e}") from e


class DeepLTranslator(BaseTranslator):
    def name(self) -> str:
        return "deepl"

    def _translate(self, text: str, context: str, source: str, target: str) -> str:
        url = DEEPL_FREE_URL if self.api_key.endswith(":fx") else DEEPL_PRO_URL
        form = {"text": text, "target_lang": target}
        if context:
            form["context"] = context
        if source != "AUTO":
            form["source_lang"] = source
        data = self._post(url, data=form, headers={"Authorization": f"DeepL-Auth-Key {self.api_key}"})
        try:
            return str(data["translations"][0]["text"])
        except (KeyError, IndexError, TypeError) as e:
            raise TranslationFailure("Invalid response structure from DeepL") from e


class GoogleTranslator(BaseTranslator):
    """Google Translate v2. The API has no context parameter, so context is ignored."""
    def name(self) -> str:
        return "google"

    def _translate(self, text: str, context: str, source: str, target: str) -> str:
        payload: Dict[str, Any] = {"q": text, "target": target.lower(), "format": "text"}
        if source != "AUTO":
            payload["source"] = source.lower()
        data = self._post(GOOGLE_TRANSLATE_URL, params={"key": self.api_key}, json=payload)
        try:
            return str(data["data"]["translations"][0]["translatedText"])
        except (KeyError, IndexError, TypeError) as e:
            raise TranslationFailure("Invalid response structure from Google Translate") from e


class GeminiTranslator(BaseTranslator):
    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.0-flash-001",
        temperature: float = 0.0,
        max_retries: int = 3,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(api_key, timeout)
        self.model = model
        self.temperature = float(temperature)
        self.max_retries = max(1, max_retries)
        self._client = None
        self._types = None

    def name(self) -> str:
        return "gemini"

    def _get_client(self):
        if self._client is None:
            try:
                from google import genai  # type: ignore
                from google.genai import types  # type: ignore
            except Exception as e:
                raise TranslationFailure("google-genai not installed. pip install google-genai") from e
            self._types = types
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def build_prompt(self, text: str, context: str, source: str, target: str) -> str:
        src = LANGUAGE_NAMES.get(source, source)
        tgt = LANGUAGE_NAMES.get(target, target)
        prompt = (
            f"You translate comic speech bubbles from {src} into {tgt}.\n"
            "Keep it short and natural, like lettered dialogue. "
            "Reply with the translation only, no quotes or notes.\n"
        )
        if context.strip():
            prompt += f"\nEarlier dialogue on this page (for context only, do not translate):\n{context.strip()}\n"
        prompt += f"\nText:\n{text}\n"
        return prompt

    def _translate(self, text: str, context: str, source: str, target: str) -> str:
        client = self._get_client()
        types = self._types
        prompt = self.build_prompt(text, context, source, target)
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = client.models.generate_content(
                    model=self.model,
                    contents=[types.Content(role="user", parts=[types.Part(text=prompt)])],
                    config=types.GenerateContentConfig(temperature=self.temperature),
                )
                out = (resp.text or "").strip()
                if not out:
                    raise TranslationFailure("Gemini returned an empty translation")
                return out
            except Exception as e:
                logger.warning(f"Gemini call failed (attempt {attempt}/{self.max_retries}): {e}")
                if attempt == self.max_retries:
                    if isinstance(e, TranslationFailure):
                        raise
                    raise TranslationFailure(f"Gemini translation failed: {e}") from e
                time.sleep(0.6 * attempt)


def build_translator(
    service: str,
    google_api_key: Optional[str] = None,
    deepl_api_key: Optional[str] = None,
    gemini_api_key: Optional[str] = None,
    gemini_model: str = "gemini-2.0-flash-001",
    timeout: float = 30.0,
) -> BaseTranslator:
    service = (service or "deepl").lower()
    if service == "deepl":
        return DeepLTranslator(deepl_api_key, timeout=timeout)
    if service in ("google", "googletranslate"):
        return GoogleTranslator(google_api_key, timeout=timeout)
    if service == "gemini":
        return GeminiTranslator(gemini_api_key, model=gemini_model, timeout=timeout)
    raise ValueError(f"Unknown translation service: {service}")


class TranslationOrchestrator:
    """
    Translates detections one by one, in resolution order.

    Each call receives the source text of every earlier region as context.
    The region's own text is appended only after its call returns, whether
    the call succeeded or not.
    """

    def __init__(self, translator: BaseTranslator, source_language: str = "AUTO", target_language: str = "EN") -> None:
        self.translator = translator
        self.source_language = source_language
        self.target_language = target_language

    def translate_all(self, detections: Sequence[Detection]) -> str:
        context = ""
        translated = 0
        for i, det in enumerate(detections):
            if not det.text:
                det.translated_text = ""
                continue
            try:
                result = self.translator.translate(det.text, context, self.source_language, self.target_language)
                det.translated_text = (result or "").upper()
                translated += 1
            except Exception as e:
                logger.warning(f"Translation failed for region {i}, keeping source text: {e}")
                det.translated_text = det.text
            context += det.text + " "
        logger.info(f"Translated {translated}/{len(detections)} regions with {self.translator.name()}")
        return context
