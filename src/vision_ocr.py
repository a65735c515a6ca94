"""
Google Vision API によるOCR
画像/PDFのバイト列からテキストを取り出し、text_parser に渡す
"""

import base64
import os
from dataclasses import dataclass
from typing import Optional

import requests


@dataclass
class OCRResult:
    text: str
    confidence: float


class GoogleVisionOCR:
    """Google Vision API OCRクライアント"""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or os.getenv("GOOGLE_VISION_API_KEY", "")
        if not self.api_key:
            raise ValueError("Google Vision API key is required (GOOGLE_VISION_API_KEY)")
        self.base_url = "https://vision.googleapis.com/v1/images:annotate"

    def extract_text(self, file_path: str) -> OCRResult:
        with open(file_path, "rb") as f:
            data = f.read()
        print(f"🔍 OCR実行中: {os.path.basename(file_path)} ({len(data):,} bytes)")
        return self._process_image(base64.b64encode(data).decode("ascii"))

    def process_document(self, data: bytes) -> str:
        return self._process_image(base64.b64encode(data).decode("ascii")).text

    def _process_image(self, content_b64: str) -> OCRResult:
        body = {
            "requests": [
                {
                    "image": {"content": content_b64},
                    "features": [{"type": "TEXT_DETECTION", "maxResults": 1}],
                }
            ]
        }
        response = requests.post(
            self.base_url,
            params={"key": self.api_key},
            headers={"Content-Type": "application/json"},
            json=body,
        )
        response.raise_for_status()

        responses = response.json().get("responses") or [{}]
        annotations = responses[0].get("textAnnotations") or []
        if not annotations:
            return OCRResult(text="", confidence=0.0)

        main = annotations[0]
        return OCRResult(text=main.get("description", ""), confidence=float(main.get("confidence", 0) or 0))
