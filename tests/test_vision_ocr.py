import base64
import os
import sys
from unittest.mock import MagicMock, patch

import pytest
import requests

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from vision_ocr import GoogleVisionOCR, OCRResult


def _response(payload):
    resp = MagicMock()
    resp.status_code = 200
    resp.json.return_value = payload
    return resp


def test_api_key_required(monkeypatch):
    monkeypatch.delenv("GOOGLE_VISION_API_KEY", raising=False)
    with pytest.raises(ValueError):
        GoogleVisionOCR()


def test_api_key_from_env(monkeypatch):
    monkeypatch.setenv("GOOGLE_VISION_API_KEY", "env-key")
    assert GoogleVisionOCR().api_key == "env-key"


@patch("vision_ocr.requests.post")
def test_extract_text(mock_post, tmp_path):
    image = tmp_path / "receipt.png"
    image.write_bytes(b"\x89PNG fake")
    mock_post.return_value = _response({
        "responses": [{"textAnnotations": [{"description": "ローソン\n合計 ¥500", "confidence": 0.93}]}]
    })

    result = GoogleVisionOCR("test-key").extract_text(str(image))

    assert result == OCRResult(text="ローソン\n合計 ¥500", confidence=0.93)
    body = mock_post.call_args.kwargs["json"]
    assert body["requests"][0]["image"]["content"] == base64.b64encode(b"\x89PNG fake").decode("ascii")
    assert body["requests"][0]["features"] == [{"type": "TEXT_DETECTION", "maxResults": 1}]
    assert mock_post.call_args.kwargs["params"] == {"key": "test-key"}


@patch("vision_ocr.requests.post")
def test_no_annotations_returns_empty(mock_post):
    mock_post.return_value = _response({"responses": [{}]})
    assert GoogleVisionOCR("test-key").process_document(b"data") == ""


@patch("vision_ocr.requests.post")
def test_http_error_propagates(mock_post):
    resp = _response({})
    resp.raise_for_status.side_effect = requests.HTTPError("403 Forbidden")
    mock_post.return_value = resp
    with pytest.raises(requests.HTTPError):
        GoogleVisionOCR("test-key").process_document(b"data")
