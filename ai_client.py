import os
import re
import logging

import requests

DEFAULT_MODEL = "gemini-1.5-pro"
DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT = 60
DEFAULT_IMAGE_PROMPT = "Vui lòng giải bài tập trong hình ảnh này."

DATA_URL_RE = re.compile(r"^data:(image/[\w.+-]+);base64,")

GENERATION_CONFIG = {
    "temperature": 0.7,
    "maxOutputTokens": 8192,
}

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


class UpstreamModelError(Exception):
    """Lỗi khi gọi mô hình AI. retryable=True khi người dùng có thể thử lại ngay (ví dụ timeout)."""

    def __init__(self, message, retryable=False):
        super().__init__(message)
        self.retryable = retryable


def split_image_data(image_data):
    """Tách tiền tố data URL (nếu có), trả về (mime_type, base64)."""
    match = DATA_URL_RE.match(image_data)
    if match:
        return match.group(1), image_data[match.end():]
    return "image/jpeg", image_data


def build_payload(prompt, system_prompt=None, image_data=None):
    if image_data and not prompt:
        prompt = DEFAULT_IMAGE_PROMPT
    text = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt

    parts = [{"text": text}]
    if image_data:
        mime_type, data = split_image_data(image_data)
        parts.append({"inline_data": {"mime_type": mime_type, "data": data}})

    return {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": GENERATION_CONFIG,
        "safetySettings": SAFETY_SETTINGS,
    }


def extract_response_text(data):
    candidates = data.get("candidates") or []
    if not candidates:
        feedback = data.get("promptFeedback", {})
        raise UpstreamModelError(f"No candidates in response (blockReason={feedback.get('blockReason')})")
    parts = candidates[0].get("content", {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts)
    if not text.strip():
        raise UpstreamModelError(f"Empty response (finishReason={candidates[0].get('finishReason')})")
    return text


def generate_ai_response(prompt, system_prompt=None, image_data=None):
    """
    Gọi Gemini và trả về văn bản thô của câu trả lời.
    Không thử lại; mọi lỗi được đổi thành UpstreamModelError.
    """
    api_key = os.environ.get("GEMINI_API_KEY")
    if not api_key:
        raise UpstreamModelError("GEMINI_API_KEY environment variable is not set")

    model = os.environ.get("GEMINI_MODEL", DEFAULT_MODEL)
    base_url = os.environ.get("GEMINI_API_BASE", DEFAULT_API_BASE).rstrip("/")
    timeout = float(os.environ.get("AI_REQUEST_TIMEOUT", DEFAULT_TIMEOUT))

    url = f"{base_url}/models/{model}:generateContent"
    headers = {
        "x-goog-api-key": api_key,
        "Content-Type": "application/json"
    }
    payload = build_payload(prompt, system_prompt, image_data)

    try:
        logging.info(f"Calling Gemini API (model={model}, image={'yes' if image_data else 'no'})...")
        response = requests.post(url, headers=headers, json=payload, timeout=timeout)
        logging.info(f"Gemini API response status: {response.status_code}")
        response.raise_for_status()
        data = response.json()
    except requests.exceptions.Timeout:
        logging.error(f"Timeout after {timeout}s calling Gemini API")
        raise UpstreamModelError("Model request timed out", retryable=True)
    except requests.exceptions.RequestException as e:
        logging.error(f"Error calling Gemini API: {str(e)}")
        raise UpstreamModelError(f"Failed to generate AI response: {str(e)}")
    except ValueError as e:
        logging.error(f"Invalid JSON from Gemini API: {str(e)}")
        raise UpstreamModelError("Invalid response from model API")

    return extract_response_text(data)
