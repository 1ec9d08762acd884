import logging
import time
import requests
import config
from typing import Optional

logger = logging.getLogger(__name__)

ERROR_PREFIX = 'Error:'


def _build_request(prompt: str):
    """Headers and a generateContent body carrying a single text part."""
    headers = {'Content-Type': 'application/json'}
    data = {'contents': [{'parts': [{'text': prompt}]}]}
    return headers, data


def _extract_text(response_json: dict) -> Optional[str]:
    """First candidate's first text part, stripped; None if the reply has no text."""
    candidates = response_json.get('candidates') or []
    if not candidates:
        return None
    candidate = candidates[0]
    content = candidate.get('content') or {}
    parts = content.get('parts') or []
    if not parts:
        return None
    text = parts[0].get('text')
    return text.strip() if isinstance(text, str) else None


def _backoff_sleep(attempt: int, backoff_factor: int) -> None:
    """Sleep for `backoff_factor ** attempt` seconds."""
    wait_time = max(0, backoff_factor ** attempt)
    if wait_time:
        logger.warning("Gemini request throttled or failed. Retrying in %s seconds...", wait_time)
        time.sleep(wait_time)


def is_error_response(text) -> bool:
    """True when `text` is one of the failure strings returned below."""
    return not isinstance(text, str) or text.startswith(ERROR_PREFIX)


def call_gemini_api(prompt: str, retries: int = 3, backoff_factor: int = 2, api_url: Optional[str] = None) -> str:
    """Send one prompt to Gemini and return the reply text.

    Never raises for API or network trouble: failures come back as a string
    starting with "Error:" (see `is_error_response`). Rate limiting (429) and
    connection errors are retried up to `retries` times with exponential
    backoff; any other HTTP status fails at once.
    """
    headers, data = _build_request(prompt)
    url = api_url or config.API_URL

    for attempt in range(retries):
        try:
            resp = requests.post(url, headers=headers, json=data, timeout=120)
            resp.raise_for_status()

            payload = resp.json()
            text = _extract_text(payload)
            if text:
                return text
            logger.error("Unexpected Gemini response format: %s", resp.text[:200])
            return f"Error: Unexpected API response format: {resp.text}"

        except requests.exceptions.HTTPError as e:
            status = getattr(e.response, 'status_code', None)
            if status == 429 and attempt < retries - 1:
                _backoff_sleep(attempt, backoff_factor)
                continue
            error_text = getattr(e.response, 'text', '')
            logger.error("Gemini request failed with status %s", status)
            return f"Error: API request failed with status {status}: {error_text}"

        except requests.RequestException as e:
            if attempt < retries - 1:
                _backoff_sleep(attempt, backoff_factor)
                continue
            logger.error("Gemini request failed: %s", e)
            return f"Error: Request failed: {str(e)}"

    return "Error: Exhausted retries without a successful response"
