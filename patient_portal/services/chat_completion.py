"""
Client for the external chat-completion API backing the AI support assistant.

The provider's response layout is not stable, so replies go through a tagged
parser that tries each known shape in a fixed order. Anything that cannot be
turned into clean text becomes the fixed fallback reply.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from ..core.config import settings
from ..core.exceptions import ChatCompletionError, UnrecognizedResponseShape

logger = logging.getLogger(__name__)

FALLBACK_REPLY = (
    "I apologize, but I'm experiencing some technical difficulties right now. "
    "Please try again in a moment, or contact our support team directly for immediate assistance."
)

SYSTEM_PROMPT = """
You are Medicare AI Chat Helper, a professional, empathetic assistant for MediCare Hospital. You answer questions about hospital info, appointments, services, departments, and doctors. Use only the structured knowledge below:

Hospital Info: MediCare Hospital, 123 Health St, Medical City. Phone: +8801300723307, Email: info@medicare.com, Website: medicare.com. Emergency: +8801300723307. Hours: Mon-Fri (6:00-22:00), Sat (8:00-20:00), Sun (8:00-18:00).

Departments & Heads:
- Cardiology: Dr. John Smith (heart care, ECG, Echo, Stress test). Contact: cardiology@medicare.com, +1555123456.
- Neurology: Dr. Sarah Johnson (EEG, MRI, CT Scan). Contact: neurology@medicare.com, +1555123457.
- Orthopedics: Dr. Michael Brown (X-Ray, Joint Replacement). Contact: orthopedics@medicare.com, +1555123458.
- Pediatrics: Dr. Emily Davis (Children's care, Vaccines). Contact: pediatrics@medicare.com, +1555123459.
- Dermatology: Dr. David Wilson (Skin care, Acne, Biopsy). Contact: dermatology@medicare.com, +1555123460.
- Psychiatry: Dr. Lisa Martinez (Therapy, Medication, Crisis). Contact: psychiatry@medicare.com, +1555123461.
- Gastroenterology: Dr. Robert Garcia (Endoscopy, Colonoscopy). Contact: gastroenterology@medicare.com, +1555123462.
- Ophthalmology: Dr. Jennifer Lee (Eye exams, Cataract surgery). Contact: ophthalmology@medicare.com, +1555123463.
- Gynecology: Dr. Amanda Taylor (Women's health, Prenatal, Family planning). Contact: gynecology@medicare.com, +1555123464.
- Oncology: Dr. Thomas Anderson (Head), Dr. Maria Rodriguez, Dr. Christopher White (Cancer care: Chemo, Radiation, Surgery). Contact: oncology@medicare.com, +1555123465.

Doctors (with specialties):
- Dr. John Smith: Cardiologist, 15 yrs, Rating 4.8.
- Dr. Sarah Johnson: Neurologist, 12 yrs, Rating 4.9.
- Dr. Michael Brown: Orthopedic Surgeon, 18 yrs, Rating 4.7.
- Dr. Emily Davis: Pediatrician, 10 yrs, Rating 4.9.
- Dr. David Wilson: Dermatologist, 14 yrs, Rating 4.6.
- Dr. Lisa Martinez: Psychiatrist, 16 yrs, Rating 4.8.
- Dr. Robert Garcia: Gastroenterologist, 20 yrs, Rating 4.7.
- Dr. Jennifer Lee: Ophthalmologist, 13 yrs, Rating 4.8.
- Dr. Amanda Taylor: Gynecologist, 11 yrs, Rating 4.9.
- Dr. Thomas Anderson: Oncologist, 22 yrs, Rating 4.9.
- Dr. Maria Rodriguez: Radiation Oncologist, 17 yrs, Rating 4.8.
- Dr. Christopher White: Surgical Oncologist, 19 yrs, Rating 4.9.

Appointments: Slots = 30 mins, min 1 day advance, max 90 days ahead. 24 hr cancellation policy, penalty $25.

Always answer with professionalism, empathy, and clarity.
here is the user message:
"""

_THINK_BLOCK = re.compile(r'<think>.*?</think>', re.DOTALL)
_EXTRA_BLANK_LINES = re.compile(r'\n\s*\n\s*\n')


# ──────────────────────────────────────────────────────────────────────────────
# Response parsing
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AssistantText:
    text: str


@dataclass(frozen=True)
class UnrecognizedShape:
    reason: str


ParsedResponse = Union[AssistantText, UnrecognizedShape]


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value.strip() else None


def _first_content_text(output_item: Any) -> Optional[str]:
    if not isinstance(output_item, dict):
        return None
    content = output_item.get('content')
    if isinstance(content, list) and content and isinstance(content[0], dict):
        return _text(content[0].get('text'))
    return None


def _from_output_message(data: dict) -> Optional[str]:
    output = data.get('output')
    if not isinstance(output, list):
        return None
    for item in output:
        if isinstance(item, dict) and item.get('type') == 'message':
            return _first_content_text(item)
    return None


def _from_first_output(data: dict) -> Optional[str]:
    output = data.get('output')
    if isinstance(output, list) and output:
        return _first_content_text(output[0])
    return None


def _from_text(data: dict) -> Optional[str]:
    return _text(data.get('text'))


def _first_choice(data: dict) -> Optional[dict]:
    choices = data.get('choices')
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return None


def _from_choice_message(data: dict) -> Optional[str]:
    choice = _first_choice(data)
    if choice and isinstance(choice.get('message'), dict):
        return _text(choice['message'].get('content'))
    return None


def _from_choice_text(data: dict) -> Optional[str]:
    choice = _first_choice(data)
    return _text(choice.get('text')) if choice else None


def _from_message(data: dict) -> Optional[str]:
    message = data.get('message')
    if isinstance(message, dict):
        return _text(message.get('content')) or _text(message.get('text'))
    return _text(message)


def _from_content(data: dict) -> Optional[str]:
    content = data.get('content')
    if isinstance(content, dict):
        return _text(content.get('text'))
    return _text(content)


# Fixed precedence; the first shape yielding text wins
RESPONSE_SHAPES = (
    ('output.message', _from_output_message),
    ('output[0]', _from_first_output),
    ('text', _from_text),
    ('choices.message', _from_choice_message),
    ('choices.text', _from_choice_text),
    ('message', _from_message),
    ('content', _from_content),
)


def parse_completion_response(data: Any) -> ParsedResponse:
    if not isinstance(data, dict):
        return UnrecognizedShape(f"expected a JSON object, got {type(data).__name__}")
    if data.get('error'):
        error = data['error']
        detail = error.get('message') if isinstance(error, dict) else error
        return UnrecognizedShape(f"provider error: {detail}")

    for name, extract in RESPONSE_SHAPES:
        text = extract(data)
        if text is not None:
            logger.debug(f"[Chat] Reply extracted from '{name}'")
            return AssistantText(text)
    return UnrecognizedShape(f"no known text field among keys {sorted(data)}")


def clean_response(content: str) -> str:
    """Drop <think> reasoning blocks and squeeze runs of blank lines."""
    cleaned = _THINK_BLOCK.sub('', content).strip()
    return _EXTRA_BLANK_LINES.sub('\n\n', cleaned)


# ──────────────────────────────────────────────────────────────────────────────
# HTTP client
# ──────────────────────────────────────────────────────────────────────────────

class ChatCompletionClient:
    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_url = api_url or settings.CHAT_API_URL
        self.api_key = api_key if api_key is not None else settings.CHAT_API_KEY
        self.model = model or settings.CHAT_MODEL
        self.timeout = timeout or settings.CHAT_API_TIMEOUT
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def complete(self, user_message: str) -> str:
        """
        Ask the assistant for a reply. Raises ChatCompletionError for a missing
        key, transport failure, timeout, HTTP error, unknown body or empty text.
        """
        if not self.api_key:
            raise ChatCompletionError("Chat API key is not configured")

        payload = {
            'model': self.model,
            'input': f"{SYSTEM_PROMPT}{user_message}",
        }
        headers = {
            'Content-Type': 'application/json',
            'Authorization': f"Bearer {self.api_key}",
        }

        try:
            response = await self._client.post(self.api_url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ChatCompletionError(f"Chat API timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ChatCompletionError(f"Chat API request failed: {e}") from e

        if response.status_code >= 400:
            raise ChatCompletionError(f"Chat API returned {response.status_code}: {response.text[:300]}")

        try:
            data = response.json()
        except ValueError as e:
            raise UnrecognizedResponseShape("Chat API returned a non-JSON body") from e

        parsed = parse_completion_response(data)
        if isinstance(parsed, UnrecognizedShape):
            raise UnrecognizedResponseShape(parsed.reason)

        cleaned = clean_response(parsed.text)
        if not cleaned:
            raise UnrecognizedResponseShape("reply was empty after removing reasoning markup")
        return cleaned

    async def reply(self, user_message: str) -> str:
        """Like `complete`, but every failure turns into FALLBACK_REPLY."""
        try:
            return await self.complete(user_message)
        except ChatCompletionError as e:
            logger.warning(f"[Chat] Using fallback reply: {e}")
            return FALLBACK_REPLY
        except Exception as e:
            logger.error(f"[Chat] Unexpected completion failure: {e}", exc_info=True)
            return FALLBACK_REPLY

    async def aclose(self):
        await self._client.aclose()


# Singleton instance
_completion_client = None

def get_completion_client() -> ChatCompletionClient:
    global _completion_client
    if _completion_client is None:
        _completion_client = ChatCompletionClient()
    return _completion_client


async def close_completion_client():
    """Close the shared HTTP client; the next get_completion_client() opens a new one."""
    global _completion_client
    if _completion_client is not None:
        client, _completion_client = _completion_client, None
        await client.aclose()
