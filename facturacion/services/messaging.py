"""
Client messaging helpers: AI-drafted WhatsApp messages, the deterministic
payment reminder and wa.me links.

Text generation sits behind ``TextGenerator`` so nothing in the ledger waits on
a model; the OpenRouter implementation is the one wired into the API.
"""

import asyncio
import logging
import os
import re
from enum import Enum
from typing import Mapping, Optional
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, Field

from .errors import TextGenerationUnavailable
from .money import format_currency

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "meta-llama/llama-3.1-8b-instruct"
DEFAULT_DRAFT_TIMEOUT = 20.0

# Kept literal, as browsers do when encoding a URI component.
_URI_SAFE = "!~*'()"


class MessageIntent(str, Enum):
    REFILL = "REFILL"
    CROSS_SELL = "CROSS_SELL"
    BIRTHDAY = "BIRTHDAY"
    GENERAL = "GENERAL"
    FOLLOW_UP = "FOLLOW_UP"
    SEND_INVOICE = "SEND_INVOICE"
    SEND_QUOTE = "SEND_QUOTE"


class Tone(str, Enum):
    CASUAL = "Casual"
    FORMAL = "Formal"
    ENTHUSIASTIC = "Enthusiastic"


class MessageRequest(BaseModel):
    clientName: str = Field(min_length=1)
    intent: MessageIntent
    context: str = ""
    tone: Tone = Tone.CASUAL


class MessageDraft(BaseModel):
    message: str


SYSTEM_PROMPT = (
    "You are a friendly and professional independent business owner writing "
    "WhatsApp messages to your own clients."
)

_INTENT_GUIDANCE = {
    MessageIntent.REFILL: "Noté que hace tiempo compraste {context}. ¿Te queda todavía o te aparto uno?",
    MessageIntent.CROSS_SELL: "Como usas productos de belleza/hogar, pensé que te gustaría probar {context}.",
    MessageIntent.BIRTHDAY: "¡Feliz Cumpleaños! 🎉 Espero que la pases súper bien.",
    MessageIntent.FOLLOW_UP: "Hola! Solo pasando para ver cómo te va con {context}.",
    MessageIntent.SEND_INVOICE: "Aquí te comparto tu factura #{context}. Avísame cualquier duda.",
    MessageIntent.SEND_QUOTE: "Adjunto la cotización #{context} que preparamos. Quedo atento a tus comentarios.",
}

PAYMENT_REMINDER_TEMPLATE = (
    "Hola *{client_name}*, esperamos que estés bien.\n\n"
    "Te escribimos de *{business_name}* para recordarte amablemente que tu factura "
    "*{invoice_number}* por un monto de *{amount}* está pendiente.\n\n"
    "Agradeceríamos tu apoyo con el pago. ¡Gracias!"
)


class TextGenerator:
    """Anything that can turn a prompt into text."""

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        raise NotImplementedError


class OpenRouterTextGenerator(TextGenerator):
    """Chat-completions client for OpenRouter"""

    BASE_URL = "https://openrouter.ai/api/v1"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, temperature: float = 0.7):
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        if not self.api_key:
            raise ValueError("OPENROUTER_API_KEY environment variable not set")
        self.model = model or os.getenv("OPENROUTER_MODEL", DEFAULT_MODEL)
        self.temperature = temperature
        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": 512,
        }

        async with aiohttp.ClientSession() as session:
            async with session.post(
                f"{self.BASE_URL}/chat/completions",
                headers=self.headers,
                json=payload,
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise TextGenerationUnavailable(
                        f"OpenRouter API error: {response.status}",
                        status=response.status,
                        detail=error_text[:500],
                    )
                data = await response.json()
                return data["choices"][0]["message"]["content"]


def build_prompt(request: MessageRequest) -> str:
    guidance = _INTENT_GUIDANCE.get(request.intent)
    lines = [
        f"Write a short WhatsApp message to a client named {request.clientName}.",
        "",
        f"Goal: {request.intent.value}",
        f"Context: {request.context}",
        f"Tone: {request.tone.value}",
        "",
        "Requirements:",
        "- Language: STRICTLY Spanish (Dominican Republic friendly/neutral). No English.",
        "- Length: Short and concise (whatsapp style). Max 2-3 sentences.",
        "- Do NOT sound pushy. Frame it as helpful service.",
        "- Include 1-2 relevant emojis.",
    ]
    if guidance:
        lines += ["", f'Example for this goal: "{guidance.format(context=request.context)}"']
    lines += ["", "End with a simple engaging question if appropriate. Reply with the message only."]
    return "\n".join(lines)


async def draft_message(
    generator: TextGenerator,
    request: MessageRequest,
    timeout: float = DEFAULT_DRAFT_TIMEOUT,
) -> MessageDraft:
    """
    Ask ``generator`` for a message draft.

    A slow or failing backend raises ``TextGenerationUnavailable``; callers can
    fall back to ``payment_reminder`` or a manual message.
    """
    try:
        text = await asyncio.wait_for(generator.generate(build_prompt(request), SYSTEM_PROMPT), timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("messaging.draft_timeout", extra={"intent": request.intent.value, "timeout": timeout})
        raise TextGenerationUnavailable("Message draft timed out", timeout=timeout) from exc
    except TextGenerationUnavailable:
        raise
    except aiohttp.ClientError as exc:
        logger.warning("messaging.draft_failed", extra={"intent": request.intent.value, "error": str(exc)})
        raise TextGenerationUnavailable("Message draft backend unreachable") from exc

    text = (text or "").strip()
    if not text:
        raise TextGenerationUnavailable("Message draft came back empty")
    return MessageDraft(message=text)


def payment_reminder(invoice: Mapping, business_name: Optional[str] = None) -> str:
    """Fixed reminder text for an invoice's outstanding balance."""
    balance = invoice.get("balanceDue")
    if balance is None:
        balance = invoice.get("total", 0)
    return PAYMENT_REMINDER_TEMPLATE.format(
        client_name=invoice.get("clientName") or "Cliente",
        business_name=business_name or "nuestra empresa",
        invoice_number=invoice.get("invoiceNumber") or "",
        amount=format_currency(balance, invoice.get("currency")),
    )


def whatsapp_link(phone: str, text: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    # Ten-digit numbers are local NANP numbers (809/829/849).
    if len(digits) == 10:
        digits = "1" + digits
    encoded = quote(text, safe=_URI_SAFE)
    return f"https://wa.me/{digits}?text={encoded}"
