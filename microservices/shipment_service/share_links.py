"""
Tracking link and driver contact helpers

Builds the opaque tracking token, the public link and the WhatsApp / SMS
deep links handed to the shipper. Nothing here sends a message.
"""

import re
import secrets
import string
import time
from typing import Optional
from urllib.parse import quote

_NON_DIGITS = re.compile(r"\D")
_TOKEN_ALPHABET = string.digits + string.ascii_lowercase

SHARE_MESSAGE_TEMPLATE = (
    "Olá! 👋\n\n"
    "Para que possamos rastrear sua carga em tempo real, por favor clique no "
    "link abaixo e permita o acesso à sua localização:\n\n"
    "{link}\n\n"
    "Este link é seguro e será usado apenas para acompanhar a entrega da carga.\n\n"
    "Obrigado!\n"
    "Braticargas"
)


def digits_only(value: Optional[str]) -> str:
    return _NON_DIGITS.sub("", value or "")


def is_valid_mobile(number: Optional[str]) -> bool:
    """A mobile number is 9 digits starting with 9 once punctuation is stripped"""
    digits = digits_only(number)
    return len(digits) == 9 and digits.startswith("9")


def build_br_phone(ddd: str, number: str) -> str:
    """DDD + number, digits only (e.g. "11" + "98765-4321" -> "11987654321")"""
    return f"{digits_only(ddd)}{digits_only(number)}"


def generate_tracking_token(now_ms: Optional[int] = None) -> str:
    """Opaque token "<epoch-ms>-<random base36>" """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(13))
    return f"{now_ms}-{suffix}"


def build_tracking_url(public_base_url: str, token: str) -> str:
    return f"{public_base_url.rstrip('/')}/rastreamento/{token}"


def build_share_message(link: str) -> str:
    return SHARE_MESSAGE_TEMPLATE.format(link=link)


def _encode_component(text: str) -> str:
    # Same escaping as encodeURIComponent
    return quote(text, safe="-_.!~*'()")


def build_whatsapp_url(phone: str, message: str) -> str:
    return f"https://wa.me/55{digits_only(phone)}?text={_encode_component(message)}"


def build_sms_url(phone: str, message: str) -> str:
    return f"sms:{digits_only(phone)}?body={_encode_component(message)}"
