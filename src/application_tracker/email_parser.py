import base64
import binascii
import re
from typing import Any, Dict, List, Tuple, Union

from loguru import logger

from .models import MessagePart

_ENTITIES = [
    (re.compile(r"&nbsp;", re.I), " "),
    (re.compile(r"&amp;", re.I), "&"),
    (re.compile(r"&lt;", re.I), "<"),
    (re.compile(r"&gt;", re.I), ">"),
    (re.compile(r"&quot;", re.I), '"'),
    (re.compile(r"&#39;", re.I), "'"),
]


def _decode_payload(data: str) -> str:
    # Gmail returns base64url-encoded data, usually without padding
    if not data:
        return ""
    data = data.replace("-", "+").replace("_", "/")
    missing_padding = len(data) % 4
    if missing_padding:
        data += "=" * (4 - missing_padding)
    try:
        return base64.b64decode(data, validate=True).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as e:
        logger.warning("[Parser] Failed to decode base64 payload: {}", e)
        return ""


def html_to_text(html: str) -> str:
    html = re.sub(r"<script[^>]*>[\s\S]*?</script>", "", html, flags=re.I)
    html = re.sub(r"<style[^>]*>[\s\S]*?</style>", "", html, flags=re.I)
    html = re.sub(r"<br\s*/?>", "\n", html, flags=re.I)
    html = re.sub(r"</p>", "\n", html, flags=re.I)
    text = re.sub(r"<[^>]+>", "", html)
    for pattern, repl in _ENTITIES:
        text = pattern.sub(repl, text)
    return text


def _body_data(part: MessagePart) -> str:
    return (part.body.data if part.body else None) or ""


def _join_children(parts: List[MessagePart]) -> str:
    return "".join(extract_text(p) + "\n" for p in parts)


def extract_text(part: MessagePart) -> str:
    """Flatten a MIME part tree into plain text."""
    mime = part.mime_type or ""
    if mime.startswith("multipart/"):
        return _join_children(part.parts)
    if mime == "text/plain":
        return _decode_payload(_body_data(part)).strip()
    if mime == "text/html":
        return html_to_text(_decode_payload(_body_data(part))).strip()
    if mime == "message/rfc822":
        if part.parts:
            return _join_children(part.parts)
        # attached .eml without parsed parts, kept as raw text
        return _decode_payload(_body_data(part)).strip()
    # images, pdfs and other attachments carry no text
    return ""


def _as_part(payload: Union[MessagePart, Dict[str, Any]]) -> MessagePart:
    if isinstance(payload, MessagePart):
        return payload
    return MessagePart.model_validate(payload)


def extract_email_content(message: Dict[str, Any]) -> str:
    payload = message.get("payload")
    if not payload:
        return ""
    return extract_text(_as_part(payload)).strip()


def _get_header(headers: List[Dict[str, str]], name: str) -> str:
    for h in headers:
        if h.get("name", "").lower() == name.lower():
            return h.get("value", "")
    return ""


def _clean_text(s: str) -> str:
    s = re.sub(r"[\u200B-\u200D\uFEFF]", "", s or "")
    s = re.sub(r"[ \t]+", " ", s)
    s = re.sub(r"\s+\n", "\n", s)
    return s.strip()


def parse_message(message: Dict[str, Any]) -> Tuple[str, str, str]:
    """Returns: (subject, from_email, text)"""
    headers = (message.get("payload") or {}).get("headers", [])
    subject = _clean_text(_get_header(headers, "Subject"))
    from_email = _clean_text(_get_header(headers, "From"))
    return subject, from_email, extract_email_content(message)
