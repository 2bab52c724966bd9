# desktop/lock_screen.py
"""Testi della schermata di blocco: mai mostrare codici grezzi all'utente."""
from dataclasses import dataclass
from html import escape
from typing import Optional


@dataclass(frozen=True)
class LockMessage:
    title: str
    message: str


MESSAGES = {
    "expired": LockMessage(
        "License Expired",
        "Your subscription has expired. Please contact your administrator to renew.",
    ),
    "revoked": LockMessage(
        "License Revoked",
        "Your license has been revoked. Please contact support for assistance.",
    ),
    "not_activated": LockMessage(
        "Activation Required",
        "Please activate this device with a valid license key.",
    ),
    "validation_failed": LockMessage(
        "Validation Failed",
        "Unable to validate license. Please check your internet connection.",
    ),
    "network_error": LockMessage(
        "Connection Error",
        "Cannot connect to license server. Please check your internet connection.",
    ),
}

GENERIC = LockMessage(
    "License Error",
    "There was a problem with your license. Please contact support.",
)


def lock_message(reason: Optional[str]) -> LockMessage:
    return MESSAGES.get(reason or "", GENERIC)


def render_lock_screen(reason: Optional[str]) -> str:
    """Pagina HTML minimale per la finestra bloccata."""
    content = lock_message(reason)
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        f"<head><meta charset=\"utf-8\"><title>{escape(content.title)}</title></head>\n"
        "<body style=\"font-family: sans-serif; display: flex; justify-content: center; "
        "align-items: center; height: 100vh; margin: 0;\">\n"
        "<div style=\"text-align: center; max-width: 400px;\">\n"
        f"<h1>{escape(content.title)}</h1>\n"
        f"<p>{escape(content.message)}</p>\n"
        "</div>\n"
        "</body>\n"
        "</html>\n"
    )
