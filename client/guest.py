"""Stable guest identity, persisted in local storage"""

import secrets
import string
import time

from backend.identity import GUEST_PREFIX, is_guest_id
from client.storage import LocalStorage

GUEST_ID_KEY = "flashcards_guest_id"

_ALPHABET = string.ascii_lowercase + string.digits

__all__ = ["GUEST_ID_KEY", "get_guest_id", "clear_guest_id", "is_guest_id"]


def _generate_guest_id() -> str:
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"{GUEST_PREFIX}{int(time.time() * 1000)}-{suffix}"


def get_guest_id(storage: LocalStorage) -> str:
    """Return the persisted guest id, generating one on first use"""
    guest_id = storage.get_item(GUEST_ID_KEY)
    if not is_guest_id(guest_id):
        guest_id = _generate_guest_id()
        storage.set_item(GUEST_ID_KEY, guest_id)
    return guest_id


def clear_guest_id(storage: LocalStorage) -> None:
    storage.remove_item(GUEST_ID_KEY)
