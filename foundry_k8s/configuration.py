"""Configuration entries: normalization and encryption at rest."""

import logging
from typing import Iterable, Protocol

from .models import ConfigEntry

logger = logging.getLogger(__name__)


class ValueCipher(Protocol):
    """Symmetric cipher used to store configuration values at rest."""

    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, ciphertext: str) -> str: ...


def normalize_entries(entries: Iterable[ConfigEntry]) -> list[ConfigEntry]:
    """Drop entries with a blank key, keeping the last value of repeated keys."""
    merged: dict[str, str] = {}
    for entry in entries:
        if not entry.key:
            continue
        merged[entry.key] = entry.value
    return [ConfigEntry(key=k, value=v) for k, v in merged.items()]


def seal_entries(entries: Iterable[ConfigEntry], cipher: ValueCipher) -> list[ConfigEntry]:
    """Encrypt entry values for storage. Empty values are stored as-is."""
    return [
        ConfigEntry(key=e.key, value=cipher.encrypt(e.value) if e.value else "")
        for e in entries
    ]


def open_entries(entries: Iterable[ConfigEntry], cipher: ValueCipher) -> list[ConfigEntry]:
    """
    Decrypt stored entry values.

    A value that fails to decrypt is returned unchanged, so rows written
    before encryption was enabled keep working.
    """
    opened = []
    for e in entries:
        value = e.value
        if value:
            try:
                value = cipher.decrypt(value)
            except Exception as exc:
                logger.warning(f"Failed to decrypt config value for key {e.key}: {exc}")
        opened.append(ConfigEntry(key=e.key, value=value))
    return opened


def entries_to_map(entries: Iterable[ConfigEntry]) -> dict[str, str]:
    return {e.key: e.value for e in entries if e.key}

