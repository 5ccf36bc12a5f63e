# spamshield/utils/simhash.py
"""
64-битный SimHash для поиска почти-дубликатов.
"""
import hashlib
from collections import Counter

from spamshield.utils.text_utils import tokenize

HASH_BITS = 64
_MASK = (1 << HASH_BITS) - 1


def _token_hash(token: str) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big")


def compute_simhash(text: str) -> int:
    """
    Вычисляет SimHash текста.

    Регистр и пунктуация не учитываются, вес токена равен числу его вхождений.
    Пустой текст дает 0.

    Args:
        text: Исходный текст

    Returns:
        64-битный отпечаток
    """
    tokens = tokenize(text)
    if not tokens:
        return 0

    vector = [0] * HASH_BITS
    for token, weight in Counter(tokens).items():
        token_hash = _token_hash(token)
        for bit in range(HASH_BITS):
            if token_hash & (1 << bit):
                vector[bit] += weight
            else:
                vector[bit] -= weight

    fingerprint = 0
    for bit, value in enumerate(vector):
        if value > 0:
            fingerprint |= 1 << bit
    return fingerprint & _MASK


def hamming_distance(left: int, right: int) -> int:
    return bin((left ^ right) & _MASK).count("1")


def similarity_percent(left: int, right: int) -> float:
    """Сходство отпечатков в процентах (100 = идентичны)."""
    return 100.0 * (1 - hamming_distance(left, right) / HASH_BITS)
