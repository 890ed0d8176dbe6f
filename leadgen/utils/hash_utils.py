"""해싱 유틸리티"""
import hashlib


def sha256_hex(text: str) -> str:
    """
    문자열을 SHA-256 16진수 해시로 변환

    Args:
        text: 해시할 문자열

    Returns:
        SHA-256 해시 문자열 (64자)
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def short_hash(text: str, length: int = 16) -> str:
    """페이지 토큰 등 불투명 문자열의 짧은 단방향 해시"""
    return sha256_hex(text)[:length]
