"""Pseudo-random functions and block-cipher helpers shared by the schemes."""

from __future__ import annotations

import hashlib
import hmac

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

BLOCK_SIZE = 16


def int_to_bytes(value: int) -> bytes:
    """Encode a non-negative integer as minimal big-endian bytes (zero is b"")."""
    if value < 0:
        raise ValueError("value must be non-negative")
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def prf_f(key: bytes, message: bytes) -> bytes:
    """HMAC-SHA256 of ``message`` under ``key``."""
    return hmac.new(bytes(key), bytes(message), hashlib.sha256).digest()


def prf_aes256_ctr(key: bytes, message: bytes) -> bytes:
    """PRF built on AES-256 in counter mode with a fixed initial counter of 1."""
    if len(key) != 32:
        raise ValueError("key length must be 32 bytes for AES-256")
    iv = bytes(BLOCK_SIZE - 8) + (1).to_bytes(8, "big")
    encryptor = Cipher(algorithms.AES(bytes(key)), modes.CTR(iv)).encryptor()
    return encryptor.update(bytes(message)) + encryptor.finalize()


def prf_fp(key: bytes, message: bytes, p: int, g: int) -> int:
    """Map HMAC-SHA256 output to ``g ** (mac mod p) mod (p - 1)``.

    A MAC that is a multiple of ``p`` is bumped by one so the exponent is never zero.
    """
    res = int.from_bytes(prf_f(key, message), "big")
    if res % p == 0:
        res += 1
    return pow(g, res % p, p - 1)


def compute_alpha(
    ky: bytes, kz: bytes, identifier: bytes, op: int, w_wc: bytes, p: int, g: int
) -> tuple[int, int]:
    """Return ``(alpha, alpha1)`` with ``alpha = Fp(ky, id||op) * Fp(kz, w||wc)^-1``.

    The inverse is taken modulo ``p - 1``; a ValueError is raised when it does not exist.
    """
    alpha1 = prf_fp(ky, bytes(identifier) + bytes([op & 0xFF]), p, g)
    alpha2 = prf_fp(kz, w_wc, p, g)
    try:
        inverse = pow(alpha2, -1, p - 1)
    except ValueError as exc:
        raise ValueError("Fp(kz, w||wc) has no inverse modulo p - 1") from exc
    return alpha1 * inverse, alpha1


def f_aesni(key: bytes, data: bytes, option: int) -> bytes | None:
    """AES-ECB over ``data`` padded with 0x80 and zeros, then post-processed.

    Option 1 gives 16 bytes (the single encrypted block, or the first half of
    its SHA-256 for longer input); option 2 gives the full SHA-256 of the
    encrypted blocks; any other option gives None.
    """
    algorithm = algorithms.AES(bytes(key))
    size = len(data)
    blocks = -(-size // BLOCK_SIZE)
    buffer = bytearray(blocks * BLOCK_SIZE)
    buffer[:size] = data
    if size % BLOCK_SIZE:
        buffer[size] = 0x80
    encryptor = Cipher(algorithm, modes.ECB()).encryptor()
    encrypted = encryptor.update(bytes(buffer)) + encryptor.finalize()

    if option == 1:
        if size <= BLOCK_SIZE:
            if not encrypted:
                raise ValueError("input must not be empty")
            return encrypted[:BLOCK_SIZE]
        return hashlib.sha256(encrypted).digest()[:BLOCK_SIZE]
    if option == 2:
        return hashlib.sha256(encrypted).digest()
    return None


def xor_prefix(s1: bytes, s2: bytes) -> bytes:
    """XOR ``s1`` with the leading bytes of ``s2``; ``s2`` must be at least as long."""
    if len(s1) > len(s2):
        raise ValueError(f"not sufficient size: {len(s1)}, {len(s2)}")
    return bytes(a ^ b for a, b in zip(s1, s2))