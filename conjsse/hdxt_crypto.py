"""Client and server primitives of HDXT: the Mitra index and the AUHME structure."""

from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterable, Mapping, Sequence

from conjsse.prf import f_aesni, int_to_bytes, prf_f, xor_prefix
from conjsse.util import bytes_xor, bytes_xor_with_op

_XOR_SEED = "0" * 16


class Operation(IntEnum):
    """Kind of an AUHME update."""

    ADD = 0
    EDIT = 1
    EDIT_MINUS = 2
    EDIT_PLUS = 3


@dataclass
class Delta:
    """Client-side AUHME state: epoch counter, pending edits, threshold and label set."""

    cnt: int = 0
    t: dict[str, int] = field(default_factory=dict)
    delta: int = 0
    s: list[str] = field(default_factory=list)


@dataclass
class UTok:
    """An update token mapping labels to values, with the operation it applies."""

    tok: dict[str, str]
    op: Operation


@dataclass
class DecryptionKey:
    """A query key: the labels to combine, a random nonce and the expected digest."""

    labels: list[str]
    r: str
    d: str


@dataclass
class HdxtState:
    """Keys, counters and both encrypted indexes of an HDXT instance."""

    mitra_key: bytes = b""
    auhme_keys: tuple[bytes, bytes, bytes] = (b"", b"", b"")
    file_cnt: dict[str, int] = field(default_factory=dict)
    deltas: Delta = field(default_factory=Delta)
    mitra_cipher_list: dict[str, str] = field(default_factory=dict)
    auhme_cipher_list: dict[str, str] = field(default_factory=dict)


def _raw(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def _text(data: bytes) -> str:
    return data.decode("utf-8", "surrogateescape")


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _byte(value: int) -> bytes:
    return bytes([value & 0xFF])


def _f(key: bytes, data: bytes) -> bytes:
    result = f_aesni(key, data, 1)
    if result is None:
        raise ValueError("AES PRF produced no output")
    return result


def mitra_encrypt(state: HdxtState, keyword: str, identifier: str, operation: int) -> tuple[str, str]:
    """Add one Mitra entry for ``keyword``; return the base64 address and masked value."""
    state.file_cnt[keyword] = state.file_cnt.get(keyword, 0) + 1
    w_wc = _raw(keyword) + int_to_bytes(state.file_cnt[keyword])
    address = prf_f(state.mitra_key, w_wc + int_to_bytes(0))
    mask = prf_f(state.mitra_key, w_wc + int_to_bytes(1))
    val = bytes_xor_with_op(mask, _raw(identifier), operation)
    return _b64(address), _b64(val)


def auhme_encrypt(state: HdxtState, keyword: str, identifier: str, flag: int, cnt: int) -> tuple[str, str]:
    """Return the base64 label of ``keyword||id`` and its encrypted membership flag."""
    k1, k2, k3 = state.auhme_keys
    label = _f(k1, _raw(keyword) + _raw(identifier))
    enc1 = _f(k2, label + _byte(flag))
    enc2 = _f(k3, label + _byte(cnt))
    return _b64(label), _b64(xor_prefix(enc1, enc2))


def auhme_gen_upd(state: HdxtState, op: Operation, ku: str, vu: int) -> tuple[UTok | None, Delta]:
    """Generate an update token for key ``ku`` set to ``vu``, with the next client state.

    An edit is buffered; once the buffer reaches the threshold every stored label is
    re-keyed for the next epoch.
    """
    k1, k2, k3 = state.auhme_keys
    current = state.deltas
    cnt, t, delta, s = current.cnt, current.t, current.delta, current.s
    if op == Operation.ADD:
        label = _f(k1, _raw(ku))
        tok1 = _f(k2, label + _byte(vu))
        tok2 = _f(k3, label + _byte(cnt))
        tok = {_b64(label): _b64(xor_prefix(tok1, tok2))}
        return UTok(tok, op), Delta(cnt, t, delta, s)

    t = c_insert(k1, ku, vu, t)
    if len(t) + 1 < delta:
        return None, Delta(cnt, t, delta, [])
    tok = c_evict(state, list(state.auhme_cipher_list))
    c_clear(state)
    return UTok(tok, Operation.EDIT), Delta(cnt + 1, t, delta, [])


def c_insert(k1: bytes, k: str, v: int, t: dict[str, int]) -> dict[str, int]:
    """Record value ``v`` under the label of ``k`` in ``t``, replacing any earlier one."""
    label = _b64(_f(k1, _raw(k)))
    t.pop(label, None)
    t[label] = v
    return t


def c_evict(state: HdxtState, labels: Iterable[str]) -> dict[str, str]:
    """Build the tokens that move each label to the next epoch, flipping buffered edits."""
    _, k2, k3 = state.auhme_keys
    cnt, t = state.deltas.cnt, state.deltas.t
    tok = {}
    for label in labels:
        raw = _raw(label)
        b = t.get(label, 0)
        u1 = _f(k2, raw + _byte(b))
        u2 = _f(k2, raw + _byte(1 - b))
        u3 = _f(k3, raw + _byte(cnt))
        u4 = _f(k3, raw + _byte(cnt + 1))
        tok[label] = _b64(xor_prefix(xor_prefix(u1, u2), xor_prefix(u3, u4)))
    return tok


def c_clear(state: HdxtState) -> None:
    """Drop all buffered edits."""
    state.deltas.t = {}


def auhme_apply_upd(state: HdxtState, utok: UTok) -> None:
    """Apply an update token to the server's AUHME list."""
    for label, value in utok.tok.items():
        if utok.op == Operation.ADD:
            state.auhme_cipher_list[label] = value
        else:
            state.auhme_cipher_list[label] = xor_strings(state.auhme_cipher_list.get(label, ""), value)


def xor_strings(s1: str, s2: str) -> str:
    """XOR two strings byte-wise; the tail of the longer one is kept unchanged."""
    b1, b2 = _raw(s1), _raw(s2)
    longer, shorter = (b1, b2) if len(b1) > len(b2) else (b2, b1)
    head = bytes(a ^ b for a, b in zip(b1, b2))
    return _text(head + longer[len(shorter):])


def auhme_gen_key(state: HdxtState, mapping: Mapping[str, int]) -> DecryptionKey:
    """Build a key that lets the server test whether every ``key -> value`` holds."""
    k1, k2, k3 = state.auhme_keys
    cnt = state.deltas.cnt
    labels = []
    beta = True
    xors = _XOR_SEED
    for k, v in mapping.items():
        label = _f(k1, _raw(k))
        labels.append(_b64(label))
        cv = c_find(state, k)
        if cv == 1 - v:
            beta = False
        elif cv == v:
            v1 = _f(k2, label + _byte(1 - v))
            v2 = _f(k3, label + _byte(cnt))
            xors = xor_strings(xors, _b64(xor_prefix(v1, v2)))
        elif cv == -1:
            v1 = _f(k2, label + _byte(v))
            v2 = _f(k3, label + _byte(cnt))
            xors = xor_strings(xors, _b64(xor_prefix(v1, v2)))
    r = _b64(secrets.token_bytes(16))
    if beta:
        d = _b64(hashlib.sha256(_raw(r + xors)).digest())
    else:
        d = _b64(secrets.token_bytes(16))
    return DecryptionKey(labels, r, d)


def c_find(state: HdxtState, k: str) -> int:
    """Return the buffered value for ``k``, or -1 when there is none."""
    label = _b64(_f(state.auhme_keys[0], _raw(k)))
    return state.deltas.t.get(label, -1)


def auhme_query(state: HdxtState, dk: DecryptionKey) -> bool:
    """Server test: does the combination of the stored entries match the key's digest?"""
    xors = _XOR_SEED
    for label in dk.labels:
        xors = xor_strings(xors, state.auhme_cipher_list.get(label, ""))
    return _b64(hashlib.sha256(_raw(dk.r + xors)).digest()) == dk.d


def mitra_gen_trapdoor(state: HdxtState, keyword: str) -> list[str]:
    """Return one search token per stored update of ``keyword``."""
    word = _raw(keyword)
    return [
        _b64(prf_f(state.mitra_key, word + int_to_bytes(i) + b"\x00"))
        for i in range(1, state.file_cnt.get(keyword, 0) + 1)
    ]


def mitra_server_search(state: HdxtState, tokens: Iterable[str]) -> list[str]:
    """Return the stored values at the given addresses, skipping unknown ones."""
    return [state.mitra_cipher_list[t] for t in tokens if t in state.mitra_cipher_list]


def mitra_decrypt(state: HdxtState, keyword: str, encs: Sequence[str]) -> list[str]:
    """Unmask the values returned for ``keyword``, dropping the operation byte."""
    word = _raw(keyword)
    result = []
    for index, enc in enumerate(encs):
        mask = prf_f(state.mitra_key, word + int_to_bytes(index) + b"\x01")
        id_op = bytes_xor(base64.b64decode(enc, validate=True), mask)
        if not id_op:
            raise ValueError("empty ciphertext")
        result.append(_text(id_op[:-1]))
    return result


def auhme_client_search_step1(state: HdxtState, w1_ids: Iterable[str], q: Iterable[str]) -> list[DecryptionKey]:
    """Build one key per candidate identifier testing every remaining keyword."""
    keywords = list(q)
    return [auhme_gen_key(state, {w + identifier: 1 for w in keywords}) for identifier in w1_ids]


def auhme_server_search(state: HdxtState, dks: Iterable[DecryptionKey]) -> list[int]:
    """Return the positions of the keys that match."""
    return [position for position, dk in enumerate(dks) if auhme_query(state, dk)]


def auhme_client_search_step2(w1_ids: Sequence[str], positions: Iterable[int]) -> list[str]:
    """Pick the identifiers at the matching positions."""
    return [w1_ids[position] for position in positions]