"""Byte helpers, result files and keyword lists shared by the schemes."""

from __future__ import annotations

import base64
import csv
import json
from dataclasses import dataclass
from enum import IntEnum
from os import PathLike
from pathlib import Path
from typing import Iterable, Sequence

StrPath = str | PathLike


class Operation(IntEnum):
    """Update operation carried in the last byte of a ciphertext."""

    DEL = 0
    ADD = 1


@dataclass
class SEOp:
    """One server search result: position, encrypted value and match count."""

    j: int
    sval: str
    cnt: int


def bytes_xor_with_op(mac: bytes, identifier: bytes, op: int) -> bytes:
    """XOR the first 31 bytes of a 32-byte MAC with ``identifier`` and the last with ``op``."""
    if len(mac) != 32:
        raise ValueError("MAC length must be 32 bytes")
    if op not in (0, 1):
        raise ValueError("op must be 0 or 1")
    out = bytearray(mac)
    for index, byte in enumerate(bytes(identifier)[:31]):
        out[index] ^= byte
    out[31] ^= op
    return bytes(out)


def base64_to_int(text: str) -> int:
    """Decode standard base64 and read the bytes as a big-endian integer."""
    return int.from_bytes(base64.b64decode(text, validate=True), "big")


def remove_element(items: Iterable[str], target: str) -> list[str]:
    """Return a new list without any occurrence of ``target``."""
    return [item for item in items if item != target]


def remove_first(items: Sequence[str], target: str) -> list[str]:
    """Return a new list with the first occurrence of ``target`` removed."""
    result = list(items)
    if target in result:
        result.remove(target)
    return result


def write_result_to_csv(path: StrPath, headers: Sequence[str], rows: Iterable[Sequence[str]]) -> None:
    """Write a header and rows as CSV, creating the parent directory if needed."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle, lineterminator="\n")
        writer.writerow(headers)
        writer.writerows(rows)


def write_result_to_file(path: StrPath, rows: Iterable[Sequence[str]]) -> None:
    """Write each row as one line of ``#``-joined fields."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8", newline="") as handle:
        for row in rows:
            handle.write("#".join(row) + "\n")
    print("Data written to file:", target)


def read_hdxt_keys(path: StrPath) -> tuple[bytes, tuple[bytes, bytes, bytes]]:
    """Read the base64 Mitra key and the three AUHME keys, one per line."""
    with Path(path).open(encoding="utf-8") as handle:
        lines = [line.strip() for line in handle]
    if len(lines) < 4:
        raise ValueError("key file must hold four base64 lines")
    mitra, *auhme = (base64.b64decode(line, validate=True) for line in lines[:4])
    return mitra, (auhme[0], auhme[1], auhme[2])


def remove_duplicates(items: Iterable[str]) -> list[str]:
    """Return the distinct items, keeping the first occurrence of each."""
    return list(dict.fromkeys(items))


def save_update_cnt(update_cnt: dict[str, int], path: StrPath) -> None:
    """Save keyword counters as indented JSON with sorted keys."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        json.dump(update_cnt, handle, indent=2, sort_keys=True, ensure_ascii=False)
        handle.write("\n")


def load_update_cnt(path: StrPath) -> dict[str, int]:
    """Load keyword counters saved by :func:`save_update_cnt`."""
    with Path(path).open(encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError("update counters must be a JSON object")
    for key, value in data.items():
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError(f"counter for {key!r} is not an integer")
    return data


def query_keywords_from_file(path: StrPath) -> list[list[str]]:
    """Read one conjunctive query per line, keywords separated by ``#``."""
    queries = []
    with Path(path).open(encoding="utf-8", newline="") as handle:
        for line in handle:
            line = line.removesuffix("\n").removesuffix("\r")
            queries.append(line.split("#"))
    return queries


def bytes_xor(b1: bytes, b2: bytes) -> bytes:
    """XOR ``b1`` with the leading bytes of ``b2``; the result has the length of ``b1``."""
    if len(b2) < len(b1):
        raise ValueError("second operand is shorter than the first")
    return bytes(a ^ b for a, b in zip(b1, b2))