"""HDXT: conjunctive search combining a Mitra index with an AUHME structure."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Sequence

from conjsse.hdxt_crypto import (
    Delta,
    HdxtState,
    Operation,
    UTok,
    auhme_apply_upd,
    auhme_client_search_step1,
    auhme_client_search_step2,
    auhme_encrypt,
    auhme_gen_upd,
    auhme_server_search,
    mitra_decrypt,
    mitra_encrypt,
    mitra_gen_trapdoor,
    mitra_server_search,
)
from conjsse.plaintext import DEFAULT_URI, load_id_keywords, mongo_setup, unique_val_sets
from conjsse.prf import f_aesni
from conjsse.util import (
    query_keywords_from_file,
    read_hdxt_keys,
    remove_duplicates,
    remove_element,
    save_update_cnt,
    write_result_to_csv,
)

KEY_LENGTH = 16
UPLOAD_LIST_MAX_LENGTH = 200_000
_TIMESTAMP = "%Y-%m-%d_%H-%M-%S"


def _raw(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def _duration(seconds: float) -> str:
    return str(timedelta(seconds=seconds))


@dataclass
class Hdxt:
    """An HDXT client together with the server-side encrypted indexes it maintains."""

    state: HdxtState = field(default_factory=HdxtState)
    plaintext_db: Any = None
    universe_keywords: list[str] = field(default_factory=list)
    universe_ids: list[str] = field(default_factory=list)
    keys_path: Path = Path("cmd/HDXT/keys.txt")
    query_dir: Path = Path("cmd/HDXT")
    result_dir: Path = Path("result")
    mongo_uri: str = DEFAULT_URI

    def initialize(self, db_name: str, random_key: bool) -> None:
        """Load or draw the keys, reset all state and read the keyword universe.

        Connects to MongoDB unless a plaintext database handle is already set.
        """
        if random_key:
            mitra_key = secrets.token_bytes(KEY_LENGTH)
            k1, k2, k3 = (secrets.token_bytes(KEY_LENGTH) for _ in range(3))
            auhme_keys = (k1, k2, k3)
        else:
            mitra_key, auhme_keys = read_hdxt_keys(self.keys_path)
        self.state = HdxtState(
            mitra_key=mitra_key,
            auhme_keys=auhme_keys,
            deltas=Delta(cnt=0, t={}, delta=0, s=[]),
        )
        if self.plaintext_db is None:
            self.plaintext_db = mongo_setup(db_name, self.mongo_uri)
        self.universe_keywords = unique_val_sets(self.plaintext_db)

    def setup_phase(self) -> Path:
        """Build the indexes from every record, then run an edit pass over them.

        Saves the keyword counters and a CSV of volumes and timings; returns the CSV path.
        """
        try:
            records = load_id_keywords(self.plaintext_db)
        finally:
            client = getattr(self.plaintext_db, "client", None)
            if client is not None:
                client.close()

        prepared = [(identifier, remove_duplicates(values)) for identifier, values in records]
        rows: list[list[str]] = []

        for identifier, keywords in prepared:
            elapsed = self.setup(identifier, keywords, 1)
            rows.append([identifier, str(self._volume()), _duration(elapsed)])

        for identifier, keywords in prepared:
            elapsed, tokens = self.encrypt(identifier, keywords, Operation.EDIT)
            for utok in tokens:
                auhme_apply_upd(self.state, utok)
            rows.append([identifier, str(self._volume()), _duration(elapsed)])

        stamp = datetime.now().strftime(_TIMESTAMP)
        out_dir = self.result_dir / "Update" / "HDXT"
        save_update_cnt(self.state.file_cnt, out_dir / f"{stamp}_UpdateCnt.json")
        result_path = out_dir / f"{stamp}.csv"
        write_result_to_csv(result_path, ["keyword", "volume", "addTime", "storageUpdateBytes"], rows)
        return result_path

    def _volume(self) -> int:
        return len(self.state.mitra_cipher_list) + len(self.state.auhme_cipher_list)

    def setup(self, identifier: str, keywords: Sequence[str], operation: int) -> float:
        """Index ``identifier`` against every universe keyword; return the seconds spent."""
        state = self.state
        present = set(keywords)
        elapsed = 0.0
        for keyword in self.universe_keywords:
            start = time.perf_counter()
            if keyword in present:
                state.file_cnt.setdefault(keyword, 0)
                address, value = mitra_encrypt(state, keyword, identifier, operation)
                label, enc = auhme_encrypt(state, keyword, identifier, 1, 0)
                elapsed += time.perf_counter() - start
                state.auhme_cipher_list[label] = enc
                state.mitra_cipher_list[address] = value
            else:
                label, enc = auhme_encrypt(state, keyword, identifier, 0, 0)
                elapsed += time.perf_counter() - start
                state.auhme_cipher_list[label] = enc
        return elapsed

    def encrypt(
        self, identifier: str, keywords: Sequence[str], operation: Operation
    ) -> tuple[float, list[UTok]]:
        """Produce the update tokens for ``identifier``; return the seconds spent and the tokens.

        An add touches every universe keyword; any other operation edits the given keywords.
        """
        state = self.state
        tokens: list[UTok] = []
        start = time.perf_counter()
        if operation == Operation.ADD:
            present = set(keywords)
            combined: dict[str, str] = {}
            for keyword in self.universe_keywords:
                if keyword in present:
                    state.file_cnt.setdefault(keyword, 0)
                    address, value = mitra_encrypt(state, keyword, identifier, int(operation))
                    state.mitra_cipher_list[address] = value
                    flag = 1
                else:
                    flag = 0
                utok, delta = auhme_gen_upd(state, Operation.ADD, keyword + identifier, flag)
                state.deltas = delta
                if utok is not None:
                    combined.update(utok.tok)
            tokens.append(UTok(combined, Operation.ADD))
        else:
            for keyword in keywords:
                utok, delta = self.edit_pair(state.deltas, identifier, keyword, operation)
                if utok is not None:
                    tokens.append(utok)
                state.deltas = delta
        return time.perf_counter() - start, tokens

    def edit_pair(
        self, delta: Delta, identifier: str, keyword: str, operation: Operation
    ) -> tuple[UTok | None, Delta]:
        """Generate the edit token for one ``(keyword, identifier)`` pair.

        When the buffer is about to reach its threshold, the label set of ``delta`` is
        rebuilt from the keyword and identifier universes.
        """
        labels = delta.s
        if len(delta.t) + 1 >= delta.delta:
            k1 = self.state.auhme_keys[0]
            labels = []
            for word in self.universe_keywords:
                for ident in self.universe_ids:
                    label = f_aesni(k1, _raw(word + ident), 1)
                    if label is None:
                        raise ValueError("AES PRF produced no output")
                    labels.append(_b64(label))
        delta.s = labels
        value = 1 if operation == Operation.EDIT_PLUS else 0
        return auhme_gen_upd(self.state, Operation.EDIT, keyword + identifier, value)

    def search_phase(self, table_name: str, file_name: str) -> list[list[str]]:
        """Run every query of ``file_name`` and write a CSV of timings; return the results."""
        queries = query_keywords_from_file(self.query_dir / file_name)
        results: list[list[str]] = []
        rows: list[list[str]] = []
        client_total = 0.0
        server_total = 0.0

        for query in queries:
            w1 = min(query, key=lambda w: self.state.file_cnt.get(w, 0))
            trapdoor_time, server_time, w1_ids = self.search_one_keyword(w1)
            client_total += trapdoor_time
            server_total += server_time

            rest = remove_element(query, w1)
            start = time.perf_counter()
            dks = auhme_client_search_step1(self.state, w1_ids, rest)
            client_total += time.perf_counter() - start

            start = time.perf_counter()
            positions = auhme_server_search(self.state, dks)
            server_total += time.perf_counter() - start

            start = time.perf_counter()
            ids = auhme_client_search_step2(w1_ids, positions)
            client_total += time.perf_counter() - start

            results.append(ids)
            rows.append(["#".join(query), _duration(client_total), _duration(server_total), str(len(ids))])

        stamp = datetime.now().strftime(_TIMESTAMP)
        result_path = self.result_dir / "Search" / "HDXT" / f"{table_name}_{stamp}.csv"
        write_result_to_csv(result_path, ["keyword", "clientTime", "serverTime", "resultLength"], rows)
        return results

    def search_one_keyword(self, keyword: str) -> tuple[float, float, list[str]]:
        """Search the Mitra index; return client seconds, server seconds and the identifiers."""
        start = time.perf_counter()
        tokens = mitra_gen_trapdoor(self.state, keyword)
        client_time = time.perf_counter() - start

        start = time.perf_counter()
        encrypted = mitra_server_search(self.state, tokens)
        server_time = time.perf_counter() - start

        start = time.perf_counter()
        ids = mitra_decrypt(self.state, keyword, encrypted)
        client_time += time.perf_counter() - start
        return client_time, server_time, ids


def _b64(data: bytes) -> str:
    import base64

    return base64.b64encode(data).decode("ascii")


__all__: Iterable[str] = ["Hdxt"]