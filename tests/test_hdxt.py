import base64
import csv
import json
import secrets

import pytest

from conjsse.hdxt import Hdxt
from conjsse.hdxt_crypto import Delta, Operation, auhme_apply_upd, auhme_encrypt

DOCS = [
    {"k": "id1", "val_set": ["alpha", "beta"]},
    {"k": "id2", "val_set": ["beta", "gamma", "beta"]},
]


class _FakeCollection:
    def __init__(self, docs):
        self.docs = docs

    def find(self, query, **options):
        return iter(self.docs)

    def aggregate(self, pipeline):
        seen = dict.fromkeys(v for doc in self.docs for v in doc["val_set"])
        return [{"_id": value} for value in seen]


class _FakeDatabase:
    def __init__(self, docs):
        self.collections = {"id_keywords": _FakeCollection(docs)}

    def __getitem__(self, name):
        return self.collections[name]


@pytest.fixture
def hdxt(tmp_path):
    scheme = Hdxt(plaintext_db=_FakeDatabase(DOCS), result_dir=tmp_path / "result", query_dir=tmp_path)
    scheme.initialize("db", True)
    return scheme


def _read_csv(path):
    with open(path, newline="", encoding="utf-8") as handle:
        return list(csv.reader(handle))


def test_initialize_reads_universe(hdxt):
    assert hdxt.universe_keywords == ["alpha", "beta", "gamma"]
    assert len(hdxt.state.mitra_key) == 16
    assert all(len(k) == 16 for k in hdxt.state.auhme_keys)
    assert hdxt.state.file_cnt == {}


def test_initialize_reads_key_file(tmp_path):
    raw = [secrets.token_bytes(16) for _ in range(4)]
    key_file = tmp_path / "keys.txt"
    key_file.write_text("\n".join(base64.b64encode(k).decode() for k in raw) + "\n")
    scheme = Hdxt(plaintext_db=_FakeDatabase(DOCS), keys_path=key_file)
    scheme.initialize("db", False)
    assert scheme.state.mitra_key == raw[0]
    assert scheme.state.auhme_keys == tuple(raw[1:])


def test_setup_fills_both_indexes(hdxt):
    hdxt.setup("id1", ["alpha", "gamma"], 1)
    assert len(hdxt.state.mitra_cipher_list) == 2
    assert len(hdxt.state.auhme_cipher_list) == len(hdxt.universe_keywords)
    assert hdxt.state.file_cnt == {"alpha": 1, "gamma": 1}
    label, enc = auhme_encrypt(hdxt.state, "alpha", "id1", 1, 0)
    assert hdxt.state.auhme_cipher_list[label] == enc
    label0, enc0 = auhme_encrypt(hdxt.state, "beta", "id1", 0, 0)
    assert hdxt.state.auhme_cipher_list[label0] == enc0


def test_search_one_keyword_returns_one_id_per_update(hdxt):
    hdxt.setup("id1", ["alpha", "beta"], 1)
    hdxt.setup("id2", ["beta"], 1)
    client, server, ids = hdxt.search_one_keyword("beta")
    assert len(ids) == hdxt.state.file_cnt["beta"]
    assert client >= 0 and server >= 0


def test_search_one_keyword_unknown_keyword(hdxt):
    _, _, ids = hdxt.search_one_keyword("missing")
    assert ids == []


def test_encrypt_add_builds_single_token(hdxt):
    elapsed, tokens = hdxt.encrypt("id1", ["alpha"], Operation.ADD)
    assert elapsed >= 0
    assert len(tokens) == 1
    assert tokens[0].op == Operation.ADD
    assert len(tokens[0].tok) == len(hdxt.universe_keywords)
    assert hdxt.state.file_cnt == {"alpha": 1}
    assert len(hdxt.state.mitra_cipher_list) == 1
    auhme_apply_upd(hdxt.state, tokens[0])
    assert hdxt.state.auhme_cipher_list == tokens[0].tok


def test_encrypt_edit_evicts_every_label_at_zero_threshold(hdxt):
    hdxt.setup("id1", ["alpha", "beta"], 1)
    labels = set(hdxt.state.auhme_cipher_list)
    _, tokens = hdxt.encrypt("id1", ["alpha", "beta"], Operation.EDIT)
    assert len(tokens) == 2
    assert all(set(t.tok) == labels for t in tokens)
    assert all(t.op == Operation.EDIT for t in tokens)
    assert hdxt.state.deltas.cnt == 2


def test_encrypt_edit_buffers_below_threshold(hdxt):
    hdxt.setup("id1", ["alpha"], 1)
    hdxt.state.deltas = Delta(cnt=0, t={}, delta=100, s=[])
    _, tokens = hdxt.encrypt("id1", ["alpha", "beta"], Operation.EDIT_PLUS)
    assert tokens == []
    assert len(hdxt.state.deltas.t) == 2
    assert set(hdxt.state.deltas.t.values()) == {1}
    assert hdxt.state.deltas.cnt == 0


def test_edit_pair_rebuilds_label_set(hdxt):
    hdxt.universe_ids = ["id1", "id2"]
    delta = hdxt.state.deltas
    hdxt.edit_pair(delta, "id1", "alpha", Operation.EDIT_MINUS)
    assert len(delta.s) == len(hdxt.universe_keywords) * len(hdxt.universe_ids)
    assert len(set(delta.s)) == len(delta.s)


def test_edit_pair_keeps_label_set_below_threshold(hdxt):
    hdxt.universe_ids = ["id1"]
    delta = Delta(cnt=0, t={}, delta=100, s=["kept"])
    hdxt.state.deltas = delta
    utok, new_delta = hdxt.edit_pair(delta, "id1", "alpha", Operation.EDIT_MINUS)
    assert utok is None
    assert delta.s == ["kept"]
    assert list(new_delta.t.values()) == [0]


def test_setup_phase_writes_results(hdxt):
    path = hdxt.setup_phase()
    rows = _read_csv(path)
    assert rows[0] == ["keyword", "volume", "addTime", "storageUpdateBytes"]
    body = rows[1:]
    assert [row[0] for row in body] == ["id1", "id2", "id1", "id2"]
    volumes = [int(row[1]) for row in body]
    assert volumes == sorted(volumes)
    assert volumes[-1] == len(hdxt.state.mitra_cipher_list) + len(hdxt.state.auhme_cipher_list)
    assert hdxt.state.file_cnt == {"alpha": 1, "beta": 2, "gamma": 1}
    saved = list(path.parent.glob("*_UpdateCnt.json"))
    assert len(saved) == 1
    assert json.loads(saved[0].read_text(encoding="utf-8")) == hdxt.state.file_cnt


def test_search_phase_writes_results(hdxt, tmp_path):
    hdxt.setup("id1", ["alpha", "beta"], 1)
    hdxt.setup("id2", ["beta", "gamma"], 1)
    (tmp_path / "queries.txt").write_text("alpha#beta\ngamma\n", encoding="utf-8")
    results = hdxt.search_phase("table", "queries.txt")
    assert len(results) == 2
    assert len(results[1]) == hdxt.state.file_cnt["gamma"]
    written = list((hdxt.result_dir / "Search" / "HDXT").glob("table_*.csv"))
    assert len(written) == 1
    rows = _read_csv(written[0])
    assert rows[0] == ["keyword", "clientTime", "serverTime", "resultLength"]
    assert [row[0] for row in rows[1:]] == ["alpha#beta", "gamma"]
    assert [int(row[3]) for row in rows[1:]] == [len(r) for r in results]


def test_search_phase_missing_file(hdxt):
    with pytest.raises(FileNotFoundError):
        hdxt.search_phase("table", "absent.txt")