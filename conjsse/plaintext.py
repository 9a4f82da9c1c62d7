"""Access to the plaintext keyword collections kept in MongoDB."""

from __future__ import annotations

import random
from typing import Any

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from conjsse.util import write_result_to_file

DEFAULT_URI = "mongodb://localhost:27018"
ID_KEYWORDS = "id_keywords"
_BATCH_SIZE = 1000


def mongo_setup(db_name: str, uri: str = DEFAULT_URI) -> Database:
    """Connect to MongoDB, check the connection and return the named database."""
    client: MongoClient = MongoClient(uri)
    try:
        client.admin.command("ping")
    except PyMongoError:
        client.close()
        raise
    return client[db_name]


def _find_all(collection: Any) -> list[dict]:
    return list(collection.find({}, no_cursor_timeout=True, batch_size=_BATCH_SIZE))


def _key_of(document: dict) -> str:
    key = document.get("k")
    if not isinstance(key, str):
        raise TypeError("k is not a string")
    return key


def load_id_keywords(database: Any) -> list[tuple[str, list[str]]]:
    """Return every ``(k, val_set)`` record of the ``id_keywords`` collection."""
    records = []
    for document in _find_all(database[ID_KEYWORDS]):
        values = document.get("val_set")
        if not isinstance(values, list):
            raise TypeError("val_set is not an array")
        if not all(isinstance(value, str) for value in values):
            raise TypeError("val_set contains non-string value")
        records.append((_key_of(document), list(values)))
    return records


def gen_query_data(
    database: Any,
    table_name: str,
    num_pairs: int,
    rng: random.Random | None = None,
) -> tuple[list[list[str]], list[list[str]]]:
    """Draw random 2- and 6-keyword queries and write them to ``keywords_2.txt`` and ``keywords_6.txt``.

    Each query holds distinct keywords taken from the ``k`` field of ``table_name``.
    """
    rng = rng if rng is not None else random.Random()
    keywords = [_key_of(document) for document in _find_all(database[table_name])]

    pairs = [rng.sample(keywords, 2) for _ in range(num_pairs)]
    write_result_to_file("keywords_2.txt", pairs)

    sixes = [rng.sample(keywords, 6) for _ in range(num_pairs)]
    write_result_to_file("keywords_6.txt", sixes)
    return pairs, sixes


def unique_val_sets(database: Any) -> list[str]:
    """Return the distinct string values found in every ``val_set`` of ``id_keywords``."""
    pipeline = [
        {"$unwind": "$val_set"},
        {"$group": {"_id": "$val_set"}},
    ]
    results = database[ID_KEYWORDS].aggregate(pipeline)
    return [result["_id"] for result in results if isinstance(result.get("_id"), str)]