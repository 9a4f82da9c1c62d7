"""Command line driver for ODXT benchmark runs."""

from __future__ import annotations

import argparse
import json
import time
from dataclasses import dataclass, fields
from datetime import timedelta
from os import PathLike
from pathlib import Path
from typing import Sequence

from conjsse.odxt import Odxt

DEFAULT_CONFIG = Path("cmd/ODXT/config.json")

_JSON_NAMES = {
    "db": "db",
    "phase": "phase",
    "group": "group",
    "del_rate": "del_rate",
    "db_setup_from_files": "db_setup_from_files",
    "xset_path": "xset_path",
    "update_cnt_path": "update_cnt_path",
}


@dataclass
class Config:
    """Settings of one run, as read from the JSON configuration file."""

    db: str = ""
    phase: str = ""
    group: str = ""
    del_rate: int = 0
    db_setup_from_files: bool = False
    xset_path: str = ""
    update_cnt_path: str = ""


def _check(name: str, value: object, expected: type) -> None:
    if expected is bool:
        ok = isinstance(value, bool)
    elif expected is int:
        ok = isinstance(value, int) and not isinstance(value, bool)
    else:
        ok = isinstance(value, expected)
    if not ok:
        raise ValueError(f"field {name!r} must be of type {expected.__name__}")


def load_config(path: str | PathLike) -> Config:
    """Read a JSON configuration; unknown fields are ignored and missing ones default."""
    with Path(path).open(encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError("configuration must be a JSON object")
    values = {}
    for item in fields(Config):
        key = _JSON_NAMES[item.name]
        if key in data:
            expected = type(item.default)
            _check(key, data[key], expected)
            values[item.name] = data[key]
    return Config(**values)


def run(config: Config) -> dict[str, float]:
    """Set up ODXT and run the phases named in ``config.phase``; return their durations."""
    odxt = Odxt()
    if config.db_setup_from_files:
        odxt.db_setup_from_files(config.db, config.xset_path, config.update_cnt_path)
    else:
        odxt.db_setup(config.db, False)

    timings: dict[str, float] = {}
    if "c" in config.phase:
        start = time.perf_counter()
        odxt.ciphertext_gen_phase(config.db)
        timings["ciphertext_gen"] = time.perf_counter() - start
        print("CiphertextGenPhase time:", timedelta(seconds=timings["ciphertext_gen"]))
    if "s" in config.phase:
        start = time.perf_counter()
        odxt.search_phase(config.db, config.group)
        timings["search"] = time.perf_counter() - start
        print("SearchPhase time:", timedelta(seconds=timings["search"]))
    return timings


def main(argv: Sequence[str] | None = None) -> int:
    """Read the configuration and run the requested ODXT phases."""
    parser = argparse.ArgumentParser(description="Run ODXT update and search phases.")
    parser.add_argument("--config", default=str(DEFAULT_CONFIG), help="path of the JSON configuration")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except OSError as exc:
        print("Error opening config file:", exc)
        return 1
    except ValueError as exc:
        print("Error decoding config file:", exc)
        return 1

    print("*********************************************")
    print("Test_on: ", config.db, "del_rate:", config.del_rate)
    print("Start test_group:", config.group, "phase:", config.phase)
    print("Start initial db...")

    try:
        run(config)
    except Exception as exc:  # report any failure of the run, as the command's last step
        print("TestODXT error:", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())