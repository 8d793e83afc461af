"""Tests for per-entity locking, error kinds and JSON logging."""

import json
import logging
import threading
import time

from scoreview.core.exceptions import EntityNotFound, InvalidWeight, NoData, ScoreViewError
from scoreview.core.locks import EntityLockRegistry
from scoreview.core.logging import JSONFormatter
from scoreview.database import _mask_url


def test_same_entity_serialized():
    locks = EntityLockRegistry()
    inside = []
    overlap = []

    def writer():
        with locks.hold("e1"):
            inside.append(1)
            if len(inside) > 1:
                overlap.append(True)
            time.sleep(0.01)
            inside.pop()

    threads = [threading.Thread(target=writer) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert overlap == []


def test_different_entities_do_not_block():
    locks = EntityLockRegistry()
    acquired = threading.Event()

    with locks.hold("a"):
        def other():
            with locks.hold("b"):
                acquired.set()

        t = threading.Thread(target=other)
        t.start()
        assert acquired.wait(timeout=2)
        t.join()


def test_hold_is_reentrant_and_deduplicates():
    locks = EntityLockRegistry()
    with locks.hold("a", "a", "b"):
        with locks.hold("a"):
            assert len(locks) == 2
    assert len(locks) == 0


def test_released_locks_are_dropped():
    locks = EntityLockRegistry()
    for i in range(100):
        with locks.hold(f"e{i}", f"e{i + 1}"):
            pass
    assert len(locks) == 0


def test_waiter_keeps_lock_alive():
    locks = EntityLockRegistry()
    order = []

    def waiter():
        with locks.hold("e1"):
            order.append("waiter")

    with locks.hold("e1"):
        t = threading.Thread(target=waiter)
        t.start()
        time.sleep(0.05)
        order.append("owner")
    t.join(timeout=2)

    assert order == ["owner", "waiter"]
    assert len(locks) == 0


def test_error_hierarchy():
    for err in (InvalidWeight(0), EntityNotFound("x"), NoData("x")):
        assert isinstance(err, ScoreViewError)
    assert EntityNotFound("x", record_id="r").record_id == "r"
    assert NoData("x").entity_id == "x"


def test_json_formatter_includes_extras():
    record = logging.LogRecord("scoreview.t", logging.INFO, __file__, 1, "hello", None, None)
    record.entity_id = "u1"
    record.version = 3
    line = json.loads(JSONFormatter().format(record))
    assert line["message"] == "hello"
    assert line["entity_id"] == "u1"
    assert line["version"] == 3


def test_mask_url():
    assert _mask_url("postgresql://user:secret@db:5432/x") == "postgresql://user:****@db:5432/x"
    assert _mask_url("sqlite:///./scoreview.db") == "sqlite:///./scoreview.db"
