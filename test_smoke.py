"""E2E smoke test: hits the main user flow of a running server and checks responses.

Skipped unless TRILINGUA_URL points at a live instance with an API key configured.
"""
import os
import pytest
import requests

BASE = os.getenv("TRILINGUA_URL")

pytestmark = pytest.mark.skipif(not BASE, reason="TRILINGUA_URL not set")


def test_health():
    r = requests.get(f"{BASE}/api/health")
    assert r.status_code == 200
    d = r.json()
    assert d["status"] == "ok"
    assert d["configured"] is True


def test_word_lookup():
    r = requests.post(f"{BASE}/api/lookup", json={"query": "cat", "mode": "word", "wait": True}, timeout=120)
    assert r.status_code == 200
    session = r.json()["session"]
    assert session["status"] == "complete"
    record = session["record"]
    assert record["coreWord"]["jp"]
    assert record["coreWord"]["en"]
    assert all(ex["lang"] in ("jp", "en") for ex in record["examples"])


def test_sentence_lookup():
    r = requests.post(f"{BASE}/api/lookup", json={"query": "私は学生です。", "mode": "sentence", "wait": True},
                      timeout=120)
    assert r.status_code == 200
    session = r.json()["session"]
    assert session["status"] == "complete"
    assert session["record"]["breakdown"]
    assert set(session["record"]["translations"]) >= {"jp", "jp_furigana", "en", "zh"}


def test_history_and_export():
    items = requests.get(f"{BASE}/api/history").json()
    assert len(items) <= 50
    if items:
        r = requests.post(f"{BASE}/api/history/{items[0]['id']}/load")
        assert r.status_code == 200
        assert r.json()["status"] == "complete"

    r = requests.get(f"{BASE}/api/export")
    assert r.status_code in (200, 204)
    if r.status_code == 200:
        assert r.text.startswith("Timestamp,Input,JP,EN,ZH")


def test_empty_input():
    r = requests.post(f"{BASE}/api/lookup", json={"query": ""})
    assert r.status_code == 400
