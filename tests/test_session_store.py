# SPDX-License-Identifier: MIT
"""Tests for the JSON session store."""

from __future__ import annotations

import json

import pytest

from sessions import JsonSessionStore


def test_create_and_get(tmp_path):
    store = JsonSessionStore(tmp_path / "sessions.json")

    token = store.create("user-1", "alice")
    session = store.get(token)

    assert session is not None
    assert session.user_id == "user-1"
    assert session.username == "alice"
    assert session.channel_id is None
    assert store.get("other") is None


def test_file_uses_camel_case_keys(tmp_path):
    path = tmp_path / "sessions.json"
    store = JsonSessionStore(path)
    token = store.create("user-1")
    store.validate(token, "ch-9")

    document = json.loads(path.read_text())

    record = document["sessions"][token]
    assert record["userId"] == "user-1"
    assert record["socketId"] == "ch-9"
    assert {"createdAt", "lastActivity"} <= set(record)
    assert not path.with_name("sessions.json.tmp").exists()


def test_validate_unknown_token(tmp_path):
    store = JsonSessionStore(tmp_path / "sessions.json")

    assert store.validate("missing", "ch-1") is None
    assert store.validate("", "ch-1") is None


def test_validate_refreshes_activity(tmp_path):
    store = JsonSessionStore(tmp_path / "sessions.json")
    token = store.create("user-1")
    before = store.get(token).last_activity

    session = store.validate(token, "ch-1")

    assert session.channel_id == "ch-1"
    assert session.last_activity >= before


def test_touch_and_remove(tmp_path):
    store = JsonSessionStore(tmp_path / "sessions.json")
    token = store.create("user-1")

    assert store.touch(token) is True
    assert store.remove(token) is True
    assert store.remove(token) is False
    assert store.touch(token) is False


def test_cleanup_expired_keeps_other_keys(tmp_path):
    path = tmp_path / "sessions.json"
    path.write_text(
        json.dumps(
            {
                "users": {"user-1": {"username": "alice"}},
                "sessions": {
                    "old": {
                        "userId": "user-1",
                        "createdAt": "2020-01-01T00:00:00Z",
                        "lastActivity": "2020-01-01T00:00:00Z",
                    }
                },
            }
        )
    )
    store = JsonSessionStore(path)
    fresh = store.create("user-2")

    assert store.cleanup_expired(60) == 1

    document = json.loads(path.read_text())
    assert list(document["sessions"]) == [fresh]
    assert document["users"] == {"user-1": {"username": "alice"}}


def test_unreadable_store(tmp_path):
    path = tmp_path / "sessions.json"
    path.write_text("{not json")
    store = JsonSessionStore(path)

    assert store.validate("token", "ch-1") is None
    with pytest.raises(RuntimeError, match="Invalid session file"):
        store.get("token")


def test_numeric_user_id_is_accepted(tmp_path):
    path = tmp_path / "sessions.json"
    path.write_text(
        json.dumps(
            {
                "sessions": {
                    "legacy": {
                        "userId": 1,
                        "username": "alice",
                        "socketId": None,
                        "lastActivity": "2030-01-01T00:00:00Z",
                    }
                }
            }
        )
    )
    store = JsonSessionStore(path)

    session = store.validate("legacy", "ch-1")

    assert session is not None
    assert session.user_id == "1"
    assert store.get("legacy").channel_id == "ch-1"


def test_unparseable_records_survive_writes(tmp_path):
    path = tmp_path / "sessions.json"
    odd = {"userId": ["not", "an", "id"], "note": "kept as written"}
    path.write_text(json.dumps({"sessions": {"odd": odd}}))
    store = JsonSessionStore(path)

    assert store.get("odd") is None
    assert store.validate("odd", "ch-1") is None
    token = store.create("user-2")
    store.touch(token)
    store.cleanup_expired(1)

    sessions = json.loads(path.read_text())["sessions"]
    assert sessions["odd"] == odd
    assert set(sessions) == {"odd", token}


def test_remove_deletes_unparseable_record(tmp_path):
    path = tmp_path / "sessions.json"
    path.write_text(json.dumps({"sessions": {"odd": {"userId": None}}}))
    store = JsonSessionStore(path)

    assert store.remove("odd") is True

    assert json.loads(path.read_text())["sessions"] == {}


def test_remove_on_unreadable_store(tmp_path):
    path = tmp_path / "sessions.json"
    path.write_text("{not json")
    store = JsonSessionStore(path)

    assert store.remove("token") is False
    assert path.read_text() == "{not json"
