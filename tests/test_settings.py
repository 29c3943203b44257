from datetime import timedelta

import pytest

from application_tracker.settings import ConfigError, load_settings, load_state, save_state


def write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_load_settings_fills_optional_blocks(tmp_path):
    cfg = load_settings(write(tmp_path, "user:\n  id: u1\n  email: a@x.com\n"))
    assert cfg.user == {"id": "u1", "email": "a@x.com"}
    assert cfg.app == {} and cfg.llm == {} and cfg.store == {}
    assert cfg.exact_window == timedelta(days=1)
    assert cfg.lookback_window == timedelta(days=180)


def test_reconcile_windows_are_configurable(tmp_path):
    cfg = load_settings(write(tmp_path, "user: {id: u1, email: a@x.com}\nreconcile:\n  exact_window_days: 2\n  lookback_days: 90\n"))
    assert cfg.exact_window == timedelta(days=2)
    assert cfg.lookback_window == timedelta(days=90)


def test_missing_user_email_is_rejected(tmp_path):
    with pytest.raises(ConfigError, match="email"):
        load_settings(write(tmp_path, "user:\n  id: u1\n"))


def test_unknown_section_is_rejected(tmp_path):
    with pytest.raises(ConfigError, match="calendar"):
        load_settings(write(tmp_path, "user: {id: u1, email: a@x.com}\ncalendar: {}\n"))


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError):
        load_settings(str(tmp_path / "nope.yaml"))


def test_state_roundtrip(tmp_path):
    path = str(tmp_path / "data" / "state.json")
    assert load_state(path) == {"last_message_id": None, "processed_ids": []}
    save_state({"last_message_id": "m2", "processed_ids": ["m1", "m2"]}, path)
    assert load_state(path)["processed_ids"] == ["m1", "m2"]


def test_linked_mailboxes(tmp_path):
    cfg = load_settings(write(tmp_path, "user:\n  id: u1\n  email: a@x.com\n"
                                        "  linked_emails: [work@x.com, a@x.com]\n"
                                        "inbox:\n  email: work@x.com\n"))
    assert cfg.user_emails == ["a@x.com", "work@x.com"]


def test_inbox_email_must_be_a_linked_mailbox(tmp_path):
    with pytest.raises(ConfigError, match="stranger@x.com"):
        load_settings(write(tmp_path, "user: {id: u1, email: a@x.com}\ninbox:\n  email: stranger@x.com\n"))
