import os, json, yaml
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv

CONFIG_PATH = os.environ.get(
    "TRACKER_CONFIG",
    os.path.join(os.path.dirname(os.path.dirname(__file__)), "..", "config.yaml")
)
STATE_PATH = os.environ.get(
    "TRACKER_STATE",
    os.path.join(os.path.dirname(os.path.dirname(__file__)), "..", "data", "state.json")
)

load_dotenv()


class ConfigError(ValueError):
    pass


@dataclass
class Settings:
    app: Dict[str, Any]
    user: Dict[str, Any]
    llm: Dict[str, Any] = field(default_factory=dict)
    reconcile: Dict[str, Any] = field(default_factory=dict)
    store: Dict[str, Any] = field(default_factory=dict)
    inbox: Dict[str, Any] = field(default_factory=dict)
    openai_api_key: Optional[str] = os.environ.get("OPENAI_API_KEY")
    anthropic_api_key: Optional[str] = os.environ.get("ANTHROPIC_API_KEY")

    @property
    def user_emails(self) -> List[str]:
        """The user's main address followed by any linked mailboxes."""
        emails = [self.user["email"]] + list(self.user.get("linked_emails") or [])
        return list(dict.fromkeys(emails))

    @property
    def exact_window(self) -> timedelta:
        return timedelta(days=float(self.reconcile.get("exact_window_days", 1)))

    @property
    def lookback_window(self) -> timedelta:
        return timedelta(days=float(self.reconcile.get("lookback_days", 180)))


def load_settings(path: Optional[str] = None) -> Settings:
    path = path or CONFIG_PATH
    if not os.path.exists(path):
        raise ConfigError(f"Config not found: {path} (copy config.example.yaml to config.yaml)")
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}
    # we have to ensure optional blocks exist
    cfg.setdefault("app", {})
    for block in ("llm", "reconcile", "store", "inbox"):
        cfg.setdefault(block, {})
    user = cfg.get("user") or {}
    for key in ("id", "email"):
        if not user.get(key):
            raise ConfigError(f"Missing required user field: {key}")
    linked = user.get("linked_emails") or []
    if not isinstance(linked, list):
        raise ConfigError("user.linked_emails must be a list")
    inbox_email = (cfg.get("inbox") or {}).get("email")
    if inbox_email and inbox_email not in [user["email"]] + linked:
        raise ConfigError(f"inbox.email {inbox_email} is not one of the user's linked mailboxes")
    unknown = set(cfg) - {"app", "user", "llm", "reconcile", "store", "inbox"}
    if unknown:
        raise ConfigError(f"Unknown config section(s): {', '.join(sorted(unknown))}")
    return Settings(**cfg)


def load_state(path: Optional[str] = None) -> dict:
    path = path or STATE_PATH
    if not os.path.exists(path):
        return {"last_message_id": None, "processed_ids": []}
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_state(state: dict, path: Optional[str] = None) -> None:
    path = path or STATE_PATH
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(state, f, indent=2)
