import argparse
import glob
import json
import os
from typing import Any, Dict, List, Optional

from loguru import logger

from .email_parser import parse_message
from .llm_client import LLMClient
from .log import setup_logging
from .models import ReconcileResult
from .nlp_llm import DEFAULT_CLASSIFY_MODEL, DEFAULT_SIMILARITY_MODEL, EmailAnalyzer, TitleMatcher
from .reconciler import Reconciler, list_applications
from .settings import ConfigError, Settings, load_settings, load_state, save_state
from .sheets_writer import SheetsApplicationStore
from .store import ApplicationStore, MemoryStore


def build_store(cfg: Settings, dry_run: bool = False) -> ApplicationStore:
    backend = cfg.store.get("backend", "sheets")
    if dry_run or backend == "memory":
        return MemoryStore()
    if backend != "sheets":
        raise ConfigError(f"Unknown store backend: {backend}")
    return SheetsApplicationStore.open(
        cfg.store.get("spreadsheet_name", "Job Applications"),
        cfg.store.get("worksheet_name", "applications"),
        service_account_json=cfg.store.get("service_account_json", ""),
        credentials_dir=cfg.store.get("credentials_dir", "credentials"),
    )


def build_pipeline(cfg: Settings, store: ApplicationStore):
    llm = LLMClient(cfg.openai_api_key, cfg.anthropic_api_key, max_tokens=int(cfg.llm.get("max_tokens", 1024)))
    analyzer = EmailAnalyzer(llm, cfg.llm.get("classify_model", DEFAULT_CLASSIFY_MODEL))
    matcher = TitleMatcher(llm, cfg.llm.get("similarity_model", DEFAULT_SIMILARITY_MODEL))
    reconciler = Reconciler(store, matcher, exact_window=cfg.exact_window, lookback_window=cfg.lookback_window)
    return analyzer, reconciler


def process_email(message: Dict[str, Any], message_id: str, user_id: str, user_email: str,
                  analyzer: EmailAnalyzer, reconciler: Reconciler) -> ReconcileResult:
    subject, from_email, body = parse_message(message)
    event = analyzer.classify(subject, from_email, body)
    result = reconciler.reconcile(event, message_id, user_id, user_email)
    logger.info("[PROCESS] {} | {} | {}", message_id, "ok" if result.success else "failed", result.message)
    return result


def load_messages(paths: List[str]) -> List[Dict[str, Any]]:
    messages = []
    for path in paths:
        with open(path, "r", encoding="utf-8") as f:
            msg = json.load(f)
        msg.setdefault("id", os.path.splitext(os.path.basename(path))[0])
        messages.append(msg)
    # oldest first so "applied" lands before later updates
    messages.sort(key=lambda m: int(m.get("internalDate", "0") or 0))
    return messages


def process_once(cfg: Settings, dry_run: bool = False, paths: Optional[List[str]] = None) -> Dict[str, int]:
    state = load_state()
    processed_ids = set(state.get("processed_ids", []))

    if paths is None:
        inbox_dir = cfg.inbox.get("directory", "data/inbox")
        paths = sorted(glob.glob(os.path.join(inbox_dir, "*.json")))
    messages = load_messages(paths)

    store = build_store(cfg, dry_run=dry_run)
    analyzer, reconciler = build_pipeline(cfg, store)
    user_id = cfg.user["id"]
    # the mailbox this inbox was exported from
    user_email = cfg.inbox.get("email") or cfg.user["email"]

    stats = {"processed": 0, "skipped": 0, "failed": 0}
    for msg in messages:
        msg_id = msg["id"]
        if msg_id in processed_ids:
            stats["skipped"] += 1
            continue
        try:
            process_email(msg, msg_id, user_id, user_email, analyzer, reconciler)
        except Exception:
            # left unprocessed so the next run retries it
            logger.exception("[PROCESS] {} failed", msg_id)
            stats["failed"] += 1
            continue
        processed_ids.add(msg_id)
        stats["processed"] += 1

    if dry_run:
        logger.info("[DRY-RUN] Not saving state; {} application(s) would be in the store", len(store))
    else:
        state["processed_ids"] = sorted(processed_ids)
        if messages:
            state["last_message_id"] = messages[-1]["id"]
        save_state(state)

    logger.info("Run complete: processed={} skipped={} failed={}",
                stats["processed"], stats["skipped"], stats["failed"])
    return stats


def print_applications(cfg: Settings) -> None:
    store = build_store(cfg)
    apps = list_applications(store, user_id=cfg.user["id"], emails=cfg.user_emails)
    for app in sorted(apps, key=lambda a: a.date_applied):
        flag = " (unsured)" if app.unsured else ""
        print(f"{app.date_applied[:10]}  {app.status.value:<9}  {app.company_name} | {app.role} | {app.location}{flag}")


def main():
    parser = argparse.ArgumentParser(description="Track job application status from emails")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--message", action="append", help="Process this Gmail message JSON file (repeatable)")
    parser.add_argument("--dry-run", action="store_true", help="Use an in-memory store and do not save state")
    parser.add_argument("--list", action="store_true", help="List the user's tracked applications and exit")
    args = parser.parse_args()

    cfg = load_settings(args.config)
    setup_logging(cfg.app.get("log_level", "INFO"), cfg.app.get("log_file"))

    if args.list:
        print_applications(cfg)
        return
    process_once(cfg, dry_run=args.dry_run, paths=args.message)


if __name__ == "__main__":
    main()
