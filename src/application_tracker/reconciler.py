"""Match classified email events against stored job applications and apply them.

Known consistency gap: the read-then-write sequence in :meth:`Reconciler.reconcile`
is not isolated from other runs. Two emails for the same application processed
concurrently can both miss the exact-match query, so two "applied" events may
create two records. Only the lookback batch update is atomic.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import pytz
from loguru import logger
from pydantic import ValidationError

from .models import (
    CLOSED_STATUSES,
    NOT_AVAILABLE,
    STATUS_DATE_FIELDS,
    ApplicantInfo,
    ApplicationStatus,
    ClassificationEvent,
    JobApplication,
    JobApplicationUpdate,
    ReconcileResult,
    TimelineItem,
)
from .nlp_llm import TitleMatcher
from .store import ApplicationStore, Document, Filter

EXACT_WINDOW = timedelta(days=1)
LOOKBACK_WINDOW = timedelta(days=6 * 30)

MSG_IGNORED = "Email did not trigger a job application update."
MSG_EXACT = "Application updated (exact match)."
MSG_CREATED = "New job application created."
MSG_NEVER_RECORDED = "Received a status update for an application that was never recorded."


def utcnow() -> datetime:
    return datetime.now(pytz.utc)


def isoformat(dt: datetime) -> str:
    # millisecond precision with a Z suffix, so stored dates sort as strings
    return dt.astimezone(pytz.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_documents(docs: Iterable[Document]) -> List[JobApplication]:
    """Validate stored documents; invalid ones are logged and skipped."""
    apps = []
    for doc in docs:
        try:
            apps.append(JobApplication.model_validate({**doc.data, "id": doc.id}))
        except ValidationError as e:
            logger.warning("[Store] Skipping invalid job application {}: {}", doc.id, e.errors())
    return apps


def status_update(status: ApplicationStatus, now: str, timeline: Sequence[TimelineItem],
                  unsured: bool = False) -> Dict:
    """Partial document moving a record to ``status``: timeline entry, status, and its date field."""
    payload = {
        "timeline": [t.model_dump(mode="json") for t in timeline] + [{"date": now, "status": status.value}],
        "status": status.value,
    }
    date_field = STATUS_DATE_FIELDS.get(status)
    if date_field:
        payload[date_field] = now
    if unsured:
        payload["unsured"] = True
    return payload


def _norm_role(role: str) -> str:
    return (role or "").strip().lower()


class Reconciler:
    """Applies JobApplicationUpdate events to the application store.

    Status transitions are not constrained: any status may follow any other.
    """

    def __init__(self, store: ApplicationStore, title_matcher: TitleMatcher,
                 clock: Callable[[], datetime] = utcnow,
                 exact_window: timedelta = EXACT_WINDOW,
                 lookback_window: timedelta = LOOKBACK_WINDOW):
        self.store = store
        self.title_matcher = title_matcher
        self.clock = clock
        self.exact_window = exact_window
        self.lookback_window = lookback_window

    def reconcile(self, event: ClassificationEvent, message_id: str, user_id: str,
                  user_email: str) -> ReconcileResult:
        if not isinstance(event, JobApplicationUpdate):
            logger.info("[Reconcile] {}: not a job application update, nothing to do", message_id)
            return ReconcileResult(success=True, message=MSG_IGNORED)

        now = self.clock()
        now_iso = isoformat(now)

        exact = self._find_exact(event, user_id, user_email, now)
        if exact:
            target = exact[0]
            self.store.update_merge(target.id, status_update(event.application_status, now_iso, target.timeline))
            logger.info("[Reconcile] {}: exact match {} -> {}", message_id, target.id,
                        event.application_status.value)
            return ReconcileResult(success=True, message=MSG_EXACT)

        if event.application_status == ApplicationStatus.APPLIED:
            doc_id = self.store.create(self._new_application(event, user_id, user_email, now_iso).to_document())
            logger.info("[Reconcile] {}: created application {} at {} ({})", message_id, doc_id,
                        event.company_name, event.role)
            return ReconcileResult(success=True, message=MSG_CREATED)

        return self._update_unsured(event, message_id, user_id, user_email, now, now_iso)

    def _find_exact(self, event: JobApplicationUpdate, user_id: str, user_email: str,
                    now: datetime) -> List[JobApplication]:
        filters = [
            Filter("userId", "==", user_id),
            Filter("companyName", "==", event.company_name),
            Filter("applicantInfo.email", "==", user_email),
            Filter("role", "==", event.role),
            Filter("location", "==", event.location),
            Filter("dateApplied", ">=", isoformat(now - self.exact_window)),
        ]
        if event.job_id:
            filters.append(Filter("jobId", "==", event.job_id))
        docs = self.store.query(filters, order_by=("dateApplied", "desc"))
        return parse_documents(docs)

    def _find_lookback(self, event: JobApplicationUpdate, user_id: str, user_email: str,
                       now: datetime) -> List[JobApplication]:
        filters = [
            Filter("userId", "==", user_id),
            Filter("companyName", "==", event.company_name),
            Filter("applicantInfo.email", "==", user_email),
            Filter("dateApplied", ">=", isoformat(now - self.lookback_window)),
            Filter("dateApplied", "<=", isoformat(now + self.exact_window)),
        ]
        return parse_documents(self.store.query(filters))

    @staticmethod
    def _new_application(event: JobApplicationUpdate, user_id: str, user_email: str,
                         now_iso: str) -> JobApplication:
        return JobApplication(
            user_id=user_id,
            job_id=event.job_id,
            applicant_info=ApplicantInfo(email=user_email),
            company_name=event.company_name,
            role=event.role,
            location=event.location,
            status=ApplicationStatus.APPLIED,
            is_internship=event.is_internship,
            date_applied=now_iso,
            timeline=[TimelineItem(date=now_iso, status=ApplicationStatus.APPLIED)],
        )

    def _select_candidates(self, event: JobApplicationUpdate,
                           apps: List[JobApplication]) -> List[JobApplication]:
        role = _norm_role(event.role)
        if not role or role == NOT_AVAILABLE.lower():
            return [a for a in apps if a.status not in CLOSED_STATUSES]

        titles = list(dict.fromkeys(_norm_role(a.role) for a in apps))
        ranked = set(self.title_matcher.rank_similar(titles, event.role))
        # NOTE: kept as the product currently behaves. The trailing "or" admits
        # every non-offer record whatever its role; pending product clarification.
        selected = [
            a for a in apps
            if (_norm_role(a.role) in ranked and a.status != ApplicationStatus.REJECTED)
            or a.status != ApplicationStatus.OFFER
        ]
        role_matches = sum(1 for a in apps if _norm_role(a.role) in ranked)
        if len(selected) > role_matches:
            logger.warning("[Reconcile] Candidate filter admitted {} record(s) for '{}' but only {} match the role",
                           len(selected), event.role, role_matches)
        return selected

    def _update_unsured(self, event: JobApplicationUpdate, message_id: str, user_id: str,
                        user_email: str, now: datetime, now_iso: str) -> ReconcileResult:
        logger.warning("[Reconcile] {}: '{}' update for {} ({}) has no exact match, searching lookback window",
                       message_id, event.application_status.value, event.company_name, event.role)
        apps = self._find_lookback(event, user_id, user_email, now)
        if not apps:
            logger.warning("[Reconcile] {}: no application to {} on record", message_id, event.company_name)
            return ReconcileResult(success=False, message=MSG_NEVER_RECORDED)

        candidates = self._select_candidates(event, apps)
        self.store.batch_update([
            (a.id, status_update(event.application_status, now_iso, a.timeline, unsured=True))
            for a in candidates
        ])
        logger.info("[Reconcile] {}: unsured update of {} application(s) -> {}", message_id,
                    len(candidates), event.application_status.value)
        return ReconcileResult(success=True,
                               message=f"Status updated for {len(candidates)} unsured job application(s).")


def list_applications(store: ApplicationStore, ids: Optional[Sequence[str]] = None,
                      user_id: Optional[str] = None,
                      user_ids: Optional[Sequence[str]] = None,
                      emails: Optional[Sequence[str]] = None) -> List[JobApplication]:
    """Fetch applications by id, by owner, or by a set of owners (first non-empty wins).

    ``emails`` narrows an owner query to applications tracked from those
    mailboxes; a user can have several linked.
    """
    if ids:
        docs = [d for d in (store.get(i) for i in ids) if d is not None]
    elif user_id or user_ids:
        if user_id:
            filters = [Filter("userId", "==", user_id)]
        else:
            filters = [Filter("userId", "in", list(user_ids))]
        if emails:
            filters.append(Filter("applicantInfo.email", "in", list(emails)))
        docs = store.query(filters)
    else:
        docs = []
    return parse_documents(docs)
