import base64
from datetime import datetime, timedelta
from typing import List

import pytest
import pytz

from application_tracker.models import JobApplicationUpdate
from application_tracker.reconciler import Reconciler, isoformat
from application_tracker.store import MemoryStore

NOW = datetime(2025, 3, 10, 12, 0, 0, tzinfo=pytz.utc)


def b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def record(status="applied", company="Acme", role="SWE", location="Remote", applied=NOW,
           user_id="u1", email="a@x.com", job_id="N/A", **extra):
    applied_iso = isoformat(applied)
    doc = {
        "userId": user_id,
        "jobId": job_id,
        "applicantInfo": {"name": "placeholder", "phoneNumber": "placeholder", "email": email,
                          "cvUrl": "placeholder"},
        "companyName": company,
        "companyLogo": "placeholder",
        "role": role,
        "location": location,
        "status": status,
        "isInternship": False,
        "dateApplied": applied_iso,
        "timeline": [{"date": applied_iso, "status": "applied"}],
    }
    if status != "applied":
        doc["timeline"].append({"date": applied_iso, "status": status})
    doc.update(extra)
    return doc


def update(status, company="Acme", role="SWE", location="Remote", **kw):
    return JobApplicationUpdate(application_status=status, company_name=company, role=role,
                                location=location, **kw)


class FakeLLM:
    """Returns canned replies and records every request."""

    def __init__(self, *replies: str):
        self.replies = list(replies)
        self.calls = []

    def complete(self, messages, model, terse=False):
        self.calls.append({"messages": messages, "model": model, "terse": terse})
        if isinstance(self.replies[0], Exception):
            raise self.replies.pop(0)
        return self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]


class FakeMatcher:
    def __init__(self, ranked: List[str]):
        self.ranked = ranked
        self.calls = []

    def rank_similar(self, candidate_titles, target):
        self.calls.append((list(candidate_titles), target))
        return self.ranked


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def matcher():
    return FakeMatcher([])


@pytest.fixture
def reconciler(store, matcher):
    return Reconciler(store, matcher, clock=lambda: NOW)
