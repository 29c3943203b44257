import pytest

from application_tracker.models import ApplicationStatus, JobApplicationUpdate, OtherEmail
from application_tracker.nlp_llm import (
    DEFAULT_CLASSIFY_MODEL,
    DEFAULT_SIMILARITY_MODEL,
    EmailAnalyzer,
    MalformedResponseError,
    TitleMatcher,
    extract_tag,
    parse_classification,
)

from conftest import FakeLLM

UPDATE_REPLY = """Sure, here is the analysis.
<category>
JobApplicationUpdate
</category>
<application_status>Interview</application_status>
<job_id>R-1234</job_id>
<applicant_name>Ada Lovelace</applicant_name>
<company_name>Acme</company_name>
<role> Software Engineer </role>
<is_internship>true</is_internship>
"""


def test_extract_tag():
    assert extract_tag("x <a> hello </a> <a>second</a>", "a") == "hello"
    assert extract_tag("<a></a>", "a") == ""
    assert extract_tag("<a>unclosed", "a") is None
    assert extract_tag("no tags here", "a") is None
    assert extract_tag("<ab>x</ab>", "a") is None
    assert extract_tag("", "a") is None


def test_other_email_has_no_structured_fields():
    event = parse_classification("<category>OtherEmail</category>")
    assert event == OtherEmail(category="OtherEmail")
    assert not hasattr(event, "company_name")


def test_missing_category_is_other():
    assert isinstance(parse_classification("I cannot tell."), OtherEmail)


def test_update_fields_are_parsed_with_defaults():
    event = parse_classification(UPDATE_REPLY)
    assert isinstance(event, JobApplicationUpdate)
    assert event.application_status == ApplicationStatus.INTERVIEW
    assert event.job_id == "R-1234"
    assert event.applicant_name == "Ada Lovelace"
    assert event.applicant_phone == "N/A"
    assert event.company_name == "Acme"
    assert event.role == "Software Engineer"
    assert event.location == "N/A"
    assert event.is_internship is True


def test_category_containing_update_marker_counts():
    reply = "<category>JobApplicationUpdate/OtherEmail</category><application_status>applied</application_status>"
    event = parse_classification(reply)
    assert isinstance(event, JobApplicationUpdate)
    assert event.job_id == "N/A"
    assert event.company_name == "" and event.role == ""
    assert event.is_internship is False


def test_na_job_id_and_empty_location_use_sentinel():
    reply = ("<category>JobApplicationUpdate</category><application_status>rejected</application_status>"
             "<job_id>N/A</job_id><location></location>")
    event = parse_classification(reply)
    assert event.job_id == "N/A"
    assert event.location == "N/A"


def test_unknown_status_is_malformed():
    reply = "<category>JobApplicationUpdate</category><application_status>ghosted</application_status>"
    with pytest.raises(MalformedResponseError):
        parse_classification(reply)


def test_classify_sends_single_user_message():
    llm = FakeLLM(UPDATE_REPLY)
    event = EmailAnalyzer(llm).classify("Interview invite", "hr@acme.com", "Let's talk")
    assert isinstance(event, JobApplicationUpdate)
    [call] = llm.calls
    assert call["model"] == DEFAULT_CLASSIFY_MODEL
    assert call["terse"] is True
    [message] = call["messages"]
    assert message["role"] == "user"
    assert "Interview invite" in message["content"] and "hr@acme.com" in message["content"]
    assert "Let's talk" in message["content"]


def test_classify_propagates_oracle_failures():
    with pytest.raises(TimeoutError):
        EmailAnalyzer(FakeLLM(TimeoutError("slow"))).classify("s", "f", "t")


def test_rank_similar_parses_ranked_list():
    llm = FakeLLM("Reasoning...\n<ranked_list>\nSoftware Engineer, Backend Engineer ,, SWE\n</ranked_list>")
    ranked = TitleMatcher(llm).rank_similar(["software engineer", "backend engineer", "designer"], "SWE")
    assert ranked == ["software engineer", "backend engineer", "swe"]
    [call] = llm.calls
    assert call["model"] == DEFAULT_SIMILARITY_MODEL != DEFAULT_CLASSIFY_MODEL
    content = call["messages"][0]["content"]
    assert "software engineer, backend engineer, designer" in content
    assert "<target_job_title>\nSWE\n</target_job_title>" in content


def test_rank_similar_without_tag_is_empty_and_blank_target_is_na():
    llm = FakeLLM("none of them")
    assert TitleMatcher(llm).rank_similar(["a"], "") == []
    assert "<target_job_title>\nn/a\n</target_job_title>" in llm.calls[0]["messages"][0]["content"]
