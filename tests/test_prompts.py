from application_tracker.prompts import EMAIL_ANALYSIS_PROMPT, JOB_TITLE_SIMILARITY_PROMPT, fill_prompt


def test_fill_prompt_replaces_every_occurrence():
    assert fill_prompt("{{A}} and {{A}} or {{B}}", {"A": "x", "B": "y"}) == "x and x or y"


def test_unbound_placeholders_are_left_verbatim():
    assert fill_prompt("Hi {{NAME}} from {{CITY}}", {"NAME": "Ada"}) == "Hi Ada from {{CITY}}"


def test_binding_values_are_not_rescanned():
    assert fill_prompt("{{TEXT}}", {"TEXT": "literal {{SUBJECT}} and \\1"}) == "literal {{SUBJECT}} and \\1"


def test_templates_expose_expected_placeholders():
    analysis = fill_prompt(EMAIL_ANALYSIS_PROMPT, {"SUBJECT": "s", "SENDER": "f", "TEXT": "t"})
    assert "{{" not in analysis
    similarity = fill_prompt(JOB_TITLE_SIMILARITY_PROMPT, {"JOB_TITLES_LIST": "a, b", "TARGET_JOB_TITLE": "c"})
    assert "{{" not in similarity
    assert "<job_titles_list>\na, b\n</job_titles_list>" in similarity
