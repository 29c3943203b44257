import re
from typing import Mapping

_PLACEHOLDER = re.compile(r"\{\{([A-Z0-9_]+)\}\}")


def fill_prompt(template: str, bindings: Mapping[str, str]) -> str:
    """Replace every {{NAME}} with bindings[NAME]; unknown names stay as-is."""
    def _sub(m: re.Match) -> str:
        name = m.group(1)
        if name in bindings:
            return str(bindings[name])
        return m.group(0)

    return _PLACEHOLDER.sub(_sub, template)


EMAIL_ANALYSIS_PROMPT = """You analyze emails received by a job seeker. Decide whether the email is an update \
about one of their job applications, and if so extract the application details.

Treat the email as "JobApplicationUpdate" when it is about a specific application the recipient made: \
an application confirmation, an interview invitation or scheduling request, a request to complete a task \
(assessment, form, coding challenge), a rejection, or an offer.

Treat the email as "OtherEmail" when it is anything else, including job alerts, job board newsletters, \
recruiter marketing, or generic postings not tied to an application.

Application status must be one of:
- applied: the company confirms the application was received
- interview: the company invites the candidate to interview or asks to schedule one
- actions: the company asks the candidate to complete an asynchronous task
- rejected: the application was not successful
- offer: the company extends an offer

Fill any field you cannot find with N/A. Answer only with the tags below, no explanation.

<category>JobApplicationUpdate or OtherEmail</category>

For JobApplicationUpdate also include:
<application_status>status</application_status>
<job_id>requisition or job id</job_id>
<applicant_name>candidate name</applicant_name>
<applicant_phone>candidate phone</applicant_phone>
<applicant_email>candidate email</applicant_email>
<company_name>company</company_name>
<role>job title</role>
<location>job location</location>
<is_internship>true or false</is_internship>

<email_subject>
{{SUBJECT}}
</email_subject>

<email_sender>
{{SENDER}}
</email_sender>

<email_body>
{{TEXT}}
</email_body>"""


JOB_TITLE_SIMILARITY_PROMPT = """You compare job titles. Given a list of job titles and a target title, keep only \
the titles that describe essentially the same job as the target (same function, comparable seniority and \
skills) and rank them from most to least similar. Be strict: titles from different functional areas, such as \
data analyst and software engineer, are not related.

<job_titles_list>
{{JOB_TITLES_LIST}}
</job_titles_list>

<target_job_title>
{{TARGET_JOB_TITLE}}
</target_job_title>

Answer only with the related titles copied exactly from the list, separated by commas:
<ranked_list>
Title A, Title B
</ranked_list>
"""
