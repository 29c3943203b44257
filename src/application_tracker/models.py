from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

NOT_AVAILABLE = "N/A"
PLACEHOLDER = "placeholder"


class ApplicationStatus(str, Enum):
    APPLIED = "applied"
    INTERVIEW = "interview"
    ACTIONS = "actions"
    REJECTED = "rejected"
    OFFER = "offer"


# status -> record field stamped when a record reaches that status
STATUS_DATE_FIELDS = {
    ApplicationStatus.INTERVIEW: "dateInterview",
    ApplicationStatus.ACTIONS: "dateAction",
    ApplicationStatus.REJECTED: "dateRejected",
    ApplicationStatus.OFFER: "dateOffer",
}

CLOSED_STATUSES = (ApplicationStatus.REJECTED, ApplicationStatus.OFFER)


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MessageBody(_Document):
    data: Optional[str] = None
    size: Optional[int] = None
    attachment_id: Optional[str] = Field(None, alias="attachmentId")


class MessagePart(_Document):
    """One node of a Gmail API message payload."""

    mime_type: str = Field("", alias="mimeType")
    filename: Optional[str] = None
    headers: List[Dict[str, str]] = Field(default_factory=list)
    body: Optional[MessageBody] = None
    parts: List["MessagePart"] = Field(default_factory=list)


class OtherEmail(_Document):
    kind: Literal["other"] = "other"
    category: str = ""


class JobApplicationUpdate(_Document):
    kind: Literal["update"] = "update"
    category: str = "JobApplicationUpdate"
    application_status: ApplicationStatus
    job_id: str = NOT_AVAILABLE
    applicant_name: str = NOT_AVAILABLE
    applicant_phone: str = NOT_AVAILABLE
    applicant_email: str = NOT_AVAILABLE
    company_name: str = ""
    role: str = ""
    location: str = NOT_AVAILABLE
    is_internship: bool = False


ClassificationEvent = Union[OtherEmail, JobApplicationUpdate]


class ApplicantInfo(_Document):
    name: str = PLACEHOLDER
    phone_number: str = Field(PLACEHOLDER, alias="phoneNumber")
    email: str
    cv_url: str = Field(PLACEHOLDER, alias="cvUrl")


class TimelineItem(_Document):
    model_config = ConfigDict(frozen=True)

    date: str
    status: ApplicationStatus


class JobApplication(_Document):
    """A stored job application. ``id`` is the store's document id."""

    id: Optional[str] = None
    user_id: str = Field(alias="userId")
    job_id: str = Field("", alias="jobId")
    applicant_info: ApplicantInfo = Field(alias="applicantInfo")
    company_name: str = Field(alias="companyName")
    company_logo: str = Field(PLACEHOLDER, alias="companyLogo")
    role: str
    location: str = ""
    status: ApplicationStatus
    is_internship: bool = Field(False, alias="isInternship")
    date_applied: str = Field(alias="dateApplied")
    date_interview: Optional[str] = Field(None, alias="dateInterview")
    date_action: Optional[str] = Field(None, alias="dateAction")
    date_rejected: Optional[str] = Field(None, alias="dateRejected")
    date_offer: Optional[str] = Field(None, alias="dateOffer")
    timeline: List[TimelineItem] = Field(default_factory=list)
    unsured: Optional[bool] = None
    job_description: Optional[str] = Field(None, alias="jobDescription")
    salary: Optional[str] = None
    notes: Optional[str] = None
    referred: Optional[bool] = None

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the stored (camelCase) form, without the id."""
        return self.model_dump(mode="json", by_alias=True, exclude={"id"}, exclude_none=True)


class ReconcileResult(_Document):
    success: bool
    message: str
