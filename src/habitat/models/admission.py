"""AdmissionReview envelope models (admission.k8s.io/v1)."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMISSION_KIND = "AdmissionReview"


class AdmissionRequest(BaseModel):
    """The request half of an AdmissionReview sent by the API server.

    ``object`` is kept schema-less here; it is coerced into a Job by the
    admission service so that a bad Job body yields a denial instead of an
    invalid review.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uid: str
    kind: dict[str, str] | None = None
    resource: dict[str, str] | None = None
    sub_resource: str | None = Field(default=None, alias="subResource")
    name: str | None = None
    namespace: str | None = None
    operation: str = "CREATE"
    user_info: dict[str, Any] = Field(default_factory=dict, alias="userInfo")
    object: dict[str, Any] | None = None
    old_object: dict[str, Any] | None = Field(default=None, alias="oldObject")
    dry_run: bool | None = Field(default=None, alias="dryRun")
    options: dict[str, Any] | None = None


class AdmissionStatus(BaseModel):
    """metav1.Status carried by a denied response."""

    status: str = "Failure"
    message: str | None = None
    reason: str | None = None
    code: int | None = None


class AdmissionResponse(BaseModel):
    """The response half of an AdmissionReview."""

    model_config = ConfigDict(populate_by_name=True)

    uid: str = ""
    allowed: bool = True
    status: AdmissionStatus | None = None
    patch: str | None = None
    patch_type: str | None = Field(default=None, alias="patchType")
    warnings: list[str] | None = None

    @classmethod
    def from_request(cls, request: AdmissionRequest) -> "AdmissionResponse":
        """Create an allowing response bound to the request's uid."""
        return cls(uid=request.uid)

    @classmethod
    def invalid(cls, reason: str) -> "AdmissionResponse":
        """Response for a review that could not be parsed at all."""
        return cls(
            uid="",
            allowed=False,
            status=AdmissionStatus(message=reason, reason="Invalid", code=400),
        )

    def deny(self, message: str) -> "AdmissionResponse":
        """Return a copy of this response rejecting the request."""
        return self.model_copy(
            update={
                "allowed": False,
                "status": AdmissionStatus(message=message, reason="Forbidden", code=403),
            }
        )

    def into_review(self) -> "AdmissionReview":
        return AdmissionReview(response=self)


class AdmissionReview(BaseModel):
    """Wrapper object exchanged with the API server."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str = Field(default=ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = ADMISSION_KIND
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None

    def to_manifest(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
