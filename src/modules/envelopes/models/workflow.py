from dataclasses import dataclass, field

from modules.common.errors import ValidationError

DEFAULT_WORKFLOW_ID = "standard"


@dataclass(frozen=True)
class Workflow:
    """Named policy selecting which verification steps gate an envelope"""
    id: str
    name: str
    steps: tuple = field(default_factory=tuple)
    document_verification_required: bool = True
    name_match_required: bool = True
    face_match_required: bool = True

    def required_checks(self) -> list[str]:
        """Name and face are both matched against the identity document, so they
        only apply when the workflow verifies a document at all"""
        if not self.document_verification_required:
            return []
        checks = []
        if self.name_match_required:
            checks.append("nameVerified")
        if self.face_match_required:
            checks.append("faceVerified")
        return checks

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "steps": list(self.steps),
            "documentVerificationRequired": self.document_verification_required,
            "nameMatchRequired": self.name_match_required,
            "faceMatchRequired": self.face_match_required,
        }


WORKFLOWS = {
    "standard": Workflow(
        id="standard",
        name="Identity verification and signature",
        steps=("document", "selfie", "signature"),
    ),
    "document_only": Workflow(
        id="document_only",
        name="Document check and signature",
        steps=("document", "signature"),
        face_match_required=False,
    ),
    "signature_only": Workflow(
        id="signature_only",
        name="Signature without identity checks",
        steps=("signature",),
        document_verification_required=False,
        name_match_required=False,
        face_match_required=False,
    ),
}


def get_workflow(workflow_id: str = None) -> Workflow:
    workflow = WORKFLOWS.get(workflow_id or DEFAULT_WORKFLOW_ID)
    if workflow is None:
        raise ValidationError(f"Unknown workflow '{workflow_id}'", {"available": sorted(WORKFLOWS)})
    return workflow
