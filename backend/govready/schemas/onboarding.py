"""Pydantic schemas for the onboarding wizard.

The wizard UI posts camelCase keys, so every payload model uses a camel
alias generator and accepts either spelling. Validated payloads are
dumped back by alias, so drafts, saved step data and defaults all carry
the same camelCase keys the wizard binds to.
Optional steps (INTEGRATIONS, TEAM, FIRST_RFP) can always be skipped with
``{"skipped": true}`` instead of their normal payload.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# ── Steps ────────────────────────────────────────────────────

class Step(str, Enum):
    ACCOUNT_VERIFIED = "ACCOUNT_VERIFIED"
    ORG_CHOICE = "ORG_CHOICE"
    COMPANY_PROFILE = "COMPANY_PROFILE"
    COMPLIANCE_INTAKE = "COMPLIANCE_INTAKE"
    INTEGRATIONS = "INTEGRATIONS"
    TEAM = "TEAM"
    FIRST_RFP = "FIRST_RFP"
    DONE = "DONE"

    @classmethod
    def parse(cls, value: Any) -> "Step | None":
        """Lenient lookup: unknown or foreign step names give None."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


# Canonical order, independent of whatever order the backend reports.
STEP_ORDER: list[Step] = list(Step)


def step_index(step: Step) -> int:
    return STEP_ORDER.index(step)


class StepConfig(BaseModel):
    id: Step
    label: str
    description: str
    blocking: bool
    icon: str

    model_config = {"frozen": True}


ONBOARDING_STEPS: dict[Step, StepConfig] = {
    cfg.id: cfg
    for cfg in [
        StepConfig(
            id=Step.ACCOUNT_VERIFIED,
            label="Verify Account",
            description="Secure your account with email verification and MFA",
            blocking=True,
            icon="shield-check",
        ),
        StepConfig(
            id=Step.ORG_CHOICE,
            label="Organization",
            description="Create or join your organization",
            blocking=True,
            icon="building",
        ),
        StepConfig(
            id=Step.COMPANY_PROFILE,
            label="Company Profile",
            description="Basic company information and registrations",
            blocking=True,
            icon="briefcase",
        ),
        StepConfig(
            id=Step.COMPLIANCE_INTAKE,
            label="Compliance Documents",
            description="Upload required compliance and insurance documents",
            blocking=True,
            icon="file-check",
        ),
        StepConfig(
            id=Step.INTEGRATIONS,
            label="Integrations",
            description="Connect your tools and services",
            blocking=False,
            icon="plug",
        ),
        StepConfig(
            id=Step.TEAM,
            label="Team Members",
            description="Invite your team and assign roles",
            blocking=False,
            icon="users",
        ),
        StepConfig(
            id=Step.FIRST_RFP,
            label="First RFP",
            description="Upload your first RFP or try a sample",
            blocking=False,
            icon="file-text",
        ),
        StepConfig(
            id=Step.DONE,
            label="Complete",
            description="You're all set!",
            blocking=False,
            icon="check-circle",
        ),
    ]
}

BLOCKING_STEPS: list[Step] = [s for s in STEP_ORDER if ONBOARDING_STEPS[s].blocking]

# Used when the backend does not report its own required list.
DEFAULT_REQUIRED_STEPS: list[Step] = list(BLOCKING_STEPS)

SKIP_PAYLOAD: dict = {"skipped": True}


def is_blocking(step: Step) -> bool:
    return ONBOARDING_STEPS[step].blocking


# ── Onboarding state (server snapshot) ──────────────────────

class OnboardingState(BaseModel):
    """Server-authoritative snapshot. Replaced wholesale, never patched."""

    completed_steps: list[Step] = []
    required_steps: list[Step] = Field(default_factory=lambda: list(DEFAULT_REQUIRED_STEPS))
    progress: int = Field(default=0, ge=0, le=100)
    step_data: dict[Step, dict] = {}
    # Completed step names the canonical enum does not know (retired/renamed).
    extra_completed: list[str] = []

    model_config = {"frozen": True}

    @field_validator("completed_steps")
    @classmethod
    def _dedupe(cls, v: list[Step]) -> list[Step]:
        seen: list[Step] = []
        for step in v:
            if step not in seen:
                seen.append(step)
        return seen

    @classmethod
    def from_backend(cls, data: dict) -> "OnboardingState":
        """Build a snapshot from a backend ``state`` object.

        Accepts camelCase or snake_case keys. Step names the enum does not
        know are kept in ``extra_completed`` rather than dropped.
        """
        raw_completed = data.get("completedSteps", data.get("completed_steps")) or []
        raw_required = data.get("requiredSteps", data.get("required_steps"))
        raw_data = data.get("stepData", data.get("step_data")) or {}

        completed: list[Step] = []
        extra: list[str] = []
        for name in raw_completed:
            step = Step.parse(name)
            if step is None:
                extra.append(str(name))
            else:
                completed.append(step)

        required = [s for s in (Step.parse(n) for n in raw_required or []) if s is not None]
        if not required:
            required = list(DEFAULT_REQUIRED_STEPS)
        # Blocking steps are required whatever the backend reports
        required += [s for s in BLOCKING_STEPS if s not in required]

        step_data: dict[Step, dict] = {}
        if isinstance(raw_data, dict):
            for name, payload in raw_data.items():
                step = Step.parse(name)
                if step is not None and isinstance(payload, dict):
                    step_data[step] = payload

        progress = data.get("progress") or 0
        try:
            progress = max(0, min(100, round(float(progress))))
        except (TypeError, ValueError):
            progress = 0

        return cls(
            completed_steps=completed,
            required_steps=required,
            progress=progress,
            step_data=step_data,
            extra_completed=extra,
        )


class NavigationIntent(BaseModel):
    requested_step: Step | None = None
    resolved_step: Step


class Draft(BaseModel):
    """Client-side, not yet submitted copy of a step's form data."""

    step: Step
    payload: dict
    modified: int  # monotonically increasing per store

    model_config = {"frozen": True}


class SessionFacts(BaseModel):
    """Read-only identity facts supplied by the auth provider."""

    user_id: str
    organization_id: str | None = None
    email: str | None = None
    email_verified: bool = False
    mfa_enabled: bool = False


# ── Step payloads ────────────────────────────────────────────

class StepPayload(BaseModel):
    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class AccountVerifiedPayload(StepPayload):
    email_verified: bool
    mfa_enabled: bool | None = None


class OrgChoicePayload(StepPayload):
    mode: Literal["create", "join"]
    org_name: str | None = Field(default=None, min_length=2)
    verified_domains: list[str] | None = None
    invite_token: str | None = None

    @field_validator("verified_domains")
    @classmethod
    def _domains(cls, v: list[str] | None) -> list[str] | None:
        if v is not None:
            for domain in v:
                if "." not in domain:
                    raise ValueError(f"Invalid domain: {domain}")
        return v

    @model_validator(mode="after")
    def _mode_fields(self):
        if self.mode == "create" and not self.org_name:
            raise ValueError("Organization name is required")
        if self.mode == "join" and not self.invite_token:
            raise ValueError("An invite token is required to join")
        return self


class AddressInput(StepPayload):
    line1: str = Field(min_length=1)
    line2: str | None = None
    city: str = Field(min_length=1)
    state: str = Field(min_length=2)
    postal_code: str = Field(min_length=5)


class CompanyProfilePayload(StepPayload):
    legal_name: str = Field(min_length=2)
    doing_business_as: str | None = None
    address: AddressInput
    naics_codes: list[str] = []
    uei: str | None = None
    cage: str | None = None
    ein: str | None = None
    website: str | None = None

    @field_validator("website")
    @classmethod
    def _website(cls, v: str | None) -> str | None:
        if v and not v.lower().startswith(("http://", "https://")):
            raise ValueError("Website must be a full URL")
        return v


# Compliance document metadata

class InsuranceMetadata(StepPayload):
    policy_number: str = Field(min_length=1)
    carrier: str = Field(min_length=1)
    effective_date: str = Field(min_length=1)
    expiration_date: str = Field(min_length=1)
    occurrence_coverage: float | None = Field(default=None, gt=0)
    aggregate_coverage: float | None = Field(default=None, gt=0)
    named_insured: str | None = None


class CertificateMetadata(StepPayload):
    certificate_number: str = Field(min_length=1)
    issuing_authority: str = Field(min_length=1)
    issue_date: str = Field(min_length=1)
    expiration_date: str | None = None  # some certs don't expire
    scope: str | None = None
    level: str | None = None


class TaxDocumentMetadata(StepPayload):
    document_date: str = Field(min_length=1)
    ein: str = Field(pattern=r"^\d{2}-?\d{7}$")
    legal_name: str = Field(min_length=1)


class GenericDocumentMetadata(StepPayload):
    document_number: str | None = None
    issue_date: str | None = None
    expiration_date: str | None = None
    issuing_organization: str | None = None
    notes: str | None = None


class BondingMetadata(StepPayload):
    surety_name: str = Field(min_length=1)
    surety_naic: str | None = Field(default=None, pattern=r"^\d{5}$")
    surety_treasury_listed: bool = False
    single_project_limit: float = Field(gt=0)
    aggregate_limit: float = Field(gt=0)
    currently_bonded: float | None = Field(default=None, ge=0)
    bond_types_included: list[
        Literal["BID", "PERFORMANCE", "PAYMENT", "MAINTENANCE", "WARRANTY", "SUPPLY", "SUBDIVISION"]
    ] = ["BID", "PERFORMANCE", "PAYMENT"]
    letter_number: str | None = None
    issue_date: str | None = None
    expiration_date: str = Field(min_length=1)
    agent_name: str | None = None
    agency_name: str | None = None
    agent_email: EmailStr | Literal[""] | None = None
    subject_to_underwriting: bool = True
    notes: str | None = None

    @model_validator(mode="after")
    def _aggregate_covers_single(self):
        if self.aggregate_limit < self.single_project_limit:
            raise ValueError("Aggregate limit must be greater than or equal to single project limit")
        return self


class _DocumentBase(StepPayload):
    file_id: str
    name: str
    verified: bool = False


class InsuranceDocument(_DocumentBase):
    type: Literal["insurance"]
    sub_type: Literal["general_liability", "workers_comp", "professional_liability", "other"]
    metadata: InsuranceMetadata


class CertificateDocument(_DocumentBase):
    type: Literal["certificate"]
    sub_type: Literal[
        "EIGHT_A", "HUBZONE", "WOSB", "VOSB", "ISO_9001", "ISO_27001", "CMMC", "FEDRAMP", "other"
    ]
    metadata: CertificateMetadata


class W9Document(_DocumentBase):
    type: Literal["w9"]
    metadata: TaxDocumentMetadata


class EinLetterDocument(_DocumentBase):
    type: Literal["ein_letter"]
    metadata: TaxDocumentMetadata


class LicenseDocument(_DocumentBase):
    type: Literal["license"]
    metadata: GenericDocumentMetadata


class OtherDocument(_DocumentBase):
    type: Literal["other"]
    metadata: GenericDocumentMetadata


class BondingDocument(_DocumentBase):
    type: Literal["bonding"]
    metadata: BondingMetadata


ComplianceDocument = Annotated[
    Union[
        InsuranceDocument,
        CertificateDocument,
        W9Document,
        EinLetterDocument,
        LicenseDocument,
        OtherDocument,
        BondingDocument,
    ],
    Field(discriminator="type"),
]


class ComplianceIntakePayload(StepPayload):
    documents: list[ComplianceDocument]


class IntegrationToggle(StepPayload):
    enabled: bool
    provider: str | None = None


class IntegrationsPayload(StepPayload):
    drive: IntegrationToggle | None = None
    email: IntegrationToggle | None = None
    e_sign: IntegrationToggle | None = None
    accounting: IntegrationToggle | None = None


class TeamInvite(StepPayload):
    email: EmailStr
    role: Literal["admin", "member", "viewer"]
    first_name: str | None = None
    last_name: str | None = None


class TeamPayload(StepPayload):
    invites: list[TeamInvite]


class FirstRfpPayload(StepPayload):
    mode: Literal["upload", "sample", "skip"]
    file_id: str | None = None
    sample_id: str | None = None

    @model_validator(mode="after")
    def _source(self):
        if self.mode == "upload" and not self.file_id:
            raise ValueError("Upload a file or choose a sample")
        if self.mode == "sample" and not self.sample_id:
            raise ValueError("Choose a sample RFP")
        return self


STEP_PAYLOAD_SCHEMAS: dict[Step, type[StepPayload]] = {
    Step.ACCOUNT_VERIFIED: AccountVerifiedPayload,
    Step.ORG_CHOICE: OrgChoicePayload,
    Step.COMPANY_PROFILE: CompanyProfilePayload,
    Step.COMPLIANCE_INTAKE: ComplianceIntakePayload,
    Step.INTEGRATIONS: IntegrationsPayload,
    Step.TEAM: TeamPayload,
    Step.FIRST_RFP: FirstRfpPayload,
}

# Empty form values used when neither a draft nor saved data exists.
STEP_DEFAULTS: dict[Step, dict] = {
    Step.ACCOUNT_VERIFIED: {"emailVerified": False, "mfaEnabled": False},
    Step.ORG_CHOICE: {"mode": "create", "orgName": "", "verifiedDomains": []},
    Step.COMPANY_PROFILE: {
        "legalName": "",
        "doingBusinessAs": "",
        "address": {"line1": "", "line2": "", "city": "", "state": "", "postalCode": ""},
        "naicsCodes": [],
        "uei": "",
        "cage": "",
        "ein": "",
        "website": "",
    },
    Step.COMPLIANCE_INTAKE: {"documents": []},
    Step.INTEGRATIONS: {},
    Step.TEAM: {"invites": []},
    Step.FIRST_RFP: {"mode": "sample"},
    Step.DONE: {},
}


# ── API request / response ───────────────────────────────────

class CompleteStepRequest(BaseModel):
    step: Step
    payload: dict = {}


class CompleteStepResponse(BaseModel):
    ok: bool = True
    next_step: Step
    state: OnboardingState
    optimistic: bool = False
    synthesized: bool = False


class OnboardingStateResponse(BaseModel):
    state: OnboardingState
    current_step: Step
    displayed_step: Step
    requested_step: Step | None = None
    can_navigate: dict[Step, bool]
    step_data: dict
    is_complete: bool
    user: SessionFacts


class DraftOut(BaseModel):
    step: Step
    payload: dict
    source: Literal["draft", "server", "default"]
