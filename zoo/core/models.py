"""Data contracts shared by providers, poller, orchestrator and store.

Architectural role:
    Defines the provider-agnostic `Prediction` record and the state machine that
    guards its status, the `ModelDescriptor` loaded from the model catalog, and
    the per-(model, output) `GenerationRequest` handed to provider adapters.

State machine:
    starting -> processing -> {succeeded, failed}

    - Repeated observations of the current state are accepted (a poller sees
      `processing` many times).
    - Skipping ahead is accepted (`starting -> succeeded`).
    - Moving backwards or leaving a terminal state raises `ProtocolError`.

Invariants enforced here:
    - `output` is non-empty if and only if `status == succeeded`.
    - `id`, `submission_id`, `source`, `created_at` and `inserted_at` are frozen
      fields; assignment after construction raises a validation error.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from zoo.core.errors import ProtocolError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderKind(str, Enum):
    """Closed set of provider families. Values match catalog and wire payloads."""

    REPLICATE = "replicate"
    OPENAI = "openai"
    STABILITY = "stability"


class PredictionStatus(str, Enum):
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PredictionStatus.SUCCEEDED, PredictionStatus.FAILED)

    @property
    def rank(self) -> int:
        """Position in the state machine; terminal states share the top rank."""
        return _STATUS_RANK[self]

    @classmethod
    def from_provider(cls, value: str | None) -> "PredictionStatus":
        """Map a raw provider status string onto the state machine.

        `canceled`/`cancelled` collapse into `failed`. Unknown or missing values
        raise `ProtocolError`.
        """
        if value in ("canceled", "cancelled"):
            return cls.FAILED
        try:
            return cls(value)
        except ValueError:
            raise ProtocolError(f"Unknown prediction status: {value!r}") from None


_STATUS_RANK = {
    PredictionStatus.STARTING: 0,
    PredictionStatus.PROCESSING: 1,
    PredictionStatus.SUCCEEDED: 2,
    PredictionStatus.FAILED: 2,
}


class Prediction(BaseModel):
    """One generation attempt: the normalized request plus its eventual result."""

    id: str = Field(frozen=True)
    submission_id: str = Field(frozen=True)
    model: str
    source: ProviderKind = Field(frozen=True)
    version: str = ""
    status: PredictionStatus = PredictionStatus.STARTING
    input: dict[str, Any] = Field(default_factory=dict)
    output: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow, frozen=True)
    inserted_at: datetime = Field(default_factory=utcnow, frozen=True)
    anon_id: str | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _check_output_matches_status(self) -> "Prediction":
        if self.status == PredictionStatus.SUCCEEDED and not self.output:
            raise ValueError("succeeded prediction must carry at least one output artifact")
        if self.status != PredictionStatus.SUCCEEDED and self.output:
            raise ValueError(f"{self.status.value} prediction must not carry output")
        return self

    @property
    def prompt(self) -> str:
        return str(self.input.get("prompt", ""))

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def advance(
        self,
        status: PredictionStatus,
        output: list[str] | None = None,
        error: str | None = None,
    ) -> bool:
        """Apply one status observation in place.

        Args:
            status: Newly observed status.
            output: Artifacts reported with the observation; only kept on success.
            error: Failure detail reported with a `failed` observation.

        Returns:
            True when the observation changed the record, False for a repeated
            observation of the same terminal state.

        Raises:
            ProtocolError: Backwards transition, exit from a terminal state, or a
                `succeeded` observation without artifacts.
        """
        current = self.status
        if current.is_terminal:
            if status == current:
                return False
            raise ProtocolError(
                f"Prediction {self.id} is already {current.value}; cannot move to {status.value}"
            )
        if status.rank < current.rank:
            raise ProtocolError(
                f"Prediction {self.id} cannot move backwards from {current.value} to {status.value}"
            )

        if status == PredictionStatus.SUCCEEDED:
            artifacts = [item for item in (output or []) if item]
            if not artifacts:
                raise ProtocolError(f"Prediction {self.id} succeeded without output")
            self.output = artifacts
        elif status == PredictionStatus.FAILED:
            self.output = []
            self.error = error or self.error or "Prediction failed"

        self.status = status
        return True


class Deployment(BaseModel):
    owner: str
    name: str


class ModelDescriptor(BaseModel):
    """Selectable generator as listed in the model catalog.

    `checked` is transient selection state and never reaches a provider or
    the store.
    """

    model_config = ConfigDict(extra="ignore")

    id: int | str
    name: str
    owner: str = ""
    source: ProviderKind
    version: str = ""
    prompt_template: str | None = None
    default_params: dict[str, Any] = Field(default_factory=dict)
    checked: bool = False
    deployment: Deployment | None = None
    description: str = ""
    url: str | None = None


@dataclass(frozen=True)
class GenerationRequest:
    """Provider-agnostic request for exactly one output of one model.

    Attributes:
        prompt: Raw user prompt (templates are applied by adapters).
        model: Descriptor of the selected generator.
        submission_id: Groups every request created by one user action.
        output_index: Position of this output within the model's batch.
        anon_id: Pseudo-identity of the submitting session.
        prediction_id: Locally generated id, used by sync-call providers.
        created_at: Local creation time, used by sync-call providers.
    """

    prompt: str
    model: ModelDescriptor
    submission_id: str
    output_index: int = 0
    anon_id: str | None = None
    prediction_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    @property
    def source(self) -> ProviderKind:
        return self.model.source
