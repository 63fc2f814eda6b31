"""Domain models (Pydantic v2).

Two families live here:
- the values the services exchange (`ResourceRef`, `AccountState`,
  `ProvisioningStatus`, `CompositeRecord`, `SubmissionRequest`, ...);
- the typed API responses, decoded once at the transport boundary so the
  services read attributes instead of digging through raw JSON maps.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, model_validator
from pydantic.config import ConfigDict

UNDEFINED_ADDRESS = "Undefined"


def is_usable_address(value: object) -> bool:
    """True when `value` is a real address (not empty, not the `Undefined` placeholder)."""

    if not isinstance(value, str):
        return False
    cleaned = value.strip()
    return bool(cleaned) and cleaned != UNDEFINED_ADDRESS


class ResourceKind(str, Enum):
    MACHINE = "machine"
    CHALLENGE = "challenge"
    FORTRESS = "fortress"
    PROLAB = "prolab"
    USER = "user"

    def label(self) -> str:
        return self.value.capitalize()


class OperationKind(str, Enum):
    """Operations whose endpoint depends on account state."""

    START = "start"
    OWN = "own"


class SubmissionMode(str, Enum):
    CHALLENGE = "challenge"
    MACHINE = "machine"
    FORTRESS = "fortress"
    PROLAB = "prolab"
    ACTIVE = "active"


class SubscriptionTier(str, Enum):
    FREE = "free"
    VIP = "vip"
    VIP_PLUS = "vip+"


class ResourceType(str, Enum):
    STANDARD = "standard"
    RELEASE = "release"


class ResourceRef(BaseModel):
    """A resolved target. Identity is the (kind, id) pair."""

    model_config = ConfigDict(frozen=True)

    kind: ResourceKind = Field(..., description="Kind of resource the id belongs to.")
    id: int | str = Field(..., description="Identifier used in API paths and payloads.")
    display_name: str = Field(default="", description="Name as reported by the API.")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResourceRef):
            return NotImplemented
        return (self.kind, self.id) == (other.kind, other.id)

    def __hash__(self) -> int:
        return hash((self.kind, self.id))

    def __str__(self) -> str:
        return f"{self.display_name or self.id} ({self.kind.value} #{self.id})"


class AccountState(BaseModel):
    """Snapshot of the account attributes routing depends on.

    Always fetched fresh for the command being run.
    """

    model_config = ConfigDict(frozen=True)

    subscription_tier: SubscriptionTier
    active_resource: ResourceRef | None = None
    resource_type: ResourceType = ResourceType.STANDARD


class ProvisioningState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    TIMED_OUT = "timed_out"


class ProvisioningStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: ProvisioningState
    ip: str | None = Field(default=None, description="Address of the machine once ready.")
    polls: int = Field(default=0, ge=0, description="Number of status polls performed.")
    elapsed_seconds: float = Field(default=0.0, ge=0.0)
    cancelled: bool = Field(default=False, description="The wait was interrupted from outside.")

    @model_validator(mode="after")
    def _ready_needs_address(self) -> "ProvisioningStatus":
        if self.state is ProvisioningState.READY and not is_usable_address(self.ip):
            raise ValueError("a ready status requires a usable address")
        return self

    @property
    def is_ready(self) -> bool:
        return self.state is ProvisioningState.READY


class Unavailable(BaseModel):
    """Marker stored in a `CompositeRecord` for an auxiliary source that failed."""

    model_config = ConfigDict(frozen=True)

    reason: str


class CompositeRecord(BaseModel):
    """Primary detail record plus the optional auxiliary sources.

    `auxiliary` keeps the declared source order, whatever order the queries
    completed in.
    """

    ref: ResourceRef
    primary: dict[str, Any] = Field(default_factory=dict)
    auxiliary: dict[str, dict[str, Any] | Unavailable] = Field(default_factory=dict)

    def available(self) -> dict[str, dict[str, Any]]:
        return {name: data for name, data in self.auxiliary.items() if not isinstance(data, Unavailable)}

    def unavailable(self) -> dict[str, Unavailable]:
        return {name: data for name, data in self.auxiliary.items() if isinstance(data, Unavailable)}


class SubmissionRequest(BaseModel):
    """A validated flag submission, ready to be posted."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = Field(..., min_length=1, description="API path, relative to the base URL.")
    payload: dict[str, Any] = Field(default_factory=dict)
    resolved_resource_id: int | str | None = None


class AlreadyOwnedResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    resource_id: int | str
    message: str = "The machine has already been pwned"


class UserCancelled(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str = "Cancelled by user"


# API responses -------------------------------------------------------------


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SearchHit(_ApiModel):
    id: int | str
    name: str = Field(..., validation_alias=AliasChoices("name", "value"))


class MessageResponse(_ApiModel):
    message: str


class UserInfo(_ApiModel):
    id: int | str | None = None
    name: str | None = None
    is_vip: bool = Field(default=False, validation_alias=AliasChoices("isVip", "is_vip"))
    is_dedicated_vip: bool = Field(
        default=False,
        validation_alias=AliasChoices("isDedicatedVip", "is_dedicated_vip"),
    )

    @property
    def subscription_tier(self) -> SubscriptionTier:
        if self.is_dedicated_vip:
            return SubscriptionTier.VIP_PLUS
        if self.is_vip:
            return SubscriptionTier.VIP
        return SubscriptionTier.FREE


class ActiveMachine(_ApiModel):
    id: int | str
    name: str = ""
    ip: str | None = None
    type: str | None = None

    def to_ref(self) -> ResourceRef:
        return ResourceRef(kind=ResourceKind.MACHINE, id=self.id, display_name=self.name)


class ArenaMachine(_ApiModel):
    id: int | str
    name: str = ""


class MachineProfile(_ApiModel):
    id: int | str
    name: str = ""
    ip: str | None = None
    user_owned: bool = Field(
        default=False,
        validation_alias=AliasChoices("authUserInUserOwns", "user_owned"),
    )
    root_owned: bool = Field(
        default=False,
        validation_alias=AliasChoices("authUserInRootOwns", "root_owned"),
    )

    @property
    def fully_owned(self) -> bool:
        return self.user_owned and self.root_owned
