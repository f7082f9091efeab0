from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, computed_field


class ItemKind(str, Enum):
    """What the submitted items are pushed as."""
    SECRETS = "secrets"
    VARIABLES = "variables"

    @property
    def label(self) -> str:
        return "secret" if self is ItemKind.SECRETS else "variable"


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ResultKind(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class ConnectionParams(BaseModel):
    """Where the items go and with which credential."""
    token: str = ""
    owner: str = ""
    repo: str = ""
    environment: str = ""
    kind: ItemKind = ItemKind.VARIABLES

    model_config = {
        "frozen": True
    }

    def missing_fields(self) -> List[str]:
        return [
            field for field in ("token", "owner", "repo", "environment")
            if not getattr(self, field).strip()
        ]


class Item(BaseModel):
    """One name/value row of the form."""
    name: str = ""
    value: str = ""

    @property
    def is_valid(self) -> bool:
        return bool(self.name.strip() and self.value.strip())


class ProgressState(BaseModel):
    current: int = 0
    total: int = 0
    status: RunStatus = RunStatus.IDLE
    message: str = ""

    @computed_field
    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.current / self.total * 100


class ResultEntry(BaseModel):
    kind: ResultKind
    message: str
    item: Optional[str] = None


class ProvisionRun(BaseModel):
    """State of a single run, mutated only by the provisioner."""
    progress: ProgressState = Field(default_factory=ProgressState)
    results: List[ResultEntry] = Field(default_factory=list)
    repository_id: Optional[int] = None


class ProvisionEvent(BaseModel):
    """Snapshot emitted after each change to a run."""
    progress: ProgressState
    result: Optional[ResultEntry] = None


class ProvisionRequest(ConnectionParams):
    items: List[Item] = Field(default_factory=list)

    model_config = {
        "frozen": False
    }

    def connection(self) -> ConnectionParams:
        return ConnectionParams(**self.model_dump(exclude={"items"}))


class TokenScope(BaseModel):
    scope: str
    description: str


REQUIRED_SCOPES = [
    TokenScope(scope="repo", description="Full control of private repositories (required for secrets and variables)"),
    TokenScope(scope="public_repo", description="Access public repositories (if working with public repos only)"),
    TokenScope(scope="admin:org", description="Required for organization-level secrets (optional)"),
]
