"""
Pydantic models for spawn requests, resolved fd actions and run results.
"""

from __future__ import annotations

import os
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CloseAction(BaseModel):
    """Close ``fd`` in the child."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["close"] = "close"
    fd: int


class DupAction(BaseModel):
    """Make ``fd`` in the child a duplicate of the parent's ``source``."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["dup"] = "dup"
    fd: int
    source: int


class OpenAction(BaseModel):
    """Reopen ``fd`` in the child against ``path``."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["open"] = "open"
    fd: int
    path: str
    flags: int
    mode: int = 0o644


FdAction = Annotated[Union[CloseAction, DupAction, OpenAction], Field(discriminator="kind")]


class SpawnRequest(BaseModel):
    """Canonical request handed to a spawner.

    ``command`` is the (exec path, argv0 display name) pair; ``args`` are
    the remaining arguments.
    """
    model_config = ConfigDict(frozen=True)

    env: Dict[str, Optional[str]] = Field(default_factory=dict)
    command: Tuple[str, str]
    args: List[str] = Field(default_factory=list)
    actions: List[FdAction] = Field(default_factory=list)
    chdir: Optional[str] = None
    unsetenv_others: bool = False

    @field_validator("command")
    @classmethod
    def command_not_empty(cls, v: Tuple[str, str]) -> Tuple[str, str]:
        if not v[0]:
            raise ValueError("command must not be empty")
        return v

    @model_validator(mode="after")
    def unique_targets(self) -> "SpawnRequest":
        seen = set()
        for action in self.actions:
            if action.fd in seen:
                raise ValueError(f"duplicate redirection for fd {action.fd}")
            seen.add(action.fd)
        return self

    @property
    def executable(self) -> str:
        return self.command[0]

    @property
    def argv(self) -> List[str]:
        return [self.command[1], *self.args]

    def action_for(self, fd: int) -> Optional[FdAction]:
        for action in self.actions:
            if action.fd == fd:
                return action
        return None


class ExitStatus(BaseModel):
    """How a reaped child terminated."""
    model_config = ConfigDict(frozen=True)

    pid: int
    exited: bool
    signaled: bool = False
    code: Optional[int] = None
    termsig: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.exited and self.code == 0

    @classmethod
    def from_wait_status(cls, pid: int, status: int) -> "ExitStatus":
        if os.WIFSIGNALED(status):
            return cls(pid=pid, exited=False, signaled=True, termsig=os.WTERMSIG(status))
        if os.WIFEXITED(status):
            return cls(pid=pid, exited=True, code=os.WEXITSTATUS(status))
        # stopped/continued children are not reaped
        raise ValueError(f"wait status {status:#x} for pid {pid} is not a termination")

    @classmethod
    def from_returncode(cls, pid: int, returncode: int) -> "ExitStatus":
        # subprocess reports death by signal N as -N
        if returncode < 0:
            return cls(pid=pid, exited=False, signaled=True, termsig=-returncode)
        return cls(pid=pid, exited=True, code=returncode)

    def __str__(self) -> str:
        if self.signaled:
            return f"pid {self.pid} signal {self.termsig}"
        return f"pid {self.pid} exit {self.code}"


class PumpOutcome(BaseModel):
    """What the pump collected, and which bound (if any) stopped it."""
    out: bytes = b""
    err: bytes = b""
    runtime: float = 0.0
    violation: Optional[Literal["timeout", "max_output"]] = None


class RunResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    out: bytes
    err: bytes
    status: ExitStatus
    runtime: float

    @property
    def success(self) -> bool:
        return self.status.success
