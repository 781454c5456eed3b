"""
Generic check-then-create-or-update for remote resources.

Every resource the setup tooling manages (OIDC provider, IAM role, SSM
parameter, CDK toolkit stack) is probed first; reruns update or reuse what
exists instead of failing or duplicating it. API failures are wrapped into the
error class of the calling layer and abort the run.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, Type, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from cdk_pipeline.configs.error_handler import PipelineError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Outcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class EnsureResult:
    kind: str
    name: str
    outcome: Outcome
    identifier: Optional[str] = None


class ManagedResource(ABC, Generic[T]):
    """
    A remote resource with create-or-update semantics.

    Subclasses set ``kind`` and ``name`` and implement the probe and the two
    write paths. ``find`` returns None when the resource does not exist.
    """

    kind: str = "resource"
    name: str = ""

    @abstractmethod
    def find(self) -> Optional[T]:
        ...

    @abstractmethod
    def create(self) -> Optional[str]:
        ...

    @abstractmethod
    def update(self, existing: T) -> Optional[str]:
        ...

    def is_current(self, existing: T) -> bool:
        """Whether ``existing`` can be reused as-is."""
        return False

    def identify(self, existing: T) -> Optional[str]:
        return None


def ensure(resource: ManagedResource, error: Type[PipelineError]) -> EnsureResult:
    """
    Create the resource if absent, otherwise reuse or update it in place.

    Args:
        resource: Resource to converge
        error: Error class raised on API failure

    Returns:
        What happened and the resource identifier when known

    Raises:
        PipelineError: ``error`` wrapping the underlying API failure
    """
    label = f"{resource.kind} '{resource.name}'"
    try:
        existing = resource.find()
        if existing is None:
            logger.info("Creating %s", label)
            result = EnsureResult(resource.kind, resource.name, Outcome.CREATED, resource.create())
        elif resource.is_current(existing):
            logger.info("%s already exists, reusing", label[0].upper() + label[1:])
            result = EnsureResult(resource.kind, resource.name, Outcome.UNCHANGED, resource.identify(existing))
        else:
            logger.info("%s exists, updating", label[0].upper() + label[1:])
            result = EnsureResult(resource.kind, resource.name, Outcome.UPDATED, resource.update(existing))
    except (ClientError, BotoCoreError) as exc:
        raise error(f"Failed to ensure {label}: {exc}") from exc

    logger.debug("%s -> %s (%s)", label, result.outcome.value, result.identifier or "-")
    return result


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")
