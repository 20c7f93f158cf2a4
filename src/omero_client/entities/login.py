"""Result of an authentication attempt."""

from __future__ import annotations

import json
import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from omero_client.entities.permissions import Group

logger = logging.getLogger(__name__)


class LoginStatus(str, Enum):
    CANCELED = "canceled"  # the user gave up before submitting credentials
    FAILED = "failed"
    UNAUTHENTICATED = "unauthenticated"  # anonymous browsing, no session
    SUCCESS = "success"


class _EventContext(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: int = Field(..., alias="userId")
    user_name: str = Field(..., alias="userName")
    session_uuid: str = Field(..., alias="sessionUuid")
    group_id: int = Field(..., alias="groupId")
    group_name: str = Field(default="", alias="groupName")


class LoginResponse(BaseModel):
    """Outcome of ``ApisHandler.login``; session fields are set only on SUCCESS."""

    status: LoginStatus
    user_id: int | None = None
    username: str | None = None
    session_uuid: str | None = None
    group: Group | None = None

    @classmethod
    def unsuccessful(cls, status: LoginStatus) -> LoginResponse:
        """Build a response without session details.

        Raises:
            ValueError: If ``status`` is SUCCESS.
        """
        if status is LoginStatus.SUCCESS:
            raise ValueError("A successful login response needs session details")
        return cls(status=status)

    @classmethod
    def from_server_response(cls, body: str) -> LoginResponse:
        """Read the ``eventContext`` of a login response; FAILED if unreadable."""
        try:
            context = _EventContext.model_validate(json.loads(body)["eventContext"])
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Cannot read login response: %s", e)
            return cls(status=LoginStatus.FAILED)

        return cls(
            status=LoginStatus.SUCCESS,
            user_id=context.user_id,
            username=context.user_name,
            session_uuid=context.session_uuid,
            group=Group(id=context.group_id, name=context.group_name),
        )

    def __str__(self) -> str:
        return f"LoginResponse of status {self.status.value} for {self.username}"
