from __future__ import annotations

from collections.abc import Callable

from pydantic import Field

from notes_client.core.errors import AuthError  # noqa: TCH001
from notes_client.core.models.base import AppBaseModel
from notes_client.utils.logging import get_logger

logger = get_logger(__name__)


class Session(AppBaseModel):
    """Explicit per-user context handed to every remote call.

    The credential is supplied by the session collaborator; the core only
    reads it. When the remote store rejects it, ``on_auth_error`` is how the
    collaborator learns that it has to redirect or clean up.
    """

    access_token: str | None = None
    user_id: str | None = None
    on_auth_error: Callable[[AuthError], None] | None = Field(default=None, exclude=True, repr=False)

    def auth_headers(self) -> dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    def report_auth_error(self, err: AuthError) -> None:
        logger.warning("Credential rejected by remote store", extra={"user_id": self.user_id})
        if self.on_auth_error is not None:
            self.on_auth_error(err)
