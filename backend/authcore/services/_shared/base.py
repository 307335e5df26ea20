# authcore/services/_shared/base.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from authcore.services._shared.clock import Deadline, utcnow


@dataclass(slots=True)
class ServiceContext:
    """
    Carry cross-cutting request-scoped data (request ids, client address).

    Passed explicitly by the delivery layer; services never read Flask globals.

    :param request_id: Correlation id for logging/tracing.
    :param remote_addr: Client IP address, when known.
    """

    request_id: str | None = None
    remote_addr: str | None = None

    def log_extra(self) -> dict[str, str]:
        return {"request_id": self.request_id} if self.request_id else {}


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Hold the request-scoped :class:`ServiceContext`.
    * Provide deadline checks between store round-trips.

    Notes
    -----
    - Services must never touch the database session; persistence happens
      behind ports whose adapters open their own Unit of Work.
    """

    def __init__(self, *, ctx: ServiceContext | None = None) -> None:
        """
        Initialize the base service.

        :param ctx: Optional request-scoped context (tracing).
        :type ctx: ServiceContext | None
        """
        self.ctx = ctx or ServiceContext()

    # --------------------------- Time helpers -------------------------------

    @staticmethod
    def now_utc() -> datetime:
        return utcnow()

    @staticmethod
    def check_deadline(deadline: Deadline | None, operation: str) -> None:
        """
        Fail closed when the caller's time budget is spent.

        :param deadline: Optional caller deadline.
        :param operation: Step name used in the error message.
        :raises StoreTimeoutError: If the deadline has passed.
        """
        if deadline is not None:
            deadline.check(operation)
