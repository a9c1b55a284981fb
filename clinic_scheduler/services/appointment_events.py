"""In-process subscribers for appointment status changes."""

from collections.abc import Awaitable, Callable

import structlog

from clinic_scheduler.schemas.appointments import AppointmentResponse, AppointmentStatus

logger = structlog.get_logger(__name__)

StatusListener = Callable[[AppointmentResponse, AppointmentStatus], Awaitable[None]]


class AppointmentEventBus:
    """
    Fan-out of appointment status changes to registered listeners.

    Listeners receive the updated appointment and its previous status. A
    failing listener is logged and skipped; it never fails the transition
    that triggered it.
    """

    def __init__(self) -> None:
        self._listeners: list[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish_status_change(
        self,
        appointment: AppointmentResponse,
        old_status: AppointmentStatus,
    ) -> None:
        """Notify every listener of a committed status change."""
        for listener in list(self._listeners):
            try:
                await listener(appointment, old_status)
            except Exception as e:
                logger.warning(
                    "appointment_listener_failed",
                    appointment_id=appointment.id,
                    status=appointment.status.value,
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(e),
                )


appointment_events = AppointmentEventBus()
