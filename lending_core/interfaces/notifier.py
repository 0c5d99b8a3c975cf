"""Notifier protocol — delivery channel for risk alerts and sweep logs."""
from typing import Protocol


class Notifier(Protocol):
    """A channel the monitor fans alerts and sweep summaries out to.

    Both methods return False when the channel is unconfigured or delivery
    failed; transport errors may also propagate and are contained by the
    monitor per notifier.
    """

    async def send_alert(self, message: str, subject: str = "") -> bool:
        """Loud notification for warning and critical positions."""
        ...

    async def send_log(self, message: str, silent: bool = True) -> bool:
        """Per-sweep summary; channels may ignore it."""
        ...
