"""
Location permission flow
"""

import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from .geolocation import GeolocationProvider
from .models import PermissionState

logger = logging.getLogger(__name__)

# Asks the driver whether to request access; returns True to proceed
Prompt = Callable[[], Union[bool, Awaitable[bool]]]


async def _ask(prompt: Optional[Prompt]) -> bool:
    if prompt is None:
        return True
    answer = prompt()
    if inspect.isawaitable(answer):
        answer = await answer
    return bool(answer)


class PermissionGate:
    """Tracks foreground location permission

    `denied` is not terminal: `check` can be called again at any time to
    re-run the query/request flow.
    """

    def __init__(self, provider: GeolocationProvider):
        self.provider = provider
        self.state = PermissionState.UNDETERMINED

    @property
    def granted(self) -> bool:
        return self.state == PermissionState.GRANTED

    async def check(self, prompt: Optional[Prompt] = None) -> PermissionState:
        """Query the current permission and request it if needed

        Raises LocationFetchError if the provider cannot be queried; the
        stored state is left unchanged in that case.
        """
        status = await self.provider.get_foreground_permission()
        if status == PermissionState.GRANTED:
            self.state = status
            return self.state

        if not await _ask(prompt):
            logger.info("Driver declined the location permission request")
            self.state = PermissionState.DENIED
            return self.state

        status = await self.provider.request_foreground_permission()
        self.state = PermissionState.GRANTED if status == PermissionState.GRANTED else PermissionState.DENIED
        logger.info(f"Location permission: {self.state.value}")
        return self.state
