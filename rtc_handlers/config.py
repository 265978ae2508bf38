"""
Settings shared by every negotiation session.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from aiortc import RTCBundlePolicy, RTCConfiguration, RTCIceServer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerSettings:
    """
    Connection settings applied to the native engine and to the transport handshake.
    """

    turn_servers: List[RTCIceServer] = field(default_factory=list)
    bundle_policy: str = "max-bundle"
    # Seconds to wait for the transport collaborator, None waits forever.
    transport_timeout: Optional[float] = 30.0
    sdp_username: str = "rtc-handlers"

    @classmethod
    def from_env(cls) -> "HandlerSettings":
        """
        Build settings from RTC_HANDLERS_* environment variables.
        """
        turn_servers = []
        turn_url = os.getenv("RTC_HANDLERS_TURN_URL")
        if turn_url:
            turn_servers.append(
                RTCIceServer(
                    urls=turn_url,
                    username=os.getenv("RTC_HANDLERS_TURN_USERNAME"),
                    credential=os.getenv("RTC_HANDLERS_TURN_CREDENTIAL"),
                )
            )

        timeout = os.getenv("RTC_HANDLERS_TRANSPORT_TIMEOUT")
        if timeout is None:
            transport_timeout = cls.transport_timeout
        elif timeout.lower() in ("", "none"):
            transport_timeout = None
        else:
            transport_timeout = float(timeout)

        logger.info(
            f"Loaded handler settings [turn servers: {len(turn_servers)}, "
            f"transport timeout: {transport_timeout}]"
        )
        return cls(turn_servers=turn_servers, transport_timeout=transport_timeout)

    def to_rtc_configuration(self) -> RTCConfiguration:
        return RTCConfiguration(
            iceServers=list(self.turn_servers),
            bundlePolicy=RTCBundlePolicy(self.bundle_policy),
        )
