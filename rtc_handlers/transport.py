from abc import ABC, abstractmethod
from typing import Optional

from rtc_handlers.models import TransportLocalParameters, TransportParameters


class TransportCollaborator(ABC):
    """
    The party that creates the server-side transport of a session.

    Sessions call it exactly once per handshake step, the first time a round
    needs transport parameters.
    """

    @abstractmethod
    async def create_transport(
        self, local_parameters: Optional[TransportLocalParameters]
    ) -> TransportParameters:
        """
        Create the remote transport and return its parameters.

        Send sessions pass their local DTLS parameters, receive sessions pass
        None since their local parameters are only known after the first answer.
        """

    @abstractmethod
    async def update_transport(self, local_parameters: TransportLocalParameters) -> None:
        """
        Hand the local parameters of a receive session to the remote transport.
        """
