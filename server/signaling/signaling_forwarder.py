"""
Signaling forwarder module.

Relays call-setup payloads (offer, answer, ICE candidate) to the identity
channel of the target user. Payloads are opaque and never persisted, and no
call state is tracked here.
"""

from common.constants import OUTBOUND_EVENT_BY_KIND
from common.protocol_definitions import SignalingEnvelope, create_signal_message, normalize_identifier
from server.router.channel_router import ChannelRouter
from server.utils.logger import logger


class SignalingForwarder:
    """Routes signaling envelopes through the channel router."""

    def __init__(self, router: ChannelRouter):
        self.router = router

    async def forward(self, envelope: SignalingEnvelope) -> int:
        """Publish the envelope to its target. Returns deliveries; envelopes without a target are dropped."""
        target = normalize_identifier(envelope.to_identifier)
        if target is None:
            logger.debug(f"Dropping '{envelope.kind}' signal without target")
            return 0

        event_type = OUTBOUND_EVENT_BY_KIND.get(envelope.kind)
        if event_type is None:
            logger.warning(f"Dropping signal of unknown kind '{envelope.kind}'")
            return 0

        delivered = await self.router.publish(target, create_signal_message(envelope, event_type))
        logger.log_signal(envelope.kind, envelope.from_identifier, target, delivered)
        return delivered
