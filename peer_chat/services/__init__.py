from peer_chat.services.contact_service import ContactService
from peer_chat.services.dispatch_service import EventDispatcher
from peer_chat.services.handshake_service import HandshakeService
from peer_chat.services.outbound_service import OutboundPipeline
from peer_chat.services.responder_service import GeminiResponder, post_json_request
from peer_chat.services.session_service import EndpointState, SessionService

__all__ = [
    "ContactService",
    "EndpointState",
    "EventDispatcher",
    "GeminiResponder",
    "HandshakeService",
    "OutboundPipeline",
    "SessionService",
    "post_json_request",
]
