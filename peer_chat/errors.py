class PeerChatError(Exception):
    pass


class TransportError(PeerChatError):
    pass


class AddressInUseError(TransportError):
    def __init__(self, address: str):
        super().__init__(
            f"Address '{address}' is already claimed. "
            "Close other open sessions of this profile and try again."
        )
        self.address = address


class PeerUnreachableError(TransportError):
    def __init__(self, address: str, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Peer '{address}' is unreachable{detail}")
        self.address = address


class ProtocolError(PeerChatError):
    pass


class PersistenceError(PeerChatError):
    pass


class ResponderError(PeerChatError):
    pass


class ContactError(PeerChatError):
    pass
