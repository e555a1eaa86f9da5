from peer_chat.providers.base import ProviderClient
from peer_chat.providers.gemini import GeminiClient

__all__ = ["ProviderClient", "GeminiClient"]
