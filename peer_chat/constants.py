import os

CONFIG_FILE = "peer_chat_config.json"
LOCAL_DATA_ROOT = ".peer_chat"
DEFAULT_DATA_DIR = os.path.join(LOCAL_DATA_ROOT, "store")

SELF_ID = "me"
CONTACT_ID_PREFIX = "user-"
CONTACT_ID_HEX_LENGTH = 12

ADDRESS_ALLOWED_PATTERN = r"[^a-zA-Z0-9]"
ADDRESS_PLACEHOLDER = "_"

PROFILE_KEY = "peerchat_profile"
CONTACTS_KEY = "peerchat_contacts"
CHATS_KEY = "peerchat_chats"
METADATA_KEY = "peerchat_chat_metadata"
PERSISTED_KEYS = (PROFILE_KEY, CONTACTS_KEY, CHATS_KEY, METADATA_KEY)

DEFAULT_AVATAR = (
    "https://cdn.pixabay.com/photo/2015/10/05/22/37/"
    "blank-profile-picture-973460_1280.png"
)

PREVIEW_IMAGE = "Sent an image"
PREVIEW_AUDIO = "Sent a voice message"
LAST_SEEN_NOW = "now"

DEFAULT_TRANSPORT = "tcp"
DEFAULT_LISTEN_HOST = "0.0.0.0"
DEFAULT_LISTEN_PORT = 9420
CONNECT_TIMEOUT_SECONDS = 5.0
HELLO_TIMEOUT_SECONDS = 5.0
MAX_FRAME_BYTES = 16 * 1024 * 1024

LOCK_TIMEOUT_SECONDS = 2.0

AI_HTTP_TIMEOUT_SECONDS = 45
GEMINI_API_KEY_ENV = "GEMINI_API_KEY"
GEMINI_CHAT_MODEL = "gemini-2.5-flash"
GEMINI_VISION_MODEL = "gemini-3-pro-preview"
GEMINI_EDITOR_MODEL = "gemini-2.5-flash-image"
DEFAULT_PERSONA = "You are a helpful friend."
DEFAULT_IMAGE_MIME = "image/jpeg"
DEFAULT_AUDIO_MIME = "audio/webm"

VISION_DEFAULT_PROMPT = "What is this?"
VISION_AUDIO_PROMPT = "Listen to this and reply."
VISION_NO_IMAGE_REPLY = "Please upload an image for me to analyze!"
EDITOR_DONE_REPLY = "Here is your edited image:"
EDITOR_FAILED_REPLY = "I couldn't edit that."
EDITOR_NEEDS_PROMPT_REPLY = "Great image! What would you like me to change?"
EDITOR_NO_IMAGE_REPLY = "Please upload an image and tell me how to edit it."
CHAT_VOICE_PROMPT = "Reply to this voice message."

BOT_DIRECTORY = [
    {
        "id": "bot-vision",
        "username": "vision_ai",
        "name": "Vision Bot",
        "avatar": "https://picsum.photos/100/100?random=1",
        "is_bot": True,
        "bot_type": "vision",
        "persona": "You are a helpful AI assistant that can analyze images.",
        "last_message": "Send me a photo to analyze!",
        "last_seen": "now",
    },
    {
        "id": "bot-editor",
        "username": "magic_editor",
        "name": "Magic Editor",
        "avatar": "https://picsum.photos/100/100?random=2",
        "is_bot": True,
        "bot_type": "editor",
        "persona": "You are a creative AI artist helping users edit photos.",
        "last_message": "Upload photo + text to edit.",
        "last_seen": "now",
    },
    {
        "id": "bot-buddy",
        "username": "chat_buddy",
        "name": "Chat Buddy",
        "avatar": "https://picsum.photos/100/100?random=5",
        "is_bot": True,
        "bot_type": "chat",
        "persona": "You are a helpful and casual friend on a chat app.",
        "last_message": "Say hi!",
        "last_seen": "now",
    },
]

PRESET_THEMES = {
    "default": {"type": "color", "value": "transparent"},
    "black": {"type": "color", "value": "#000000"},
    "charcoal": {"type": "color", "value": "#18181b"},
    "navy": {"type": "color", "value": "#172554"},
    "burgundy": {"type": "color", "value": "#450a0a"},
    "forest-solid": {"type": "color", "value": "#052e16"},
    "plum": {"type": "color", "value": "#4c1d95"},
    "midnight": {
        "type": "gradient",
        "value": "linear-gradient(to bottom, #0f2027, #203a43, #2c5364)",
    },
    "sunset": {
        "type": "gradient",
        "value": "linear-gradient(to bottom, #4b1248, #f0c27b)",
    },
    "love": {
        "type": "gradient",
        "value": "linear-gradient(to bottom, #833ab4, #fd1d1d, #fcb045)",
    },
    "forest": {
        "type": "gradient",
        "value": "linear-gradient(to bottom, #004d00, #000000)",
    },
    "ocean": {
        "type": "gradient",
        "value": "linear-gradient(to bottom, #1cb5e0, #000046)",
    },
    "purple-haze": {
        "type": "gradient",
        "value": "linear-gradient(to bottom, #240b36, #c31432)",
    },
}
CUSTOM_THEME_ID = "custom"

CONSOLE_STYLE = {
    "chat-area": "bg:#000000 #ffffff",
    "input-area": "bg:#000000 #ffffff",
    "sidebar": "bg:#111111 #aaaaaa",
    "frame.border": "#444444",
    "scrollbar.background": "bg:#222222",
    "scrollbar.button": "bg:#777777",
    "timestamp": "fg:#888888",
    "notice": "fg:#888888 italic",
    "peer": "fg:#00aaaa bold",
    "self": "fg:#ffaf00 bold",
    "unread": "fg:#ff5f5f bold",
    "online": "fg:#5fff5f",
}

REACTION_EMOJIS = ["❤️", "😂", "😮", "😢", "😡", "👍", "🔥"]
DEFAULT_REACTION = REACTION_EMOJIS[0]
MAX_RENDERED_MESSAGES = 500
MAX_NOTICES = 50
