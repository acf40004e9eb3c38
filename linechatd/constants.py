# linechatd wire and policy constants

DEFAULT_PORT = 5001

# Framing
LINE_TERMINATOR = "\r\n"
LINE_ENCODING = "utf-8"

# Lines starting with the sigil are commands; everything else is chat.
COMMAND_SIGIL = "!"
HANDSHAKE_COMMAND = "username"

# Out-of-band termination notice. Clients must not display it as chat.
KICK_SENTINEL = "!kicked "

# Username policy
USERNAME_MIN_CHARS = 3
USERNAME_MAX_CHARS = 20

# History
HISTORY_CAPACITY = 1000
HISTORY_REPLY_COUNT = 10

# History record kinds
KIND_CHAT = "chat"
KIND_WHISPER = "whisper"
KIND_SYSTEM = "system"
KIND_COMMAND = "command"

# Author recorded for server-originated events
SERVER_USER = "server"

# Departure reasons
REASON_LEFT = "left the chat"
REASON_SHUTDOWN = "server is shutting down"
DEFAULT_MOD_KICK_REASON = "Kicked by moderator"
DEFAULT_ADMIN_KICK_REASON = "Kicked by server"
