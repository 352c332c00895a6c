# Relay protocol literals and defaults

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_BACKLOG = 3

# One read is one logical message; there is no framing on the wire.
RECV_BUFSIZE = 1024

DEFAULT_SEND_TIMEOUT_S = 5.0
DEFAULT_POLL_INTERVAL_S = 0.25

WIRE_ENCODING = "utf-8"

# Server-generated notices
PROMPT_USERNAME = "Enter your username: "
JOIN_TEMPLATE = "{name} has joined the chat!"
LEAVE_TEMPLATE = "{name} has left the chat"
CHAT_TEMPLATE = "{name}: {text}"

# Client side
QUIT_WORD = "quit"
CLIENT_PROMPT = "You: "
