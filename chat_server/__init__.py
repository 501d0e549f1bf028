from .routes.chat import chat_bp

# The application factory lives in server.py; the blueprint is re-exported
# here so tests and alternative runners can build an app without importing
# server.py.

__all__ = ["chat_bp"]
