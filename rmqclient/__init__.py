"""Remoting command codecs, request headers, client data models, name server selection and reply matching for a message-queue broker."""

__version__ = "0.1.0"

__all__ = [
    "codec",
    "headers",
    "model",
    "namesrv",
    "naming",
    "reply",
]