from .adapter import OpenAIChatClient

__all__ = ["OpenAIChatClient"]
