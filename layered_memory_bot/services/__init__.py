from .ollama_chat_client import OllamaChatClient

__all__ = ["OllamaChatClient"]
