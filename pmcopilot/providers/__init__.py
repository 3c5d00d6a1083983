from pmcopilot.providers.ollama import list_ollama_models
from pmcopilot.providers.openai_compat import CompletionResult, OpenAICompatProvider

__all__ = ["CompletionResult", "OpenAICompatProvider", "list_ollama_models"]
