"""DeepSeek provider: OpenAI wire format on DeepSeek's endpoint."""

from resumeai.providers.base import ProviderName
from resumeai.providers.openai import OpenAICompatibleProvider


class DeepSeekProvider(OpenAICompatibleProvider):
    """DeepSeek serves the chat API without the /v1 prefix.

    A 402 (insufficient balance) is not retried; 429 and 503 are.
    """

    name = ProviderName.DEEPSEEK
    models_path = "/models"
    chat_path = "/chat/completions"
