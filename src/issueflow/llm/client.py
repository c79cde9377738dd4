"""Text generation over an OpenAI-compatible chat endpoint.

ChatTextGenerator implements the TextGenerator port with LangChain's
ChatOpenAI client. It works against hosted OpenAI models and any
vLLM-compatible endpoint exposing the chat completions API.
"""

import logging
from typing import Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.issueflow.ports import PortFailure


logger = logging.getLogger(__name__)


DEFAULT_SYSTEM_PROMPT = (
    "You are a senior software engineer working through GitHub issues. "
    "Follow the requested output format exactly."
)


class TextGenerationError(PortFailure):
    """Raised when the text generator cannot produce a response.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class ChatTextGenerator:
    """TextGenerator backed by a chat model.

    Attributes:
        llm_url: Base URL of the OpenAI-compatible endpoint.
        model_name: Model identifier.
        api_key: API key; local endpoints accept any value.
        timeout: Request timeout in seconds.
        temperature: Sampling temperature.

    Example:
        >>> generator = ChatTextGenerator(
        ...     llm_url="http://localhost:8000/v1",
        ...     model_name="Qwen/Qwen2.5-Coder-14B-Instruct",
        ... )
        >>> await generator.generate("Respond with one word: hello", max_tokens=5)
        'hello'
    """

    def __init__(
        self,
        llm_url: str,
        model_name: str,
        api_key: str = "not-needed",
        timeout: float = 60.0,
        temperature: float = 0.1,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ):
        self.llm_url = llm_url
        self.model_name = model_name
        self.api_key = api_key
        self.timeout = timeout
        self.temperature = temperature
        self.system_prompt = system_prompt
        self._llm: Optional[ChatOpenAI] = None

    @property
    def llm(self) -> ChatOpenAI:
        """Get the chat client, creating it if necessary."""
        if self._llm is None:
            self._llm = ChatOpenAI(
                base_url=self.llm_url,
                model=self.model_name,
                temperature=self.temperature,
                timeout=self.timeout,
                api_key=self.api_key,
            )
        return self._llm

    async def generate(self, prompt: str, max_tokens: int = 1000) -> str:
        """Generate a completion for a single prompt.

        Args:
            prompt: The user prompt.
            max_tokens: Upper bound on generated tokens.

        Returns:
            The model's text response.

        Raises:
            TextGenerationError: If the call fails or returns non-text content.
        """
        messages = [
            SystemMessage(content=self.system_prompt),
            HumanMessage(content=prompt),
        ]

        logger.debug(
            "Generating text",
            extra={"prompt_length": len(prompt), "max_tokens": max_tokens},
        )

        try:
            response = await self.llm.bind(max_tokens=max_tokens).ainvoke(messages)
        except Exception as e:
            logger.error(
                "Text generation failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            raise TextGenerationError(f"LLM invocation failed: {e}", cause=e)

        content = response.content
        if isinstance(content, list):
            content = "".join(
                part if isinstance(part, str) else str(part.get("text", ""))
                for part in content
            )
        if not isinstance(content, str):
            raise TextGenerationError(
                f"Unexpected response type: {type(content).__name__}"
            )

        return content

    async def health_check(self) -> bool:
        """Check whether the endpoint answers a trivial prompt."""
        try:
            await self.llm.ainvoke([HumanMessage(content="Hello")])
            return True
        except Exception as e:
            logger.warning(
                "LLM health check failed",
                extra={"error": str(e)},
            )
            return False
