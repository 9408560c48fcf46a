"""LangChain chains for LLM operations."""

import inspect

import structlog
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from txlens.llm.client import LLMSettings, create_llm_client, get_llm_settings
from txlens.llm.generator import ChunkCallback, NarrativeError, NarrativeGenerator

logger = structlog.get_logger(__name__)


class EmptyResponseError(NarrativeError):
    """The model returned an empty or whitespace-only reply."""

    pass


def _build_prompt(system_prompt: str, user_template: str) -> ChatPromptTemplate:
    # The system prompt is literal text; only the user template has placeholders
    escaped = system_prompt.replace("{", "{{").replace("}", "}}")
    return ChatPromptTemplate.from_messages([
        ("system", escaped),
        ("human", user_template),
    ])


class LangChainNarrativeGenerator(NarrativeGenerator):
    """``NarrativeGenerator`` backed by an Ollama model through LangChain.

    One-shot calls are retried and fall back to a secondary model on an
    empty reply. Streaming calls are not retried: chunks already delivered
    cannot be taken back.
    """

    def __init__(self, settings: LLMSettings | None = None):
        self.settings = settings or get_llm_settings()

    async def generate(
        self,
        system_prompt: str,
        user_template: str,
        variables: dict,
        *,
        temperature: float | None = None,
        on_chunk: ChunkCallback | None = None,
        context_name: str = "chain",
    ) -> str:
        prompt = _build_prompt(system_prompt, user_template)
        try:
            if on_chunk is not None:
                return await self._stream(prompt, variables, temperature, on_chunk, context_name)
            return await self._invoke_with_retry(prompt, variables, temperature, context_name)
        except NarrativeError:
            raise
        except Exception as e:
            raise NarrativeError(f"{context_name} generation failed: {type(e).__name__}: {e}") from e

    async def _stream(
        self,
        prompt: ChatPromptTemplate,
        variables: dict,
        temperature: float | None,
        on_chunk: ChunkCallback,
        context_name: str,
    ) -> str:
        llm = create_llm_client(self.settings, temperature=temperature)
        chain = prompt | llm | StrOutputParser()

        logger.debug(f"{context_name}_streaming", model=self.settings.model_name)
        parts = []
        async for chunk in chain.astream(variables):
            if not chunk:
                continue
            parts.append(chunk)
            result = on_chunk(chunk)
            if inspect.isawaitable(result):
                await result

        text = "".join(parts)
        if not text.strip():
            raise EmptyResponseError(f"{context_name}: model {self.settings.model_name} returned an empty response")
        logger.debug(f"{context_name}_stream_complete", length=len(text), chunks=len(parts))
        return text

    @retry(
        retry=retry_if_exception_type(ConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    async def _invoke_with_retry(
        self,
        prompt: ChatPromptTemplate,
        variables: dict,
        temperature: float | None,
        context_name: str,
    ) -> str:
        return await self._invoke_with_fallback(prompt, variables, temperature, context_name)

    async def _invoke_with_fallback(
        self,
        prompt: ChatPromptTemplate,
        variables: dict,
        temperature: float | None,
        context_name: str,
    ) -> str:
        """Invoke the primary model, then the fallback model on an empty reply.

        Raises:
            EmptyResponseError: If every configured model returned empty.
        """
        primary_model = self.settings.model_name
        chain = prompt | create_llm_client(self.settings, temperature=temperature) | StrOutputParser()

        logger.debug(f"{context_name}_trying_primary", model=primary_model)
        response = await chain.ainvoke(variables)
        if response and response.strip():
            logger.debug(f"{context_name}_primary_success", model=primary_model, length=len(response))
            return response

        fallback_model = self.settings.fallback_model_name
        if not fallback_model:
            raise EmptyResponseError(f"{context_name}: model {primary_model} returned an empty response")

        logger.warning(
            f"{context_name}_primary_empty_trying_fallback",
            primary_model=primary_model,
            fallback_model=fallback_model,
        )
        fallback_chain = (
            prompt
            | create_llm_client(self.settings, temperature=temperature, use_fallback=True)
            | StrOutputParser()
        )
        response = await fallback_chain.ainvoke(variables)
        if response and response.strip():
            logger.info(f"{context_name}_fallback_success", model=fallback_model, length=len(response))
            return response

        raise EmptyResponseError(
            f"Both primary ({primary_model}) and fallback ({fallback_model}) returned empty responses"
        )
