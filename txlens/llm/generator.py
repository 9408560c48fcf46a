"""Text-generation collaborator interface."""

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

ChunkCallback = Callable[[str], Awaitable[None] | None]


class NarrativeError(Exception):
    """The text-generation collaborator failed or returned nothing."""

    pass


@runtime_checkable
class NarrativeGenerator(Protocol):
    """Produces text from a system prompt and a filled-in user prompt template.

    ``user_template`` uses LangChain ``{variable}`` placeholders filled from
    ``variables``. When ``on_chunk`` is given, the implementation streams and
    calls it for every text fragment before returning the full text.
    """

    async def generate(
        self,
        system_prompt: str,
        user_template: str,
        variables: dict,
        *,
        temperature: float | None = None,
        on_chunk: ChunkCallback | None = None,
        context_name: str = "chain",
    ) -> str: ...
