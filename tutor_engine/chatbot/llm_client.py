"""
LLM Client Wrapper (Gemini + LangChain)

Generation gateway for the dialogue engine. Uses Google Gemini via LangChain,
with `with_structured_output` wherever a Pydantic model is needed (quiz
answer keys).
"""

from typing import Any, Dict, Optional, Protocol, Type, TypeVar

from langchain_core.messages import SystemMessage
from langchain_core.prompts import ChatPromptTemplate
from langchain_google_genai import ChatGoogleGenerativeAI
from loguru import logger
from pydantic import BaseModel

from ..config import TutorConfig
from ..errors import GenerationError
from ..schema.core_schema import GenerationRequest, QuizAnswerKey

T = TypeVar("T", bound=BaseModel)


class GenerationGateway(Protocol):
    async def generate(self, request: GenerationRequest) -> str: ...


class LLMClient:
    """Gemini generation gateway."""

    def __init__(self, config: Optional[TutorConfig] = None, model: Optional[str] = None) -> None:
        """
        Args:
            config: Engine configuration; read from the environment when omitted.
            model: Gemini model name override (default from config, "gemini-2.0-flash").
        """
        self.config = config or TutorConfig.from_env()
        if not self.config.api_key:
            raise ValueError("GOOGLE_API_KEY or GEMINI_API_KEY not found in environment")

        self.model = model or self.config.model
        self._llms: Dict[float, ChatGoogleGenerativeAI] = {}
        self._llm = self._llm_for(self.config.temperature)
        # Structured outputs run at temperature 0 for stability
        self._structured_llm = self._llm_for(0.0)

    def _llm_for(self, temperature: float) -> ChatGoogleGenerativeAI:
        if temperature not in self._llms:
            self._llms[temperature] = ChatGoogleGenerativeAI(
                model=self.model,
                temperature=temperature,
                google_api_key=self.config.api_key,
            )
        return self._llms[temperature]

    # ------------------------------------------------------------------
    # Free-form generation
    # ------------------------------------------------------------------
    async def generate(self, request: GenerationRequest) -> str:
        """Generate text for a GenerationRequest. Raises GenerationError."""
        messages = []
        if request.system_prompt:
            messages.append(SystemMessage(content=request.system_prompt))
        messages.append(("human", request.prompt))

        llm = self._llm_for(request.temperature)
        try:
            resp = await llm.ainvoke(messages)
        except Exception as e:
            logger.error(f"Gemini generation failed: {e}")
            raise GenerationError(str(e)) from e

        content = resp.content if hasattr(resp, "content") else str(resp)
        if isinstance(content, list):
            # multi-part content: keep the text parts
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        if not content or not content.strip():
            raise GenerationError("Empty response from generator")
        return content

    # ------------------------------------------------------------------
    # Structured / Pydantic output
    # ------------------------------------------------------------------
    async def generate_structured(
        self,
        model: Type[T],
        system_prompt: str,
        user_template: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> T:
        """
        Generate a structured Pydantic object using LangChain's
        `with_structured_output`.

        Args:
            model: Pydantic BaseModel subclass describing the output schema.
            system_prompt: System instructions for the assistant.
            user_template: Templated user message (formatted with `variables`).
            variables: Variables for the user template.
        """
        variables = variables or {}

        prompt = ChatPromptTemplate.from_messages(
            [
                SystemMessage(content=system_prompt),
                ("human", user_template),
            ]
        )
        chain = prompt | self._structured_llm.with_structured_output(model)

        try:
            result: T = await chain.ainvoke(variables)
        except Exception as e:
            logger.error(f"Structured generation ({model.__name__}) failed: {e}")
            raise GenerationError(str(e)) from e
        return result

    async def extract_quiz_key(self, quiz_text: str) -> Optional[QuizAnswerKey]:
        """
        Ask the model for the answer key of a multiple-choice question it wrote.
        Returns None when no valid key comes back.
        """
        key = await self.generate_structured(
            QuizAnswerKey,
            system_prompt=(
                "You grade multiple-choice questions. Given a question with options "
                "A) B) C) D), return the letter of the correct option and a "
                "one-sentence explanation."
            ),
            user_template="{quiz}",
            variables={"quiz": quiz_text},
        )
        if key is None or key.correct_letter.strip().upper() not in {"A", "B", "C", "D"}:
            return None
        return key
