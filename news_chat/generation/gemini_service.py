"""
Gemini Generation Service

Turns a user question plus retrieved news context into an answer using
Google's Gemini models through LangChain.
"""

import logging
from typing import Any, Optional

from langchain_google_genai import (
    ChatGoogleGenerativeAI,
    HarmBlockThreshold,
    HarmCategory,
)

logger = logging.getLogger(__name__)


FALLBACK_RESPONSE = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again or rephrase your question."
)

RAG_PROMPT_TEMPLATE = """You are a helpful news chatbot assistant. Answer the user's question based on the provided news context. If the context doesn't contain relevant information, politely say so and provide a general response if possible.

Context from recent news articles:
{context}

User Question: {query}

Instructions:
- Base your answer primarily on the provided context
- Be concise and informative
- If the context doesn't contain relevant information, acknowledge this
- Maintain a friendly and professional tone
- Cite specific details from the articles when relevant

Response:"""

SAFETY_SETTINGS = {
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
}


class GenerationError(Exception):
    """Raised when the model returns no usable text."""
    pass


class GeminiService:
    """
    Answer generation with fixed sampling and safety settings.

    generate() never raises: any failure, including a safety block, is
    logged and replaced by FALLBACK_RESPONSE so a chat request can still
    complete.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.0-flash",
        temperature: float = 0.7,
        top_p: float = 0.95,
        top_k: int = 40,
        max_tokens: int = 2048,
        llm: Optional[Any] = None
    ):
        """
        Initialize the generation service.

        Args:
            api_key: Google Generative AI API key
            model: Gemini model name
            temperature: Sampling temperature
            top_p: Nucleus sampling probability mass
            top_k: Top-k sampling cutoff
            max_tokens: Maximum tokens in generated answer
            llm: Pre-built chat model exposing invoke(prompt)
        """
        self.model = model
        self.temperature = temperature
        self.top_p = top_p
        self.top_k = top_k
        self.max_tokens = max_tokens

        self.llm = llm or ChatGoogleGenerativeAI(
            model=model,
            google_api_key=api_key,
            temperature=temperature,
            top_p=top_p,
            top_k=top_k,
            max_output_tokens=max_tokens,
            safety_settings=SAFETY_SETTINGS
        )

    def build_prompt(self, query: str, context: str) -> str:
        """Fill the RAG prompt template with context and question."""
        return RAG_PROMPT_TEMPLATE.format(context=context, query=query)

    def _invoke(self, prompt: str) -> str:
        """
        Call the model and extract its text.

        Raises:
            GenerationError: If the call fails or returns no text
                (a safety block comes back as empty content)
        """
        try:
            response = self.llm.invoke(prompt)
        except Exception as e:
            raise GenerationError(f"Error generating answer with Gemini: {e}") from e

        content = getattr(response, 'content', response)
        if isinstance(content, list):
            # Multi-part responses: join the text parts
            content = ''.join(
                part.get('text', '') if isinstance(part, dict) else str(part)
                for part in content
            )

        text = str(content or '').strip()
        if not text:
            metadata = getattr(response, 'response_metadata', None) or {}
            reason = metadata.get('finish_reason', 'unknown')
            raise GenerationError(f"Invalid response from Gemini (finish reason: {reason})")

        return text

    def generate(self, query: str, context: str) -> str:
        """
        Generate an answer grounded in the retrieved context.

        Args:
            query: The user's question
            context: Retrieved article text

        Returns:
            Generated answer, or FALLBACK_RESPONSE on any failure
        """
        prompt = self.build_prompt(query, context)
        try:
            return self._invoke(prompt)
        except GenerationError as e:
            logger.error(f"Gemini generation failed: {e}")
            return FALLBACK_RESPONSE

    def generate_simple(self, text: str) -> str:
        """
        Send a raw prompt without RAG context.

        Raises:
            GenerationError: If generation fails
        """
        return self._invoke(text)

    def summarize_text(self, text: str, max_length: int = 200) -> str:
        """Summarize text, falling back to a plain truncation on failure."""
        prompt = f"Please summarize the following text in about {max_length} words:\n\n{text}"
        try:
            return self.generate_simple(prompt)
        except GenerationError as e:
            logger.error(f"Text summarization failed: {e}")
            return text[:max_length] + '...'

    def validate_api_key(self) -> bool:
        try:
            self.generate_simple('Hello')
            return True
        except GenerationError as e:
            logger.error(f"Gemini API key validation failed: {e}")
            return False
