from typing import Optional
import asyncio
import re
from openai import OpenAI
import requests

from ..config import settings
from ..utils.logger import app_logger


THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL)

SUMMARY_PROMPT = """Given the following function body, generate a 3 line summary of what it does.
Respond with the summary only.

{code}
"""

ANSWER_PROMPT = """You are answering a question about a codebase.
Use only the context below, which was retrieved from the code graph and the
function summaries. If the context does not contain the answer, say so.

Question: {query}

Context:
{context}

Answer:"""


def strip_reasoning(text: str) -> str:
    """Drop <think>...</think> blocks emitted by reasoning models."""
    return THINK_BLOCK.sub("", text).strip()


class OllamaLLMProvider:
    """Ollama text generation provider."""

    def __init__(self, host: str = "http://localhost:11434", model: str = "llama3.1",
                 temperature: float = 0.1):
        self.host = host.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.logger = app_logger.bind(component="ollama_llm")
        self.session = requests.Session()

    async def generate(self, prompt: str) -> str:
        try:
            response = await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: self.session.post(
                    f"{self.host}/api/generate",
                    json={
                        "model": self.model,
                        "prompt": prompt,
                        "stream": False,
                        "options": {"temperature": self.temperature},
                    },
                    timeout=settings.llm_timeout,
                )
            )
            response.raise_for_status()
            return response.json().get("response", "")
        except Exception as e:
            self.logger.error(f"Error generating Ollama completion: {e}")
            raise


class OpenAILLMProvider:
    """OpenAI chat completion provider."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", temperature: float = 0.1):
        self.client = OpenAI(api_key=api_key, timeout=settings.llm_timeout)
        self.model = model
        self.temperature = temperature
        self.logger = app_logger.bind(component="openai_llm")

    async def generate(self, prompt: str) -> str:
        try:
            response = await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: self.client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=self.temperature,
                )
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            self.logger.error(f"Error generating OpenAI completion: {e}")
            raise


class LLMService:
    """Text generation used for summaries, query planning and answers."""

    def __init__(self, provider=None):
        self.logger = app_logger.bind(component="llm_service")
        self.provider = provider or self._initialize_provider()

    def _initialize_provider(self):
        """Initialize the generation provider based on configuration."""
        if settings.llm_provider == "ollama":
            return OllamaLLMProvider(
                host=settings.ollama_host,
                model=settings.ollama_chat_model,
                temperature=settings.llm_temperature,
            )
        elif settings.llm_provider == "openai":
            if not settings.openai_api_key:
                raise ValueError("OpenAI API key is required for the OpenAI LLM provider")
            return OpenAILLMProvider(
                api_key=settings.openai_api_key,
                model=settings.openai_chat_model,
                temperature=settings.llm_temperature,
            )
        else:
            raise ValueError(f"Unsupported LLM provider: {settings.llm_provider}")

    async def generate(self, prompt: str) -> str:
        """Complete a prompt, with reasoning blocks removed."""
        return strip_reasoning(await self.provider.generate(prompt))

    async def summarize_function(self, code: str, max_length: Optional[int] = None) -> str:
        """Three-line summary of a function body."""
        max_length = max_length or settings.max_code_length
        return await self.generate(SUMMARY_PROMPT.format(code=code[:max_length]))

    async def answer_question(self, query: str, context: str) -> str:
        """Natural-language answer grounded in retrieved context."""
        return await self.generate(ANSWER_PROMPT.format(query=query, context=context))
