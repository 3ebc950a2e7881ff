"""
Portfolio assistant: the conversational model fed with retrieved context.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import ollama

from .prompts import CONTEXT_PREAMBLE, build_system_prompt
from ..core.errors import ModelUnavailable
from ..core.sessions import SessionStore
from ..util.logging import logger


class PortfolioAssistant:
    """
    Answers visitor messages in the owner's voice.

    Retrieval never blocks a reply: without context the model still answers,
    only a failing chat model surfaces as ModelUnavailable.
    """

    def __init__(self, retriever, sessions: SessionStore, host: str = "http://localhost:11434",
                 model_name: str = "qwen2.5:1.5b", timeout: float = 60.0, temperature: float = 0.7,
                 owner_name: str = "the site owner", client=None):
        self.retriever = retriever
        self.sessions = sessions
        self.host = host
        self.model_name = model_name
        self.timeout = timeout
        self.temperature = temperature
        self.system_prompt = build_system_prompt(owner_name)
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = ollama.Client(host=self.host, timeout=self.timeout)
        return self._client

    def build_messages(self, message: str, context: Optional[str], history: List[Dict[str, str]]) -> List[Dict[str, str]]:
        """System prompt, optional context, bounded history, then the new message."""
        messages = [{"role": "system", "content": self.system_prompt}]
        if context:
            messages.append({"role": "system", "content": CONTEXT_PREAMBLE.format(context=context)})
        messages.extend(history)
        messages.append({"role": "user", "content": message})
        return messages

    def reply(self, message: str, session_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Answer one visitor message.

        Returns:
            {session_id, content, context_used, retrieval_status, reasoning}

        Raises:
            ModelUnavailable: if the chat model fails or times out
        """
        session_id = session_id or self.sessions.new_session_id()
        retrieval = self.retriever.retrieve(message)
        messages = self.build_messages(message, retrieval.context, self.sessions.history(session_id))

        start_time = datetime.now()
        try:
            response = self.client.chat(
                model=self.model_name,
                messages=messages,
                options={"temperature": self.temperature},
            )
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as e:
            logger.log_operation("chat.reply", "failed", {"session_id": session_id, "error": str(e)})
            raise ModelUnavailable("chat", e)

        content = (response["message"]["content"] or "").strip()
        if not content:
            content = "I didn't catch that. Could you rephrase your question?"

        self.sessions.add_message(session_id, "user", message)
        self.sessions.add_message(session_id, "assistant", content)

        processing_ms = int((datetime.now() - start_time).total_seconds() * 1000)
        logger.log_operation("chat.reply", "success", {
            "session_id": session_id,
            "retrieval_status": retrieval.status,
            "processing_ms": processing_ms,
        })

        return {
            "session_id": session_id,
            "content": content,
            "context_used": retrieval.context is not None,
            "retrieval_status": retrieval.status,
            "reasoning": retrieval.decision.reasoning,
        }
