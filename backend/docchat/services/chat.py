"""Chat round trip for one session: persist the question, assemble the prompt
from the document's chunks and recent history, ask the model, persist the reply.

The user message is stored before the model is called and is not rolled back
if the call fails; the caller sees the error and the unanswered question
stays in the history.
"""
import asyncio
from dataclasses import dataclass
from typing import List, Sequence

from loguru import logger

from docchat.core.config import Settings
from docchat.core.errors import DocumentNotFound, DocumentNotReady, ModelUnavailable, SessionNotFound
from docchat.db.records import ChatMessageRecord, ChatSessionRecord, DocumentStatus, MessageRole, UserRecord
from docchat.db.repository import Repository
from docchat.services.llm import LanguageModel

ANSWER_INSTRUCTION = (
    "Please provide a helpful and accurate response based on the document content provided. "
    "If the question cannot be answered from the document content, politely explain that the "
    "information is not available in the provided documents."
)


def recent_history(messages: Sequence[ChatMessageRecord], window: int) -> List[ChatMessageRecord]:
    ordered = sorted(messages, key=lambda m: (m.timestamp, m.id))
    return ordered[-window:] if window > 0 else []


def render_prompt(question: str, chunk_contents: Sequence[str], history: Sequence[ChatMessageRecord]) -> str:
    history_block = ""
    if history:
        lines = "\n".join(f"{m.role.value}: {m.content}" for m in history)
        history_block = f"Previous conversation:\n{lines}\n\n"
    context_block = ""
    if chunk_contents:
        joined = "\n\n".join(chunk_contents)
        context_block = f"Based on the following document content:\n\n{joined}\n\n"
    return f"{history_block}{context_block}User question: {question}\n\n{ANSWER_INSTRUCTION}"


@dataclass
class PromptBuild:
    user_message: ChatMessageRecord
    prompt: str
    chunk_count: int
    history_count: int


@dataclass
class ChatExchange:
    user_message: ChatMessageRecord
    ai_message: ChatMessageRecord


class ChatService:
    def __init__(self, repository: Repository, llm: LanguageModel, settings: Settings):
        self._repo = repository
        self._llm = llm
        self._window = settings.history_window
        self._timeout_s = settings.generation_timeout_s
        self._debug = settings.pipeline_debug

    async def start_session(self, user: UserRecord, document_id: int) -> ChatSessionRecord:
        doc = await self._repo.get_document(document_id)
        if not doc or doc.user_id != user.id:
            raise DocumentNotFound(document_id)
        if doc.processing_status is not DocumentStatus.COMPLETED:
            raise DocumentNotReady(document_id, doc.processing_status.value)
        return await self._repo.create_chat_session(user.id, document_id)

    async def owned_session(self, user: UserRecord, session_id: int) -> ChatSessionRecord:
        session = await self._repo.get_session(session_id)
        if not session or session.user_id != user.id:
            raise SessionNotFound(session_id)
        return session

    async def build_prompt(self, session_id: int, content: str) -> PromptBuild:
        session = await self._repo.get_session(session_id)
        if not session:
            raise SessionNotFound(session_id)
        question = content.strip()
        user_message = await self._repo.create_message(session.id, MessageRole.USER, question)
        chunks = await self._repo.get_chunks(session.document_id)
        history = recent_history(await self._repo.get_messages(session.id), self._window)
        prompt = render_prompt(question, [c.content for c in chunks], history)
        return PromptBuild(user_message, prompt, chunk_count=len(chunks), history_count=len(history))

    async def send_message(self, session: ChatSessionRecord, content: str) -> ChatExchange:
        build = await self.build_prompt(session.id, content)
        if self._debug:
            logger.info(f"[PIPELINE][CHAT][prompt] session_id={session.id} chunks={build.chunk_count} history={build.history_count} chars={len(build.prompt)}")
        try:
            reply = await asyncio.wait_for(self._llm.complete(build.prompt), timeout=self._timeout_s)
        except asyncio.TimeoutError as e:
            logger.warning(f"[PIPELINE][CHAT][error] session_id={session.id} model call timed out after {self._timeout_s}s")
            raise ModelUnavailable("Failed to generate AI response. Please try again later.") from e
        except ModelUnavailable as e:
            logger.warning(f"[PIPELINE][CHAT][error] session_id={session.id} error={e}")
            raise
        ai_message = await self._repo.create_message(session.id, MessageRole.ASSISTANT, reply)
        if self._debug:
            logger.info(f"[PIPELINE][CHAT][done] session_id={session.id} user_message={build.user_message.id} ai_message={ai_message.id}")
        return ChatExchange(build.user_message, ai_message)
