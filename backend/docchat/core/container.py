"""Process-wide service graph, built once at startup and handed to the routes."""
from dataclasses import dataclass
from typing import Optional

from docchat.core.config import Settings
from docchat.db.memdb import InMemoryRepository
from docchat.db.repository import Repository
from docchat.db.sql_repository import SqlRepository
from docchat.services.chat import ChatService
from docchat.services.identity import TokenVerifier
from docchat.services.llm import GeminiLanguageModel, LanguageModel
from docchat.services.storage import BlobStore, build_blob_store
from docchat.services.tasks import IngestionPipeline, IngestionRunner


@dataclass
class Services:
    settings: Settings
    repository: Repository
    blob_store: BlobStore
    identity: TokenVerifier
    llm: LanguageModel
    pipeline: IngestionPipeline
    runner: IngestionRunner
    chat: ChatService

    async def start(self) -> None:
        await self.repository.initialize()
        await self.runner.start()

    async def stop(self) -> None:
        await self.runner.stop()
        await self.repository.close()


def build_repository(settings: Settings) -> Repository:
    if settings.use_in_memory:
        return InMemoryRepository()
    return SqlRepository(settings.database_url)


def build_services(
    settings: Settings,
    *,
    repository: Optional[Repository] = None,
    blob_store: Optional[BlobStore] = None,
    identity: Optional[TokenVerifier] = None,
    llm: Optional[LanguageModel] = None,
) -> Services:
    repository = repository or build_repository(settings)
    llm = llm or GeminiLanguageModel.from_settings(settings)
    pipeline = IngestionPipeline(repository, settings)
    return Services(
        settings=settings,
        repository=repository,
        blob_store=blob_store or build_blob_store(settings),
        identity=identity or TokenVerifier.from_settings(settings),
        llm=llm,
        pipeline=pipeline,
        runner=IngestionRunner.from_settings(pipeline, settings),
        chat=ChatService(repository, llm, settings),
    )
