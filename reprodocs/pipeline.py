"""Standard documentation pipeline.

One parameterized graph replaces the per-branch copies of the same build:

    commit_timestamp --+
    release_notes -----+--> archive --> verify
    docs --------------+

``build_default_pipeline`` wires real collaborators from
:class:`~reprodocs.config.PipelineSettings`; every collaborator can be
overridden, which is how the tests run the pipeline offline.
"""

from __future__ import annotations

from pathlib import Path

import httpx

from reprodocs.config import PipelineSettings
from reprodocs.core.archive import ArchiveAssembler
from reprodocs.core.cache_store import CacheStore, FileCacheStore, MemoryCacheStore
from reprodocs.core.docs_generator import (
    CommandDocumentationGenerator,
    DirectoryDocumentationGenerator,
    DocumentationGenerator,
)
from reprodocs.core.fetcher import ReleaseNotesFetcher
from reprodocs.core.scheduler import Scheduler
from reprodocs.core.timestamp import (
    CommitMetadataProvider,
    GitCommitMetadataProvider,
    TimestampResolver,
)
from reprodocs.models.stages import StageDefinition
from reprodocs.stages import (
    AssembleArchiveStage,
    BaseStage,
    FetchReleaseNotesStage,
    GenerateDocsStage,
    ResolveTimestampStage,
    VerifyArchiveStage,
)


def build_default_pipeline(
    settings: PipelineSettings,
    *,
    metadata_provider: CommitMetadataProvider | None = None,
    cache_store: CacheStore | None = None,
    http_client: httpx.Client | None = None,
    docs_generator: DocumentationGenerator | None = None,
    expected_sha256: str | None = None,
    refresh_notes: bool = False,
    run_docs_command: bool = True,
    write_archive: bool = True,
) -> list[BaseStage]:
    """Build the five stages of the standard pipeline.

    Parameters
    ----------
    settings:
        Environment-driven configuration.
    metadata_provider:
        Commit metadata source; defaults to ``git`` in ``settings.source_dir``.
    cache_store:
        Release-notes cache; defaults to a FileCacheStore at
        ``settings.cache_dir`` (raises CacheStoreError when unusable).
    http_client:
        Client for the notes endpoint, mostly for tests.
    docs_generator:
        Documentation backend; defaults to running ``settings.docs_command``
        or, with ``run_docs_command=False``, collecting an existing
        ``settings.docs_output_dir``.
    expected_sha256:
        Digest the verify stage must reproduce.
    write_archive:
        Write the verified archive to ``settings.archive_path``.
    """
    provider = metadata_provider or GitCommitMetadataProvider(settings.source_dir)
    store = cache_store if cache_store is not None else FileCacheStore(settings.cache_dir)
    fetcher = ReleaseNotesFetcher(
        store,
        settings.notes_url,
        timeout=settings.fetch_timeout_seconds,
        max_age_seconds=settings.cache_max_age_seconds,
        client=http_client,
    )
    if docs_generator is None:
        if run_docs_command:
            docs_generator = CommandDocumentationGenerator(
                settings.docs_command,
                settings.docs_output_dir,
                timeout=settings.run_timeout_seconds,
            )
        else:
            docs_generator = DirectoryDocumentationGenerator(settings.docs_output_dir)
    assembler = ArchiveAssembler(include_build_info=settings.include_build_info)

    return [
        ResolveTimestampStage(TimestampResolver(provider)),
        FetchReleaseNotesStage(
            fetcher,
            archive_path=settings.notes_archive_path,
            refresh=refresh_notes,
            timeout_seconds=settings.notes_stage_timeout_seconds,
        ),
        GenerateDocsStage(
            docs_generator,
            settings.source_dir,
            prefix=settings.docs_archive_prefix,
        ),
        AssembleArchiveStage(assembler, archive_name=Path(settings.archive_path).name),
        VerifyArchiveStage(
            assembler,
            expected_sha256=expected_sha256,
            output_path=Path(settings.archive_path) if write_archive else None,
        ),
    ]


def default_stage_definitions(settings: PipelineSettings | None = None) -> list[StageDefinition]:
    """The graph of the standard pipeline, without running anything."""
    settings = settings or PipelineSettings()
    stages = build_default_pipeline(
        settings,
        metadata_provider=GitCommitMetadataProvider(settings.source_dir),
        cache_store=MemoryCacheStore(),
        docs_generator=DirectoryDocumentationGenerator(settings.docs_output_dir),
        write_archive=False,
    )
    return [stage.definition for stage in stages]


def build_scheduler(stages: list[BaseStage], settings: PipelineSettings) -> Scheduler:
    """A scheduler sized and timed by *settings*."""
    return Scheduler(
        stages,
        max_workers=settings.max_workers,
        run_timeout_seconds=settings.run_timeout_seconds,
    )

