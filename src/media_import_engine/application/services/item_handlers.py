"""Per-mode item processing: produce a playable URL, then write the catalog record."""

from __future__ import annotations

import logging
from typing import Protocol

from media_import_engine.application.services.byte_counting import ByteCountingStream
from media_import_engine.application.services.totals_aggregator import TotalsAggregator
from media_import_engine.domain.entities import CatalogEntry, ImportJob, ImportJobItem
from media_import_engine.domain.import_types import ItemStatus
from media_import_engine.domain.ports import (
    CatalogWriter,
    DestinationStore,
    ImportJobRepository,
    SourceStore,
)
from media_import_engine.domain.storage_models import guess_content_type, title_from_key

logger = logging.getLogger(__name__)


class ItemHandler(Protocol):
    """Mode-specific processing of one claimed item."""

    async def process(self, job: ImportJob, item: ImportJobItem) -> None:
        """Drive the item to `completed` or raise."""


class _CatalogItemHandler:
    def __init__(
        self,
        repository: ImportJobRepository,
        catalog: CatalogWriter,
        source: SourceStore,
    ) -> None:
        self._repository = repository
        self._catalog = catalog
        self._source = source

    async def _set_status(self, item: ImportJobItem, status: ItemStatus) -> None:
        item.status = status
        await self._repository.save_item(item)

    async def _complete_with_catalog(
        self,
        job: ImportJob,
        item: ImportJobItem,
        url: str,
    ) -> None:
        result = await self._catalog.insert_if_absent(
            CatalogEntry(
                title=title_from_key(item.source_key, job.settings.default_title_mode),
                url=url,
                visibility=job.settings.visibility.value,
                category_id=job.settings.category_id,
            )
        )
        if not result.created:
            logger.info(
                "Catalog already holds %s, reusing video %s for item %s.",
                url,
                result.video_id,
                item.item_id,
            )
        item.dest_url = url
        item.video_id = result.video_id
        item.error = None
        await self._set_status(item, ItemStatus.COMPLETED)


class RemoteLinkHandler(_CatalogItemHandler):
    """Register the source object's own URL without moving bytes."""

    async def process(self, job: ImportJob, item: ImportJobItem) -> None:
        await self._set_status(item, ItemStatus.IMPORTING)

        if item.source_size_bytes is None:
            try:
                head = await self._source.head_object(item.source_key)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Size backfill failed for '%s': %s", item.source_key, exc)
            else:
                if head.content_length > 0:
                    item.source_size_bytes = head.content_length

        url = await self._source.build_url(
            item.source_key,
            job.settings.access_mode,
            job.settings.signed_url_ttl_seconds,
        )
        await self._complete_with_catalog(job, item, url)


class StreamCopyHandler(_CatalogItemHandler):
    """Stream the object into the destination store, verify it, then register it."""

    def __init__(
        self,
        repository: ImportJobRepository,
        catalog: CatalogWriter,
        source: SourceStore,
        destination: DestinationStore,
        aggregator: TotalsAggregator,
    ) -> None:
        super().__init__(repository, catalog, source)
        self._destination = destination
        self._aggregator = aggregator

    async def process(self, job: ImportJob, item: ImportJobItem) -> None:
        await self._set_status(item, ItemStatus.VALIDATING)
        head = await self._source.head_object(item.source_key)
        if head.content_length > 0:
            item.source_size_bytes = head.content_length
        size = item.source_size_bytes or 0

        dest_path = self._destination.build_path(item.source_key)
        item.dest_key = dest_path
        await self._set_status(item, ItemStatus.COPYING)

        job_id = job.job_id
        stream = ByteCountingStream(
            self._source.open_read_stream(item.source_key),
            on_chunk=lambda length: self._aggregator.add(job_id, bytes_copied=length),
        )
        try:
            await self._destination.put(
                dest_path,
                stream,
                guess_content_type(item.source_key, head.content_type),
                size or None,
            )
        finally:
            await stream.aclose()

        await self._destination.verify(dest_path, size)

        item.dest_url = self._destination.build_public_url(dest_path)
        await self._set_status(item, ItemStatus.IMPORTING)
        await self._complete_with_catalog(job, item, item.dest_url)


__all__ = ["ItemHandler", "RemoteLinkHandler", "StreamCopyHandler"]
