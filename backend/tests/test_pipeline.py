"""Tests for the ingest pipeline."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from conftest import RecordingStore
from filerag.core.errors import DocumentNotFoundError, OperationCancelled
from filerag.ingest.dedupe import file_id
from filerag.ingest.embeddings import HashedEmbedder
from filerag.ingest.parsers import ParserRegistry, TextParser
from filerag.ingest.pipeline import IngestPipeline
from filerag.ingest.types import PageContent, ParsedDocument


class CountingStore:
    """Delegates to a real store and counts mutations."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.upserts = 0
        self.deletes = 0

    def ensure_collection(self) -> None:
        self.inner.ensure_collection()

    def upsert(self, chunks) -> None:
        self.upserts += 1
        self.inner.upsert(chunks)

    def delete_by_file_id(self, file_id: str) -> int:
        self.deletes += 1
        return self.inner.delete_by_file_id(file_id)

    def search(self, vector, top_k, filters=None):
        return self.inner.search(vector, top_k, filters)

    def list_documents(self):
        return self.inner.list_documents()

    def is_indexed(self, file_id: str, file_hash: str) -> bool:
        return self.inner.is_indexed(file_id, file_hash)


class FailingEmbedder(HashedEmbedder):
    def embed_batch(self, texts):
        if any("explode" in text for text in texts):
            raise RuntimeError("embedding backend down")
        return super().embed_batch(texts)


class PagedParser:
    extensions = (".paged",)

    def parse(self, path: Path) -> ParsedDocument:
        pages = [
            PageContent(page_number=1, content="First page talks about apples."),
            PageContent(page_number=2, content=""),
            PageContent(page_number=3, content="Third page talks about pears."),
        ]
        return ParsedDocument(content="\n\n".join(p.content for p in pages), pages=pages)


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_unchanged_file_is_skipped(settings, embedder, store, docs_dir: Path) -> None:
    counting = CountingStore(store)
    pipeline = IngestPipeline(settings, embedder, counting)
    path = _write(docs_dir / "a.txt", "Some content worth indexing.")

    assert pipeline.process_file(path) is True
    assert pipeline.process_file(path) is False
    assert counting.upserts == 1
    assert counting.deletes == 1


def test_changed_file_deletes_before_upsert(settings, embedder, docs_dir: Path) -> None:
    recording = RecordingStore(indexed=False)
    pipeline = IngestPipeline(settings, embedder, recording)
    path = _write(docs_dir / "a.txt", "Version two of the file.")

    assert pipeline.process_file(path) is True
    assert recording.calls == ["delete", "upsert"]


def test_reprocessing_replaces_chunks(settings, embedder, store, docs_dir: Path) -> None:
    pipeline = IngestPipeline(settings, embedder, store)
    path = _write(docs_dir / "a.txt", "Original text. " * 40)
    pipeline.process_file(path)
    first = store.list_documents()[0].chunk_count
    assert first > 1

    _write(path, "Short replacement.")
    assert pipeline.process_file(path) is True
    documents = store.list_documents()
    assert len(documents) == 1
    assert documents[0].chunk_count == 1


def test_chunk_records_carry_metadata(settings, embedder, docs_dir: Path) -> None:
    recording = RecordingStore()
    pipeline = IngestPipeline(settings, embedder, recording)
    path = _write(docs_dir / "Notes.TXT", "Sentence one is here. " * 30)

    pipeline.process_file(path)
    records = recording.upserted
    assert [record.metadata.chunk_index for record in records] == list(range(len(records)))
    assert len({record.id for record in records}) == len(records)
    meta = records[0].metadata
    assert meta.file_id == file_id(path)
    assert meta.file_path == str(path.resolve())
    assert meta.file_name == "Notes.TXT"
    assert meta.is_active is True
    assert meta.created_at == meta.updated_at
    assert all(len(record.embedding) == embedder.dim for record in records)


def test_paged_documents_keep_page_numbers(settings, embedder, docs_dir: Path) -> None:
    recording = RecordingStore()
    parsers = ParserRegistry([TextParser(), PagedParser()])
    pipeline = IngestPipeline(settings, embedder, recording, parsers=parsers)
    path = _write(docs_dir / "book.paged", "ignored")

    assert pipeline.process_file(path) is True
    assert [record.metadata.page_number for record in recording.upserted] == [1, 3]


def test_unparseable_extension_is_skipped(settings, embedder, docs_dir: Path) -> None:
    recording = RecordingStore()
    pipeline = IngestPipeline(settings, embedder, recording)
    path = _write(docs_dir / "image.xyz", "binary-ish")

    assert pipeline.process_file(path) is False
    assert recording.calls == []


def test_empty_file_is_skipped(settings, embedder, docs_dir: Path) -> None:
    recording = RecordingStore()
    pipeline = IngestPipeline(settings, embedder, recording)
    path = _write(docs_dir / "blank.txt", "  \n\n\t ")

    assert pipeline.process_file(path) is False
    assert recording.calls == []


def test_missing_file_raises(settings, embedder, docs_dir: Path) -> None:
    pipeline = IngestPipeline(settings, embedder, RecordingStore())
    with pytest.raises(DocumentNotFoundError):
        pipeline.process_file(docs_dir / "nope.txt")


def test_cancelled_before_work(settings, embedder, docs_dir: Path) -> None:
    recording = RecordingStore()
    pipeline = IngestPipeline(settings, embedder, recording)
    path = _write(docs_dir / "a.txt", "content")
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelled):
        pipeline.process_file(path, cancel=cancel)
    with pytest.raises(OperationCancelled):
        pipeline.reindex_all(cancel=cancel)
    assert "upsert" not in recording.calls


def test_remove_file_returns_deleted_count(settings, embedder, store, docs_dir: Path) -> None:
    pipeline = IngestPipeline(settings, embedder, store)
    path = _write(docs_dir / "a.txt", "Lots of words here. " * 40)
    pipeline.process_file(path)
    expected = store.list_documents()[0].chunk_count

    assert pipeline.remove_file(path) == expected
    assert pipeline.remove_file(path) == 0
    assert store.list_documents() == []


def test_reindex_all_removes_orphans(settings, embedder, store, docs_dir: Path) -> None:
    pipeline = IngestPipeline(settings, embedder, store)
    a = _write(docs_dir / "a.txt", "Alpha document.")
    _write(docs_dir / "nested" / "b.md", "# Beta\n\nBeta document.")
    _write(docs_dir / "ignored.csv", "x,y")

    assert pipeline.reindex_all() == 2
    assert pipeline.reindex_all() == 0

    a.unlink()
    assert pipeline.reindex_all() == 0
    assert [doc.file_name for doc in store.list_documents()] == ["b.md"]


def test_reindex_all_respects_non_recursive(settings, embedder, store, docs_dir: Path) -> None:
    settings.watch_recursive = False
    pipeline = IngestPipeline(settings, embedder, store)
    _write(docs_dir / "top.txt", "Top level.")
    _write(docs_dir / "sub" / "deep.txt", "Nested.")

    assert pipeline.reindex_all() == 1
    assert [doc.file_name for doc in store.list_documents()] == ["top.txt"]


def test_reindex_all_tolerates_per_file_failures(settings, store, docs_dir: Path) -> None:
    pipeline = IngestPipeline(settings, FailingEmbedder(dim=16), store)
    _write(docs_dir / "a.txt", "This one will explode.")
    _write(docs_dir / "b.txt", "This one is fine.")

    assert pipeline.reindex_all() == 1
    assert [doc.file_name for doc in store.list_documents()] == ["b.txt"]


def test_reindex_all_missing_directory(settings, embedder, tmp_path: Path) -> None:
    settings.watch_path = tmp_path / "does-not-exist"
    recording = RecordingStore()
    pipeline = IngestPipeline(settings, embedder, recording)

    assert pipeline.reindex_all() == 0
    assert recording.calls == ["ensure_collection"]


def test_list_supported_files_is_case_insensitive(settings, embedder, docs_dir: Path) -> None:
    pipeline = IngestPipeline(settings, embedder, RecordingStore())
    _write(docs_dir / "UPPER.MD", "x")
    _write(docs_dir / "lower.txt", "x")
    _write(docs_dir / "skip.json", "{}")

    names = [path.name for path in pipeline.list_supported_files()]
    assert names == ["UPPER.MD", "lower.txt"]


class BarrierStore(CountingStore):
    """Makes concurrent callers meet right after deleting, before either upserts."""

    def __init__(self, inner, parties: int) -> None:
        super().__init__(inner)
        self.barrier = threading.Barrier(parties)

    def delete_by_file_id(self, file_id: str) -> int:
        removed = super().delete_by_file_id(file_id)
        try:
            self.barrier.wait(timeout=0.5)
        except threading.BrokenBarrierError:
            pass
        return removed


def test_concurrent_processing_keeps_one_chunk_set(settings, embedder, store, docs_dir: Path) -> None:
    pipeline = IngestPipeline(settings, embedder, BarrierStore(store, parties=2))
    path = _write(docs_dir / "a.txt", "Only one copy of this text should be stored.")
    results: list[bool] = []
    workers = [threading.Thread(target=lambda: results.append(pipeline.process_file(path))) for _ in range(2)]

    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=5)

    assert sorted(results) == [False, True]
    assert store.list_documents()[0].chunk_count == 1
    assert pipeline.process_file(path) is False
    assert store.list_documents()[0].chunk_count == 1


def test_orphan_counter_counts_files(settings, embedder, store, docs_dir: Path) -> None:
    from filerag.core.metrics import ORPHANS_REMOVED

    pipeline = IngestPipeline(settings, embedder, store)
    a = _write(docs_dir / "a.txt", "Alpha words. " * 40)
    b = _write(docs_dir / "b.txt", "Beta words. " * 40)
    pipeline.reindex_all()
    before = ORPHANS_REMOVED._value.get()

    a.unlink()
    b.unlink()
    assert pipeline.reindex_all() == 0
    assert ORPHANS_REMOVED._value.get() - before == 2
