from __future__ import annotations

from conftest import FakeEmbedder, make_document
from lectern.core.ids import new_uuid
from lectern.core.time import now_utc_iso
from lectern.domain.models.chunk import Chunk, ChunkSearchFilters
from lectern.domain.models.document import DOCUMENT_INGESTING, DOCUMENT_READY

EMBEDDER = FakeEmbedder()


def _chunks(document_id: str, texts_and_pages: list[tuple[str, int, int]], *, start: int = 0) -> list[Chunk]:
    out: list[Chunk] = []
    for offset, (text, page_start, page_end) in enumerate(texts_and_pages):
        out.append(
            Chunk(
                id=new_uuid(),
                document_id=document_id,
                chunk_index=start + offset,
                page_start=page_start,
                page_end=page_end,
                text=text,
                token_count=len(text) // 4,
                source_ref=f"Doc p{page_start}",
                created_at=now_utc_iso(),
                embedding=EMBEDDER.embed(text),
            )
        )
    return out


def test_put_is_noop_for_empty_input(chunk_store) -> None:
    assert chunk_store.put([]) == []


def test_search_returns_only_ready_documents(repos, chunk_store) -> None:
    ready = make_document(repos.documents, title="Ready book", status=DOCUMENT_READY)
    pending = make_document(repos.documents, title="Pending book", status=DOCUMENT_INGESTING)
    chunk_store.put(_chunks(ready.id, [("newton laws of motion", 1, 1)]))
    chunk_store.put(_chunks(pending.id, [("newton laws of motion", 1, 1)]))

    hits = chunk_store.search(EMBEDDER.embed("newton motion"), 10)

    assert [hit.chunk.document_id for hit in hits] == [ready.id]
    assert hits[0].document_title == "Ready book"
    assert 0.0 <= hits[0].distance < 1.0


def test_search_orders_by_ascending_distance_and_honours_limit(repos, chunk_store) -> None:
    doc = make_document(repos.documents, status=DOCUMENT_READY)
    chunk_store.put(
        _chunks(
            doc.id,
            [
                ("photosynthesis in green plants", 1, 1),
                ("newton laws of motion and force", 2, 2),
                ("newton force equals mass times acceleration", 3, 3),
            ],
        )
    )

    hits = chunk_store.search(EMBEDDER.embed("newton force"), 2)

    assert len(hits) == 2
    assert hits[0].distance <= hits[1].distance
    assert {hit.chunk.chunk_index for hit in hits} == {1, 2}


def test_page_range_filter_is_inclusive(repos, chunk_store) -> None:
    doc = make_document(repos.documents, status=DOCUMENT_READY)
    other = make_document(repos.documents, status=DOCUMENT_READY)
    chunk_store.put(
        _chunks(
            doc.id,
            [
                ("energy chapter intro", 1, 2),
                ("energy conservation", 3, 3),
                ("energy transfer", 4, 5),
                ("energy appendix", 5, 6),
            ],
        )
    )
    chunk_store.put(_chunks(other.id, [("energy elsewhere", 3, 3)]))

    hits = chunk_store.search(
        EMBEDDER.embed("energy"),
        10,
        ChunkSearchFilters(document_id=doc.id, page_start=3, page_end=5),
    )

    assert sorted(hit.chunk.chunk_index for hit in hits) == [1, 2]
    assert all(hit.chunk.document_id == doc.id for hit in hits)


def test_document_filter_wins_over_education_level(repos, chunk_store) -> None:
    lycee = make_document(repos.documents, status=DOCUMENT_READY, education_level="high_school")
    college = make_document(repos.documents, status=DOCUMENT_READY, education_level="secondary")
    chunk_store.put(_chunks(lycee.id, [("cells and tissues", 1, 1)]))
    chunk_store.put(_chunks(college.id, [("cells and tissues", 1, 1)]))

    by_level = chunk_store.search(
        EMBEDDER.embed("cells"),
        10,
        ChunkSearchFilters(education_level="secondary"),
    )
    by_doc = chunk_store.search(
        EMBEDDER.embed("cells"),
        10,
        ChunkSearchFilters(document_id=lycee.id, education_level="secondary"),
    )

    assert [hit.chunk.document_id for hit in by_level] == [college.id]
    assert [hit.chunk.document_id for hit in by_doc] == [lycee.id]


def test_document_filter_on_non_ready_document_returns_nothing(repos, chunk_store) -> None:
    doc = make_document(repos.documents, status=DOCUMENT_INGESTING)
    chunk_store.put(_chunks(doc.id, [("waves and sound", 1, 1)]))

    assert chunk_store.search(EMBEDDER.embed("waves"), 5, ChunkSearchFilters(document_id=doc.id)) == []


def test_delete_from_index_removes_rows_and_points(repos, chunk_store, vector_store) -> None:
    doc = make_document(repos.documents, status=DOCUMENT_READY)
    chunk_store.put(_chunks(doc.id, [(f"chunk {i} about light", 1, 1) for i in range(5)]))

    removed = chunk_store.delete_from_index(doc.id, 3)

    assert removed == 2
    assert [chunk.chunk_index for chunk in chunk_store.list_for_document(doc.id)] == [0, 1, 2]
    assert chunk_store.count(doc.id) == 3
    assert vector_store.count_points(doc.id) == 3


def test_reingesting_a_slot_keeps_rows_and_points_aligned(repos, chunk_store, vector_store) -> None:
    doc = make_document(repos.documents, status=DOCUMENT_READY)
    chunk_store.put(_chunks(doc.id, [("first draft", 1, 1), ("second draft", 1, 1)]))
    chunk_store.delete_from_index(doc.id, 1)
    chunk_store.put(_chunks(doc.id, [("second draft again", 2, 2)], start=1))

    assert vector_store.count_points(doc.id) == 2
    assert chunk_store.count(doc.id) == 2


def test_delete_document_clears_everything(repos, chunk_store, vector_store) -> None:
    doc = make_document(repos.documents, status=DOCUMENT_READY)
    chunk_store.put(_chunks(doc.id, [("atoms", 1, 1), ("molecules", 2, 2)]))

    chunk_store.delete_document(doc.id)

    assert chunk_store.count(doc.id) == 0
    assert vector_store.count_points(doc.id) == 0
    assert chunk_store.search(EMBEDDER.embed("atoms"), 5) == []
