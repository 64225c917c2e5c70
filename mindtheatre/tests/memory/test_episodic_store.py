import pytest

from mindtheatre.libs.embeddings import EmbeddingError, HashingEmbedder
from mindtheatre.libs.memory import EmbeddingDimensionError, EpisodicMemoryStore, should_write_memory
from mindtheatre.libs.persistence import InMemoryRepository
from mindtheatre.libs.schemas.records import EpisodicMemoryRecord

DIM = 64
SUBSTANTIVE = "This is a sufficiently long reflective reply."


@pytest.mark.parametrize(
    ("text", "agent", "expected"),
    [
        ("ok", None, False),
        ("Error: failed", None, False),
        ("error while contacting the model today", None, True),
        ("Errors are how I learn, and I welcome every one of them.", "Ego", True),
        ("Error-free living is impossible, so let us forgive ourselves tonight.", "Ego", True),
        ("ERROR: upstream model unavailable right now", None, False),
        ("none", None, False),
        ("   ", None, False),
        (SUBSTANTIVE, None, True),
        (SUBSTANTIVE, "router", False),
        (SUBSTANTIVE, "System", False),
        (SUBSTANTIVE, "Ego", True),
    ],
)
def test_should_write_memory(text, agent, expected):
    assert should_write_memory(text, agent) is expected


def _store(repository: InMemoryRepository, embedder=None) -> EpisodicMemoryStore:
    return EpisodicMemoryStore(repository, embedder or HashingEmbedder(DIM), dimension=DIM)


@pytest.mark.asyncio
async def test_written_memory_is_recalled_by_its_own_text(repository):
    store = _store(repository)
    record = await store.write("Id", SUBSTANTIVE, valence=0.2, arousal=0.3, user_prompt="how are you?")
    assert record is not None

    recalled = await store.retrieve("Id", SUBSTANTIVE, k=3)

    assert [item.record.id for item in recalled] == [record.id]
    assert recalled[0].distance == pytest.approx(0.0, abs=1e-9)
    assert recalled[0].as_recollection() == f"Recalled memory: {SUBSTANTIVE} (In response to: how are you?)"


@pytest.mark.asyncio
async def test_retrieve_is_bounded_scoped_and_ordered(repository):
    store = _store(repository)
    texts = [
        "the garden is blooming with red roses again",
        "the garden needs water and careful pruning soon",
        "I am worried about tomorrow's exam and my grades",
        "a quiet evening walk along the river felt good",
    ]
    for text in texts:
        await store.write("Ego", text)
    await store.write("Superego", "the garden is blooming with red roses again")

    recalled = await store.retrieve("Ego", "roses blooming in the garden", k=2)

    assert len(recalled) == 2
    assert all(item.record.agent_name == "Ego" for item in recalled)
    assert recalled[0].distance <= recalled[1].distance


@pytest.mark.asyncio
async def test_retrieve_updates_recall_bookkeeping(repository):
    store = _store(repository)
    record = await store.write("Id", SUBSTANTIVE)
    await store.retrieve("Id", SUBSTANTIVE)
    await store.retrieve("Id", SUBSTANTIVE)

    stored = await repository.list_memories("Id")
    assert stored[0].id == record.id
    assert stored[0].recall_count == 2
    assert stored[0].last_recalled_at is not None


@pytest.mark.asyncio
async def test_gated_write_is_skipped(repository):
    store = _store(repository)
    assert await store.write("Id", "ok") is None
    assert await repository.list_memories("Id") == []


class _FailingEmbedder:
    dimension = DIM

    async def embed(self, text):
        raise EmbeddingError("embedding service unavailable")

    async def aclose(self):
        return None


@pytest.mark.asyncio
async def test_embedding_failure_abandons_write_and_empties_retrieval(repository):
    store = _store(repository, _FailingEmbedder())

    assert await store.write("Id", SUBSTANTIVE) is None
    assert await repository.list_memories("Id") == []
    assert await store.retrieve("Id", SUBSTANTIVE) == []


@pytest.mark.asyncio
async def test_mismatched_vector_length_is_rejected(repository):
    store = _store(repository)
    bad = EpisodicMemoryRecord(agent_name="Id", text=SUBSTANTIVE, embedding=[0.1] * (DIM - 1))

    with pytest.raises(EmbeddingDimensionError):
        await store.insert(bad)
    assert await repository.list_memories("Id") == []


def test_store_rejects_embedder_with_other_dimension(repository):
    with pytest.raises(EmbeddingDimensionError):
        EpisodicMemoryStore(repository, HashingEmbedder(DIM + 1), dimension=DIM)


@pytest.mark.asyncio
async def test_retrieve_is_empty_after_bulk_clear(repository):
    store = _store(repository)
    await store.write("Id", SUBSTANTIVE)
    await store.write("Ego", SUBSTANTIVE)
    await repository.clear_all()

    assert await store.retrieve("Id", SUBSTANTIVE) == []
    assert await store.retrieve("Ego", "anything at all") == []
