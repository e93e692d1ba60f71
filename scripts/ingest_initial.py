"""Script to ingest sample reference documents into the memory store."""

import asyncio

from memory_core.core.config import settings
from memory_core.core.dependencies import ServiceContainer

SAMPLE_SESSION = "sample-session"

SAMPLE_DOCUMENTS = [
    {
        "name": "Introduction to RAG Systems",
        "content": "Retrieval-Augmented Generation (RAG) combines the power of information retrieval with language models. "
        "It allows systems to access external knowledge bases and provide accurate, up-to-date answers. "
        "RAG systems typically consist of a retriever that finds relevant documents and a generator that creates responses.",
    },
    {
        "name": "Conversation Memory",
        "content": "An assistant with conversation memory keeps the most recent turns verbatim and recalls older turns by similarity. "
        "Recent turns preserve the flow of the dialogue, while semantic recall brings back facts mentioned long ago. "
        "Uploaded reference documents are shared across every conversation.",
    },
    {
        "name": "Cosine Similarity",
        "content": "Cosine similarity measures the angle between two vectors and ignores their length. "
        "Identical directions score 1, orthogonal vectors score 0 and opposite directions score -1. "
        "Embedding models map texts with similar meaning to vectors with high cosine similarity.",
    },
]


async def ingest_sample_documents() -> None:
    """Register, embed and store the sample documents."""
    services = ServiceContainer(settings)
    await services.initialize()

    try:
        for doc in SAMPLE_DOCUMENTS:
            document_id = await services.registry.create_document(
                session_id=SAMPLE_SESSION,
                name=doc["name"],
                file_type="text/plain",
                file_size=len(doc["content"].encode("utf-8")),
            )
            document = await services.ingestor.ingest_text(document_id, doc["content"])
            print(f"Ingested document: {doc['name']} ({document.chunk_count} chunks)")

        stats = await services.registry.stats()
        print(f"\nStore now holds {stats['chunks']['document']} document chunks")
    finally:
        await services.shutdown()


if __name__ == "__main__":
    asyncio.run(ingest_sample_documents())
