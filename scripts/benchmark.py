"""Performance benchmarking script for the memory service."""

import asyncio
import time
from typing import Dict, List

import httpx


def summarize(latencies: List[float], total: int, errors: int, total_time: float) -> Dict:
    if latencies:
        ordered = sorted(latencies)
        avg_latency = sum(ordered) / len(ordered)
        p50 = ordered[len(ordered) // 2]
        p95 = ordered[int(len(ordered) * 0.95)]
        p99 = ordered[int(len(ordered) * 0.99)]
    else:
        avg_latency = p50 = p95 = p99 = 0

    return {
        "total_requests": total,
        "successful": len(latencies),
        "errors": errors,
        "total_time_seconds": total_time,
        "requests_per_second": total / total_time if total_time > 0 else 0,
        "avg_latency_seconds": avg_latency,
        "p50_latency_seconds": p50,
        "p95_latency_seconds": p95,
        "p99_latency_seconds": p99,
    }


async def benchmark_context(
    base_url: str = "http://localhost:8000",
    num_requests: int = 100,
    concurrent: int = 10,
    session_id: str = "sample-session",
) -> Dict:
    """
    Benchmark context retrieval.

    Args:
        base_url: Base URL of the memory service.
        num_requests: Total number of context requests.
        concurrent: Number of concurrent requests.
        session_id: Session to retrieve context for.

    Returns:
        Benchmark results.
    """
    queries = [
        "What is RAG?",
        "How does conversation memory work?",
        "Explain cosine similarity",
        "What are embeddings?",
        "What did we talk about earlier?",
    ] * (num_requests // 5 + 1)
    queries = queries[:num_requests]

    latencies = []
    errors = 0

    async def run_request(client: httpx.AsyncClient, query: str) -> None:
        nonlocal errors
        try:
            start = time.time()
            response = await client.post(
                f"{base_url}/api/context",
                json={"session_id": session_id, "query_text": query},
            )
            latency = time.time() - start

            if response.status_code == 200:
                latencies.append(latency)
                if response.json()["degraded"]:
                    print(f"Degraded context for: {query}")
            else:
                errors += 1
        except httpx.HTTPError as e:
            print(f"Error: {e}")
            errors += 1

    start_time = time.time()
    async with httpx.AsyncClient(timeout=30.0) as client:
        for i in range(0, len(queries), concurrent):
            batch = queries[i:i + concurrent]
            await asyncio.gather(*[run_request(client, q) for q in batch])

    return summarize(latencies, num_requests, errors, time.time() - start_time)


async def benchmark_document_search(
    base_url: str = "http://localhost:8000",
    num_requests: int = 100,
    dimensions: int = 1536,
) -> Dict:
    """
    Benchmark global document search with synthetic query vectors.

    Args:
        base_url: Base URL of the memory service.
        num_requests: Number of searches.
        dimensions: Query vector dimensionality; must match stored chunks.

    Returns:
        Benchmark results.
    """
    latencies = []
    errors = 0

    start_time = time.time()
    async with httpx.AsyncClient(timeout=30.0) as client:
        for i in range(num_requests):
            query_vector = [0.0] * dimensions
            query_vector[i % dimensions] = 1.0
            try:
                start = time.time()
                response = await client.post(
                    f"{base_url}/api/search/documents",
                    json={"query_vector": query_vector, "top_k": 5},
                )
                if response.status_code == 200:
                    latencies.append(time.time() - start)
                else:
                    errors += 1
            except httpx.HTTPError as e:
                print(f"Error: {e}")
                errors += 1

    return summarize(latencies, num_requests, errors, time.time() - start_time)


if __name__ == "__main__":
    import json

    print("Running memory service benchmarks...")

    context_results = asyncio.run(benchmark_context())
    print("\nContext Retrieval Results:")
    print(json.dumps(context_results, indent=2))

    search_results = asyncio.run(benchmark_document_search())
    print("\nDocument Search Results:")
    print(json.dumps(search_results, indent=2))
