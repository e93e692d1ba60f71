"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

context_requests_total = Counter(
    "memory_context_requests_total", "Total number of context assemblies")
context_degraded_total = Counter(
    "memory_context_degraded_total",
    "Context assemblies that fell back to the flash window")
context_latency_seconds = Histogram(
    "memory_context_latency_seconds", "Context assembly latency in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0])

search_requests_total = Counter(
    "memory_search_requests_total", "Total number of similarity searches",
    ["scope"])
search_latency_seconds = Histogram(
    "memory_search_latency_seconds", "Similarity search latency in seconds",
    ["scope"], buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0])

chunk_writes_total = Counter(
    "memory_chunk_writes_total", "Total number of chunks written",
    ["source_type"])
chunk_write_errors_total = Counter(
    "memory_chunk_write_errors_total", "Chunk writes rejected by validation")

embedding_tokens_total = Counter(
    "memory_embedding_tokens_total", "Tokens consumed by embedding requests")

ingestion_total = Counter(
    "memory_ingestion_total", "Document ingestions by outcome", ["outcome"])
ingestion_duration_seconds = Histogram(
    "memory_ingestion_duration_seconds", "Document ingestion duration",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0])
