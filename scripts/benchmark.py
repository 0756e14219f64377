"""Performance benchmarking script for the retrieval endpoint."""

import argparse
import asyncio
import json
import time
from typing import Dict

import httpx


async def benchmark_retrieve(
    slug: str,
    base_url: str = "http://localhost:8003",
    num_queries: int = 100,
    concurrent: int = 10,
    top_k: int = 5,
) -> Dict:
    """
    Benchmark ``POST /api/retrieve`` against one ingested document.

    Args:
        slug: Page slug of an ingested document.
        base_url: Base URL of query service.
        num_queries: Total number of queries to run.
        concurrent: Number of concurrent requests.
        top_k: Matches requested per query.

    Returns:
        Benchmark results.
    """
    questions = [
        "What is this document about?",
        "Summarize the main points",
        "Which dates are mentioned?",
        "Who are the parties involved?",
        "What are the key obligations?",
    ] * (num_queries // 5 + 1)
    questions = questions[:num_queries]

    latencies = []
    errors = 0

    async def run_query(client: httpx.AsyncClient, question: str) -> None:
        nonlocal errors
        try:
            start = time.time()
            response = await client.post(
                f"{base_url}/api/retrieve",
                json={"q": question, "slug": slug, "topK": top_k},
            )
            latency = time.time() - start

            if response.status_code == 200:
                latencies.append(latency)
            else:
                errors += 1
        except httpx.HTTPError as e:
            print(f"Error: {e}")
            errors += 1

    start_time = time.time()

    async with httpx.AsyncClient(timeout=30.0) as client:
        for i in range(0, len(questions), concurrent):
            batch = questions[i:i + concurrent]
            await asyncio.gather(*[run_query(client, q) for q in batch])

    total_time = time.time() - start_time

    if latencies:
        ordered = sorted(latencies)
        avg_latency = sum(ordered) / len(ordered)
        p50 = ordered[len(ordered) // 2]
        p95 = ordered[int(len(ordered) * 0.95)]
        p99 = ordered[int(len(ordered) * 0.99)]
    else:
        avg_latency = p50 = p95 = p99 = 0

    return {
        "total_queries": num_queries,
        "successful": len(latencies),
        "errors": errors,
        "total_time_seconds": total_time,
        "queries_per_second": num_queries / total_time if total_time > 0 else 0,
        "avg_latency_seconds": avg_latency,
        "p50_latency_seconds": p50,
        "p95_latency_seconds": p95,
        "p99_latency_seconds": p99,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("slug")
    parser.add_argument("--base-url", default="http://localhost:8003")
    parser.add_argument("--queries", type=int, default=100)
    parser.add_argument("--concurrent", type=int, default=10)
    args = parser.parse_args()

    print("Running retrieval benchmark...")
    results = asyncio.run(benchmark_retrieve(
        args.slug,
        base_url=args.base_url,
        num_queries=args.queries,
        concurrent=args.concurrent,
    ))
    print(json.dumps(results, indent=2))
