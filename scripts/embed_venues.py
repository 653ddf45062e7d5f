#!/usr/bin/env python3
"""
Backfill venue embeddings.

Encodes name + page text for every active venue that has no stored vector
(or all of them with --all) and upserts into venue_embeddings. The API
loads these into its in-memory EmbeddingStore at startup.

Requires the embeddings extra (sentence-transformers).

Usage:
    PYTHONPATH=. python3 scripts/embed_venues.py [--all] [--batch-size 32]
"""

import argparse
import asyncio
import logging
import time

logger = logging.getLogger("embed_venues")


async def run(args: argparse.Namespace) -> None:
    from services.discovery.config import settings
    from services.discovery.db.embeddings import PgVenueEmbeddingRepository
    from services.discovery.db.engine import standalone_pool
    from services.discovery.db.venues import PgVenueRepository
    from services.discovery.embedding.encoder import VenueEncoder, venue_text

    encoder = VenueEncoder()
    async with standalone_pool() as pool:
        venues = await PgVenueRepository(pool).catalog()
        repo = PgVenueEmbeddingRepository(pool)

        ids = [v.venue_id for v in venues]
        todo_ids = set(ids if args.all else await repo.missing(ids))
        todo = [v for v in venues if v.venue_id in todo_ids]
        logger.info("%d venues, %d to embed with %s", len(venues), len(todo), encoder.model_name)

        t0 = time.monotonic()
        written = 0
        for start in range(0, len(todo), args.batch_size):
            chunk = todo[start:start + args.batch_size]
            vectors = encoder.embed_batch(
                [venue_text(v.name, v.raw_markdown) for v in chunk],
                batch_size=args.batch_size,
            )
            written += await repo.upsert(
                zip((v.venue_id for v in chunk), vectors), model=settings.embedding_model
            )
            logger.info("Embedded %d/%d", written, len(todo))

        logger.info("Done: %d embeddings in %.0fs", written, time.monotonic() - t0)


def main() -> None:
    parser = argparse.ArgumentParser(description="Backfill venue embeddings")
    parser.add_argument("--all", action="store_true", help="Re-embed venues that already have a vector")
    parser.add_argument("--batch-size", type=int, default=32)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
