import asyncio
import json
import logging

from backend.app import schemas
from backend.app.store import EventStore
from shared.database import engine

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")


async def import_json(json_path: str, batch_size: int = 500) -> int:
    store = EventStore(engine)
    store.init_schema()

    with open(json_path, encoding="utf-8") as fh:
        request = schemas.EventsIngestRequest(**json.load(fh))

    inserted = 0
    for start in range(0, len(request.events), batch_size):
        inserted += await store.insert_batch(request.events[start:start + batch_size])
    return inserted

if __name__ == "__main__":
    import sys
    asyncio.run(import_json(sys.argv[1]))
