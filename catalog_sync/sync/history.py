"""Decide inserts and history appends for incoming records."""
import asyncio
import logging
from concurrent.futures import Executor, ProcessPoolExecutor
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence

from catalog_sync.parse.models import (
    CatalogRecord,
    InsertAction,
    MergePlan,
    Snapshot,
    UpdateAction,
)

logger = logging.getLogger(__name__)


def append_if_new(
    incoming: Sequence[Snapshot], stored: Optional[Sequence[dict[str, Any]]]
) -> list[dict[str, Any]]:
    """Stored sequence plus every incoming snapshot whose hash is not in it.

    Never mutates or reorders the stored entries.
    """
    combined = list(stored or [])
    seen = {entry.get("hash") for entry in combined if isinstance(entry, dict)}
    for snapshot in incoming:
        if snapshot.hash not in seen:
            combined.append(snapshot.model_dump(mode="json"))
            seen.add(snapshot.hash)
    return combined


def plan_record(
    record: CatalogRecord, stored: Optional[Mapping[str, Any]]
) -> InsertAction | UpdateAction | None:
    """InsertAction, UpdateAction or None when nothing changed."""
    if stored is None:
        return InsertAction(record=record)

    stored_pricing = stored.get("pricing") or []
    stored_inventory = stored.get("inventory") or []
    pricing = append_if_new(record.pricing, stored_pricing)
    inventory = append_if_new(record.inventory, stored_inventory)

    if len(pricing) > len(stored_pricing) or len(inventory) > len(stored_inventory):
        fields = record.model_dump(mode="json", exclude={"part_number", "pricing", "inventory"})
        return UpdateAction(
            part_number=record.part_number, pricing=pricing, inventory=inventory, fields=fields
        )
    return None


def plan_chunk(records: Sequence[CatalogRecord], stored: Mapping[str, Mapping[str, Any]]) -> MergePlan:
    """Pure comparison of one chunk against a read-only stored lookup."""
    plan = MergePlan()
    for record in records:
        action = plan_record(record, stored.get(record.part_number))
        if isinstance(action, InsertAction):
            plan.inserts.append(action)
        elif isinstance(action, UpdateAction):
            plan.updates.append(action)
        else:
            plan.unchanged += 1
    return plan


def dedupe_records(records: Sequence[CatalogRecord]) -> list[CatalogRecord]:
    """One record per part number, last occurrence wins."""
    by_part: dict[str, CatalogRecord] = {}
    for record in records:
        by_part.pop(record.part_number, None)
        by_part[record.part_number] = record
    return list(by_part.values())


def split_chunks(records: Sequence[CatalogRecord], parts: int) -> list[list[CatalogRecord]]:
    """Partition into at most `parts` contiguous, non-empty chunks."""
    if not records:
        return []
    parts = max(1, min(parts, len(records)))
    size = -(-len(records) // parts)
    return [list(records[i : i + size]) for i in range(0, len(records), size)]


async def plan_merge(
    records: Sequence[CatalogRecord],
    stored: Mapping[str, Mapping[str, Any]],
    workers: int = 1,
    executor: Optional[Executor] = None,
) -> MergePlan:
    """Map-reduce the comparison over `workers` chunks.

    Each chunk sees a read-only view of the stored lookup; with a process
    pool every worker gets its own pickled copy.
    """
    incoming = dedupe_records(records)
    if len(incoming) != len(records):
        logger.info(f"[MERGE] Dropped {len(records) - len(incoming)} duplicate part numbers")

    snapshot = MappingProxyType(dict(stored))
    chunks = split_chunks(incoming, workers)
    if len(chunks) <= 1 and executor is None:
        plan = plan_chunk(incoming, snapshot)
    else:
        loop = asyncio.get_running_loop()
        owns_executor = executor is None
        pool = executor or ProcessPoolExecutor(max_workers=len(chunks))
        # Process pools pickle arguments, mapping proxies cannot be pickled
        lookup = dict(stored) if isinstance(pool, ProcessPoolExecutor) else snapshot
        try:
            results = await asyncio.gather(
                *(loop.run_in_executor(pool, plan_chunk, chunk, lookup) for chunk in chunks)
            )
        finally:
            if owns_executor:
                pool.shutdown(wait=True)
        plan = MergePlan()
        for result in results:
            plan.extend(result)

    logger.info(
        f"[MERGE] {len(plan.inserts)} inserts, {len(plan.updates)} updates, "
        f"{plan.unchanged} unchanged across {max(len(chunks), 1)} chunks"
    )
    return plan
