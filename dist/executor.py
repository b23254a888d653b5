"""Reference task executor distributed to workers.

Deployments replace this file with the site-specific executor. The hub only
hashes and ships it; workers import it and call ``run``.
"""

import asyncio


async def run(task_type, payload, report_progress):
    items = payload.get("meters") or []
    total = len(items)
    for index, item in enumerate(items, start=1):
        await asyncio.sleep(0)
        label = str(item.get("meterNo", index)) if isinstance(item, dict) else str(item)
        await report_progress({"current": index, "total": total, "lastItem": label})
    return {"status": "success", "taskType": task_type, "count": total, "success": total, "failed": 0}
