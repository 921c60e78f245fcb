"""Plugin c: a value that keeps changing after c is up."""

import asyncio


async def _increment_later(container, delay):
    await asyncio.sleep(delay)
    container.services.provide("c", container.c + 1, replace=True)


async def start(container):
    container.services.provide("c", 2)
    delay = container.options("c").get("increment_after", 0.2)
    container.services.provide(
        "c_increment", asyncio.create_task(_increment_later(container, delay))
    )
    await asyncio.sleep(0.01)


async def end(container):
    await container.services.withdraw("c_increment")
    container.services.withdraw("c")
