"""Plugin a: a counter that starts at 0 and is bumped once c is up."""

import asyncio


def start(container):
    container.services.provide("a", 0)
    yield container.await_plugins("c")
    container.services.provide("a_saw_c", container.c)
    yield asyncio.sleep(0.02)
    container.services.provide("a", container.a + 1, replace=True)


async def end(container):
    await asyncio.sleep(0.01)
    container.services.withdraw("a_saw_c")
    container.services.withdraw("a")
