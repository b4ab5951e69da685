"""Minimal toolrpc example: mark a service and call it in-process.

This is the quickest way to get started.  Procedures are dispatched
directly, with no protocol runtime or transport involved.

Run::

    python examples/hello_world.py
"""

from __future__ import annotations

import asyncio

from toolrpc import Dispatcher, MetadataRegistry, ValidationError, number, string

# 1. Create a registry to hold the markers.
tools = MetadataRegistry()


# 2. Mark methods as procedures and describe their parameters.
class Greeter:
    """A simple greeting service."""

    @tools.procedure("Return a greeting")
    @tools.param("name", string("Who to greet"))
    def greet(self, name: str) -> str:
        return f"Hello, {name}!"

    @tools.procedure("Add two numbers")
    @tools.param("a", number())
    @tools.param("b", number())
    async def add(self, a: float, b: float) -> float:
        return a + b


# 3. Register the class and execute procedures by name.
async def _run() -> None:
    dispatcher = Dispatcher(tools)
    dispatcher.register(Greeter)

    print(await dispatcher.execute("greet", {"name": "World"}))  # Hello, World!
    print(await dispatcher.execute("add", {"a": 2.5, "b": 3.5}))  # 6.0

    try:
        await dispatcher.execute("add", {"a": 1})
    except ValidationError as e:
        print(e.errors[0])  # Missing required parameter: b


def main() -> None:
    """Run the example."""
    asyncio.run(_run())


if __name__ == "__main__":
    main()
