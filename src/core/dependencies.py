from typing import Annotated

from fastapi import Depends, Header

SYSTEM_ACTOR = "system"


async def get_actor(x_actor: Annotated[str | None, Header()] = None) -> str:
    """
    Name of the acting administrator, taken from the ``X-Actor`` header.

    Authentication happens in front of this service; the header is trusted.

    Usage:
        @router.post("/things")
        async def create_thing(actor: Actor):
            ...
    """
    actor = (x_actor or "").strip()
    return actor or SYSTEM_ACTOR


# Convenience dependency
Actor = Annotated[str, Depends(get_actor)]
