"""
Abort - the sanctioned rejection channel.

A handler raises Abort to decline a call for a business or policy reason
("not logged in", "not your document"). Raising it ends the handler at once;
the dispatcher answers with the rejection variant carrying the payload.

Abort is not a TelecallError and is never reported as a bug.
"""

from typing import Any


class Abort(Exception):
    """
    Decline the current call.

    Args:
        payload: Optional JSON-compatible value sent back to the caller
                 as ``{"abort": payload}``. Defaults to None (empty).

    Example:
        async def read_note(note_id):
            user = get_context().get("user")
            if user is None:
                raise Abort({"notLoggedIn": True})
    """

    def __init__(self, payload: Any = None):
        super().__init__("Call aborted" if payload is None else f"Call aborted: {payload!r}")
        self.payload = payload
