import uuid


def new_peer_id() -> str:
    """Fresh identity for this process; never persisted, never reused."""
    return str(uuid.uuid4())
