from aiortc import RTCIceCandidate
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

CANDIDATE_PREFIX = "candidate:"

# single data-channel session: every candidate belongs to the first m-line
DEFAULT_MLINE_INDEX = 0


def candidate_to_text(candidate: RTCIceCandidate) -> str:
    """Render as the ``candidate:...`` attribute value other WebRTC stacks send."""
    return CANDIDATE_PREFIX + candidate_to_sdp(candidate)


def candidate_from_text(text: str) -> RTCIceCandidate:
    """Parse candidate text, with or without the ``candidate:`` prefix."""
    sdp = text.strip()
    if sdp.startswith(CANDIDATE_PREFIX):
        sdp = sdp[len(CANDIDATE_PREFIX):]
    candidate = candidate_from_sdp(sdp)
    candidate.sdpMLineIndex = DEFAULT_MLINE_INDEX
    return candidate
