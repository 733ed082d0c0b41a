"""Transport codec for replicated document state.

A document body travels as the base64 text of a full Yjs state update,
the same encoding the collaboration server and the desktop client use.
"""
import base64
import binascii
import logging

from pycrdt import Doc

from jot_vault.exceptions import CodecDecodeError

logger = logging.getLogger(__name__)


def encode_state(doc: Doc) -> str:
    """Encode the current state of ``doc`` as a transportable string."""
    return base64.b64encode(doc.get_update()).decode("ascii")


def apply_state(encoded: str, doc: Doc) -> None:
    """Apply an encoded state onto ``doc``.

    Applying the same state twice leaves the same content as applying it
    once. An empty input is a no-op.

    Raises:
        CodecDecodeError: If the input is not a valid encoded state
    """
    if not encoded:
        return
    try:
        update = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CodecDecodeError("State is not valid base64", original_error=e)
    try:
        doc.apply_update(update)
    except Exception as e:
        raise CodecDecodeError("State update could not be applied", original_error=e)


def decode_state(encoded: str, doc: Doc) -> bool:
    """Apply an encoded state onto ``doc`` without raising.

    A corrupt state is logged and ``doc`` is left as it was.

    Returns:
        True if the state was applied (or was empty), False if it was rejected
    """
    try:
        apply_state(encoded, doc)
    except CodecDecodeError as e:
        logger.error(f"Failed to decode replicated state: {e}")
        return False
    return True


def fresh_doc(encoded: str = "") -> Doc:
    """Create a new document hydrated from ``encoded``."""
    doc = Doc()
    decode_state(encoded, doc)
    return doc
