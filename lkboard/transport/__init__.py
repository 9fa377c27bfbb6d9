from .encoder import RequestEncoder
from .decoder import (
    REPLY_CODE_DESCRIPTIONS,
    DecodedBody,
    ResponseDecoder,
    classify_envelope,
    describe_reply_code,
)
from .engine import TransportEngine

__all__ = [
    "RequestEncoder",
    "ResponseDecoder",
    "DecodedBody",
    "TransportEngine",
    "REPLY_CODE_DESCRIPTIONS",
    "classify_envelope",
    "describe_reply_code",
]
