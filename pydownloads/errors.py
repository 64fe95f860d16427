"""
Typed errors raised by the base64 codec and the size-tier policy.

Callers branch on ``kind`` instead of inspecting message text.
"""

MIB = 1024 * 1024


class CodecError(Exception):
    """Base class for codec failures."""

    kind = 'codec'

    def __init__(self, detail):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self):
        return {'error': self.detail, 'kind': self.kind}


class DecodeError(CodecError):
    """Base64 text could not be turned back into bytes."""

    kind = 'decode'


class EncodeError(CodecError):
    """Binary content could not be encoded."""

    kind = 'encode'


class OversizeError(CodecError):
    """Content exceeds the hard size ceiling."""

    kind = 'oversize'

    def __init__(self, size, limit, detail=None):
        if detail is None:
            detail = (
                f'File is too large to download directly ({size / MIB:.1f} MB, '
                f'limit {limit / MIB:.0f} MB). Please contact support for an '
                f'alternative download option.'
            )
        super().__init__(detail)
        self.size = size
        self.limit = limit

    def to_dict(self):
        data = super().to_dict()
        data.update({'size': self.size, 'limit': self.limit})
        return data
