"""
Parse errors for the interface signature DSL.

Every error carries the offending text (or value) and the UTF-8 byte offset in
the original input where it was found.
"""


class ParseError(Exception):
    """Raised when the input is not a valid interface signature."""
    def __init__(self, message: str, position: int):
        self.position = position
        super().__init__(f"{message} at {position}")


class UnexpectedTokenError(ParseError):
    def __init__(self, token: str, position: int):
        self.token = token
        super().__init__(f"Unexpected token `{token}`", position)


class UnexpectedEndOfInputError(ParseError):
    def __init__(self, position: int):
        super().__init__("Unexpected end of input", position)


class InvalidNumericLiteralError(ParseError):
    def __init__(self, value: str, position: int):
        self.value = value
        super().__init__(f"Invalid numeric literal `{value}`", position)


class ValueOutOfRangeError(ParseError):
    """A sized type or array whose size is outside the allowed range."""
    def __init__(self, kind: str, value: int, position: int):
        self.kind = kind
        self.value = value
        super().__init__(f"Invalid {kind} size `{value}`", position)


class NestingTooDeepError(ParseError):
    def __init__(self, depth: int, position: int):
        self.depth = depth
        super().__init__(f"Too deep nesting `{depth}`", position)


class UnknownIdentifierError(ParseError):
    def __init__(self, text: str, position: int):
        self.text = text
        super().__init__(f"Unknown type `{text}`", position)


class InvalidVersionTagError(ParseError):
    def __init__(self, text: str, position: int):
        self.text = text
        super().__init__(f"Invalid ABI version `{text}`", position)


class InvalidMapKeyTypeError(ParseError):
    def __init__(self, key: str, position: int):
        self.key = key
        super().__init__(f"Map key must be an integer or address, got `{key}`", position)


def byte_offset(source: str, char_pos: int) -> int:
    """Convert a character index into a UTF-8 byte offset."""
    return len(source[:char_pos].encode("utf-8"))
