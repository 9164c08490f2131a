import re

_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LEADING_FENCE = re.compile(r"^\s*```(?:json)?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"```\s*$")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def clean_json_response(text: str) -> str:
    """
    Remove the artifacts models add to JSON despite being told not to:
    block comments, a wrapping code fence, and trailing commas.

    Purely textual. Anything else wrong with the text is left for the parser
    to reject.
    """
    cleaned = _BLOCK_COMMENT.sub("", text)
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_COMMA.sub(r"\1", cleaned)
    return cleaned.strip()
