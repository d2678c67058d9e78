"""Text helpers for chat display."""

from hermesbridge.constants import MAX_MESSAGE_LENGTH, TRUNCATION_MARKER


def truncate(text: str, limit: int) -> str:
    """Cut text to a display limit, always marking the cut.

    Args:
        text: Text to display
        limit: Maximum number of characters kept

    Returns:
        The text unchanged, or its first `limit` characters plus a marker line
    """
    if len(text) <= limit:
        return text
    return text[:limit] + "\n" + TRUNCATION_MARKER


def code_block(text: str) -> str:
    """Wrap text in a Markdown code fence."""
    return f"```\n{text}\n```"


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split a long message into chunks at line boundaries.

    Lines longer than max_length are hard-split.

    Args:
        text: Message text
        max_length: Maximum chunk length

    Returns:
        List of chunks, each at most max_length characters
    """
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    current = ""

    for line in text.split("\n"):
        while len(line) > max_length:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:max_length])
            line = line[max_length:]

        if current and len(current) + len(line) + 1 > max_length:
            chunks.append(current)
            current = line
        else:
            current = f"{current}\n{line}" if current else line

    if current:
        chunks.append(current)
    return chunks
