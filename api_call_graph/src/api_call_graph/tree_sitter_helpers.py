# --- Tree-sitter plumbing ----------------------------------------------------
from typing import Optional


def node_text(source_bytes: bytes, node) -> str:
    """
    Converts a node's [start_byte:end_byte] into the corresponding string.
    Tree-sitter nodes only store byte offsets, so we slice the original source.
    """
    return source_bytes[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def node_point(node) -> tuple[int, int]:
    """
    Returns the (line, column) of a node's start in 0-based coordinates.
    """
    return (node.start_point[0], node.start_point[1])


def block_inner_text(source_bytes: bytes, node) -> Optional[str]:
    """
    Text of a `{ ... }` block without its outer braces, stripped, so it lines
    up with what the regex extractor returns.
    """
    if node is None:
        return None
    text = node_text(source_bytes, node).strip()
    if text.startswith("{") and text.endswith("}"):
        text = text[1:-1]
    return text.strip()
