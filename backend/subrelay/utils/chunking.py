"""Subtitle chunking for translation requests.

A WebVTT document is cut into pieces small enough for one model call,
preferring cue boundaries (blank lines) so a cue is never duplicated.
"""

# --- Chunking constants ---
MAX_CHUNK_SIZE = 3000   # Max chars per chunk (payload size vs. per-call overhead)
CUE_SEPARATOR = "\n\n"


def split_vtt_into_chunks(vtt_text: str, max_chunk_size: int = MAX_CHUNK_SIZE) -> list[str]:
    """Split VTT text into ordered chunks of at most ``max_chunk_size`` characters.

    When the next line would overflow the current chunk, the chunk is cut at its
    last blank line and the tail is carried into the next chunk. Without a blank
    line the whole chunk is emitted as-is. A single line longer than the limit
    becomes its own oversized chunk.
    """
    chunks: list[str] = []
    current = ""

    for line in vtt_text.split("\n"):
        candidate = current + line + "\n"

        if len(candidate) > max_chunk_size and current.strip():
            boundary = current.rfind(CUE_SEPARATOR)
            if boundary > 0:
                head = current[:boundary].strip()
                if head:
                    chunks.append(head)
                remaining = current[boundary:].strip()
                current = remaining + "\n" + line + "\n"
            else:
                chunks.append(current.strip())
                current = line + "\n"
        else:
            current = candidate

    if current.strip():
        chunks.append(current.strip())

    return chunks
