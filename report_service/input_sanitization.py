"""
Upload hygiene: filename sanitization.

Report text itself is forwarded verbatim (trimmed only), and uploads of any
type are forwarded to OCR; these helpers only touch the client-supplied
filename before the upload is staged and forwarded.
"""
import re
from typing import Optional, Tuple

MAX_FILENAME_LENGTH = 255

# Characters that are unsafe in a filename on some platform.
_UNSAFE_CHARS_RE = re.compile(r'[<>:"|?*\x00-\x1f]')


def split_extension(filename: str) -> Tuple[str, str]:
    parts = filename.rsplit(".", 1)
    if len(parts) == 2 and parts[0]:
        return parts[0], "." + parts[1]
    return filename, ""


def sanitize_filename(filename: Optional[str]) -> str:
    """Reduce a client-supplied filename to a safe basename."""
    if not filename:
        return "upload"

    filename = filename.replace("\\", "/").split("/")[-1]
    filename = _UNSAFE_CHARS_RE.sub("_", filename)
    filename = re.sub(r"\.{2,}", ".", filename)
    filename = filename.lstrip(".").strip()

    if len(filename) > MAX_FILENAME_LENGTH:
        name, ext = split_extension(filename)
        filename = name[:MAX_FILENAME_LENGTH - 5] + ext[:5]

    return filename or "upload"
