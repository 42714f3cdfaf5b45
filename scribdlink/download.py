"""Download a resolved link to disk.

Resolved links are signed and expire quickly, so the download starts right
after resolution and is retried a couple of times with a short back-off.
Data is streamed into ``<output>.part`` and only renamed to *output* once the
whole body has arrived.
"""

from __future__ import annotations

import re
import sys
import time
from pathlib import Path

import requests

#: Regex for characters that are unsafe in filenames on any major OS.
UNSAFE_FILENAME = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

_CHUNK_SIZE = 64 * 1024


def safe_filename(title: str, suffix: str = ".pdf") -> str:
    """Turn a document title into a filename, falling back to ``output``."""
    safe = UNSAFE_FILENAME.sub("_", title).strip("_ ")
    return f"{safe or 'output'}{suffix}"


def _stream_to(resp: requests.Response, path: Path) -> None:
    written = 0
    with open(path, "wb") as f:
        for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
            f.write(chunk)
            written += len(chunk)
            print(
                f"[scribdlink] Downloaded {written / 1024:.0f} KiB",
                end="\r",
                file=sys.stderr,
            )
    print(file=sys.stderr)


def download_file(
    url: str,
    output: Path,
    *,
    retries: int = 2,
    timeout: float = 30,
) -> Path:
    """Stream *url* into *output*, retrying up to *retries* times.

    Raises ``RuntimeError`` when every attempt fails; *output* is then left
    untouched.
    """
    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    part = output.with_name(output.name + ".part")
    last_error: str = ""

    for attempt in range(1 + retries):
        try:
            with requests.get(url, stream=True, timeout=timeout) as resp:
                if resp.status_code == 200:
                    _stream_to(resp, part)
                    part.replace(output)
                    print(f"[scribdlink] Saved to {output}", file=sys.stderr)
                    return output
                last_error = f"HTTP {resp.status_code}"
        except (requests.RequestException, OSError) as exc:
            last_error = str(exc)
        finally:
            part.unlink(missing_ok=True)
        if attempt < retries:
            time.sleep(1 * (attempt + 1))

    raise RuntimeError(f"Download failed after {1 + retries} attempts: {last_error}")
