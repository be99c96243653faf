from __future__ import annotations

import logging
import re
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

# zbarimg exit status when it ran fine but found no symbols in the image
ZBAR_NO_SYMBOLS = 4

PAGE_PREFIX = "page"


class ToolError(RuntimeError):
    """An external tool could not be started, timed out, or exited non-zero."""

    def __init__(
        self,
        args: Sequence[str],
        *,
        returncode: int | None = None,
        stderr: str = "",
        reason: str | None = None,
        timed_out: bool = False,
    ) -> None:
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        self.timed_out = timed_out
        command = shlex.join(self.args_list)
        detail = reason or f"exit status {returncode}"
        super().__init__(f"Command failed: {command}\nStderr: {stderr.strip()}\nError: {detail}")


class Rasterizer(Protocol):
    """Turns one PDF into page images inside a scratch directory."""

    name: str

    def rasterize(self, pdf_path: Path, out_dir: Path) -> list[Path]:
        ...


class Decoder(Protocol):
    """Reads barcodes from one page image."""

    name: str

    def decode(self, image_path: Path) -> list[tuple[str, str]]:
        ...


def run_tool(
    args: Sequence[str],
    *,
    timeout: float | None = None,
    ok_codes: Sequence[int] = (0,),
) -> subprocess.CompletedProcess[str]:
    """Run an external command without a shell and capture its text output.

    Raises:
        ToolError: spawn failure, timeout, or an exit status outside `ok_codes`
    """
    argv = [str(a) for a in args]
    try:
        proc = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        raise ToolError(argv, reason=f"{argv[0]} not found. Install it and ensure it is on your PATH.") from e
    except PermissionError as e:
        raise ToolError(argv, reason=f"{argv[0]} is not executable: {e}") from e
    except subprocess.TimeoutExpired as e:
        stderr = e.stderr if isinstance(e.stderr, str) else (e.stderr or b"").decode("utf-8", "replace")
        raise ToolError(argv, stderr=stderr, reason=f"timed out after {timeout}s", timed_out=True) from e

    if proc.returncode not in ok_codes:
        raise ToolError(argv, returncode=proc.returncode, stderr=proc.stderr or "")
    return proc


def parse_decoder_output(text: str) -> list[tuple[str, str]]:
    """Parse decoder stdout into (type, payload) pairs.

    Grammar, one symbol per line:  type ":" payload

    Only the first colon separates; the payload keeps any further colons.
    Both parts are stripped. Blank lines are skipped. A line without a colon
    is all type and an empty payload.

    Example:
        >>> parse_decoder_output("QRCODE:abc:def\\n\\nEAN13:0123456789012\\n")
        [('QRCODE', 'abc:def'), ('EAN13', '0123456789012')]
    """
    pairs: list[tuple[str, str]] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        symbology, _, payload = line.partition(":")
        pairs.append((symbology.strip(), payload.strip()))
    return pairs


def list_page_images(out_dir: Path, prefix: str = PAGE_PREFIX) -> list[Path]:
    """List `<prefix>-<n>.jpg|jpeg` files in page order.

    Sorting is numeric on <n>, so page-2 comes before page-10 regardless of
    whether the rasterizer zero-pads its page numbers.
    """
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)\.(jpeg|jpg)$", re.IGNORECASE)
    pages: list[tuple[int, str, Path]] = []
    for entry in out_dir.iterdir():
        m = pattern.match(entry.name)
        if m and entry.is_file():
            pages.append((int(m.group(1)), entry.name, entry))
    pages.sort(key=lambda item: (item[0], item[1]))
    return [path for _, _, path in pages]


@dataclass
class PopplerRasterizer:
    """Rasterizer backed by poppler's `pdftoppm`.

    Runs:
        pdftoppm -r <dpi> -jpeg <pdf> <out_dir>/page

    which writes one `page-<n>.jpg` per page.
    """

    name: str = "pdftoppm"
    executable: str = "pdftoppm"
    dpi: int = 300
    prefix: str = PAGE_PREFIX
    timeout: float | None = 300.0
    logger: logging.Logger | None = None

    def command(self, pdf_path: Path, out_dir: Path) -> list[str]:
        return [
            self.executable,
            "-r",
            str(self.dpi),
            "-jpeg",
            str(pdf_path),
            str(out_dir / self.prefix),
        ]

    def rasterize(self, pdf_path: Path, out_dir: Path) -> list[Path]:
        """Render every page of `pdf_path` into `out_dir` and return the images in page order."""
        run_tool(self.command(pdf_path, out_dir), timeout=self.timeout)
        images = list_page_images(out_dir, self.prefix)
        if not images and self.logger:
            self.logger.warning(
                "rasterizer_no_output",
                extra={
                    "pdf_path": str(pdf_path),
                    "hint": "check that pdftoppm is on PATH and the PDF is not protected",
                },
            )
        return images


@dataclass
class ZBarDecoder:
    """Decoder backed by zbar's `zbarimg` in raw, quiet mode.

    Runs:
        zbarimg --raw -q <image>
    """

    name: str = "zbarimg"
    executable: str = "zbarimg"
    timeout: float | None = 60.0

    def command(self, image_path: Path) -> list[str]:
        return [self.executable, "--raw", "-q", str(image_path)]

    def decode(self, image_path: Path) -> list[tuple[str, str]]:
        """Return the (type, payload) pairs found on one image (possibly none)."""
        proc = run_tool(
            self.command(image_path),
            timeout=self.timeout,
            ok_codes=(0, ZBAR_NO_SYMBOLS),
        )
        if proc.returncode == ZBAR_NO_SYMBOLS:
            return []
        return parse_decoder_output(proc.stdout or "")
