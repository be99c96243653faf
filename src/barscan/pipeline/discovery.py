"""
Input collection for the batch runner.

Finds the PDFs under the input folder. Uploads bypass this module: the
service already has its files on disk.
"""

from __future__ import annotations

from pathlib import Path


def find_pdfs(root: Path) -> list[Path]:
    """
    Recursively list PDF files under `root`.

    The `.pdf` extension is matched case-insensitively. Results are sorted by
    their path relative to `root` so runs are reproducible.

    Parameters:
        root: Folder to scan

    Returns:
        PDF paths, each joined onto `root`

    Example:
        >>> find_pdfs(Path("pdfs"))
        [PosixPath('pdfs/a.pdf'), PosixPath('pdfs/sub/B.PDF')]
    """
    pdfs = [p for p in root.rglob("*") if p.is_file() and p.suffix.lower() == ".pdf"]
    return sorted(pdfs, key=lambda p: p.relative_to(root).as_posix())


def ensure_input_dir(root: Path) -> bool:
    """Create `root` if missing. Returns True when it already existed."""
    if root.is_dir():
        return True
    root.mkdir(parents=True, exist_ok=True)
    return False
