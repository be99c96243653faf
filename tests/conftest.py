"""Shared fakes for pipeline, CLI and web tests.

Fake PDFs are JSON lists: each item is one page, holding the decoder output
for that page (an empty string is a page without barcodes). A page reading `!fail`
makes the decoder raise; a file whose first page is `!broken` makes the
rasterizer raise.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from barscan.tools import ToolError, list_page_images, parse_decoder_output


@dataclass
class FakeRasterizer:
    name: str = "fake-rasterizer"
    calls: list[tuple[Path, Path]] = field(default_factory=list)

    def rasterize(self, pdf_path: Path, out_dir: Path) -> list[Path]:
        self.calls.append((pdf_path, out_dir))
        # the scratch directory must arrive empty
        assert list(out_dir.iterdir()) == []
        lines = json.loads(pdf_path.read_text(encoding="utf-8"))
        if lines and lines[0] == "!broken":
            raise ToolError(["pdftoppm", str(pdf_path)], returncode=1, stderr="Syntax Error: Couldn't read xref table")
        for number, line in enumerate(lines, start=1):
            (out_dir / f"page-{number}.jpg").write_text(line, encoding="utf-8")
        return list_page_images(out_dir)


@dataclass
class FakeDecoder:
    name: str = "fake-decoder"
    seen: list[str] = field(default_factory=list)

    def decode(self, image_path: Path) -> list[tuple[str, str]]:
        self.seen.append(image_path.name)
        text = image_path.read_text(encoding="utf-8")
        if text.strip() == "!fail":
            raise ToolError(["zbarimg", "--raw", "-q", str(image_path)], returncode=1, stderr="zbarimg: corrupt image")
        return parse_decoder_output(text)


def write_fake_pdf(path: Path, *pages: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(list(pages)), encoding="utf-8")
    return path


@pytest.fixture
def rasterizer() -> FakeRasterizer:
    return FakeRasterizer()


@pytest.fixture
def decoder() -> FakeDecoder:
    return FakeDecoder()


@pytest.fixture
def make_pdf(tmp_path: Path):
    """Factory writing a fake PDF under tmp_path/pdfs."""
    def _make(name: str, *pages: str) -> Path:
        return write_fake_pdf(tmp_path / "pdfs" / name, *pages)
    return _make
