"""
Runtime settings for the batch runner and the upload service.

Values come from defaults, then `BARSCAN_*` environment variables (a `.env`
file in the working directory is loaded first), then CLI options.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict

ENV_PREFIX = "BARSCAN_"


class Settings(BaseModel):
    """
    Paths, external tool names and limits shared by every entry point.

    Attributes:
        input_dir: Folder scanned recursively by `barscan run`
        output_path: Spreadsheet written by `barscan run`
        upload_dir: Where the service stores uploaded PDFs while processing
        output_dir: Where the service writes generated spreadsheets
        scratch_dir: Parent of the per-run scratch directories for page images
        dpi: Rasterization resolution
        rasterizer_bin: Rasterizer executable (poppler's pdftoppm)
        decoder_bin: Decoder executable (zbar's zbarimg)
        rasterize_timeout: Seconds allowed for one PDF to rasterize (<= 0 disables)
        decode_timeout: Seconds allowed for one page to decode (<= 0 disables)
        host: Bind address for `barscan serve`
        port: Bind port for `barscan serve`
        log_level: Logging verbosity
    """

    model_config = ConfigDict(frozen=True)

    input_dir: Path = Path("pdfs")
    output_path: Path = Path("barcodes_exec.xlsx")
    upload_dir: Path = Path("uploads")
    output_dir: Path = Path("output")
    scratch_dir: Path = Path("temp_images")
    dpi: int = 300
    rasterizer_bin: str = "pdftoppm"
    decoder_bin: str = "zbarimg"
    rasterize_timeout: float = 300.0
    decode_timeout: float = 60.0
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, *, dotenv: bool = True) -> Settings:
        """Build settings from `BARSCAN_<FIELD>` environment variables."""
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True))
        values: dict[str, str] = {}
        for field in cls.model_fields:
            raw = os.getenv(ENV_PREFIX + field.upper())
            if raw is not None and raw.strip():
                values[field] = raw.strip()
        return cls.model_validate(values)

    def override(self, **updates: object) -> Settings:
        """Return a copy with every non-None update applied (CLI options)."""
        given = {k: v for k, v in updates.items() if v is not None}
        if not given:
            return self
        return self.model_validate({**self.model_dump(), **given})


def timeout_or_none(seconds: float) -> float | None:
    return seconds if seconds > 0 else None
