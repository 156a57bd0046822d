"""Bundles generated node files into a folder or a zip archive."""

import io
import zipfile
from pathlib import Path


def archive_name(folder_name: str) -> str:
    return f"{folder_name}_comfyui_node.zip"


def build_zip(files: dict[str, str], folder_name: str | None = None) -> bytes:
    """Return an in-memory zip of ``files``.

    Entries are placed under ``folder_name/`` when given, else at the root.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for filename, content in files.items():
            arcname = f"{folder_name}/{filename}" if folder_name else filename
            zf.writestr(arcname, content)
    return buffer.getvalue()


def write_files(files: dict[str, str], output_dir: Path, overwrite: bool = True) -> list[Path]:
    """Write files into ``output_dir``; existing files are kept unless ``overwrite``.

    Returns the paths actually written.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for filename, content in files.items():
        file_path = output_dir / filename
        if file_path.exists() and not overwrite:
            continue
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
        written.append(file_path)
    return written


def write_zip(files: dict[str, str], output_dir: Path, folder_name: str) -> Path:
    """Write ``<folder_name>_comfyui_node.zip`` with the files at the archive root."""
    output_dir.mkdir(parents=True, exist_ok=True)
    zip_path = output_dir / archive_name(folder_name)
    zip_path.write_bytes(build_zip(files))
    return zip_path
