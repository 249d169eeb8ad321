"""Notebook document model and .ipynb codec.

The codec is a pure transform between bytes and NotebookDocument; it holds
no state. Output records map onto OutputItem variants:

    stream                        -> TextOutput (text/plain, or stderr mime)
    execute_result / display_data -> one TextOutput per mime type
    error                         -> ErrorOutput
    anything else                 -> UnknownOutput (kept verbatim)
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from jupyter_docker_runtime.config import DEFAULT_KERNEL_DISPLAY_NAME, DEFAULT_KERNEL_NAME
from jupyter_docker_runtime.types import ErrorOutput, OutputItem, TextOutput, UnknownOutput

logger = logging.getLogger(__name__)

NBFORMAT = 4
NBFORMAT_MINOR = 5

PLAIN_MIME = "text/plain"
STDERR_MIME = "application/vnd.jupyter.stderr"


class CellKind(str, Enum):
    CODE = "code"
    MARKDOWN = "markdown"


def _new_cell_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class Cell:
    """One notebook cell."""

    kind: CellKind
    source: str
    outputs: list[OutputItem] = field(default_factory=list)
    execution_count: int | None = None
    id: str = field(default_factory=_new_cell_id)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def code(cls, source: str, **kwargs: Any) -> Cell:
        return cls(kind=CellKind.CODE, source=source, **kwargs)

    @classmethod
    def markdown(cls, source: str, **kwargs: Any) -> Cell:
        return cls(kind=CellKind.MARKDOWN, source=source, **kwargs)

    @property
    def has_runnable_source(self) -> bool:
        """True for code cells with non-whitespace source."""
        return self.kind is CellKind.CODE and bool(self.source.strip())


def kernel_metadata(
    kernel_name: str = DEFAULT_KERNEL_NAME,
    display_name: str = DEFAULT_KERNEL_DISPLAY_NAME,
) -> dict[str, Any]:
    """Document metadata declaring the interpreter and kernel."""
    return {
        "kernelspec": {
            "display_name": display_name,
            "language": "python",
            "name": kernel_name,
        },
        "language_info": {"name": "python"},
    }


@dataclass
class NotebookDocument:
    """An ordered list of cells plus document metadata."""

    cells: list[Cell] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=kernel_metadata)

    @property
    def code_cells(self) -> list[Cell]:
        return [cell for cell in self.cells if cell.kind is CellKind.CODE]

    @property
    def kernel_name(self) -> str | None:
        spec = self.metadata.get("kernelspec")
        return spec.get("name") if isinstance(spec, dict) else None

    def set_kernel(self, kernel_name: str, display_name: str | None = None) -> None:
        spec = self.metadata.setdefault("kernelspec", {})
        spec["name"] = kernel_name
        spec["display_name"] = display_name or spec.get("display_name") or kernel_name
        spec.setdefault("language", "python")


# =============================================================================
# Decoding
# =============================================================================


def _join(value: Any) -> str:
    """Multiline strings are stored either whole or as a list of lines."""
    if isinstance(value, list):
        return "".join(str(part) for part in value)
    if value is None:
        return ""
    return str(value)


def _split(text: str) -> list[str]:
    return text.splitlines(keepends=True)


def decode_output(record: dict[str, Any]) -> list[OutputItem]:
    """Decode one output record into zero or more output items."""
    output_type = record.get("output_type")

    if output_type == "stream":
        mime = STDERR_MIME if record.get("name") == "stderr" else PLAIN_MIME
        return [TextOutput(mime=mime, data=_join(record.get("text")).encode("utf-8"))]

    if output_type in ("execute_result", "display_data"):
        data = record.get("data")
        if not isinstance(data, dict) or not data:
            return [UnknownOutput(raw=record)]
        items: list[OutputItem] = []
        for mime, value in data.items():
            if isinstance(value, (str, list)):
                content = _join(value)
            else:
                # JSON-valued mime types (application/json, widgets)
                content = json.dumps(value)
            items.append(TextOutput(mime=mime, data=content.encode("utf-8")))
        return items

    if output_type == "error":
        traceback = record.get("traceback") or []
        return [
            ErrorOutput(
                kind=str(record.get("ename") or "Error"),
                message=str(record.get("evalue") or ""),
                trace=tuple(str(line) for line in traceback),
            )
        ]

    return [UnknownOutput(raw=record)]


def _decode_cell(record: dict[str, Any]) -> Cell:
    kind = CellKind.CODE if record.get("cell_type") == "code" else CellKind.MARKDOWN

    outputs: list[OutputItem] = []
    for output in record.get("outputs") or []:
        if isinstance(output, dict):
            outputs.extend(decode_output(output))
        else:
            logger.warning(f"Skipping malformed output record: {output!r}")

    execution_count = record.get("execution_count")
    metadata = record.get("metadata")
    return Cell(
        kind=kind,
        source=_join(record.get("source")),
        outputs=outputs,
        execution_count=execution_count if isinstance(execution_count, int) else None,
        id=str(record.get("id") or _new_cell_id()),
        metadata=metadata if isinstance(metadata, dict) else {},
    )


def deserialize_notebook(content: bytes) -> NotebookDocument:
    """Decode .ipynb bytes. Malformed input yields an empty document."""
    try:
        data = json.loads(content.decode("utf-8")) if content.strip() else {}
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Error deserializing notebook: {e}")
        return NotebookDocument()

    if not isinstance(data, dict):
        logger.error("Error deserializing notebook: top level is not an object")
        return NotebookDocument()

    cells = [_decode_cell(c) for c in data.get("cells") or [] if isinstance(c, dict)]
    metadata = data.get("metadata")
    if not isinstance(metadata, dict) or not metadata:
        metadata = kernel_metadata()
    return NotebookDocument(cells=cells, metadata=metadata)


# =============================================================================
# Encoding
# =============================================================================


def encode_output(item: OutputItem) -> dict[str, Any]:
    """Encode one output item as an .ipynb output record."""
    if isinstance(item, ErrorOutput):
        return {
            "output_type": "error",
            "ename": item.kind,
            "evalue": item.message,
            "traceback": list(item.trace),
        }

    if isinstance(item, TextOutput):
        if item.mime in (PLAIN_MIME, STDERR_MIME):
            return {
                "output_type": "stream",
                "name": "stderr" if item.mime == STDERR_MIME else "stdout",
                "text": _split(item.text),
            }
        return {
            "output_type": "display_data",
            "data": {item.mime: item.text},
            "metadata": {},
        }

    return item.raw


def _encode_cell(cell: Cell) -> dict[str, Any]:
    record: dict[str, Any] = {
        "cell_type": cell.kind.value,
        "id": cell.id,
        "metadata": cell.metadata,
        "source": _split(cell.source),
    }
    if cell.kind is CellKind.CODE:
        record["execution_count"] = cell.execution_count
        record["outputs"] = [encode_output(item) for item in cell.outputs]
    return record


def serialize_notebook(document: NotebookDocument) -> bytes:
    """Encode a document as .ipynb bytes."""
    notebook = {
        "cells": [_encode_cell(cell) for cell in document.cells],
        "metadata": document.metadata or kernel_metadata(),
        "nbformat": NBFORMAT,
        "nbformat_minor": NBFORMAT_MINOR,
    }
    return (json.dumps(notebook, indent=1, ensure_ascii=False) + "\n").encode("utf-8")


def load_notebook(path: Path) -> NotebookDocument:
    return deserialize_notebook(Path(path).read_bytes())


def save_notebook(document: NotebookDocument, path: Path) -> None:
    Path(path).write_bytes(serialize_notebook(document))
