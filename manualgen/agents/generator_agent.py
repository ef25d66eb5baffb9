"""
Generator worker: writes the manual to disk in every requested format.

Files land in ``<output_dir>/final_documents/manual_<timestamp>.<ext>``;
each one is also pushed to object storage under ``documents/`` when the
service is reachable.  PDF is printed from the HTML rendition by the
shared browser session.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from ..browser import BrowserSession
from ..documents import UserManual, export_docx, html_word_count, render_html, render_markdown
from ..run_config import OUTPUT_FORMATS
from ..storage import ObjectStorage
from .runtime import BaseAgent, Handler, Task, TaskResult

_EXTENSIONS = {"markdown": "md", "html": "html", "pdf": "pdf", "docx": "docx"}
_CONTENT_TYPES = {
    "markdown": "text/markdown",
    "html": "text/html",
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


class GeneratorAgent(BaseAgent):
    description = "Renders the manual as Markdown, HTML, PDF and DOCX"
    capabilities = ["document_generation", "pdf_export", "docx_export"]

    def __init__(
        self,
        output_dir: str,
        formats: Sequence[str] = ("markdown",),
        *,
        session: Optional[BrowserSession] = None,
        storage: Optional[ObjectStorage] = None,
        name: str = "GeneratorAgent",
    ):
        super().__init__(name)
        self.output_dir = Path(output_dir) / "final_documents"
        self.formats = list(formats)
        self.session = session
        self.storage = storage

    async def initialize(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def task_handlers(self) -> Dict[str, Handler]:
        return {"generate_documents": self._generate_documents}

    async def _generate_documents(self, task: Task) -> Dict[str, Any]:
        """Payload: ``manual`` (a ``UserManual.to_dict()``), optional ``formats``."""
        manual = UserManual.from_dict(task.payload["manual"])
        formats = list(task.payload.get("formats") or self.formats)
        unknown = [f for f in formats if f not in OUTPUT_FORMATS]
        if unknown:
            raise ValueError(f"Unsupported output format(s): {', '.join(unknown)}")
        if "pdf" in formats and self.session is None:
            raise RuntimeError("PDF output needs a browser session")

        self.output_dir.mkdir(parents=True, exist_ok=True)
        stem = self.output_dir / f"manual_{time.strftime('%Y%m%d_%H%M%S')}"
        base = str(self.output_dir)
        documents: Dict[str, str] = {}

        html_text = render_html(manual, base)
        word_count = html_word_count(html_text)

        if "markdown" in formats:
            documents["markdown"] = _write(stem.with_suffix(".md"), render_markdown(manual, base))
        if "html" in formats or "pdf" in formats:
            html_path = _write(stem.with_suffix(".html"), html_text)
            if "html" in formats:
                documents["html"] = html_path
        if "pdf" in formats:
            documents["pdf"] = await self.session.pdf_from_html(
                str(Path(html_path).resolve()), str(stem.with_suffix(".pdf").resolve()),
            )
            if "html" not in formats:
                Path(html_path).unlink(missing_ok=True)
        if "docx" in formats:
            documents["docx"] = export_docx(manual, str(stem.with_suffix(".docx")))

        for fmt, path in documents.items():
            self.log.info(f"[AGENT:{self.name}] {fmt}: {path}")

        return {
            "documents": documents,
            "remoteUrls": self._upload(documents),
            "wordCount": word_count,
            "sections": len(manual.sections),
        }

    def _upload(self, documents: Dict[str, str]) -> Dict[str, str]:
        if self.storage is None:
            return {}
        urls: Dict[str, str] = {}
        for fmt, path in documents.items():
            data = Path(path).read_bytes()
            url = self.storage.put_object(f"documents/{Path(path).name}", data, _CONTENT_TYPES[fmt])
            if url:
                urls[fmt] = url
        return urls

    def render_report(self, result: TaskResult) -> str:
        if not result.success or not isinstance(result.data, dict):
            return super().render_report(result)
        data = result.data
        lines = [f"# {self.name} Report", "", f"- **Word count:** {data['wordCount']}",
                 f"- **Sections:** {data['sections']}", "", "| Format | File | Remote |", "|---|---|---|"]
        for fmt, path in data["documents"].items():
            lines.append(f"| {fmt} | {path} | {data['remoteUrls'].get(fmt, '-')} |")
        return "\n".join(lines) + "\n"


def _write(path: Path, text: str) -> str:
    path.write_text(text, encoding="utf-8")
    return str(path)
