"""
Manual Document Model and Renderers
===================================
``UserManual`` is the format-neutral manual produced by the content phase.
It renders to:

- Markdown (the canonical text form)
- HTML, tidied with BeautifulSoup
- DOCX via python-docx (cover table, TOC field, section tables, images)

PDF output is produced from the HTML by the browser session, not here.
"""

from __future__ import annotations

import html
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from .utils import count_words

logger = logging.getLogger(__name__)

_CSS = """
body { font-family: Calibri, Arial, sans-serif; max-width: 960px; margin: 2em auto; color: #222; }
h1 { border-bottom: 2px solid #444; padding-bottom: .3em; }
table { border-collapse: collapse; width: 100%; margin: 1em 0; }
th, td { border: 1px solid #bbb; padding: 4px 8px; text-align: left; font-size: 0.9em; }
th { background: #f0f0f0; }
figure { margin: 1em 0; }
figure img { max-width: 100%; border: 1px solid #ddd; }
figcaption { font-size: 0.85em; color: #666; }
"""


@dataclass
class ManualSection:
    """One heading plus its body blocks, rendered in field order."""
    title: str
    level: int = 2
    paragraphs: List[str] = field(default_factory=list)
    bullets: List[str] = field(default_factory=list)
    table: Optional[Dict[str, List]] = None       # {"headers": [...], "rows": [[...], ...]}
    images: List[Dict[str, str]] = field(default_factory=list)  # {"path", "caption"}
    kind: str = "page"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "level": self.level,
            "paragraphs": list(self.paragraphs),
            "bullets": list(self.bullets),
            "table": self.table,
            "images": list(self.images),
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManualSection":
        return cls(
            title=data["title"],
            level=data.get("level", 2),
            paragraphs=list(data.get("paragraphs", [])),
            bullets=list(data.get("bullets", [])),
            table=data.get("table"),
            images=list(data.get("images", [])),
            kind=data.get("kind", "page"),
        )


@dataclass
class UserManual:
    title: str
    source_url: str
    generated_at: str
    sections: List[ManualSection] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "sourceUrl": self.source_url,
            "generatedAt": self.generated_at,
            "sections": [s.to_dict() for s in self.sections],
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserManual":
        return cls(
            title=data["title"],
            source_url=data.get("sourceUrl", ""),
            generated_at=data.get("generatedAt", ""),
            sections=[ManualSection.from_dict(s) for s in data.get("sections", [])],
            metadata=dict(data.get("metadata", {})),
        )


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------

def _md_cell(value: Any) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def _relative(path: str, base_dir: Optional[str]) -> str:
    if not base_dir:
        return path
    try:
        return Path(os.path.relpath(path, base_dir)).as_posix()
    except ValueError:
        return path


def render_markdown(manual: UserManual, base_dir: Optional[str] = None) -> str:
    """Render *manual* as Markdown; image paths are made relative to *base_dir*."""
    out = [f"# {manual.title}", "", f"*Source: {manual.source_url}*  ", f"*Generated: {manual.generated_at}*", ""]
    for section in manual.sections:
        out.append(f"{'#' * min(max(section.level, 2), 6)} {section.title}")
        out.append("")
        for para in section.paragraphs:
            out += [para, ""]
        if section.bullets:
            out += [f"- {b}" for b in section.bullets]
            out.append("")
        if section.table and section.table.get("headers"):
            headers = section.table["headers"]
            out.append("| " + " | ".join(_md_cell(h) for h in headers) + " |")
            out.append("|" + "---|" * len(headers))
            for row in section.table.get("rows", []):
                out.append("| " + " | ".join(_md_cell(c) for c in row) + " |")
            out.append("")
        for image in section.images:
            out += [f"![{image.get('caption', '')}]({_relative(image['path'], base_dir)})", ""]
    return "\n".join(out).rstrip() + "\n"


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------

def render_html(manual: UserManual, base_dir: Optional[str] = None) -> str:
    """Render *manual* as a standalone HTML page."""
    esc = html.escape
    parts = [
        "<!DOCTYPE html>",
        f"<html lang=\"en\"><head><meta charset=\"utf-8\"><title>{esc(manual.title)}</title>",
        f"<style>{_CSS}</style></head><body>",
        f"<h1>{esc(manual.title)}</h1>",
        f"<p class=\"meta\">Source: <a href=\"{esc(manual.source_url)}\">{esc(manual.source_url)}</a>"
        f" | Generated: {esc(manual.generated_at)}</p>",
    ]
    for section in manual.sections:
        level = min(max(section.level, 2), 6)
        parts.append(f"<section class=\"{esc(section.kind)}\"><h{level}>{esc(section.title)}</h{level}>")
        parts += [f"<p>{esc(p)}</p>" for p in section.paragraphs]
        if section.bullets:
            parts.append("<ul>" + "".join(f"<li>{esc(b)}</li>" for b in section.bullets) + "</ul>")
        if section.table and section.table.get("headers"):
            head = "".join(f"<th>{esc(str(h))}</th>" for h in section.table["headers"])
            body = "".join(
                "<tr>" + "".join(f"<td>{esc(str(c))}</td>" for c in row) + "</tr>"
                for row in section.table.get("rows", [])
            )
            parts.append(f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>")
        for image in section.images:
            src = esc(_relative(image["path"], base_dir))
            caption = esc(image.get("caption", ""))
            parts.append(f"<figure><img src=\"{src}\" alt=\"{caption}\"><figcaption>{caption}</figcaption></figure>")
        parts.append("</section>")
    parts.append("</body></html>")
    return BeautifulSoup("".join(parts), "lxml").prettify()


def html_word_count(markup: str) -> int:
    soup = BeautifulSoup(markup, "lxml")
    for tag in soup(["style", "script"]):
        tag.decompose()
    return count_words(soup.get_text(" "))


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------

def export_docx(manual: UserManual, filepath: str, *, include_toc: bool = True) -> str:
    """Write *manual* to a Word document and return its absolute path."""
    from docx import Document
    from docx.enum.table import WD_TABLE_ALIGNMENT
    from docx.enum.text import WD_ALIGN_PARAGRAPH
    from docx.shared import Inches, Pt

    output_path = Path(filepath)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    doc = Document()

    style = doc.styles["Normal"]
    style.font.name = "Calibri"
    style.font.size = Pt(10)
    style.paragraph_format.space_after = Pt(4)

    # ── Cover ──────────────────────────────────────────────────────
    title = doc.add_heading(manual.title, level=0)
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER
    meta = manual.metadata
    cover_items = [
        ("Source", manual.source_url),
        ("Generated", manual.generated_at),
        ("Pages", str(meta.get("totalPages", ""))),
        ("Interactive Elements", str(meta.get("totalElements", ""))),
    ]
    cover = doc.add_table(rows=len(cover_items), cols=2)
    cover.alignment = WD_TABLE_ALIGNMENT.CENTER
    for i, (label, value) in enumerate(cover_items):
        _cell_text(cover.rows[i].cells[0], label, bold=True, size=Pt(10))
        _cell_text(cover.rows[i].cells[1], value, size=Pt(10))
    doc.add_page_break()

    if include_toc:
        doc.add_heading("Table of Contents", level=1)
        _add_toc_field(doc)
        doc.add_page_break()

    # ── Sections ──────────────────────────────────────────────────
    for section in manual.sections:
        doc.add_heading(section.title[:120], level=min(max(section.level - 1, 1), 6))
        for para in section.paragraphs:
            doc.add_paragraph(para)
        for bullet in section.bullets:
            doc.add_paragraph(bullet, style="List Bullet")
        if section.table and section.table.get("headers"):
            headers = section.table["headers"]
            rows = section.table.get("rows", [])
            table = doc.add_table(rows=1 + len(rows), cols=len(headers))
            table.style = "Table Grid"
            for c, header in enumerate(headers):
                _cell_text(table.rows[0].cells[c], str(header), bold=True, size=Pt(9))
            for r, row in enumerate(rows, 1):
                for c, value in enumerate(row[: len(headers)]):
                    _cell_text(table.rows[r].cells[c], str(value), size=Pt(9))
            doc.add_paragraph()
        for image in section.images:
            if not Path(image["path"]).is_file():
                continue
            doc.add_picture(image["path"], width=Inches(6))
            if image.get("caption"):
                cap = doc.add_paragraph(image["caption"])
                for run in cap.runs:
                    run.font.size = Pt(8)
                    run.italic = True

    doc.save(str(output_path))
    logger.info(f"Exported DOCX to {output_path.absolute()}")
    return str(output_path.absolute())


def _cell_text(cell, text: str, bold: bool = False, size=None) -> None:
    cell.text = text
    for paragraph in cell.paragraphs:
        for run in paragraph.runs:
            run.bold = bold
            if size:
                run.font.size = size


def _add_toc_field(doc) -> None:
    """Insert a Word TOC field; Word fills it in on open (F9)."""
    from docx.oxml import OxmlElement
    from docx.oxml.ns import qn

    paragraph = doc.add_paragraph()
    run = paragraph.add_run()

    begin = OxmlElement("w:fldChar")
    begin.set(qn("w:fldCharType"), "begin")
    run._element.append(begin)

    instr = OxmlElement("w:instrText")
    instr.set(qn("xml:space"), "preserve")
    instr.text = ' TOC \\o "1-3" \\h \\z \\u '
    run._element.append(instr)

    separate = OxmlElement("w:fldChar")
    separate.set(qn("w:fldCharType"), "separate")
    run._element.append(separate)

    placeholder = paragraph.add_run("[Press F9 in Word to build the table of contents]")
    placeholder.font.italic = True

    end = OxmlElement("w:fldChar")
    end.set(qn("w:fldCharType"), "end")
    run._element.append(end)
