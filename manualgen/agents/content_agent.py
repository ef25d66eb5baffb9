"""
Content worker: arranges the crawl analysis into ordered manual sections.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List
from urllib.parse import urlparse

from ..documents import ManualSection, UserManual
from .runtime import BaseAgent, Handler, Task, TaskResult

_MAX_TABLE_ROWS = 25

_TROUBLESHOOTING = [
    ("The page does not load", "Check your connection and reload the page. If it persists, sign out and sign in again."),
    ("A button does nothing", "Make sure every required field on the form is filled in and no error message is shown."),
    ("I was signed out", "Sessions expire after a period of inactivity. Sign in again to continue."),
    ("Screens look different from this manual",
     "The application may have changed since this manual was generated. Regenerate it to refresh the screenshots."),
]


class ContentAgent(BaseAgent):
    description = "Builds user-manual sections from the crawl analysis"
    capabilities = ["content_generation"]

    def __init__(self, name: str = "ContentAgent"):
        super().__init__(name)

    def task_handlers(self) -> Dict[str, Handler]:
        return {"generate_content": self._generate_content}

    async def _generate_content(self, task: Task) -> Dict[str, Any]:
        """Payload: ``analysis`` (the analysis phase output), ``url``, optional ``title``."""
        analysis = task.payload["analysis"]
        url = task.payload.get("url", "")
        manual = build_manual(analysis, url, task.payload.get("title"))
        self.log.info(f"[AGENT:{self.name}] {len(manual.sections)} section(s) for {manual.title}")
        return manual.to_dict()

    def render_report(self, result: TaskResult) -> str:
        if not result.success or not isinstance(result.data, dict):
            return super().render_report(result)
        sections = result.data["sections"]
        lines = [f"# {self.name} Report", "", f"- **Manual:** {result.data['title']}",
                 f"- **Sections:** {len(sections)}", ""]
        lines += [f"{'  ' * (s['level'] - 2)}- {s['title']}" for s in sections]
        return "\n".join(lines) + "\n"


def build_manual(analysis: Dict[str, Any], url: str, title: str = None) -> UserManual:
    """Introduction, one section per page, then the troubleshooting appendix."""
    host = urlparse(url).hostname or url
    pages: List[Dict[str, Any]] = analysis.get("pageAnalyses", [])
    manual = UserManual(
        title=title or f"User Manual: {host}",
        source_url=url,
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M"),
        metadata={
            "totalPages": analysis.get("totalPages", len(pages)),
            "totalElements": analysis.get("totalElements", 0),
            "aiGenerated": analysis.get("aiGenerated", False),
        },
    )

    manual.sections.append(ManualSection(
        title="Introduction",
        paragraphs=[
            analysis.get("summary", ""),
            f"This manual covers {len(pages)} screen(s) of {host} and "
            f"{analysis.get('totalElements', 0)} interactive element(s).",
        ],
        kind="introduction",
    ))
    if analysis.get("keyFunctionalities"):
        manual.sections.append(ManualSection(
            title="Key Features", bullets=list(analysis["keyFunctionalities"]), kind="overview",
        ))
    if analysis.get("userWorkflows"):
        manual.sections.append(ManualSection(
            title="Common Workflows", bullets=list(analysis["userWorkflows"]), kind="overview",
        ))

    for idx, page in enumerate(pages, 1):
        manual.sections += _page_sections(idx, page)

    manual.sections.append(ManualSection(
        title="Troubleshooting",
        paragraphs=[f"{q}: {a}" for q, a in _TROUBLESHOOTING],
        kind="troubleshooting",
    ))
    return manual


def _page_sections(idx: int, page: Dict[str, Any]) -> List[ManualSection]:
    title = page.get("title") or page["url"]
    refs = page.get("screenshotRefs", [])
    main = ManualSection(
        title=f"{idx}. {title}",
        paragraphs=[f"Address: {page['url']}", page.get("purpose", "")],
        images=[{"path": refs[0], "caption": f"{title} screen"}] if refs else [],
    )
    sections = [main]

    if page.get("userJourney"):
        sections.append(ManualSection(
            title="How to use this screen",
            level=3,
            bullets=[f"Step {i}: {step}" for i, step in enumerate(page["userJourney"], 1)],
        ))

    elements = page.get("elementAnalyses", [])
    if elements:
        rows = [
            [e.get("description", ""), e.get("category", ""), e.get("usageInstructions", "")]
            for e in elements[:_MAX_TABLE_ROWS]
        ]
        sections.append(ManualSection(
            title="Controls on this screen",
            level=3,
            table={"headers": ["Element", "Category", "How to use"], "rows": rows},
            images=[{"path": ref, "caption": f"{title} detail {i}"} for i, ref in enumerate(refs[1:], 1)],
        ))

    access = page.get("accessibility") or {}
    if access.get("issues"):
        sections.append(ManualSection(
            title=f"Accessibility notes (score {access.get('score', 0)}/100)",
            level=3,
            bullets=sorted(set(access["issues"])),
        ))
    return sections
