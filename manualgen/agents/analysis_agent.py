"""
Analysis Worker
===============
Turns raw crawl output into a structured application analysis.

For every page the AI providers are asked for the page purpose, the user
journey, key features and per-element usage notes.  When both providers
fail (``ProvidersExhausted``) or answer with something that is not JSON,
a deterministic fallback analysis is built from the detected elements so
the pipeline keeps going.  The accessibility score never involves a
provider: it is computed from element attributes alone.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import ProvidersExhausted
from ..providers import FallbackRouter
from .runtime import BaseAgent, Handler, Task, TaskResult

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

_FORM_FIELD_TYPES = ("input", "select", "textarea")

_CATEGORIES = {
    "input": "input",
    "select": "input",
    "textarea": "input",
    "button": "action",
    "submit_button": "action",
    "toggle": "action",
    "link": "navigation",
    "menuitem": "navigation",
    "tab": "navigation",
    "checkbox": "selection",
    "radio": "selection",
    "interactive": "interaction",
}


# ---------------------------------------------------------------------------
# Result model
# ---------------------------------------------------------------------------

@dataclass
class AccessibilityReport:
    score: int = 100
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class ElementAnalysis:
    id: str
    description: str
    functionality: str
    user_benefit: str
    importance: int
    usage_instructions: str
    category: str
    interactions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "functionality": self.functionality,
            "userBenefit": self.user_benefit,
            "importance": self.importance,
            "usageInstructions": self.usage_instructions,
            "category": self.category,
            "interactions": list(self.interactions),
        }


@dataclass
class PageAnalysis:
    url: str
    title: str
    purpose: str
    user_journey: List[str]
    key_features: List[str]
    navigation_flow: List[str]
    element_analyses: List[ElementAnalysis]
    accessibility: AccessibilityReport
    screenshot_refs: List[str] = field(default_factory=list)
    page_kind: str = "unknown"
    ai_generated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "purpose": self.purpose,
            "userJourney": list(self.user_journey),
            "keyFeatures": list(self.key_features),
            "navigationFlow": list(self.navigation_flow),
            "elementAnalyses": [e.to_dict() for e in self.element_analyses],
            "accessibility": asdict(self.accessibility),
            "screenshotRefs": list(self.screenshot_refs),
            "pageKind": self.page_kind,
            "aiGenerated": self.ai_generated,
        }


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def accessibility_score(elements: List[Dict[str, Any]]) -> AccessibilityReport:
    """Score 100, minus 5 per unlabeled form field, minus 3 per important element without text."""
    report = AccessibilityReport()
    score = 100
    for el in elements:
        attrs = el.get("attributes") or {}
        if el.get("type") in _FORM_FIELD_TYPES and not attrs.get("aria-label") and not attrs.get("placeholder"):
            report.issues.append(f"Field '{el.get('text', '')}' has no accessible label")
            report.recommendations.append("Add an aria-label or placeholder")
            score -= 5
        if el.get("importance", 0) > 3 and not el.get("text"):
            report.issues.append("Important element without descriptive text")
            report.recommendations.append("Add descriptive text or an aria-label")
            score -= 3
    report.score = max(0, score)
    return report


def parse_ai_json(text: str) -> Dict[str, Any]:
    """Pull the outermost JSON object out of a model reply; ``{}`` if there is none."""
    match = _JSON_OBJECT.search(text or "")
    try:
        parsed = json.loads(match.group(0) if match else text)
    except (json.JSONDecodeError, TypeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def categorize(element_type: str) -> str:
    return _CATEGORIES.get(element_type, "general")


def fallback_element_analysis(el: Dict[str, Any]) -> ElementAnalysis:
    el_type = el.get("type", "interactive")
    return ElementAnalysis(
        id=el.get("id", ""),
        description=f"{el.get('functionality', 'Interactive element')} labelled \"{el.get('text', '')}\"",
        functionality=el.get("functionality", ""),
        user_benefit="Lets the user interact with the application",
        importance=el.get("importance", 0),
        usage_instructions="Click to run the action" if "button" in el_type else "Interact as needed",
        category=categorize(el_type),
        interactions=["click", "focus"],
    )


def _str_list(value: Any, default: List[str]) -> List[str]:
    if isinstance(value, list) and value:
        return [str(v) for v in value]
    return list(default)


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------

class AnalysisAgent(BaseAgent):
    description = "AI-assisted analysis of crawled pages"
    capabilities = ["page_analysis", "element_analysis", "accessibility_analysis"]

    def __init__(self, router: Optional[FallbackRouter] = None, name: str = "AnalysisAgent"):
        super().__init__(name)
        self.router = router

    def task_handlers(self) -> Dict[str, Handler]:
        return {"analyze_crawl": self._analyze_crawl}

    async def _analyze_crawl(self, task: Task) -> Dict[str, Any]:
        """Payload: ``crawl`` (a ``CrawlResult.to_dict()``), optional ``authenticated``."""
        crawl = task.payload["crawl"]
        pages = crawl.get("pages", [])
        analyses = [await self.analyze_page(p) for p in pages]
        summary = await self._summarize(pages, analyses, bool(task.payload.get("authenticated")))
        total_elements = sum(len(p.get("elements", [])) for p in pages)
        return {
            **summary,
            "totalPages": len(pages),
            "totalElements": total_elements,
            "elementsAnalyzed": sum(len(a.element_analyses) for a in analyses),
            "pageAnalyses": [a.to_dict() for a in analyses],
            "rawPages": pages,
        }

    async def analyze_page(self, page: Dict[str, Any]) -> PageAnalysis:
        elements = page.get("elements", [])
        accessibility = accessibility_score(elements)
        reply = await self._ask(self._page_prompt(page, elements))
        if not reply:
            analysis = self._fallback_page(page, elements, accessibility)
        else:
            notes = reply.get("elements") if isinstance(reply.get("elements"), list) else []
            element_analyses = []
            for i, el in enumerate(elements):
                note = notes[i] if i < len(notes) and isinstance(notes[i], dict) else {}
                base = fallback_element_analysis(el)
                element_analyses.append(ElementAnalysis(
                    id=base.id,
                    description=note.get("description") or base.description,
                    functionality=note.get("functionality") or base.functionality,
                    user_benefit=note.get("userBenefit") or base.user_benefit,
                    importance=base.importance,
                    usage_instructions=note.get("usageInstructions") or base.usage_instructions,
                    category=note.get("category") or base.category,
                    interactions=_str_list(note.get("interactions"), base.interactions),
                ))
            analysis = PageAnalysis(
                url=page["url"],
                title=page.get("title", ""),
                purpose=str(reply.get("purpose") or "Purpose not identified"),
                user_journey=_str_list(reply.get("userJourney"), ["Open the page", "Interact with its elements"]),
                key_features=_str_list(reply.get("keyFeatures"), [e.get("text", "") for e in elements[:5]]),
                navigation_flow=_str_list(reply.get("navigationFlow"), ["Sequential navigation"]),
                element_analyses=element_analyses,
                accessibility=accessibility,
                ai_generated=True,
            )
        analysis.screenshot_refs = list(page.get("screenshotRefs", []))
        analysis.page_kind = page.get("pageKind", "unknown")
        self.log.info(f"[AGENT:{self.name}] Analyzed {analysis.title[:60]} ({len(elements)} elements)")
        return analysis

    # ── Provider calls ────────────────────────────────────────────

    async def _ask(self, prompt: str) -> Dict[str, Any]:
        if self.router is None:
            return {}
        try:
            content = await self.router.complete(prompt)
        except ProvidersExhausted as exc:
            self.log.warning(f"[AGENT:{self.name}] Falling back to heuristic analysis: {exc}")
            return {}
        return parse_ai_json(content)

    async def _summarize(
        self, pages: List[Dict[str, Any]], analyses: List[PageAnalysis], authenticated: bool,
    ) -> Dict[str, Any]:
        lines = [
            f"- {a.title} ({a.url}): {a.purpose}; features: {', '.join(a.key_features[:5])}"
            for a in analyses
        ]
        prompt = (
            "Analyze this crawl of a web application and reply with a JSON object with the keys "
            "summary, keyFunctionalities, userWorkflows, recommendations, technologies, patterns "
            "and complexity (low|medium|high).\n\n"
            f"Pages: {len(pages)}\nAuthenticated: {'yes' if authenticated else 'no'}\n\n"
            + "\n".join(lines)
        )
        reply = await self._ask(prompt)
        return {
            "summary": str(reply.get("summary") or "Web application with several pages and interactive features"),
            "keyFunctionalities": _str_list(
                reply.get("keyFunctionalities"), ["Web navigation", "Form interaction", "Information access"],
            ),
            "userWorkflows": _str_list(reply.get("userWorkflows"), ["Open → Navigate → Interact"]),
            "recommendations": _str_list(
                reply.get("recommendations"), ["Improve accessibility", "Simplify navigation"],
            ),
            "technicalInsights": {
                "technologies": _str_list(reply.get("technologies"), ["HTML", "CSS", "JavaScript"]),
                "patterns": _str_list(reply.get("patterns"), ["Multi-page application"]),
                "complexity": str(reply.get("complexity") or "medium"),
            },
            "aiGenerated": bool(reply),
        }

    @staticmethod
    def _page_prompt(page: Dict[str, Any], elements: List[Dict[str, Any]]) -> str:
        listed = "\n".join(
            f"{i + 1}. {el.get('type')} \"{el.get('text', '')}\" | {el.get('functionality', '')} "
            f"| importance {el.get('importance', 0)}"
            for i, el in enumerate(elements)
        )
        return (
            "Analyze this web page for an end-user manual.\n\n"
            f"URL: {page['url']}\nTitle: {page.get('title', '')}\nElements: {len(elements)}\n\n"
            f"{listed}\n\n"
            "Reply with a JSON object with the keys purpose, userJourney (list), keyFeatures (list), "
            "navigationFlow (list) and elements (a list in the same order as above, each with "
            "description, userBenefit, usageInstructions, category and interactions)."
        )

    @staticmethod
    def _fallback_page(
        page: Dict[str, Any], elements: List[Dict[str, Any]], accessibility: AccessibilityReport,
    ) -> PageAnalysis:
        return PageAnalysis(
            url=page["url"],
            title=page.get("title", ""),
            purpose="Application page",
            user_journey=["Open the page", "Review the content", "Interact with the elements"],
            key_features=[e.get("text") or e.get("type", "") for e in elements[:5]],
            navigation_flow=["Enter the page", "Move between elements", "Run actions"],
            element_analyses=[fallback_element_analysis(e) for e in elements],
            accessibility=accessibility,
        )

    def render_report(self, result: TaskResult) -> str:
        if not result.success or not isinstance(result.data, dict):
            return super().render_report(result)
        data = result.data
        lines = [
            f"# {self.name} Report",
            "",
            f"- **Pages analyzed:** {data['totalPages']}",
            f"- **Elements analyzed:** {data['elementsAnalyzed']}",
            f"- **AI summary:** {'yes' if data['aiGenerated'] else 'no (fallback)'}",
            "",
            data["summary"],
            "",
        ]
        for i, page in enumerate(data["pageAnalyses"], 1):
            lines.append(
                f"{i}. **{page['title']}**: {page['purpose']} "
                f"(accessibility {page['accessibility']['score']}/100)"
            )
        return "\n".join(lines) + "\n"
