"""
Element Detector
================
Finds, labels and orders the interactive elements of a loaded page.

Detection is split in two halves:

    1. A single ``page.evaluate`` call walks the DOM for a list of CSS
       selectors and returns one plain dict ("raw node") per match with
       the box, computed style, attributes and ancestry facts needed
       later.  A node matched by an earlier selector is not reported
       again.
    2. Pure Python turns raw nodes into results: visibility filter,
       label chain, selector synthesis, ordering, navigation confidence,
       modal test and page classification.

Keeping the heuristics in Python means every rule can be tested
against hand-written raw nodes without a browser.

Visibility:
    non-zero box, ``display != none``, ``visibility != hidden``,
    ``opacity >= 0.1``.

Label chain:
    visible text → placeholder → aria-label → title → alt → name →
    ``"{type}_{index}"``.

Selector:
    ``#id`` when the node has an id, otherwise the tag name, promoted to
    ``tag:nth-of-type(n)`` only when a sibling shares the tag.

Ordering:
    importance descending, then 50px rows top to bottom, then left to
    right.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from ..errors import ElementDetectionError
from ..utils import clean_text

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

class DetectionRule(NamedTuple):
    selector: str
    semantic_type: str
    importance: int


INTERACTIVE_RULES: List[DetectionRule] = [
    DetectionRule('button', 'button', 5),
    DetectionRule('input[type="submit"]', 'submit_button', 5),
    DetectionRule('a[href]', 'link', 4),
    DetectionRule('input[type="button"]', 'button', 4),
    DetectionRule('input[type="checkbox"]', 'checkbox', 3),
    DetectionRule('input[type="radio"]', 'radio', 3),
    DetectionRule('input:not([type="hidden"])', 'input', 4),
    DetectionRule('select', 'select', 4),
    DetectionRule('textarea', 'textarea', 3),
    DetectionRule('[role="button"]', 'button', 4),
    DetectionRule('[role="link"]', 'link', 3),
    DetectionRule('[role="menuitem"]', 'menuitem', 4),
    DetectionRule('[role="tab"]', 'tab', 3),
    DetectionRule('[data-toggle], [data-bs-toggle]', 'toggle', 3),
    DetectionRule('[onclick]', 'interactive', 2),
]

FUNCTIONALITY: Dict[str, str] = {
    'button': 'Executes an action',
    'submit_button': 'Submits the form',
    'link': 'Navigates to another page',
    'checkbox': 'Toggles an option on or off',
    'radio': 'Selects one option from a group',
    'input': 'Accepts text input',
    'select': 'Chooses a value from a list',
    'textarea': 'Accepts multi-line text',
    'menuitem': 'Opens a menu entry',
    'tab': 'Switches between views',
    'toggle': 'Expands or collapses content',
    'interactive': 'Responds to clicks',
}

NAVIGATION_SELECTORS: List[str] = [
    'nav', 'nav a', 'nav button', 'nav li',
    '.navbar a', '.navbar button', '.navbar-nav',
    '.menu a', '.menu button', '.menu-item',
    '.navigation', '.nav-link', '.nav-item',
    '.sidebar a', '.sidebar button',
    '[role="navigation"]', '[role="menubar"]', '[role="menu"]', '[role="menuitem"]',
    '.breadcrumb a', '.dropdown-toggle',
    'header a', 'header button', 'aside a', 'aside button',
    '[data-nav]', '[data-menu]', '[data-navigation]',
]

NAVIGATION_KEYWORDS = (
    # en
    'menu', 'home', 'dashboard', 'panel', 'reports', 'settings', 'profile',
    'account', 'user', 'sign out', 'sign in', 'logout', 'login', 'register',
    'signup', 'about', 'contact', 'help', 'support', 'docs', 'products',
    'services', 'categories', 'search', 'navigation',
    # pt
    'início', 'principal', 'painel', 'relatórios', 'configurações', 'ajustes',
    'perfil', 'conta', 'sair', 'entrar', 'cadastro', 'registro', 'sobre',
    'contato', 'ajuda', 'suporte', 'documentação', 'produtos', 'serviços',
    'categorias', 'buscar', 'pesquisar',
    # es
    'menú', 'inicio', 'tablero', 'informes', 'configuración', 'cuenta',
    'salir', 'acerca', 'contacto', 'ayuda', 'soporte', 'productos', 'servicios',
)

_NAV_CLASS_RE = re.compile(r'\b(menu|nav|navbar|navigation|sidebar|breadcrumb)\b', re.I)
_NAV_ROLES = {'navigation', 'menu', 'menubar', 'menuitem'}

MODAL_SELECTORS: List[str] = [
    '.modal', '.dialog', '.popup',
    '[role="dialog"]', '[role="alertdialog"]',
    '[data-modal]', '[data-dialog]', '[data-popup]',
]

CONFIDENCE_THRESHOLD = 0.3
ROW_BUCKET_PX = 50
MIN_OPACITY = 0.1

PAGE_KINDS = ('dialog', 'wizard', 'form', 'list', 'dashboard', 'unknown')


# ---------------------------------------------------------------------------
# In-page scripts
# ---------------------------------------------------------------------------

# args: {selectors: [str]}.  Returns one raw node per first match.
_COLLECT_SCRIPT = r"""
({selectors}) => {
  const seen = new Set();
  const out = [];
  const ATTRS = ['id', 'name', 'type', 'href', 'role', 'placeholder', 'aria-label',
                 'title', 'alt', 'value', 'class', 'data-nav', 'data-menu',
                 'data-navigation', 'data-toggle', 'data-bs-toggle'];
  selectors.forEach((sel, ruleIndex) => {
    let nodes = [];
    try { nodes = document.querySelectorAll(sel); } catch (e) { return; }
    nodes.forEach((el) => {
      if (seen.has(el)) return;
      seen.add(el);
      const r = el.getBoundingClientRect();
      const cs = window.getComputedStyle(el);
      const tag = el.tagName.toLowerCase();
      const attributes = {};
      ATTRS.forEach((a) => { const v = el.getAttribute(a); if (v !== null) attributes[a] = v; });
      let nth = 1, sameTag = 0;
      if (el.parentElement) {
        const sibs = Array.from(el.parentElement.children).filter((c) => c.tagName === el.tagName);
        sameTag = sibs.length;
        nth = sibs.indexOf(el) + 1;
      }
      out.push({
        ruleIndex,
        tag,
        text: (el.innerText || el.textContent || '').trim().slice(0, 200),
        attributes,
        rect: {x: r.left + window.scrollX, y: r.top + window.scrollY,
               top: r.top, left: r.left, right: r.right,
               width: r.width, height: r.height},
        style: {display: cs.display, visibility: cs.visibility,
                opacity: parseFloat(cs.opacity || '1'),
                position: cs.position, zIndex: cs.zIndex},
        nthOfType: nth,
        sameTagSiblings: sameTag,
        inNavContainer: !!el.closest('nav, .menu, .navbar, header, aside'),
        inMenuContainer: !!el.closest('nav, .menu, .navbar'),
        hasSubmenu: !!el.querySelector('ul, .submenu, .dropdown'),
        viewportWidth: window.innerWidth,
      });
    });
  });
  return out;
}
"""

_CLASSIFY_SCRIPT = r"""
() => {
  const q = (s) => { try { return !!document.querySelector(s); } catch (e) { return false; } };
  const h = document.querySelector('h1, h2');
  return {
    hasTable: q('table, [role="table"], .ag-grid, .MuiDataGrid-root'),
    hasForm: q('form, [role="form"], input, select, textarea'),
    hasWizard: q('[role="tablist"], .steps, .wizard, [data-step]'),
    hasDialog: q('[role="dialog"], .modal, .ant-modal, .MuiDialog-root'),
    hasCharts: q('canvas, svg .chart, [class*="chart"]'),
    heading: h ? (h.textContent || '').trim() : '',
    title: document.title || '',
  };
}
"""


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class InteractiveElement:
    id: str
    type: str
    text: str
    functionality: str
    selector: str
    position: Dict[str, float]
    size: Dict[str, float]
    attributes: Dict[str, str] = field(default_factory=dict)
    is_visible: bool = True
    importance: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NavigationElement:
    text: str
    selector: str
    tag: str
    href: str
    position: Dict[str, float]
    confidence: float
    signals: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ModalCandidate:
    selector: str
    text: str
    position: Dict[str, float]
    size: Dict[str, float]
    z_index: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PageClassification:
    kind: str
    hints: List[str]
    title: str


# ---------------------------------------------------------------------------
# Pure heuristics over raw nodes
# ---------------------------------------------------------------------------

def is_visible(raw: Dict[str, Any]) -> bool:
    rect = raw.get('rect') or {}
    style = raw.get('style') or {}
    if not rect.get('width') or not rect.get('height'):
        return False
    if style.get('display') == 'none' or style.get('visibility') == 'hidden':
        return False
    try:
        opacity = float(style.get('opacity', 1))
    except (TypeError, ValueError):
        opacity = 1.0
    return opacity >= MIN_OPACITY


def derive_label(raw: Dict[str, Any], semantic_type: str, index: int) -> str:
    attrs = raw.get('attributes') or {}
    candidates = (
        raw.get('text'),
        attrs.get('placeholder'),
        attrs.get('aria-label'),
        attrs.get('title'),
        attrs.get('alt'),
        attrs.get('name'),
    )
    for value in candidates:
        value = clean_text(value or '')
        if value:
            return value[:100]
    return f"{semantic_type}_{index}"


_CSS_IDENT_RE = re.compile(r'^-?[A-Za-z_][\w-]*$')


def synthesize_selector(raw: Dict[str, Any]) -> str:
    tag = raw.get('tag') or '*'
    element_id = (raw.get('attributes') or {}).get('id')
    if element_id:
        if _CSS_IDENT_RE.match(element_id):
            return f"#{element_id}"
        escaped = element_id.replace('\\', '\\\\').replace('"', '\\"')
        return f'[id="{escaped}"]'
    if raw.get('sameTagSiblings', 1) > 1:
        return f"{tag}:nth-of-type({raw.get('nthOfType', 1)})"
    return tag


def sort_elements(elements: List[InteractiveElement]) -> List[InteractiveElement]:
    """Importance descending, then 50px rows, then x."""
    return sorted(
        elements,
        key=lambda e: (
            -e.importance,
            int(e.position.get('y', 0) // ROW_BUCKET_PX),
            e.position.get('x', 0),
        ),
    )


def navigation_confidence(raw: Dict[str, Any], viewport_width: Optional[float] = None) -> NavigationElement:
    """Score how likely *raw* is a navigation control (0..1)."""
    rect = raw.get('rect') or {}
    attrs = raw.get('attributes') or {}
    tag = raw.get('tag') or ''
    text = clean_text(raw.get('text') or '')
    lowered = text.lower()
    width = viewport_width or raw.get('viewportWidth') or 1920
    href = attrs.get('href') or ''

    score = 0.0
    signals: List[str] = []

    def add(weight: float, signal: str) -> None:
        nonlocal score
        score += weight
        signals.append(signal)

    if any(k in lowered for k in NAVIGATION_KEYWORDS):
        add(0.3, 'keyword')
    if rect.get('top', rect.get('y', 0)) < 200:
        add(0.2, 'top')
    left = rect.get('left', rect.get('x', 0))
    right = rect.get('right', left + rect.get('width', 0))
    if left < 300 or right > width - 300:
        add(0.2, 'edge')
    if tag == 'nav':
        add(0.4, 'nav-tag')
    if tag == 'a' and raw.get('inNavContainer'):
        add(0.2, 'link-in-nav')
    if tag == 'button' and raw.get('inMenuContainer'):
        add(0.2, 'button-in-menu')
    if _NAV_CLASS_RE.search(attrs.get('class', '')):
        add(0.3, 'nav-class')
    if attrs.get('role', '') in _NAV_ROLES:
        add(0.3, 'nav-role')
    if any(k in attrs for k in ('data-nav', 'data-menu', 'data-navigation')):
        add(0.2, 'data-attr')
    if href and href != '#' and not href.startswith('javascript:'):
        add(0.2, 'href')
    if raw.get('hasSubmenu'):
        add(0.1, 'submenu')

    return NavigationElement(
        text=text[:100],
        selector=synthesize_selector(raw),
        tag=tag,
        href=href,
        position={'x': rect.get('x', 0), 'y': rect.get('y', 0)},
        confidence=round(min(score, 1.0), 2),
        signals=signals,
    )


def is_modal_candidate(raw: Dict[str, Any]) -> bool:
    if not is_visible(raw):
        return False
    style = raw.get('style') or {}
    if style.get('position') not in ('fixed', 'absolute'):
        return False
    try:
        z_index = int(style.get('zIndex'))
    except (TypeError, ValueError):
        return False
    return z_index > 100


def classify_page(facts: Dict[str, Any]) -> PageClassification:
    """Map DOM facts (see ``_CLASSIFY_SCRIPT``) to a page kind."""
    hints = [name for flag, name in (
        ('hasTable', 'table'), ('hasForm', 'form'), ('hasWizard', 'wizard'),
        ('hasDialog', 'dialog'), ('hasCharts', 'chart'),
    ) if facts.get(flag)]
    title = clean_text(facts.get('heading') or facts.get('title') or '')

    if facts.get('hasDialog'):
        kind = 'dialog'
    elif facts.get('hasWizard') or (facts.get('hasForm') and facts.get('hasTable')):
        kind = 'wizard'
    elif facts.get('hasForm'):
        kind = 'form'
    elif facts.get('hasTable'):
        kind = 'list'
    elif facts.get('hasCharts'):
        kind = 'dashboard'
    else:
        kind = 'unknown'
    return PageClassification(kind=kind, hints=hints, title=title)


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

class ElementDetector:
    """Runs the rule tables against a Playwright page."""

    def __init__(
        self,
        rules: Sequence[DetectionRule] = tuple(INTERACTIVE_RULES),
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
    ):
        self.rules = list(rules)
        self.confidence_threshold = confidence_threshold

    async def _collect(self, page: Page, selectors: List[str]) -> List[Dict[str, Any]]:
        try:
            raws = await page.evaluate(_COLLECT_SCRIPT, {'selectors': selectors})
        except PlaywrightError as exc:
            raise ElementDetectionError(f"DOM scan failed on {page.url}: {exc}") from exc
        return raws or []

    # ── Interactive elements ──────────────────────────────────────

    def build_elements(self, raws: List[Dict[str, Any]]) -> List[InteractiveElement]:
        """Filter, label and order raw nodes from ``_COLLECT_SCRIPT``."""
        elements: List[InteractiveElement] = []
        for raw in raws:
            if not is_visible(raw):
                continue
            try:
                rule = self.rules[raw.get('ruleIndex', -1)]
            except IndexError:
                continue
            index = len(elements)
            rect = raw.get('rect') or {}
            elements.append(InteractiveElement(
                id=f"element_{index}",
                type=rule.semantic_type,
                text=derive_label(raw, rule.semantic_type, index),
                functionality=FUNCTIONALITY.get(rule.semantic_type, 'Interactive element'),
                selector=synthesize_selector(raw),
                position={'x': rect.get('x', 0), 'y': rect.get('y', 0)},
                size={'w': rect.get('width', 0), 'h': rect.get('height', 0)},
                attributes=dict(raw.get('attributes') or {}),
                is_visible=True,
                importance=rule.importance,
            ))
        return sort_elements(elements)

    async def detect(self, page: Page) -> List[InteractiveElement]:
        """Return the visible interactive elements of *page*, ordered.

        Raises:
            ElementDetectionError: the DOM scan itself failed.
        """
        raws = await self._collect(page, [r.selector for r in self.rules])
        elements = self.build_elements(raws)
        logger.info(f"[DETECT] {len(elements)} interactive element(s) on {page.url}")
        return elements

    # ── Navigation ────────────────────────────────────────────────

    def score_navigation(self, raws: List[Dict[str, Any]]) -> List[NavigationElement]:
        scored = [navigation_confidence(raw) for raw in raws if is_visible(raw)]
        kept = [n for n in scored if n.confidence >= self.confidence_threshold]
        kept.sort(key=lambda n: -n.confidence)
        return kept

    async def detect_navigation(self, page: Page) -> List[NavigationElement]:
        raws = await self._collect(page, NAVIGATION_SELECTORS)
        found = self.score_navigation(raws)
        logger.info(f"[DETECT] {len(found)} navigation element(s) on {page.url}")
        return found

    # ── Modals ────────────────────────────────────────────────────

    async def detect_modals(self, page: Page) -> List[ModalCandidate]:
        raws = await self._collect(page, MODAL_SELECTORS)
        modals = []
        for raw in raws:
            if not is_modal_candidate(raw):
                continue
            rect = raw.get('rect') or {}
            modals.append(ModalCandidate(
                selector=synthesize_selector(raw),
                text=clean_text(raw.get('text') or '')[:200],
                position={'x': rect.get('x', 0), 'y': rect.get('y', 0)},
                size={'w': rect.get('width', 0), 'h': rect.get('height', 0)},
                z_index=int((raw.get('style') or {}).get('zIndex', 0)),
            ))
        if modals:
            logger.info(f"[DETECT] {len(modals)} modal candidate(s) on {page.url}")
        return modals

    # ── Page kind ─────────────────────────────────────────────────

    async def classify(self, page: Page) -> PageClassification:
        try:
            facts = await page.evaluate(_CLASSIFY_SCRIPT)
        except PlaywrightError as exc:
            raise ElementDetectionError(f"Page classification failed on {page.url}: {exc}") from exc
        return classify_page(facts or {})
