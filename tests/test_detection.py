"""
Tests for the element detector heuristics, driven by hand-written raw
nodes (the dicts the in-page collection script returns).
"""

import asyncio

from manualgen.crawl.detection import (
    CONFIDENCE_THRESHOLD,
    INTERACTIVE_RULES,
    ElementDetector,
    classify_page,
    derive_label,
    is_modal_candidate,
    is_visible,
    navigation_confidence,
    synthesize_selector,
)


def raw(tag="button", rule=0, text="", attrs=None, x=10, y=10, w=100, h=30,
        display="block", visibility="visible", opacity="1", position="static",
        z_index="auto", nth=1, siblings=1, **extra):
    node = {
        "ruleIndex": rule,
        "tag": tag,
        "text": text,
        "attributes": attrs or {},
        "rect": {"x": x, "y": y, "top": y, "left": x, "right": x + w, "width": w, "height": h},
        "style": {"display": display, "visibility": visibility, "opacity": opacity,
                  "position": position, "zIndex": z_index},
        "nthOfType": nth,
        "sameTagSiblings": siblings,
        "viewportWidth": 1920,
    }
    node.update(extra)
    return node


def _rule(semantic_type):
    return next(i for i, r in enumerate(INTERACTIVE_RULES) if r.semantic_type == semantic_type)


# ====================================================================
# Visibility
# ====================================================================

class TestVisibility:

    def test_visible_node(self):
        assert is_visible(raw())

    def test_zero_box_is_hidden(self):
        assert not is_visible(raw(w=0))
        assert not is_visible(raw(h=0))

    def test_css_hidden(self):
        assert not is_visible(raw(display="none"))
        assert not is_visible(raw(visibility="hidden"))

    def test_opacity_threshold(self):
        assert not is_visible(raw(opacity="0.05"))
        assert is_visible(raw(opacity="0.1"))


# ====================================================================
# Labels and selectors
# ====================================================================

class TestLabelChain:

    def test_text_wins(self):
        node = raw(text="  Save  changes ", attrs={"placeholder": "p", "aria-label": "a"})
        assert derive_label(node, "button", 0) == "Save changes"

    def test_chain_order(self):
        assert derive_label(raw(attrs={"placeholder": "Email", "aria-label": "a"}), "input", 0) == "Email"
        assert derive_label(raw(attrs={"aria-label": "Close", "title": "t"}), "button", 0) == "Close"
        assert derive_label(raw(attrs={"title": "Help", "alt": "a"}), "link", 0) == "Help"
        assert derive_label(raw(attrs={"alt": "Logo", "name": "n"}), "link", 0) == "Logo"
        assert derive_label(raw(attrs={"name": "q"}), "input", 0) == "q"

    def test_fallback_uses_type_and_index(self):
        assert derive_label(raw(), "checkbox", 7) == "checkbox_7"


class TestSelector:

    def test_id_preferred(self):
        assert synthesize_selector(raw(attrs={"id": "save-btn"}, siblings=3, nth=2)) == "#save-btn"

    def test_non_ident_id_is_quoted(self):
        assert synthesize_selector(raw(attrs={"id": "1st"})) == '[id="1st"]'

    def test_plain_tag_without_collision(self):
        assert synthesize_selector(raw(tag="select")) == "select"

    def test_nth_of_type_on_collision(self):
        assert synthesize_selector(raw(tag="button", nth=2, siblings=3)) == "button:nth-of-type(2)"


# ====================================================================
# Building and ordering
# ====================================================================

class TestBuildElements:

    def test_importance_beats_position(self):
        """An importance-5 element at y=500 precedes an importance-3 one at y=100."""
        detector = ElementDetector()
        nodes = [
            raw(tag="textarea", rule=_rule("textarea"), text="Notes", y=100),
            raw(tag="button", rule=_rule("button"), text="Save", y=500),
        ]
        elements = detector.build_elements(nodes)
        assert [e.text for e in elements] == ["Save", "Notes"]
        assert elements[0].importance == 5

    def test_row_bucket_then_left_to_right(self):
        detector = ElementDetector()
        link = _rule("link")
        nodes = [
            raw(tag="a", rule=link, text="right", x=400, y=120),
            raw(tag="a", rule=link, text="left-lower-pixel", x=50, y=140),
            raw(tag="a", rule=link, text="next-row", x=10, y=160),
        ]
        # y=120 and y=140 share the 100-149 bucket, so x decides
        assert [e.text for e in detector.build_elements(nodes)] == ["left-lower-pixel", "right", "next-row"]

    def test_hidden_nodes_are_dropped(self):
        detector = ElementDetector()
        nodes = [raw(text="shown"), raw(text="hidden", display="none")]
        elements = detector.build_elements(nodes)
        assert [e.text for e in elements] == ["shown"]

    def test_element_fields(self):
        detector = ElementDetector()
        el = detector.build_elements([raw(tag="input", rule=_rule("input"), attrs={"id": "email", "placeholder": "Email"})])[0]
        assert el.type == "input"
        assert el.text == "Email"
        assert el.selector == "#email"
        assert el.functionality == "Accepts text input"
        assert el.is_visible

    def test_detect_uses_page_evaluate(self):
        class Page:
            url = "https://a.test/"

            async def evaluate(self, script, arg=None):
                assert arg["selectors"][0] == INTERACTIVE_RULES[0].selector
                return [raw(text="Go")]

        elements = asyncio.run(ElementDetector().detect(Page()))
        assert [e.text for e in elements] == ["Go"]


# ====================================================================
# Navigation confidence
# ====================================================================

class TestNavigationConfidence:

    def test_signals_sum_and_cap_at_one(self):
        node = raw(tag="a", text="Dashboard", attrs={"href": "/dash", "class": "nav-link", "role": "menuitem"},
                   x=20, y=20, inNavContainer=True, hasSubmenu=True)
        nav = navigation_confidence(node)
        assert nav.confidence == 1.0
        assert {"keyword", "top", "edge", "link-in-nav", "nav-class", "nav-role", "href", "submenu"} <= set(nav.signals)

    def test_plain_centered_button_scores_low(self):
        node = raw(tag="button", text="Calculate", x=900, y=600, w=100)
        assert navigation_confidence(node).confidence < CONFIDENCE_THRESHOLD

    def test_threshold_filter_and_order(self):
        detector = ElementDetector()
        strong = raw(tag="a", text="Home", attrs={"href": "/"}, x=20, y=20, inNavContainer=True)
        weak = raw(tag="button", text="Calculate", x=900, y=600)
        medium = raw(tag="a", text="Contact", attrs={"href": "/c"}, x=900, y=600)
        kept = detector.score_navigation([weak, medium, strong])
        assert [n.text for n in kept] == ["Home", "Contact"]
        assert all(n.confidence >= CONFIDENCE_THRESHOLD for n in kept)

    def test_hash_href_is_not_a_signal(self):
        node = raw(tag="a", text="x", attrs={"href": "#"}, x=900, y=600)
        assert "href" not in navigation_confidence(node).signals


# ====================================================================
# Modals and page kind
# ====================================================================

class TestModalsAndKinds:

    def test_modal_candidate_rules(self):
        assert is_modal_candidate(raw(position="fixed", z_index="1050"))
        assert is_modal_candidate(raw(position="absolute", z_index="101"))
        assert not is_modal_candidate(raw(position="fixed", z_index="100"))
        assert not is_modal_candidate(raw(position="relative", z_index="2000"))
        assert not is_modal_candidate(raw(position="fixed", z_index="auto"))
        assert not is_modal_candidate(raw(position="fixed", z_index="2000", display="none"))

    def test_page_kinds(self):
        assert classify_page({"hasDialog": True, "hasForm": True}).kind == "dialog"
        assert classify_page({"hasForm": True, "hasTable": True}).kind == "wizard"
        assert classify_page({"hasWizard": True}).kind == "wizard"
        assert classify_page({"hasForm": True}).kind == "form"
        assert classify_page({"hasTable": True}).kind == "list"
        assert classify_page({"hasCharts": True}).kind == "dashboard"
        assert classify_page({}).kind == "unknown"

    def test_classification_hints_and_title(self):
        result = classify_page({"hasForm": True, "heading": "  New   order ", "title": "App"})
        assert result.hints == ["form"]
        assert result.title == "New order"
