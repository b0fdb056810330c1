# assessment/normalizer.py

import json
import logging
import re
from typing import Any, Dict, List, Optional

from assessment.errors import ParseError
from assessment.llm_client import MODE_TOOL_CALL, RawModelOutput
from assessment.models import Analysis, Fidelity, NormalizedAnalysis, SwotAnalysis, TitledItem
from assessment.utils import Utils

logger = logging.getLogger("maturity_backend")

SUMMARY_PLACEHOLDER = "Analysis summary not available."
PEER_PLACEHOLDER = "Peer comparison not available."

ANALYSIS_KEYS = {"summary", "peerComparison", "swot", "recommendations", "nextSteps"}
SWOT_KEYS = ("strengths", "weaknesses", "opportunities", "threats")

# "]" or "}" directly followed by a new quoted key
_MISSING_COMMA_RE = re.compile(r'([\]}])(\s*)"')

# numbered section header, e.g. "2. Peer Comparison", "## **3. SWOT Analysis**"
_SECTION_HEADER_RE = re.compile(r'^\s*(?:#+\s*)?(?:\*\*)?\s*([1-9])[.)]\s*(.+?)\s*$')
_BOLD_LABEL_RE = re.compile(r'^\*\*[^*]+\*\*:?\s*$')
_BULLET_RE = re.compile(r'^\s*(?:[-•*]|\d+[.)])\s+(.*)$')
_NUMBERED_TITLED_RE = re.compile(
    r'(\d+)\.\s*\*\*([^*]+?):?\*\*:?\s*(.+?)(?=\s*\d+\.\s*\*\*|$)', re.DOTALL
)
_PHASE_RE = re.compile(
    r'(?:\*\*)?Phase\s+(\d+)\s*\(([^)]+)\)(?:\*\*)?:?(?:\*\*)?\s*(.+?)(?=(?:\*\*)?Phase\s+\d+\s*\(|$)',
    re.DOTALL | re.IGNORECASE,
)
_NUMBERED_RE = re.compile(r'(?:^|\s)\d+\.\s+(.+?)(?=\s\d+\.\s|$)', re.DOTALL)
_TRAILING_NUMBER_RE = re.compile(r'\s+\d{1,2}\.$')

# header number -> (section, keywords); the model is asked for sections in this order
SECTION_HEADERS = {
    1: ("summary", ("summary",)),
    2: ("peerComparison", ("peer", "comparison")),
    3: ("swot", ("swot",)),
    4: ("recommendations", ("strategic", "recommendation")),
    5: ("nextSteps", ("next steps", "roadmap")),
    6: ("callToAction", ("call", "action")),
}
ITEM_SECTIONS = {"recommendations", "nextSteps", "callToAction"}

MIN_BULLET_LENGTH = 11
MAX_SWOT_ITEMS = 5
MIN_SENTENCE_LENGTH = 21
SENTENCE_FALLBACK_COUNT = 3


class ResponseNormalizer(Utils):
    """
    Turns a RawModelOutput into a canonical Analysis.

    Tool-call payloads are parsed directly with per-field defaults. Free text goes
    through fence stripping, comma repair, balanced-brace truncation and tolerant
    loaders, and finally through the line-oriented section segmenter.
    """

    # -----------------------
    # Entry point
    # -----------------------

    def normalize(self, raw: RawModelOutput) -> NormalizedAnalysis:
        if raw.payload is not None and isinstance(raw.payload, dict):
            return NormalizedAnalysis(analysis=self.from_payload(raw.payload), fidelity=Fidelity.STRUCTURED)

        if raw.mode == MODE_TOOL_CALL:
            try:
                data = json.loads(raw.text)
                if isinstance(data, dict):
                    return NormalizedAnalysis(analysis=self.from_payload(data), fidelity=Fidelity.STRUCTURED)
            except json.JSONDecodeError as e:
                self.color_print(f"normalize: tool-call arguments are not valid JSON ({e}), repairing", color="yellow")

        return self.normalize_text(raw.text or "")

    def normalize_text(self, text: str) -> NormalizedAnalysis:
        cleaned = self.clean_triple_backticks(text)

        data = self.parse_json_text(cleaned)
        if data is not None:
            return NormalizedAnalysis(analysis=self.from_payload(data), fidelity=Fidelity.STRUCTURED)

        segmented = self.segment_text(cleaned)
        if segmented is not None:
            self.color_print("normalize: analysis recovered from unstructured text", color="yellow")
            return NormalizedAnalysis(analysis=segmented, fidelity=Fidelity.RECOVERED_FROM_TEXT)

        logger.error("normalize: model output unusable after every recovery stage")
        raise ParseError(
            "Model output could not be parsed into an analysis",
            raw_text=text,
            cleaned_text=cleaned,
        )

    # -----------------------
    # Case A: structured payload
    # -----------------------

    def _payload_text(self, value) -> str:
        # strings are kept verbatim; only non-string values are coerced
        if isinstance(value, str):
            return value
        return self._coerce_field_to_str(value)

    def _payload_field(self, value, placeholder: str) -> str:
        if isinstance(value, str):
            return value
        return self._coerce_field_to_str(value) or placeholder

    def _string_list(self, value) -> List[str]:
        if not isinstance(value, list):
            return []
        return [self._payload_text(item) for item in value if item is not None]

    def _titled_items(self, value) -> List[TitledItem]:
        if not isinstance(value, list):
            return []
        items = []
        for item in value:
            if isinstance(item, dict):
                items.append(TitledItem(
                    title=self._payload_text(item.get("title")),
                    content=self._payload_text(item.get("content")),
                ))
            elif item is not None:
                items.append(TitledItem(title="", content=self._payload_text(item)))
        return items

    def from_payload(self, data: Dict[str, Any]) -> Analysis:
        """
        String fields are reproduced exactly. Missing or null fields fall back to a
        placeholder string or an empty list; other non-string values are coerced.
        """
        swot = data.get("swot") if isinstance(data.get("swot"), dict) else {}
        return Analysis(
            summary=self._payload_field(data.get("summary"), SUMMARY_PLACEHOLDER),
            peer_comparison=self._payload_field(data.get("peerComparison"), PEER_PLACEHOLDER),
            swot=SwotAnalysis(**{key: self._string_list(swot.get(key)) for key in SWOT_KEYS}),
            recommendations=self._titled_items(data.get("recommendations")),
            next_steps=self._titled_items(data.get("nextSteps")),
        )

    # -----------------------
    # Case B: JSON inside free text
    # -----------------------

    def repair_missing_commas(self, text: str) -> str:
        return _MISSING_COMMA_RE.sub(r'\1,\2"', text)

    def truncate_to_balanced(self, text: str) -> Optional[str]:
        """
        Cuts the text right after the last position where the outermost object closes,
        starting from the first "{". Brackets inside string literals are ignored.
        """
        start = text.find("{")
        if start < 0:
            return None
        depth = 0
        in_string = False
        escaped = False
        last_balanced = -1
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch in "{[":
                depth += 1
            elif ch in "}]":
                depth -= 1
                if depth == 0 and ch == "}":
                    last_balanced = i
                elif depth < 0:
                    break
        if last_balanced < 0:
            return None
        return text[start:last_balanced + 1]

    def _as_analysis_dict(self, data) -> Optional[Dict[str, Any]]:
        if isinstance(data, dict) and ANALYSIS_KEYS.intersection(data.keys()):
            return data
        return None

    def _try_load(self, text: Optional[str]) -> Optional[Dict[str, Any]]:
        if not text:
            return None
        try:
            return self._as_analysis_dict(self.load_json_strict(text))
        except Exception:
            # commentjson surfaces lark parse errors as well as ValueError
            return None

    def parse_json_text(self, cleaned: str) -> Optional[Dict[str, Any]]:
        data = self._try_load(cleaned)
        if data is not None:
            return data

        repaired = self.repair_missing_commas(cleaned)
        data = self._try_load(repaired)
        if data is not None:
            self.color_print("normalize: JSON recovered after comma repair", color="yellow")
            return data

        data = self._try_load(self.truncate_to_balanced(repaired))
        if data is not None:
            self.color_print("normalize: JSON recovered after truncation", color="yellow")
            return data

        if "{" in repaired:
            data = self._as_analysis_dict(self.load_fault_tolerant_json(repaired))
            if data is not None:
                self.color_print("normalize: JSON recovered by fault tolerant loader", color="yellow")
                return data
        return None

    # -----------------------
    # Case B fallback: section segmenter
    # -----------------------

    def _section_for_header(self, line: str) -> Optional[str]:
        match = _SECTION_HEADER_RE.match(line)
        if not match:
            return None
        title = match.group(2).replace("*", "").replace("#", "").strip().rstrip(":").strip()
        # "1. **Title**: content" is a list item, not a header
        if ":" in title or not title or len(title) > 60:
            return None
        expected = SECTION_HEADERS.get(int(match.group(1)))
        if expected is None:
            return None
        section, keywords = expected
        lowered = title.lower()
        if any(keyword in lowered for keyword in keywords):
            return section
        return None

    def _swot_subheader(self, line: str) -> Optional[str]:
        lowered = line.lower()
        bare = lowered.strip().lstrip("#").replace("*", "").strip()
        for key in SWOT_KEYS:
            if f"**{key}**" in lowered or (bare.startswith(key) and len(bare) <= 40):
                return key
        return None

    def extract_list_items(self, text: str) -> List[str]:
        items: List[str] = []
        current: Optional[List[str]] = None
        for line in text.split("\n"):
            match = _BULLET_RE.match(line)
            if match:
                current = [match.group(1).strip()]
                items.append(current)
            elif current is not None and line.strip():
                current.append(line.strip())

        cleaned = [" ".join(parts).replace("**", "").strip() for parts in items]
        cleaned = [item for item in cleaned if len(item) >= MIN_BULLET_LENGTH]
        if cleaned:
            return cleaned[:MAX_SWOT_ITEMS]

        sentences = [s.strip() for s in re.split(r'[.!?]+', text) if len(s.strip()) >= MIN_SENTENCE_LENGTH]
        return [s.replace("**", "") for s in sentences[:SENTENCE_FALLBACK_COUNT]]

    @staticmethod
    def _item_content(text: str) -> str:
        # drop a dangling "2." left behind by the next item's numbering
        return _TRAILING_NUMBER_RE.sub("", text.strip()).strip()

    def parse_structured_items(self, text: str, default_prefix: str) -> List[TitledItem]:
        items = [
            TitledItem(title=m.group(2).strip(), content=self._item_content(m.group(3)))
            for m in _NUMBERED_TITLED_RE.finditer(text)
            if self._item_content(m.group(3))
        ]
        if items:
            return items

        items = [
            TitledItem(title=f"Phase {m.group(1)} ({m.group(2).strip()})", content=self._item_content(m.group(3)))
            for m in _PHASE_RE.finditer(text)
            if self._item_content(m.group(3))
        ]
        if items:
            return items

        contents = [m.group(1).strip() for m in _NUMBERED_RE.finditer(text)]
        return [
            TitledItem(title=f"{default_prefix} {i}", content=content)
            for i, content in enumerate((c for c in contents if c), start=1)
        ]

    def segment_text(self, text: str) -> Optional[Analysis]:
        sections: Dict[str, str] = {}
        swot: Dict[str, List[str]] = {key: [] for key in SWOT_KEYS}

        current_section = ""
        current_swot = ""
        buffer: List[str] = []

        def flush():
            nonlocal buffer
            if not buffer:
                return
            if current_section == "swot":
                if current_swot:
                    items = self.extract_list_items("\n".join(buffer))
                    if items:
                        swot[current_swot] = items
            elif current_section:
                sections[current_section] = " ".join(buffer).strip()
            buffer = []

        for line in text.split("\n"):
            stripped = line.strip()
            if not stripped:
                continue

            section = self._section_for_header(stripped)
            if section:
                flush()
                current_section = section
                current_swot = ""
                continue

            if current_section == "swot":
                sub = self._swot_subheader(stripped)
                if sub:
                    flush()
                    current_swot = sub
                    continue

            if stripped == "---" or stripped.startswith("###") or len(stripped) < 3:
                continue
            if current_section not in ITEM_SECTIONS and _BOLD_LABEL_RE.match(stripped):
                continue
            buffer.append(stripped)
        flush()

        recommendations: List[TitledItem] = []
        if sections.get("recommendations"):
            content = sections["recommendations"]
            recommendations = self.parse_structured_items(content, "Recommendation") or [
                TitledItem(title="Strategic Recommendations", content=content)
            ]
        elif sections.get("callToAction"):
            recommendations = [TitledItem(title="Call to Action", content=sections["callToAction"])]

        next_steps: List[TitledItem] = []
        if sections.get("nextSteps"):
            content = sections["nextSteps"]
            next_steps = self.parse_structured_items(content, "Phase") or [
                TitledItem(title="Next Steps", content=content)
            ]

        summary = sections.get("summary", "")
        if not (summary or recommendations or next_steps or any(swot.values())):
            return None

        return Analysis(
            summary=summary or SUMMARY_PLACEHOLDER,
            peer_comparison=sections.get("peerComparison") or PEER_PLACEHOLDER,
            swot=SwotAnalysis(**swot),
            recommendations=recommendations,
            next_steps=next_steps,
        )
