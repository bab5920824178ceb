from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from src.orchestrator.state import BookingDraft

TIME_SLOTS: Tuple[str, ...] = (
    "8:00 AM - 10:00 AM",
    "10:00 AM - 12:00 PM",
    "1:00 PM - 3:00 PM",
    "3:00 PM - 5:00 PM",
    "6:00 PM - 8:00 PM",
)
EARLIEST_SLOT_HOUR = 6


@dataclass(frozen=True)
class WeightRange:
    label: str
    min_kg: float
    max_kg: float


WEIGHT_RANGES: Tuple[WeightRange, ...] = (
    WeightRange("1-5 kg", 1, 5),
    WeightRange("5-10 kg", 5, 10),
    WeightRange("10-20 kg", 10, 20),
    WeightRange("20-50 kg", 20, 50),
    WeightRange("50+ kg", 50, 80),
)

CATEGORY_ALIASES: Dict[str, Tuple[str, ...]] = {
    "plastic": ("plastic", "pet", "polythene", "bottle", "ප්ලාස්ටික්", "பிளாஸ்டிக்"),
    "paper": ("paper", "newspaper", "කඩදාසි", "පත්තර", "காகிதம்"),
    "cardboard": ("cardboard", "carton", "කාඩ්බෝඩ්", "அட்டை"),
    "metal": ("metal", "scrap", "iron", "aluminium", "aluminum", "copper", "ලෝහ", "உலோகம்"),
    "e-waste": ("e-waste", "ewaste", "electronic", "electronics", "ඉලෙක්ට්‍රොනික", "மின்னணு"),
    "glass": ("glass", "වීදුරු", "கண்ணாடி"),
}

_GENERIC_WORDS = {"waste", "and", "the", "of", "other", "items"}

_RANGE_LABEL = re.compile(r"(?<![\d.])(?:(\d{1,2})\s*(?:-|to)\s*(\d{1,2})|(50)\s*\+)\s*(kg|kgs|kilos?)?(?![\w])", re.I)
_WEIGHT_UNIT = re.compile(r"(?<![\d.])(\d+(?:\.\d+)?)\s*(kg|kgs|kilos?|kilograms?|g|grams?)(?![\w])", re.I)
_BARE_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*$")

_ISO_DATE = re.compile(r"(?<!\d)(\d{4})-(\d{1,2})-(\d{1,2})(?!\d)")
_DAY_MONTH = re.compile(r"(?<![\d/])(\d{1,2})/(\d{1,2})(?:/(\d{2}|\d{4}))?(?![\d/])")
_RELATIVE_DAYS: Tuple[Tuple[str, int], ...] = (
    ("day after tomorrow", 2),
    ("tomorrow", 1),
    ("today", 0),
    ("අනිද්දා", 2),
    ("හෙට", 1),
    ("අද", 0),
    ("நாளை மறுநாள்", 2),
    ("நாளை", 1),
    ("இன்று", 0),
)

_PHONE = re.compile(r"(?<!\d)(?:\+94|94|0)(?:[\s-]?\d){9}(?!\d)")
_POSTAL_KEYWORD = re.compile(r"\b(?:postal|post|zip)\s*(?:code)?\s*(?:is|:|-)?\s*(\d{4,6})(?!\d)", re.I)
_POSTAL_TOKEN = re.compile(r"(?<!\d)(\d{4,6})(?!\d)")
_TRAILING_POSTAL = re.compile(r"\s*(\d{4,6})\s*$")

_CLOCK_12H = re.compile(r"(?<![\d:])(\d{1,2})(?::(\d{2}))?\s*(a\.?m\.?|p\.?m\.?)(?![a-z])", re.I)
_CLOCK_24H = re.compile(r"(?<![\d:])(\d{1,2}):(\d{2})(?!\d)")
_SLOT_SYNONYMS: Tuple[Tuple[str, int], ...] = (
    ("late afternoon", 3),
    ("late morning", 1),
    ("afternoon", 2),
    ("morning", 0),
    ("noon", 1),
    ("midday", 1),
    ("evening", 4),
    ("night", 4),
    ("උදේ", 0),
    ("දවල්", 1),
    ("හවස", 2),
    ("සවස", 4),
    ("රෑ", 4),
    ("காலை", 0),
    ("மதியம்", 1),
    ("பிற்பகல்", 2),
    ("மாலை", 4),
    ("இரவு", 4),
)

_ADDRESS_FILLER = re.compile(
    r"^\s*(?:(?:my|the)\s+)?(?:address|street address)\s*(?:is|:)?\s*|^\s*(?:it'?s|it is)\s+(?:at\s+)?|^\s*at\s+",
    re.I,
)
_CITY_FILLER = re.compile(r"^\s*(?:(?:my|the)\s+)?city\s*(?:is|:)?\s*|^\s*(?:it'?s\s+)?in\s+|^\s*it'?s\s+", re.I)
_NOTES_SKIP = {"none", "no", "nope", "skip", "nothing", "n/a", "na", "no thanks", "නැත", "නෑ", "எதுவும் இல்லை", "இல்லை"}
_HAS_LETTER = re.compile(r"[^\W\d_]")


def is_paper_category(name: Optional[str]) -> bool:
    lowered = (name or "").lower()
    return "paper" in lowered or "cardboard" in lowered


def weight_range_for(kg: float) -> WeightRange:
    for option in WEIGHT_RANGES[:-1]:
        if kg <= option.max_kg:
            return option
    return WEIGHT_RANGES[-1]


def weight_range_by_label(label: Optional[str]) -> Optional[WeightRange]:
    normalized = re.sub(r"\s+", "", (label or "").lower())
    for option in WEIGHT_RANGES:
        if re.sub(r"\s+", "", option.label.lower()) == normalized:
            return option
    return None


def slot_for_hour(hour: int) -> Optional[str]:
    if hour < EARLIEST_SLOT_HOUR or hour >= 20:
        return None
    if hour < 10:
        return TIME_SLOTS[0]
    if hour < 12:
        return TIME_SLOTS[1]
    if hour < 15:
        return TIME_SLOTS[2]
    if hour < 17:
        return TIME_SLOTS[3]
    return TIME_SLOTS[4]


def normalize_phone(raw: str) -> str:
    digits = re.sub(r"\D", "", raw)
    if digits.startswith("94") and len(digits) == 11:
        digits = digits[2:]
    elif digits.startswith("0"):
        digits = digits[1:]
    return "+94" + digits


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date_text(text: str, today: date) -> Optional[date]:
    """Return the first date mentioned in ``text``, or ``None``.

    Relative keywords are resolved against ``today``. Numeric dates are read
    as ``YYYY-MM-DD`` or day-first ``D/M[/Y]``; a ``D/M`` date that already
    passed this year rolls over to next year.
    """
    match = _ISO_DATE.search(text)
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    match = _DAY_MONTH.search(text)
    if match:
        return _day_month_date(match, today)
    lowered = text.lower()
    for keyword, offset in _RELATIVE_DAYS:
        if keyword in lowered:
            return today + timedelta(days=offset)
    return None


def _day_month_date(match: re.Match, today: date) -> Optional[date]:
    day, month, year = int(match.group(1)), int(match.group(2)), match.group(3)
    if year:
        full_year = int(year) + 2000 if len(year) == 2 else int(year)
        return _safe_date(full_year, month, day)
    candidate = _safe_date(today.year, month, day)
    if candidate and candidate < today:
        candidate = _safe_date(today.year + 1, month, day)
    return candidate


@dataclass
class ExtractionContext:
    """Mutable view over one message while matchers claim spans of it."""

    message: str
    draft: BookingDraft
    awaiting: Optional[str]
    categories: Sequence[Dict[str, Any]]
    today: date
    remaining: str = ""
    captured: Set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        if not self.remaining:
            self.remaining = self.message

    def consume(self, start: int, end: int) -> None:
        self.remaining = self.remaining[:start] + " " * (end - start) + self.remaining[end:]

    def consume_all(self) -> None:
        self.remaining = " " * len(self.remaining)

    def assign(self, slot: str, **values: Any) -> bool:
        if slot in self.captured:
            return False
        for name, value in values.items():
            setattr(self.draft, name, value)
        self.captured.add(slot)
        return True

    @property
    def rest(self) -> str:
        return re.sub(r"\s+", " ", self.remaining).strip()


Matcher = Callable[[ExtractionContext], None]


def _category_terms(name: str) -> List[str]:
    base = re.sub(r"\([^)]*\)", " ", name).lower()
    base = re.sub(r"\s+", " ", base).strip()
    terms = {base} if base else set()
    for word in re.split(r"[\s,&/]+", base):
        if len(word) >= 3 and word not in _GENERIC_WORDS:
            terms.add(word)
    for key, aliases in CATEGORY_ALIASES.items():
        if key in base:
            terms.update(aliases)
    return sorted(terms, key=len, reverse=True)


def _term_pattern(term: str) -> re.Pattern:
    return re.compile(r"(?<![a-z0-9])" + re.escape(term) + r"(?:s|es)?(?![a-z0-9])", re.I)


def match_category(ctx: ExtractionContext) -> None:
    if ctx.awaiting in ("address_line1", "city", "special_instructions"):
        return
    if ctx.awaiting == "waste_category":
        number = _BARE_NUMBER.match(ctx.remaining)
        if number and number.group(1).isdigit():
            index = int(number.group(1))
            if 1 <= index <= len(ctx.categories):
                chosen = ctx.categories[index - 1]
                if ctx.assign("waste_category", waste_category_id=chosen["id"], waste_category_name=chosen["name"]):
                    ctx.consume_all()
                return

    best: Optional[Tuple[int, Dict[str, Any], re.Match]] = None
    for category in ctx.categories:
        for term in _category_terms(category.get("name", "")):
            found = _term_pattern(term).search(ctx.remaining)
            if found and (best is None or len(term) > best[0]):
                best = (len(term), category, found)
            if found:
                break
    if best is None:
        return
    _, category, found = best
    if ctx.assign("waste_category", waste_category_id=category["id"], waste_category_name=category["name"]):
        ctx.consume(found.start(), found.end())


def match_weight(ctx: ExtractionContext) -> None:
    awaiting_weight = ctx.awaiting == "weight_range"
    found = _RANGE_LABEL.search(ctx.remaining)
    if found and (found.group(4) or awaiting_weight):
        if found.group(3):
            option: Optional[WeightRange] = WEIGHT_RANGES[-1]
        else:
            option = weight_range_by_label(f"{int(found.group(1))}-{int(found.group(2))} kg")
        if option is not None:
            if ctx.assign("weight_range", weight_range_label=option.label, quantity_kg=float(option.min_kg)):
                ctx.consume(found.start(), found.end())
            return

    found = _WEIGHT_UNIT.search(ctx.remaining)
    if found:
        amount = float(found.group(1))
        if found.group(2).lower().startswith("g"):
            amount = amount / 1000
        if amount > 0 and ctx.assign(
            "weight_range", quantity_kg=round(amount, 3), weight_range_label=weight_range_for(amount).label
        ):
            ctx.consume(found.start(), found.end())
        return

    if not awaiting_weight:
        return
    number = _BARE_NUMBER.match(ctx.remaining)
    if not number:
        return
    value = float(number.group(1))
    if value.is_integer() and 1 <= value <= len(WEIGHT_RANGES):
        option = WEIGHT_RANGES[int(value) - 1]
        assigned = ctx.assign("weight_range", weight_range_label=option.label, quantity_kg=float(option.min_kg))
    elif value > 0:
        assigned = ctx.assign("weight_range", quantity_kg=value, weight_range_label=weight_range_for(value).label)
    else:
        assigned = False
    if assigned:
        ctx.consume_all()


def _find_date(ctx: ExtractionContext) -> Tuple[Optional[date], int, int]:
    found = _ISO_DATE.search(ctx.remaining)
    if found:
        parsed = _safe_date(int(found.group(1)), int(found.group(2)), int(found.group(3)))
        return parsed, found.start(), found.end()
    if ctx.awaiting not in ("address_line1", "city"):
        found = _DAY_MONTH.search(ctx.remaining)
        if found:
            return _day_month_date(found, ctx.today), found.start(), found.end()
    lowered = ctx.remaining.lower()
    for keyword, offset in _RELATIVE_DAYS:
        position = lowered.find(keyword)
        if position >= 0:
            return ctx.today + timedelta(days=offset), position, position + len(keyword)
    return None, -1, -1


def match_date(ctx: ExtractionContext) -> None:
    parsed, start, end = _find_date(ctx)
    if start < 0:
        return
    ctx.consume(start, end)
    if parsed is not None and parsed >= ctx.today:
        ctx.assign("scheduled_date", scheduled_date=parsed.isoformat())


def match_phone(ctx: ExtractionContext) -> None:
    found = _PHONE.search(ctx.remaining)
    if found and ctx.assign("phone", phone=normalize_phone(found.group(0))):
        ctx.consume(found.start(), found.end())


def match_postal_code(ctx: ExtractionContext) -> None:
    found = _POSTAL_KEYWORD.search(ctx.remaining)
    if found is None and ctx.awaiting == "postal_code":
        found = _POSTAL_TOKEN.search(ctx.remaining)
    if found and ctx.assign("postal_code", postal_code=found.group(1)):
        ctx.consume(found.start(), found.end())


def match_time_slot(ctx: ExtractionContext) -> None:
    if ctx.awaiting != "scheduled_time_slot":
        return
    lowered = ctx.remaining.lower()
    compact = re.sub(r"\s+", " ", lowered)
    for slot in TIME_SLOTS:
        if slot.lower() in compact:
            ctx.assign("scheduled_time_slot", scheduled_time_slot=slot)
            ctx.consume_all()
            return

    found = _CLOCK_12H.search(ctx.remaining)
    if found:
        hour = int(found.group(1)) % 12
        if found.group(3).lower().startswith("p"):
            hour += 12
        _assign_slot(ctx, slot_for_hour(hour), found.start(), found.end())
        return
    found = _CLOCK_24H.search(ctx.remaining)
    if found and int(found.group(1)) < 24:
        _assign_slot(ctx, slot_for_hour(int(found.group(1))), found.start(), found.end())
        return

    number = _BARE_NUMBER.match(ctx.remaining)
    if number and number.group(1).isdigit() and 1 <= int(number.group(1)) <= len(TIME_SLOTS):
        _assign_slot(ctx, TIME_SLOTS[int(number.group(1)) - 1], 0, len(ctx.remaining))
        return

    for keyword, index in _SLOT_SYNONYMS:
        position = lowered.find(keyword)
        if position >= 0:
            _assign_slot(ctx, TIME_SLOTS[index], position, position + len(keyword))
            return


def _assign_slot(ctx: ExtractionContext, slot: Optional[str], start: int, end: int) -> None:
    ctx.consume(start, end)
    if slot is not None:
        ctx.assign("scheduled_time_slot", scheduled_time_slot=slot)


def _split_city_and_postal(ctx: ExtractionContext, segment: str) -> Optional[str]:
    trailing = _TRAILING_POSTAL.search(segment)
    if trailing:
        ctx.assign("postal_code", postal_code=trailing.group(1))
        segment = segment[: trailing.start()]
    segment = segment.strip(" .,-")
    return segment if _HAS_LETTER.search(segment) else None


def match_address(ctx: ExtractionContext) -> None:
    if ctx.awaiting != "address_line1":
        return
    text = _ADDRESS_FILLER.sub("", ctx.rest).strip(" .,")
    if len(text) < 3 or not _HAS_LETTER.search(text):
        return
    parts = [part.strip() for part in text.split(",") if part.strip()]
    if len(parts) > 1 and ctx.draft.city is None:
        city = _split_city_and_postal(ctx, parts[-1])
        if city:
            ctx.assign("city", city=city)
            parts = parts[:-1]
    ctx.assign("address_line1", address_line1=", ".join(parts))
    ctx.consume_all()


def match_city(ctx: ExtractionContext) -> None:
    if ctx.awaiting != "city":
        return
    text = _CITY_FILLER.sub("", ctx.rest).strip(" .,")
    city = _split_city_and_postal(ctx, text)
    if city and len(city) <= 60:
        ctx.assign("city", city=city)
        ctx.consume_all()


def capture_notes(message: str) -> Optional[str]:
    text = re.sub(r"\s+", " ", message).strip()
    if text.lower().strip(" .!") in _NOTES_SKIP:
        return None
    return text[:500] or None


DEFAULT_MATCHERS: Tuple[Matcher, ...] = (
    match_category,
    match_weight,
    match_date,
    match_phone,
    match_postal_code,
    match_time_slot,
    match_address,
    match_city,
)


def extract_fields(
    message: str,
    draft: BookingDraft,
    awaiting: Optional[str],
    categories: Sequence[Dict[str, Any]],
    today: date,
    matchers: Sequence[Matcher] = DEFAULT_MATCHERS,
) -> Set[str]:
    """Run ``matchers`` in priority order over ``message`` and update ``draft`` in place."""
    ctx = ExtractionContext(message=message, draft=draft, awaiting=awaiting, categories=categories, today=today)
    for matcher in matchers:
        matcher(ctx)
    return ctx.captured
