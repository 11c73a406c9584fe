"""
Guided conversation flows carried in button payloads.

A flow position is encoded as ``FLOW:STEP:field1|field2|...`` and handed back to
the widget inside every button, so nothing about the wizard lives on the server.
Tokens are decoded into a FlowState before any routing looks at them.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from intent_classifier import is_fuzzy_match

START = "START"
UNKNOWN_STEP = "UNKNOWN"

TOKEN_PATTERN = re.compile(r"^([A-Z][A-Z_]*):([A-Z_]*)(?::(.*))?$", re.DOTALL)
FIELD_SEPARATOR = "|"
# Stored for an answer that has nothing left after cleaning
ANY_ANSWER = "any"
NORMALIZE_PATTERN = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class Choice:
    label: str
    value: str


@dataclass(frozen=True)
class FlowStep:
    name: str
    prompt: str = ""
    choices: Tuple[Choice, ...] = ()


@dataclass(frozen=True)
class FlowDefinition:
    name: str
    steps: Tuple[FlowStep, ...]

    @property
    def step_names(self) -> List[str]:
        return [s.name for s in self.steps]

    def index_of(self, step_name: str) -> int:
        return self.step_names.index(step_name)

    def question_steps(self) -> Tuple[FlowStep, ...]:
        return self.steps[1:-1]


@dataclass(frozen=True)
class FlowState:
    flow_name: str
    step: str
    fields: Tuple[str, ...] = ()

    @property
    def is_unknown(self) -> bool:
        return self.step == UNKNOWN_STEP

    @property
    def definition(self) -> Optional[FlowDefinition]:
        return FLOWS.get(self.flow_name)

    def answers(self) -> Dict[str, str]:
        """Accumulated fields keyed by the step that asked for them."""
        definition = self.definition
        if definition is None:
            return {}
        return {step.name: value for step, value in zip(definition.question_steps(), self.fields)}


@dataclass(frozen=True)
class FlowPrompt:
    text: str
    buttons: Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class FlowAdvance:
    prompt: Optional[FlowPrompt]
    token: str
    terminal: bool


def _choices(*pairs) -> Tuple[Choice, ...]:
    return tuple(Choice(label=label, value=value) for label, value in pairs)


FLOWS: Dict[str, FlowDefinition] = {
    "VASTU": FlowDefinition("VASTU", (
        FlowStep(START),
        FlowStep(
            "DIRECTION",
            "🧭 Which direction does the wall face? Vastu has a recommendation for each one.",
            _choices(("North", "North"), ("South", "South"), ("East", "East"), ("West", "West"), ("North-East", "North-East")),
        ),
        FlowStep("SEARCH"),
    )),
    "VISUAL": FlowDefinition("VISUAL", (
        FlowStep(START),
        FlowStep(
            "HANDLE_IMAGE",
            "📸 Let's match your room. Upload a photo any time, or tell me which room this is for.",
            _choices(("Living Room", "Living Room"), ("Bedroom", "Bedroom"), ("Office", "Office"), ("Dining", "Dining")),
        ),
        FlowStep(
            "ASK_COLOR",
            "🎨 Which colour should the art bring into the room?",
            _choices(("Blue", "Blue"), ("Gold", "Gold"), ("Green", "Green"), ("Earthy Neutrals", "Beige")),
        ),
        FlowStep(
            "SET_THEME",
            "✨ Last one: pick a theme.",
            _choices(("Abstract", "Abstract"), ("Nature", "Nature"), ("Spiritual", "Spiritual"), ("Modern", "Modern")),
        ),
        FlowStep("FINAL"),
    )),
    "GUIDE": FlowDefinition("GUIDE", (
        FlowStep(START),
        FlowStep(
            "MOOD",
            "I can guide you. What kind of vibe are you looking for?",
            _choices(("Peaceful & Calm", "Peaceful"), ("Energetic & Bold", "Bold Abstract"), ("Traditional", "Traditional")),
        ),
        FlowStep("SHOW"),
    )),
    "CUSTOM": FlowDefinition("CUSTOM", (
        FlowStep(START),
        FlowStep(
            "SIZE",
            "📐 Let's put together something just for you. What size works for the wall?",
            _choices(("Small (up to 24in)", "Small"), ("Medium (24-36in)", "Medium"), ("Large (36in+)", "Large")),
        ),
        FlowStep(
            "THEME",
            "Which theme speaks to you?",
            _choices(("Abstract", "Abstract"), ("Nature", "Nature"), ("Spiritual", "Spiritual"), ("Landscape", "Landscape"), ("Modern", "Modern")),
        ),
        FlowStep(
            "BUDGET",
            "💰 What budget should I stay within?",
            _choices(("Under ₹2,500", "2500"), ("Under ₹5,000", "5000"), ("Under ₹10,000", "10000"), ("No limit", ANY_ANSWER)),
        ),
        FlowStep(
            "TYPE",
            "Should it be an original painting or a poster?",
            _choices(("Original Painting", "painting"), ("Poster / Print", "poster"), ("Either is fine", ANY_ANSWER)),
        ),
        FlowStep("FINAL"),
    )),
}

MAIN_MENU = (
    ("🧭 Vastu advice", "VASTU:START:"),
    ("🪄 Guide me", "GUIDE:START:"),
    ("🎨 Design my own", "CUSTOM:START:"),
    ("📸 Match my room", "VISUAL:START:"),
)


def _clean_field(value: str) -> str:
    return " ".join(str(value).replace(":", " ").replace(FIELD_SEPARATOR, " ").split())


def encode(flow_name: str, step: str, fields=()) -> str:
    return f"{flow_name}:{step}:" + FIELD_SEPARATOR.join(_clean_field(f) for f in fields)


def decode(token) -> Optional[FlowState]:
    """
    Decode a button payload.

    Returns None when the text is not shaped like a flow token at all. Tokens with an
    unknown flow, unknown step, or a field count that does not fit the step decode to
    a state whose step is UNKNOWN_STEP, which callers treat as a restart.
    """
    if not isinstance(token, str):
        return None
    match = TOKEN_PATTERN.match(token.strip())
    if not match:
        return None

    flow_name, step, data = match.groups()
    definition = FLOWS.get(flow_name)
    if definition is None or step not in definition.step_names:
        return FlowState(flow_name, UNKNOWN_STEP)

    fields = tuple(f.strip() for f in data.split(FIELD_SEPARATOR)) if data else ()
    expected = max(definition.index_of(step) - 1, 0)
    if len(fields) != expected:
        return FlowState(flow_name, UNKNOWN_STEP)
    return FlowState(flow_name, step, fields)


def _effective_index(state: FlowState) -> int:
    definition = state.definition
    if definition is None or state.is_unknown:
        raise ValueError(f"Cannot move through unknown flow state {state}")
    index = definition.index_of(state.step)
    # START presents the first question
    return max(index, 1)


def is_terminal(state: FlowState) -> bool:
    definition = state.definition
    if definition is None or state.is_unknown:
        return False
    return _effective_index(state) == len(definition.steps) - 1


def render(state: FlowState) -> FlowAdvance:
    """Prompt and buttons for the current step, or a terminal marker."""
    definition = state.definition
    index = _effective_index(state)
    step = definition.steps[index]
    token = encode(state.flow_name, step.name, state.fields)
    if index == len(definition.steps) - 1:
        return FlowAdvance(prompt=None, token=token, terminal=True)

    current = FlowState(state.flow_name, step.name, state.fields)
    buttons = tuple((choice.label, advance(current, choice.value).token) for choice in step.choices)
    return FlowAdvance(prompt=FlowPrompt(text=step.prompt, buttons=buttons), token=token, terminal=False)


def advance(state: FlowState, user_choice: str) -> FlowAdvance:
    """Record the answer to the current step and move to the next one."""
    definition = state.definition
    index = _effective_index(state)
    if index == len(definition.steps) - 1:
        return render(state)

    fields = state.fields + (_clean_field(user_choice) or ANY_ANSWER,)
    next_step = definition.steps[index + 1]
    next_state = FlowState(state.flow_name, next_step.name, fields)
    token = encode(state.flow_name, next_step.name, fields)
    if index + 1 == len(definition.steps) - 1:
        return FlowAdvance(prompt=None, token=token, terminal=True)
    return FlowAdvance(prompt=render(next_state).prompt, token=token, terminal=False)


def _normalize(text: str) -> str:
    return NORMALIZE_PATTERN.sub("", (text or "").lower())


def match_choice(state: FlowState, text: str) -> str:
    """Map typed text onto one of the current step's choices, else return it as typed."""
    step = state.definition.steps[_effective_index(state)]
    typed = _normalize(text)
    if not typed:
        return (text or "").strip()

    best = None
    best_length = 0
    for choice in step.choices:
        for candidate in (_normalize(choice.value), _normalize(choice.label)):
            if not candidate:
                continue
            if typed == candidate:
                return choice.value
            if candidate in typed and len(candidate) > best_length:
                best, best_length = choice.value, len(candidate)
    if best:
        return best

    for choice in step.choices:
        if is_fuzzy_match(typed, _normalize(choice.value)):
            return choice.value
    return text.strip()
