"""Two-state machine tracking thinking spans within one upstream response.

The machine is pure: ``transition`` maps a state and an upstream event to the
next state plus the emissions to render, with no I/O. The stream adapter owns
one state value per upstream call.

    NORMAL   --thinking-->  THINKING   emits: open marker, fragment
    THINKING --thinking-->  THINKING   emits: fragment
    THINKING --normal-->    NORMAL     emits: close marker, fragment (if any)
    NORMAL   --normal-->    NORMAL     emits: fragment
"""

import enum
from dataclasses import dataclass, replace
from typing import Optional

from .events import UpstreamEvent

OPEN_MARKER = "<think>\n"
CLOSE_MARKER = "\n</think>\n\n"


class ThinkingPhase(enum.Enum):
    NORMAL = "normal"
    THINKING = "thinking"


class EmissionKind(enum.Enum):
    OPEN = "open"
    CLOSE = "close"
    THINKING = "thinking"
    CONTENT = "content"


@dataclass(frozen=True)
class Emission:
    """A single client-visible fragment produced by a transition.

    Only CONTENT emissions may carry a role, and only when the sender role
    differs from the last one announced in this response.
    """

    kind: EmissionKind
    text: str
    role: Optional[str] = None


@dataclass(frozen=True)
class MachineState:
    phase: ThinkingPhase = ThinkingPhase.NORMAL
    announced_role: Optional[str] = None

    @property
    def thinking(self) -> bool:
        return self.phase is ThinkingPhase.THINKING


def _content(state: MachineState, role: str, text: str) -> tuple[MachineState, list[Emission]]:
    if role != state.announced_role:
        return replace(state, announced_role=role), [Emission(EmissionKind.CONTENT, text, role)]
    if not text:
        return state, []
    return state, [Emission(EmissionKind.CONTENT, text)]


def transition(
    state: MachineState,
    event: UpstreamEvent,
    text: Optional[str] = None,
) -> tuple[MachineState, list[Emission]]:
    """Advance the machine by one content-bearing event.

    ``text`` overrides ``event.message`` so callers can pass the fragment
    after link rewriting.
    """
    fragment = event.message if text is None else text
    role = event.effective_role

    if event.is_thinking:
        emissions: list[Emission] = []
        if not state.thinking:
            state = replace(state, phase=ThinkingPhase.THINKING)
            emissions.append(Emission(EmissionKind.OPEN, OPEN_MARKER))
        if fragment:
            emissions.append(Emission(EmissionKind.THINKING, fragment))
        return state, emissions

    if state.thinking:
        state, emissions = close_span(state)
        if fragment:
            state, more = _content(state, role, fragment)
            emissions.extend(more)
        return state, emissions

    return _content(state, role, fragment)


def close_span(state: MachineState) -> tuple[MachineState, list[Emission]]:
    """Terminate an open thinking span, if any."""
    if not state.thinking:
        return state, []
    return replace(state, phase=ThinkingPhase.NORMAL), [Emission(EmissionKind.CLOSE, CLOSE_MARKER)]
