"""stackcc.scope

Lexical scope chain used by the code generator.

Frames live in a list (an arena) and point at their parent by index. A
function frame starts a fresh stack frame: lookups never walk past it into
whatever frame was active when the function was entered. A block frame
continues its function's offsets, so a block's locals get slots below the
ones already in use.

Offsets are positive byte distances below the frame pointer: the first
local lives at `rbp - 8`, the next at `rbp - 16` and so on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

WORD_SIZE = 8


class ScopeError(RuntimeError):
    """Scope stack misuse (a code generator bug, not a user error)"""
    pass


@dataclass
class Frame:
    bindings: Dict[str, int] = field(default_factory=dict)
    next_offset: int = 0
    outer: Optional[int] = None
    is_function: bool = False
    # Largest offset handed out in this function; only kept on function frames.
    high_water: int = 0


class Environment:
    """Chain of scope frames plus the label counter for one compilation"""

    def __init__(self):
        self._frames: List[Frame] = [Frame(is_function=True)]
        self._label_counter = 0

    @property
    def current(self) -> Frame:
        return self._frames[-1]

    @property
    def depth(self) -> int:
        return len(self._frames)

    # -----------------
    # Frame management
    # -----------------

    def enter_block(self) -> Frame:
        parent = self.current
        frame = Frame(next_offset=parent.next_offset, outer=len(self._frames) - 1)
        self._frames.append(frame)
        return frame

    def enter_function(self) -> Frame:
        frame = Frame(outer=len(self._frames) - 1, is_function=True)
        self._frames.append(frame)
        return frame

    def leave(self) -> Frame:
        if self.current.outer is None:
            raise ScopeError("cannot leave the outermost scope")
        self._frames.pop()
        return self.current

    # -----------------
    # Bindings
    # -----------------

    def _chain(self):
        """Yield frames from the innermost out to the enclosing function frame"""
        index: Optional[int] = len(self._frames) - 1
        while index is not None:
            frame = self._frames[index]
            yield frame
            if frame.is_function:
                return
            index = frame.outer

    def lookup(self, name: str) -> Optional[int]:
        for frame in self._chain():
            if name in frame.bindings:
                return frame.bindings[name]
        return None

    def contains(self, name: str) -> bool:
        return self.lookup(name) is not None

    def declare(self, name: str) -> int:
        """Bind `name` to a new slot in the current frame and return its offset.

        Shadows any outer binding. Redeclaring in the same frame replaces the
        old slot.
        """
        frame = self.current
        frame.next_offset += WORD_SIZE
        frame.bindings[name] = frame.next_offset
        root = self._function_frame()
        root.high_water = max(root.high_water, frame.next_offset)
        logger.debug("declare %s at rbp-%d", name, frame.next_offset)
        return frame.next_offset

    def _function_frame(self) -> Frame:
        frame = self.current
        for frame in self._chain():
            pass
        return frame

    def frame_size(self) -> int:
        """Bytes of locals used so far by the current function"""
        return self._function_frame().high_water

    # -----------------
    # Labels
    # -----------------

    def next_label(self) -> int:
        label = self._label_counter
        self._label_counter += 1
        return label
