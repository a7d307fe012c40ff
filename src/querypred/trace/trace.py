from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, Literal, Protocol, TypeVar

if TYPE_CHECKING:
    from querypred.predicate import Predicate
    from querypred.types import LogicBinOp, LogicOp

T_contra = TypeVar("T_contra", contravariant=True)

TraceOperator = Literal["and", "or", "not", "leaf", "const"]


class TraceStyle(Protocol):
    """
    Turns a trace tree into text.
    """

    def render(self, trace: Trace, level: int = 0) -> str:
        """
        Args:
            trace: the subtree to render.
            level: depth of `trace` in the whole tree, for indentation.
        """
        ...


class DefaultTraceStyle:
    """
    Indented tree, one line per node.

    Examples:
        ```text
        FAIL and
          PASS great_movie
          FAIL recent_movie
        ```
    """

    indent = "  "

    def render(self, trace: Trace, level: int = 0) -> str:
        lines = []
        for depth, node in trace.walk(level):
            status = "PASS" if node.success else "FAIL"
            label = node.desc or node.operator
            if node.operator in ("and", "or", "not") and node.desc:
                label = f"{node.operator} ({node.desc})"
            lines.append(f"{self.indent * depth}{status} {label}")
        return "\n".join(lines)


@dataclass(kw_only=True, slots=True, frozen=True)
class Trace(Generic[T_contra]):
    """
    Outcome of one predicate evaluation, node by node.

    Leaves carry the predicate that produced them in `node` and its label in `desc`. Composite
    traces hold the children that were actually evaluated: with short-circuiting, an AND stops
    after its first failing child and an OR after its first passing one.
    """

    success: bool
    operator: TraceOperator
    children: tuple[Trace, ...] = ()

    node: Predicate[T_contra] | None = field(default=None, repr=False, compare=False)
    desc: str | None = None
    elapsed: float = field(default=0.0, compare=False)

    _style: TraceStyle | None = field(default=None, repr=False, compare=False, hash=False, init=False)

    @classmethod
    def combine(cls, op: LogicBinOp, *children: Trace | bool) -> Trace:
        """
        Join traces under one AND/OR node. Unlabelled children of the same operator are merged in.
        """
        flat: list[Trace] = []
        for child in children:
            if isinstance(child, bool):
                child = Trace(success=child, operator="const")  # noqa: PLW2901
            elif not isinstance(child, Trace):
                msg = f"Cannot combine a trace with {type(child).__name__}"
                raise TypeError(msg)
            if child.operator == op and child.desc is None:
                flat.extend(child.children)
            else:
                flat.append(child)

        outcomes = (c.success for c in flat)
        return cls(
            success=all(outcomes) if op == "and" else any(outcomes),
            operator=op,
            children=tuple(flat),
            elapsed=sum(c.elapsed for c in flat),
        )

    def negated(self) -> Trace:
        return Trace(success=not self.success, operator="not", children=(self,), elapsed=self.elapsed)

    @property
    def style(self) -> TraceStyle:
        return self._style or DefaultTraceStyle()

    @style.setter
    def style(self, style: TraceStyle):
        object.__setattr__(self, "_style", style)

    def walk(self, level: int = 0) -> Iterator[tuple[int, Trace]]:
        """
        Yield `(depth, trace)` pairs, parents before children.
        """
        stack: list[tuple[int, Trace]] = [(level, self)]
        while stack:
            depth, current = stack.pop()
            yield depth, current
            stack.extend((depth + 1, child) for child in reversed(current.children))

    def failures(self) -> list[Trace]:
        """
        Leaf traces that evaluated to False.
        """
        return [t for _, t in self.walk() if t.operator == "leaf" and not t.success]

    def render(self) -> str:
        return self.style.render(self)

    def __str__(self) -> str:
        return self.render()

    def __bool__(self) -> bool:
        return self.success

    def _binary(self, op: LogicOp, other: Trace | bool) -> Trace:  # noqa: FBT001
        if not isinstance(other, Trace | bool):
            return NotImplemented
        return Trace.combine(op, self, other)  # ty:ignore[invalid-argument-type]

    def __and__(self, other: Trace | bool) -> Trace:
        return self._binary("and", other)

    def __or__(self, other: Trace | bool) -> Trace:
        return self._binary("or", other)

    def __invert__(self) -> Trace:
        return self.negated()
