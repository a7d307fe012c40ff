from __future__ import annotations

import ast
import logging
from collections.abc import Callable
from dataclasses import replace
from time import perf_counter
from typing import Any, NamedTuple, TypeVar

from querypred.expr.compiler import ExpressionCodegen, compile_expression
from querypred.predicate.predicate import (
    Predicate,
    _CallablePredicate,
    _PredicateAnd,
    _PredicateNot,
    _PredicateOr,
)
from querypred.trace.trace import Trace

T_contra = TypeVar("T_contra", contravariant=True)

COMPILED_PREDICATE = "_compiled_predicate"
RT_ALL = "_rt_all"
RT_ANY = "_rt_any"
RT_NOT = "_rt_not"

logger = logging.getLogger(__name__)


def _labelled(trace: Trace, desc: str | None) -> Trace:
    return trace if desc is None else replace(trace, desc=desc)


def _trace_helpers(*, short_circuit: bool) -> dict[str, Callable[..., Trace]]:
    """
    Runtime helpers for trace mode. Every child after the first arrives as a thunk so that
    short-circuiting can skip it.
    """

    def _rt_all(desc: str | None, first: Trace, *thunks: Callable[[], Trace]) -> Trace:
        evaluated = [first]
        for thunk in thunks:
            if short_circuit and not evaluated[-1].success:
                break
            evaluated.append(thunk())
        return _labelled(Trace.combine("and", *evaluated), desc)

    def _rt_any(desc: str | None, first: Trace, *thunks: Callable[[], Trace]) -> Trace:
        evaluated = [first]
        for thunk in thunks:
            if short_circuit and evaluated[-1].success:
                break
            evaluated.append(thunk())
        return _labelled(Trace.combine("or", *evaluated), desc)

    def _rt_not(desc: str | None, operand: Trace) -> Trace:
        return _labelled(operand.negated(), desc)

    return {RT_ALL: _rt_all, RT_ANY: _rt_any, RT_NOT: _rt_not}


class Compiler:
    """
    Compile a predicate tree into one Python function.

    Bool mode inlines every leaf that has an expression form straight into the generated code and
    calls opaque leaves through the compiled namespace. Trace mode wraps each leaf so it returns a
    `Trace`, and builds AND/OR/NOT nodes through lazy runtime helpers.
    """

    class Frame(NamedTuple):
        """
        Work item of the iterative compilation: a node, before or after its children were compiled.
        """

        node: Predicate
        expanded: bool

    def __init__(self, *, trace: bool, short_circuit: bool):
        self.trace = trace
        self.short_circuit = short_circuit

        self._codegen = ExpressionCodegen()
        self._context = self._codegen.context
        self._leaves: dict[int, str] = {}

    def _leaf_call(self, leaf: Predicate[T_contra], fn: Callable[[T_contra], Any]) -> ast.Call:
        name = self._leaves.get(id(leaf))
        if name is None:
            name = f"_leaf_{len(self._leaves)}"
            self._leaves[id(leaf)] = name
            self._context[name] = fn
        return ast.Call(func=ast.Name(id=name, ctx=ast.Load()), args=[ast.Name(id="ctx", ctx=ast.Load())], keywords=[])

    def _leaf(self, leaf: Predicate[T_contra]) -> ast.expr:
        if self.trace:
            return self._leaf_call(leaf, self._traced(leaf))
        if isinstance(leaf, _CallablePredicate):
            return self._leaf_call(leaf, leaf.fn)
        return self._codegen.emit(leaf.to_query_expression().body, "ctx")

    @staticmethod
    def _traced(leaf: Predicate[T_contra]) -> Callable[[T_contra], Trace]:
        fn = leaf.fn if isinstance(leaf, _CallablePredicate) else compile_expression(leaf.to_query_expression())
        desc = leaf.label

        def traced(ctx: T_contra) -> Trace:
            start = perf_counter()
            success = bool(fn(ctx))
            return Trace(success=success, operator="leaf", node=leaf, desc=desc, elapsed=perf_counter() - start)

        return traced

    @staticmethod
    def _helper_call(helper: str, desc: str | None, first: ast.expr, *lazy: ast.expr) -> ast.Call:
        no_args = ast.arguments(posonlyargs=[], args=[], kwonlyargs=[], kw_defaults=[], defaults=[])
        return ast.Call(
            func=ast.Name(id=helper, ctx=ast.Load()),
            args=[ast.Constant(value=desc), first, *(ast.Lambda(args=no_args, body=e) for e in lazy)],
            keywords=[],
        )

    def _join(self, node: Predicate, operands: list[ast.expr]) -> ast.expr:
        desc = node.name if self.trace else None
        match node:
            case _PredicateAnd():
                if self.trace:
                    return self._helper_call(RT_ALL, desc, *operands)
                return ast.BoolOp(op=ast.And(), values=operands)
            case _PredicateOr():
                if self.trace:
                    return self._helper_call(RT_ANY, desc, *operands)
                return ast.BoolOp(op=ast.Or(), values=operands)
            case _PredicateNot():
                (operand,) = operands
                if self.trace:
                    return ast.Call(
                        func=ast.Name(id=RT_NOT, ctx=ast.Load()),
                        args=[ast.Constant(value=desc), operand],
                        keywords=[],
                    )
                return ast.UnaryOp(op=ast.Not(), operand=operand)
            case _:
                msg = f"Not a composite predicate: {type(node).__name__}"
                raise TypeError(msg)

    def compile(self, p: Predicate[T_contra]) -> Callable[[T_contra], bool | Trace]:
        """
        Build the evaluator for `p`. The tree is walked with an explicit stack, so depth is not
        bounded by the recursion limit.
        """
        stack = [self.Frame(p, expanded=False)]
        results: list[ast.expr] = []

        while stack:
            node, expanded = stack.pop()
            match node:
                case _PredicateAnd(children=children) | _PredicateOr(children=children) if not expanded:
                    stack.append(self.Frame(node, expanded=True))
                    stack.extend(self.Frame(child, expanded=False) for child in reversed(children))
                case _PredicateNot(op=op) if not expanded:
                    stack.append(self.Frame(node, expanded=True))
                    stack.append(self.Frame(op, expanded=False))
                case _PredicateAnd(children=children) | _PredicateOr(children=children):
                    operands = results[-len(children) :]
                    del results[-len(children) :]
                    results.append(self._join(node, operands))
                case _PredicateNot():
                    results.append(self._join(node, [results.pop()]))
                case _:
                    results.append(self._leaf(node))

        if self.trace:
            self._context.update(_trace_helpers(short_circuit=self.short_circuit))

        logger.debug("Compiled predicate %s (trace=%s, leaves=%d)", p.label, self.trace, len(self._leaves))
        return self._codegen.build_function(COMPILED_PREDICATE, results.pop())
