from __future__ import annotations

from querypred import Predicate, predicate, where_predicate


class OpaqueFactory:
    """
    Chains of Python-callable leaves: compiled as calls through the generated namespace.
    """

    def leaf(self, i: int) -> Predicate:
        return predicate(lambda ctx: ctx["age"] > i % 50)

    def make_chain(self, depth: int) -> Predicate:
        p = self.leaf(0)
        for i in range(1, depth):
            p = p & self.leaf(i) if i % 2 else p | self.leaf(i)
        return p


class ExpressionFactory(OpaqueFactory):
    """
    Chains of expression leaves: inlined into the generated code.
    """

    def leaf(self, i: int) -> Predicate:
        threshold = i % 50
        return where_predicate(lambda e: e.age > threshold)
