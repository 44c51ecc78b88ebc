from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import tree_sitter_javascript
from tree_sitter import Language, Node, Parser

from .source_text import SourceText

JS_LANGUAGE = Language(tree_sitter_javascript.language())

Span = Tuple[int, int]

STATEMENT_TYPES = {
    "expression_statement",
    "variable_declaration",
    "lexical_declaration",
    "return_statement",
    "if_statement",
    "for_statement",
    "for_in_statement",
    "while_statement",
    "do_statement",
    "try_statement",
    "throw_statement",
    "break_statement",
    "continue_statement",
    "switch_statement",
    "debugger_statement",
    "class_declaration",
    "labeled_statement",
}

FUNCTION_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "generator_function",
    "arrow_function",
    "method_definition",
}

# Everything but the `body` of these is loop header, not a statement.
LOOP_TYPES = {"for_statement", "for_in_statement"}

LOGICAL_OPERATORS = {"&&", "||", "??"}


@dataclass
class FunctionSpan:
    name: str
    decl: Span
    loc: Span
    body: Span


@dataclass
class BranchSpan:
    type: str
    loc: Span
    # None marks the implicit alternate of an `if` without `else`
    locations: List[Optional[Span]]


@dataclass
class StaticStructure:
    source: SourceText
    statements: List[Span] = field(default_factory=list)
    functions: List[FunctionSpan] = field(default_factory=list)
    branches: List[BranchSpan] = field(default_factory=list)
    has_error: bool = False


def get_parser() -> Parser:
    return Parser(JS_LANGUAGE)


class _Collector:
    def __init__(self, source: SourceText):
        self.source = source
        self.structure = StaticStructure(source=source)
        self.anonymous_functions = 0

    def span(self, node: Node) -> Span:
        return self.source.char_offset(node.start_byte), self.source.char_offset(node.end_byte)

    def visit(self, node: Node):
        # keyword tokens share type names with nodes (`function`, `class`)
        if not node.is_named:
            return

        if node.type in STATEMENT_TYPES and not _is_loop_header(node):
            self.structure.statements.append(self.span(node))

        if node.type in FUNCTION_TYPES:
            self.add_function(node)
        elif node.type == "if_statement":
            self.add_if(node)
        elif node.type == "ternary_expression":
            self.add_branch("cond-expr", node, [
                node.child_by_field_name("consequence"),
                node.child_by_field_name("alternative"),
            ])
        elif node.type == "switch_statement":
            body = node.child_by_field_name("body")
            cases = [c for c in body.named_children if c.type in ("switch_case", "switch_default")] if body else []
            self.add_branch("switch", node, cases)
        elif node.type == "binary_expression" and _is_logical(node) and not _is_logical(_unwrap_parent(node)):
            self.add_branch("binary-expr", node, _logical_leaves(node))
        elif node.type == "assignment_pattern" and node.parent is not None \
                and node.parent.type == "formal_parameters":
            self.add_branch("default-arg", node, [node.child_by_field_name("right")])

    def add_function(self, node: Node):
        name_node = node.child_by_field_name("name")
        if name_node is not None:
            name = name_node.text.decode("utf-8", errors="replace")
            decl = name_node
        else:
            name = f"(anonymous_{self.anonymous_functions})"
            self.anonymous_functions += 1
            decl = node.child_by_field_name("parameters") or node.child_by_field_name("parameter") or node

        body = node.child_by_field_name("body") or node
        self.structure.functions.append(
            FunctionSpan(name=name, decl=self.span(decl), loc=self.span(node), body=self.span(body))
        )
        # `x => expr` has no statement of its own, the expression stands in for one
        if node.type == "arrow_function" and body is not node and body.type != "statement_block":
            self.structure.statements.append(self.span(body))

    def add_if(self, node: Node):
        consequence = node.child_by_field_name("consequence")
        alternative = node.child_by_field_name("alternative")
        alternative_span = None
        if alternative is not None:
            # `alternative` is the else_clause; its statement is the branch body
            target = alternative.named_children[0] if alternative.named_children else alternative
            alternative_span = self.span(target)
        self.structure.branches.append(BranchSpan(
            type="if",
            loc=self.span(node),
            locations=[self.span(consequence) if consequence is not None else self.span(node), alternative_span],
        ))

    def add_branch(self, branch_type: str, node: Node, locations: List[Optional[Node]]):
        spans = [self.span(n) for n in locations if n is not None]
        if not spans:
            return
        self.structure.branches.append(BranchSpan(type=branch_type, loc=self.span(node), locations=spans))


def _is_loop_header(node: Node) -> bool:
    parent = node.parent
    if parent is None or parent.type not in LOOP_TYPES:
        return False
    body = parent.child_by_field_name("body")
    return body is None or (body.start_byte, body.end_byte) != (node.start_byte, node.end_byte)


def _is_logical(node: Optional[Node]) -> bool:
    if node is None or node.type != "binary_expression":
        return False
    operator = node.child_by_field_name("operator")
    return operator is not None and operator.type in LOGICAL_OPERATORS


def _unwrap(node: Node) -> Node:
    while node.type == "parenthesized_expression" and node.named_children:
        node = node.named_children[0]
    return node


def _unwrap_parent(node: Node) -> Optional[Node]:
    parent = node.parent
    while parent is not None and parent.type == "parenthesized_expression":
        parent = parent.parent
    return parent


def _logical_leaves(node: Node) -> List[Node]:
    leaves = []
    stack = [node]
    while stack:
        current = _unwrap(stack.pop())
        if _is_logical(current):
            # right first so that the left operand pops first
            stack.append(current.child_by_field_name("right"))
            stack.append(current.child_by_field_name("left"))
        else:
            leaves.append(current)
    return leaves


def get_static_structure(code: str) -> StaticStructure:
    """
    Collects statements, functions and branches of a JavaScript source in
    pre-order. The order is a pure function of the source text, so ids
    assigned from it are stable between collections of the same file.
    """
    source = SourceText(code)
    tree = get_parser().parse(source.data)
    collector = _Collector(source)

    # Explicit stack: bundles nest far deeper than the recursion limit.
    stack = [tree.root_node]
    while stack:
        node = stack.pop()
        collector.visit(node)
        stack.extend(reversed(node.children))

    collector.structure.has_error = tree.root_node.has_error
    return collector.structure
