"""
Position lookups over a parsed Program.

These are the hooks an editor integration builds on: `node_at` finds the
innermost node under a cursor, `path_to` returns the chain of enclosing
nodes (outermost first), and `walk` visits every node in source order.
"""
from typing import Iterator, List, Optional

from aoc.aoc_datatypes import Node, Program, Comment


def iter_children(node: Node) -> Iterator[Node]:
    """Direct child nodes, in source order."""
    for field in node._fields:
        value = getattr(node, field)
        if isinstance(node, Program) and field == 'comments':
            continue
        yield from _nodes_in(value)


def _nodes_in(value) -> Iterator[Node]:
    if isinstance(value, Node):
        yield value
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _nodes_in(item)


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal of node and its descendants."""
    yield node
    for child in iter_children(node):
        yield from walk(child)


def path_to(program: Program, line: int, col: int) -> List[Node]:
    """Nodes whose span contains (line, col), outermost first."""
    path = []
    node = program
    while node is not None:
        path.append(node)
        node = next((c for c in iter_children(node) if c.contains(line, col)), None)
    return path


def node_at(program: Program, line: int, col: int) -> Optional[Node]:
    """Innermost node at (line, col), or a Comment covering it, or None."""
    for comment in program.comments:
        if comment.contains(line, col):
            return comment
    path = path_to(program, line, col)
    if len(path) == 1:
        return None
    return path[-1]


def comment_before(program: Program, node: Node) -> Optional[Comment]:
    """The comment on the line directly above node, used as hover documentation."""
    for comment in program.comments:
        if comment.line == node.line - 1:
            return comment
    return None
