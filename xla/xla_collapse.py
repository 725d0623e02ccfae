"""
Normalizes the raw parser tree by collapsing tag markers.

Tag atoms (`:name`) are removed from their collection and their names are
attached to the next sibling instead, so `( :urgent :review do-thing )`
becomes `( do-thing )` with `do-thing.tags == ("urgent", "review")`.
"""
from typing import List

from xla.xla_datatypes import Atom, Collection, Comment, Error, Kind, Node


class TagCollapser:
    def collapse(self, node: object) -> Node:
        # Non-collection nodes are already in final form
        if isinstance(node, Collection):
            return self._collapse_collection(node)
        if isinstance(node, Node):
            return node
        position = getattr(node, "position", 0)
        return Error("Unexpected data type in element", position if isinstance(position, int) else 0, phase="collapse")

    def _collapse_collection(self, node: Collection) -> Node:
        out: List[Node] = []
        pending: List[str] = []
        pending_position = None

        for child in node.children:
            if isinstance(child, Atom) and child.is_tag:
                if pending_position is None:
                    pending_position = child.position
                pending.append(child.text[1:])
                continue
            if isinstance(child, Comment):
                # Comments never carry tags
                out.append(child)
                continue

            collapsed = self.collapse(child)
            if collapsed.is_error and not (isinstance(child, Node) and child.is_error):
                return collapsed
            if pending:
                collapsed = collapsed.with_tags(pending)
                pending = []
                pending_position = None
            out.append(collapsed)

        if pending:
            targets = [i for i, n in enumerate(out) if not isinstance(n, Comment)]
            if targets:
                out[targets[-1]] = out[targets[-1]].with_tags(pending)
            else:
                # Nothing to carry the tags: synthesize an empty holder
                out.append(Collection(Kind.RAW, [], pending_position, tuple(pending)))

        return node.with_children(out)


def collapse(node: Node) -> Node:
    """Returns a new tree with tag atoms folded into sibling tags."""
    return TagCollapser().collapse(node)
